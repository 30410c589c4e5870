from .context import ConnectionContext, Role
from .core import CoreModel
from .entities import (
    Conversation,
    ConversationKind,
    Message,
    Reaction,
    ReadReceipt,
)

__all__ = [
    "ConnectionContext",
    "Role",
    "CoreModel",
    "Conversation",
    "ConversationKind",
    "Message",
    "Reaction",
    "ReadReceipt",
]
