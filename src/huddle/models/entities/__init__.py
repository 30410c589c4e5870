"""
Huddle Entity Models

Durable entities:
- Message: both content variants plus edit/delete state
- Conversation: open, direct or group membership behind one predicate
- Reaction: (message, user, emoji) unique toggle state
- ReadReceipt: (message, user) unique read marker

Ephemeral presence/typing records live in the ephemeral store and have no
model here beyond the typing payload (see huddle.services.presence).
"""

from .conversation import (
    Conversation,
    ConversationKind,
    direct_conversation_id,
    is_direct_conversation_id,
)
from .message import Message, MessageState
from .reaction import (
    Reaction,
    ReactionAction,
    ReactionCount,
    ReactionToggleResult,
    Reactor,
)
from .read_receipt import ReadReceipt

__all__ = [
    "Message",
    "MessageState",
    "Conversation",
    "ConversationKind",
    "direct_conversation_id",
    "is_direct_conversation_id",
    "Reaction",
    "ReactionAction",
    "ReactionCount",
    "ReactionToggleResult",
    "Reactor",
    "ReadReceipt",
]
