"""
Huddle Services

Service layer for the message lifecycle:
- ModerationPipeline: generative rewrite with deterministic fallback
- MessageService / MessageMutationService: send, edit, soft delete
- ReactionService / ReadReceiptService: idempotent per-message state
- PresenceService / TypingService: TTL-backed ephemeral signals
- Broadcasters: room and connection fan-out

Stores (ChatStore, EphemeralStore) live in persistence and ephemeral.
"""

from .conversations import ConversationService
from .messages import MessageMutationService, MessageService
from .moderation import ModerationPipeline
from .presence import PresenceService, TypingService
from .reactions import ReactionService
from .receipts import ReadReceiptService

__all__ = [
    "ConversationService",
    "MessageService",
    "MessageMutationService",
    "ModerationPipeline",
    "PresenceService",
    "TypingService",
    "ReactionService",
    "ReadReceiptService",
]
