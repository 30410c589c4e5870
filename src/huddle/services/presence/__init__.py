from .presence import PresenceChange, PresenceService, PresenceStatus
from .typing_indicators import TypingService, TypingState

__all__ = [
    "PresenceService",
    "PresenceStatus",
    "PresenceChange",
    "TypingService",
    "TypingState",
]
