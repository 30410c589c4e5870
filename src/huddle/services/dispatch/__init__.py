from .broadcaster import (
    Broadcaster,
    Delivery,
    LocalBroadcaster,
    RedisBroadcaster,
    conversation_room,
    user_room,
)
from .events import (
    DispatchEvent,
    EventKind,
    MessageCreated,
    MessageDeleted,
    MessageEdited,
    PresenceChanged,
    ReactionChanged,
    ReadReceiptUpdated,
    TypingStateChanged,
    event_from_dict,
)

__all__ = [
    "Broadcaster",
    "Delivery",
    "LocalBroadcaster",
    "RedisBroadcaster",
    "conversation_room",
    "user_room",
    "DispatchEvent",
    "EventKind",
    "MessageCreated",
    "MessageEdited",
    "MessageDeleted",
    "ReactionChanged",
    "ReadReceiptUpdated",
    "TypingStateChanged",
    "PresenceChanged",
    "event_from_dict",
]
