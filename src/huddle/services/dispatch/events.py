"""
Dispatch events.

Each event kind has a fixed payload shape. Events that carry message text
keep the full Message and render it per recipient in ``payload_for``, so the
visibility rules apply at broadcast time exactly as they do at read time.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel

from ...models.context import ConnectionContext
from ...models.entities import Message, ReactionAction
from ..messages.visibility import render_message, resolve_display_text
from ..presence import PresenceStatus


class EventKind(str, Enum):
    MESSAGE_CREATED = "message-created"
    MESSAGE_EDITED = "message-edited"
    MESSAGE_DELETED = "message-deleted"
    REACTION_CHANGED = "reaction-changed"
    READ_RECEIPT_UPDATED = "read-receipt-updated"
    TYPING_STATE_CHANGED = "typing-state-changed"
    PRESENCE_CHANGED = "presence-changed"


class DispatchEvent(BaseModel):
    """Base event. The payload is the model itself unless a subclass renders it."""

    kind: ClassVar[EventKind]

    def payload_for(self, viewer: Optional[ConnectionContext]) -> dict[str, Any]:
        return self.model_dump(mode="json")


class MessageCreated(DispatchEvent):
    kind: ClassVar[EventKind] = EventKind.MESSAGE_CREATED

    message: Message
    sender_name: Optional[str] = None

    def payload_for(self, viewer: Optional[ConnectionContext]) -> dict[str, Any]:
        return {
            "message": render_message(self.message, viewer).model_dump(mode="json"),
            "sender_name": self.sender_name,
        }


class MessageEdited(DispatchEvent):
    kind: ClassVar[EventKind] = EventKind.MESSAGE_EDITED

    message: Message

    def payload_for(self, viewer: Optional[ConnectionContext]) -> dict[str, Any]:
        return {
            "message_id": self.message.id,
            "conversation_id": self.message.conversation_id,
            "new_content": resolve_display_text(
                self.message,
                viewer.user_id if viewer else None,
                viewer.role if viewer else None,
            ),
            "edited_at": self.message.edited_at.isoformat() if self.message.edited_at else None,
            "sender_id": self.message.sender_id,
        }


class MessageDeleted(DispatchEvent):
    kind: ClassVar[EventKind] = EventKind.MESSAGE_DELETED

    message_id: str
    conversation_id: str
    deleted_at: datetime
    sender_id: str


class ReactionChanged(DispatchEvent):
    kind: ClassVar[EventKind] = EventKind.REACTION_CHANGED

    message_id: str
    conversation_id: str
    user_id: str
    username: Optional[str] = None
    emoji: str
    action: ReactionAction
    reaction_counts: dict[str, int]


class ReadReceiptUpdated(DispatchEvent):
    kind: ClassVar[EventKind] = EventKind.READ_RECEIPT_UPDATED

    message_id: str
    conversation_id: str
    user_id: str
    username: Optional[str] = None
    read_at: datetime


class TypingStateChanged(DispatchEvent):
    kind: ClassVar[EventKind] = EventKind.TYPING_STATE_CHANGED

    conversation_id: str
    user_id: str
    username: Optional[str] = None
    is_typing: bool


class PresenceChanged(DispatchEvent):
    kind: ClassVar[EventKind] = EventKind.PRESENCE_CHANGED

    user_id: str
    status: PresenceStatus
    last_seen: datetime


EVENT_TYPES: dict[str, type[DispatchEvent]] = {
    cls.kind.value: cls
    for cls in (
        MessageCreated,
        MessageEdited,
        MessageDeleted,
        ReactionChanged,
        ReadReceiptUpdated,
        TypingStateChanged,
        PresenceChanged,
    )
}


def event_from_dict(kind: str, data: dict[str, Any]) -> DispatchEvent:
    """Rebuild an event serialized with ``model_dump``."""
    try:
        event_type = EVENT_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown event kind: {kind}")
    return event_type.model_validate(data)
