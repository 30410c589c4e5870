"""
Visibility resolver.

Decides, per viewer, which content variant of a message is shown. Runs at
read and broadcast time; stored rows are never rewritten for a viewer.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ...models.context import ConnectionContext, Role
from ...models.entities import Message


def resolve_display_text(message: Message, viewer_id: Optional[str], viewer_role: Role | str | None) -> str:
    """
    Text ``viewer_id`` should see for ``message``.

    Admins and the sender see the original; everyone else sees the sanitized
    variant. An empty sanitized variant falls back to the original for all.
    """
    if not message.sanitized_content:
        return message.original_content
    if viewer_role == Role.ADMIN:
        return message.original_content
    if viewer_id is not None and viewer_id == message.sender_id:
        return message.original_content
    return message.sanitized_content


class MessageView(BaseModel):
    """A message as rendered for one viewer."""

    id: str
    conversation_id: str
    sender_id: str
    content: str
    media_ref: Optional[str] = None
    applied_tone: Optional[str] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime
    is_own: bool = False


def render_message(message: Message, viewer: Optional[ConnectionContext]) -> MessageView:
    """Render ``message`` for ``viewer`` (None renders for the general audience)."""
    viewer_id = viewer.user_id if viewer else None
    viewer_role = viewer.role if viewer else None
    return MessageView(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        content=resolve_display_text(message, viewer_id, viewer_role),
        media_ref=message.media_ref,
        applied_tone=message.applied_tone,
        is_edited=message.is_edited,
        edited_at=message.edited_at,
        is_deleted=message.is_deleted,
        deleted_at=message.deleted_at,
        created_at=message.created_at,
        is_own=viewer_id == message.sender_id,
    )
