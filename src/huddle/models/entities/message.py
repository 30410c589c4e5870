"""
Message - A single chat message and both of its content variants.

A message keeps the sender's verbatim text (``original_content``) next to the
organization-safe rewrite (``sanitized_content``). Which one a reader sees is
decided at read/broadcast time, never baked into the row.

Lifecycle:
- Active (``is_edited`` is an attribute, not a state)
- Deleted (terminal, soft delete: the row and its content are retained for audit)
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from ..core import CoreModel, new_id


class MessageState(str, Enum):
    """Mutation state machine states."""

    ACTIVE = "active"
    DELETED = "deleted"


class Message(CoreModel):
    """
    Chat message owned by its conversation.

    Created by the sending flow, mutated only by the mutation state machine,
    never physically removed.
    """

    id: str = Field(default_factory=lambda: new_id("msg"))
    conversation_id: str = Field(..., description="Owning conversation")
    sender_id: str = Field(..., description="Author user id")
    original_content: str = Field(
        default="",
        description="Verbatim text as submitted (replaced only by an edit)",
    )
    sanitized_content: str = Field(
        default="",
        description="Organization-safe variant shown to other readers",
    )
    applied_tone: Optional[str] = Field(
        default=None,
        description="Tone directive applied by a generative backend (None for fallback)",
    )
    media_ref: Optional[str] = Field(
        default=None, description="Reference to an attached media object"
    )
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    @property
    def state(self) -> MessageState:
        return MessageState.DELETED if self.is_deleted else MessageState.ACTIVE
