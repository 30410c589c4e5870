"""
Reaction - Emoji reaction keyed by (message_id, user_id, emoji).

The composite key is unique at the storage layer, which makes concurrent
toggles from the same user resolve deterministically.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ...utils.date_utils import utc_now

ReactionAction = Literal["added", "removed"]


class Reaction(BaseModel):
    """One user's emoji on one message."""

    message_id: str
    user_id: str
    emoji: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.message_id, self.user_id, self.emoji)


class Reactor(BaseModel):
    """A user who reacted with a given emoji."""

    user_id: str
    created_at: datetime


class ReactionCount(BaseModel):
    emoji: str
    count: int


class ReactionToggleResult(BaseModel):
    """Outcome of a toggle with the full per-emoji aggregation after it."""

    action: ReactionAction
    message_id: str
    conversation_id: str
    user_id: str
    emoji: str
    counts: dict[str, int] = Field(default_factory=dict)
