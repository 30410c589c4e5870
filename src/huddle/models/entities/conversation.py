"""
Conversation - One abstraction for broadcast rooms, direct chats and groups.

Membership is a single predicate (``admits``): an ``open`` conversation admits
everyone, ``direct`` and ``group`` conversations admit their explicit members.
Core logic never special-cases a conversation identifier.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from ..core import CoreModel, new_id
from ...utils.date_utils import utc_now


class ConversationKind(str, Enum):
    OPEN = "open"
    DIRECT = "direct"
    GROUP = "group"


DIRECT_ID_PREFIX = "dm:"


def direct_conversation_id(user_a: str, user_b: str) -> str:
    """Deterministic id for a direct conversation (order of users is irrelevant)."""
    first, second = sorted((user_a, user_b))
    return f"{DIRECT_ID_PREFIX}{first}:{second}"


def is_direct_conversation_id(conversation_id: str) -> bool:
    """Whether ``conversation_id`` lies in the generated direct-conversation namespace."""
    return conversation_id.startswith(DIRECT_ID_PREFIX)


class Conversation(CoreModel):
    """Conversation with a generic membership predicate."""

    id: str = Field(default_factory=lambda: new_id("conv"))
    name: Optional[str] = Field(default=None, description="Display name (groups)")
    kind: ConversationKind = Field(default=ConversationKind.OPEN)
    member_ids: set[str] = Field(
        default_factory=set,
        description="Explicit members; for open conversations, the known participants",
    )
    last_activity_at: datetime = Field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.kind == ConversationKind.OPEN

    def admits(self, user_id: str) -> bool:
        """Whether ``user_id`` may post to and read this conversation."""
        return self.is_open or user_id in self.member_ids

    def expected_readers(self, sender_id: str) -> set[str]:
        """Members expected to read a message from ``sender_id``."""
        return {member for member in self.member_ids if member != sender_id}
