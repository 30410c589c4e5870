"""
Durable chat state interface.

Services depend only on these operations, never on a storage engine.
Two guarantees every implementation must provide:

- ``update_message_if_active`` is a conditional write: it applies the change
  only while ``is_deleted`` is still false and reports a lost race as None.
- Reactions are unique on (message_id, user_id, emoji) and receipts on
  (message_id, user_id); a racing duplicate insert is a no-op.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from ...models.entities import Conversation, Message, Reaction, ReadReceipt


class ChatStore(ABC):
    """Persistence collaborator for messages, conversations, reactions and receipts."""

    async def connect(self) -> None:
        """Open connections (no-op by default)."""

    async def disconnect(self) -> None:
        """Close connections (no-op by default)."""

    # Messages

    @abstractmethod
    async def create_message(self, message: Message) -> Message:
        ...

    @abstractmethod
    async def get_message(self, message_id: str) -> Optional[Message]:
        ...

    @abstractmethod
    async def list_messages(
        self,
        conversation_id: str,
        limit: int,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> list[Message]:
        """Newest ``limit`` messages after skipping ``offset``, returned oldest first."""

    @abstractmethod
    async def list_message_ids(
        self, conversation_id: str, exclude_sender_id: Optional[str] = None
    ) -> list[str]:
        """Ids of non-deleted messages in a conversation, optionally excluding one sender."""

    @abstractmethod
    async def update_message_if_active(
        self, message_id: str, **fields: Any
    ) -> Optional[Message]:
        """Apply ``fields`` iff the message exists and is not deleted."""

    # Conversations

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        ...

    @abstractmethod
    async def create_conversation_if_absent(self, conversation: Conversation) -> Conversation:
        """Insert unless the id exists; return the stored conversation either way."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def touch_conversation(
        self,
        conversation_id: str,
        at: datetime,
        participant_id: Optional[str] = None,
    ) -> None:
        """Bump ``last_activity_at`` and record ``participant_id`` as a known member."""

    # Reactions

    @abstractmethod
    async def insert_reaction(self, reaction: Reaction) -> bool:
        """Insert; False when the composite key already exists."""

    @abstractmethod
    async def delete_reaction(self, message_id: str, user_id: str, emoji: str) -> bool:
        """Delete; False when there was nothing to delete."""

    @abstractmethod
    async def find_reactions(self, message_id: str) -> list[Reaction]:
        """All reactions on a message in insertion order."""

    @abstractmethod
    async def count_reactions(self, message_id: str) -> dict[str, int]:
        """Per-emoji counts, keyed in order of each emoji's first insertion."""

    @abstractmethod
    async def find_user_reactions(
        self, user_id: str, conversation_id: str
    ) -> list[Reaction]:
        """A user's reactions within a conversation, newest first."""

    @abstractmethod
    async def delete_reactions_for_message(self, message_id: str) -> int:
        ...

    # Read receipts

    @abstractmethod
    async def upsert_receipt(self, receipt: ReadReceipt) -> ReadReceipt:
        """Insert or overwrite ``read_at`` for the (message_id, user_id) pair."""

    @abstractmethod
    async def find_receipts(self, message_id: str) -> list[ReadReceipt]:
        """Receipts for a message ordered by ``read_at`` ascending."""

    @abstractmethod
    async def find_receipts_for_messages(
        self, message_ids: Iterable[str], user_id: Optional[str] = None
    ) -> list[ReadReceipt]:
        ...

    @abstractmethod
    async def count_receipts_for_messages(
        self, message_ids: Iterable[str]
    ) -> dict[str, int]:
        """Read counts per message id (ids without reads are omitted)."""
