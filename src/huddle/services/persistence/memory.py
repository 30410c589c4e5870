"""
In-memory chat store.

Every check-and-write runs without an intervening ``await``, so on a single
event loop the conditional update and the composite-key constraints are
atomic. Stored models are copied on the way in and out.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

from ...models.entities import Conversation, Message, Reaction, ReadReceipt
from .base import ChatStore


class InMemoryChatStore(ChatStore):
    """Dictionary-backed ChatStore for local development and tests."""

    def __init__(self):
        self._messages: dict[str, Message] = {}
        self._conversations: dict[str, Conversation] = {}
        self._reactions: dict[tuple[str, str, str], Reaction] = {}
        self._receipts: dict[tuple[str, str], ReadReceipt] = {}

    # Messages

    async def create_message(self, message: Message) -> Message:
        if message.id in self._messages:
            raise ValueError(f"Message {message.id} already exists")
        self._messages[message.id] = message.model_copy(deep=True)
        return message

    async def get_message(self, message_id: str) -> Optional[Message]:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    async def list_messages(
        self,
        conversation_id: str,
        limit: int,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> list[Message]:
        matching = [
            m
            for m in self._messages.values()
            if m.conversation_id == conversation_id and (include_deleted or not m.is_deleted)
        ]
        matching.sort(key=lambda m: m.created_at, reverse=True)
        page = matching[offset : offset + limit]
        return [m.model_copy(deep=True) for m in reversed(page)]

    async def list_message_ids(
        self, conversation_id: str, exclude_sender_id: Optional[str] = None
    ) -> list[str]:
        return [
            m.id
            for m in self._messages.values()
            if m.conversation_id == conversation_id
            and not m.is_deleted
            and m.sender_id != exclude_sender_id
        ]

    async def update_message_if_active(
        self, message_id: str, **fields: Any
    ) -> Optional[Message]:
        current = self._messages.get(message_id)
        if current is None or current.is_deleted:
            return None
        updated = current.model_copy(update=fields, deep=True)
        self._messages[message_id] = updated
        return updated.model_copy(deep=True)

    # Conversations

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        if conversation.id in self._conversations:
            raise ValueError(f"Conversation {conversation.id} already exists")
        self._conversations[conversation.id] = conversation.model_copy(deep=True)
        return conversation

    async def create_conversation_if_absent(self, conversation: Conversation) -> Conversation:
        stored = self._conversations.setdefault(
            conversation.id, conversation.model_copy(deep=True)
        )
        return stored.model_copy(deep=True)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def touch_conversation(
        self,
        conversation_id: str,
        at: datetime,
        participant_id: Optional[str] = None,
    ) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return
        members = set(conversation.member_ids)
        if participant_id:
            members.add(participant_id)
        self._conversations[conversation_id] = conversation.model_copy(
            update={"last_activity_at": at, "updated_at": at, "member_ids": members}
        )

    # Reactions

    async def insert_reaction(self, reaction: Reaction) -> bool:
        if reaction.key in self._reactions:
            return False
        self._reactions[reaction.key] = reaction.model_copy()
        return True

    async def delete_reaction(self, message_id: str, user_id: str, emoji: str) -> bool:
        return self._reactions.pop((message_id, user_id, emoji), None) is not None

    async def find_reactions(self, message_id: str) -> list[Reaction]:
        return [r.model_copy() for r in self._reactions.values() if r.message_id == message_id]

    async def count_reactions(self, message_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for reaction in self._reactions.values():
            if reaction.message_id == message_id:
                counts[reaction.emoji] = counts.get(reaction.emoji, 0) + 1
        return counts

    async def find_user_reactions(
        self, user_id: str, conversation_id: str
    ) -> list[Reaction]:
        in_conversation = {
            m.id for m in self._messages.values() if m.conversation_id == conversation_id
        }
        found = [
            r.model_copy()
            for r in self._reactions.values()
            if r.user_id == user_id and r.message_id in in_conversation
        ]
        # Newest first; insertion order breaks timestamp ties
        return list(reversed(sorted(found, key=lambda r: r.created_at)))

    async def delete_reactions_for_message(self, message_id: str) -> int:
        keys = [key for key in self._reactions if key[0] == message_id]
        for key in keys:
            del self._reactions[key]
        return len(keys)

    # Read receipts

    async def upsert_receipt(self, receipt: ReadReceipt) -> ReadReceipt:
        self._receipts[receipt.key] = receipt.model_copy()
        return receipt

    async def find_receipts(self, message_id: str) -> list[ReadReceipt]:
        found = [r.model_copy() for r in self._receipts.values() if r.message_id == message_id]
        return sorted(found, key=lambda r: r.read_at)

    async def find_receipts_for_messages(
        self, message_ids: Iterable[str], user_id: Optional[str] = None
    ) -> list[ReadReceipt]:
        wanted = set(message_ids)
        return [
            r.model_copy()
            for r in self._receipts.values()
            if r.message_id in wanted and (user_id is None or r.user_id == user_id)
        ]

    async def count_receipts_for_messages(
        self, message_ids: Iterable[str]
    ) -> dict[str, int]:
        wanted = set(message_ids)
        counts: dict[str, int] = {}
        for receipt in self._receipts.values():
            if receipt.message_id in wanted:
                counts[receipt.message_id] = counts.get(receipt.message_id, 0) + 1
        return counts
