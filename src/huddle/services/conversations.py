"""
Conversation service.

Open rooms, direct chats and groups are the same Conversation model; only
the membership predicate differs. Open conversations are created lazily on
first use, direct conversations get a deterministic id from the sorted
user pair so both participants resolve to the same row.
"""

from datetime import datetime
from typing import Iterable, Optional

from loguru import logger

from ..errors import NotFound, PermissionDenied, ValidationFailed
from ..models.entities import (
    Conversation,
    ConversationKind,
    direct_conversation_id,
    is_direct_conversation_id,
)
from ..utils.date_utils import Clock, system_clock
from .persistence import ChatStore


class ConversationService:
    """Create, resolve and touch conversations."""

    def __init__(self, store: ChatStore, clock: Clock = system_clock):
        self.store = store
        self.clock = clock

    async def get(self, conversation_id: str) -> Conversation:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFound(f"Conversation {conversation_id} not found")
        return conversation

    async def ensure(self, conversation_id: str) -> Conversation:
        """Resolve a conversation, creating an open one on first use."""
        if not conversation_id or not conversation_id.strip():
            raise ValidationFailed("Conversation id is required")

        conversation = await self.store.get_conversation(conversation_id)
        if conversation is not None:
            return conversation

        # Direct ids are only created by get_or_create_direct
        if is_direct_conversation_id(conversation_id):
            raise NotFound(f"Conversation {conversation_id} not found")

        now = self.clock.now()
        conversation = await self.store.create_conversation_if_absent(
            Conversation(
                id=conversation_id,
                kind=ConversationKind.OPEN,
                last_activity_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(f"Created open conversation {conversation_id}")
        return conversation

    async def get_or_create_direct(self, user_a: str, user_b: str) -> Conversation:
        if user_a == user_b:
            raise ValidationFailed("Direct conversation needs two different users")

        now = self.clock.now()
        conversation = await self.store.create_conversation_if_absent(
            Conversation(
                id=direct_conversation_id(user_a, user_b),
                kind=ConversationKind.DIRECT,
                member_ids={user_a, user_b},
                last_activity_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        if (
            conversation.kind != ConversationKind.DIRECT
            or conversation.member_ids != {user_a, user_b}
        ):
            logger.warning(
                f"Conversation {conversation.id} exists as {conversation.kind.value} "
                f"with members {sorted(conversation.member_ids)}"
            )
            raise PermissionDenied(f"Conversation {conversation.id} is not a direct conversation")
        logger.debug(f"Resolved direct conversation {conversation.id}")
        return conversation

    async def create_group(
        self, name: str, creator_id: str, member_ids: Iterable[str]
    ) -> Conversation:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Group name is required")

        members = {m for m in member_ids if m} | {creator_id}
        if len(members) < 2:
            raise ValidationFailed("A group needs at least one member besides the creator")

        now = self.clock.now()
        conversation = await self.store.create_conversation(
            Conversation(
                name=name,
                kind=ConversationKind.GROUP,
                member_ids=members,
                last_activity_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(f"Created group {conversation.id} '{name}' with {len(members)} members")
        return conversation

    async def touch(
        self,
        conversation_id: str,
        at: Optional[datetime] = None,
        participant_id: Optional[str] = None,
    ) -> None:
        """Record activity; open conversations also learn their participants here."""
        await self.store.touch_conversation(
            conversation_id, at or self.clock.now(), participant_id
        )
