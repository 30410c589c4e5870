"""
Read receipt tracker.

``mark_read`` is an upsert on (message_id, user_id): the first call creates
the receipt, later calls only move ``read_at`` forward. Receipts are never
deleted.
"""

from typing import Iterable

from loguru import logger

from ...errors import NotFound
from ...models.entities import ReadReceipt
from ...utils.date_utils import Clock, system_clock
from ..persistence import ChatStore


class ReadReceiptService:
    """Per-user read state for messages."""

    def __init__(self, store: ChatStore, clock: Clock = system_clock):
        self.store = store
        self.clock = clock

    async def mark_read(self, message_id: str, user_id: str) -> ReadReceipt:
        message = await self.store.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")

        receipt = await self.store.upsert_receipt(
            ReadReceipt(message_id=message_id, user_id=user_id, read_at=self.clock.now())
        )
        logger.info(f"Message {message_id} read by {user_id}")
        return receipt

    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> list[ReadReceipt]:
        """Mark every live message the user did not send as read."""
        message_ids = await self.store.list_message_ids(
            conversation_id, exclude_sender_id=user_id
        )
        now = self.clock.now()
        receipts = [
            await self.store.upsert_receipt(
                ReadReceipt(message_id=message_id, user_id=user_id, read_at=now)
            )
            for message_id in message_ids
        ]
        logger.info(
            f"Conversation {conversation_id} read by {user_id} ({len(receipts)} messages)"
        )
        return receipts

    async def list_receipts(self, message_id: str) -> list[ReadReceipt]:
        """Receipts ordered by read time, earliest first."""
        return await self.store.find_receipts(message_id)

    async def batch_status(
        self, message_ids: Iterable[str], user_id: str | None = None
    ) -> dict[str, bool] | dict[str, int]:
        """
        Read status for many messages in one query.

        With ``user_id``: ``{message_id: has this user read it}``.
        Without: ``{message_id: number of readers}``.
        """
        message_ids = list(dict.fromkeys(message_ids))
        if not message_ids:
            return {}

        if user_id is not None:
            receipts = await self.store.find_receipts_for_messages(message_ids, user_id=user_id)
            read = {r.message_id for r in receipts}
            return {message_id: message_id in read for message_id in message_ids}

        counts = await self.store.count_receipts_for_messages(message_ids)
        return {message_id: counts.get(message_id, 0) for message_id in message_ids}

    async def has_all_read(self, message_id: str) -> bool:
        """True once every conversation member except the sender has a receipt."""
        message = await self.store.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")
        conversation = await self.store.get_conversation(message.conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")

        expected = conversation.expected_readers(message.sender_id)
        readers = {r.user_id for r in await self.store.find_receipts(message_id)}
        return expected <= readers
