"""Tests for ReadReceiptService."""

import pytest

from huddle.errors import NotFound
from huddle.services.receipts import ReadReceiptService


@pytest.fixture
def receipts(chat_store, clock):
    return ReadReceiptService(chat_store, clock)


@pytest.mark.asyncio
class TestMarkRead:
    async def test_mark_read_is_idempotent(self, receipts, make_message, clock):
        """A second read moves read_at forward without a second receipt."""
        message = await make_message()
        await receipts.mark_read(message.id, "bob")
        clock.advance(10)
        await receipts.mark_read(message.id, "bob")

        found = await receipts.list_receipts(message.id)
        assert len(found) == 1
        assert found[0].read_at == clock.now()

    async def test_missing_message(self, receipts):
        with pytest.raises(NotFound):
            await receipts.mark_read("msg_missing", "bob")

    async def test_receipts_ordered_by_read_time(self, receipts, make_message, clock):
        message = await make_message()
        await receipts.mark_read(message.id, "bob")
        clock.advance(1)
        await receipts.mark_read(message.id, "carol")
        assert [r.user_id for r in await receipts.list_receipts(message.id)] == ["bob", "carol"]

        clock.advance(1)
        await receipts.mark_read(message.id, "bob")
        assert [r.user_id for r in await receipts.list_receipts(message.id)] == ["carol", "bob"]

    async def test_mark_conversation_read(self, receipts, message_service, chat_store):
        """Every live message the reader did not send gets a receipt."""
        first = await message_service.send("general", "alice", "one")
        second = await message_service.send("general", "alice", "two")
        await message_service.send("general", "bob", "three")
        await chat_store.update_message_if_active(second.id, is_deleted=True)

        marked = await receipts.mark_conversation_read("general", "bob")

        assert [r.message_id for r in marked] == [first.id]


@pytest.mark.asyncio
class TestBatchStatus:
    async def test_batch_for_user(self, receipts, make_message):
        read = await make_message()
        unread = await make_message()
        await receipts.mark_read(read.id, "bob")

        status = await receipts.batch_status([read.id, unread.id], user_id="bob")
        assert status == {read.id: True, unread.id: False}

    async def test_batch_counts(self, receipts, make_message):
        read = await make_message()
        unread = await make_message()
        await receipts.mark_read(read.id, "bob")
        await receipts.mark_read(read.id, "carol")

        assert await receipts.batch_status([read.id, unread.id]) == {read.id: 2, unread.id: 0}

    async def test_empty_batch(self, receipts):
        assert await receipts.batch_status([]) == {}


@pytest.mark.asyncio
class TestHasAllRead:
    async def test_direct_conversation(self, receipts, message_service, conversation_service):
        direct = await conversation_service.get_or_create_direct("alice", "bob")
        message = await message_service.send(direct.id, "alice", "did you see this?")

        assert not await receipts.has_all_read(message.id)
        await receipts.mark_read(message.id, "alice")
        assert not await receipts.has_all_read(message.id)
        await receipts.mark_read(message.id, "bob")
        assert await receipts.has_all_read(message.id)

    async def test_group_conversation(self, receipts, message_service, conversation_service):
        group = await conversation_service.create_group("Ops", "alice", ["bob", "carol"])
        message = await message_service.send(group.id, "alice", "deploy at noon")

        await receipts.mark_read(message.id, "bob")
        assert not await receipts.has_all_read(message.id)
        await receipts.mark_read(message.id, "carol")
        assert await receipts.has_all_read(message.id)

    async def test_missing_message(self, receipts):
        with pytest.raises(NotFound):
            await receipts.has_all_read("msg_missing")
