"""Tests for ReactionService toggles and aggregations."""

import pytest

from huddle.errors import NotFound, ValidationFailed
from huddle.models.entities import Reaction
from huddle.services.reactions import ReactionService


@pytest.fixture
def reactions(chat_store, clock):
    return ReactionService(chat_store, clock)


@pytest.mark.asyncio
class TestToggle:
    async def test_toggle_adds_then_removes(self, reactions, make_message):
        """Toggling twice restores the pre-toggle state."""
        message = await make_message()

        added = await reactions.toggle(message.id, "bob", "👍")
        assert added.action == "added"
        assert added.counts == {"👍": 1}
        assert added.conversation_id == "general"

        removed = await reactions.toggle(message.id, "bob", "👍")
        assert removed.action == "removed"
        assert removed.counts.get("👍", 0) == 0

    async def test_two_users_one_retracts(self, reactions, make_message):
        """Two users react, one toggles again: one reaction remains."""
        message = await make_message()
        await reactions.toggle(message.id, "alice", "👍")
        await reactions.toggle(message.id, "bob", "👍")
        result = await reactions.toggle(message.id, "alice", "👍")

        assert result.counts == {"👍": 1}
        assert await reactions.has_user_reacted(message.id, "bob", "👍")
        assert not await reactions.has_user_reacted(message.id, "alice", "👍")

    async def test_one_user_many_emojis(self, reactions, make_message):
        message = await make_message()
        await reactions.toggle(message.id, "bob", "👍")
        result = await reactions.toggle(message.id, "bob", "🎉")
        assert result.counts == {"👍": 1, "🎉": 1}

    @pytest.mark.parametrize("emoji", ["", None, "x" * 11])
    async def test_invalid_emoji(self, reactions, make_message, emoji):
        message = await make_message()
        with pytest.raises(ValidationFailed) as exc_info:
            await reactions.toggle(message.id, "bob", emoji)
        assert exc_info.value.message == "Invalid emoji"

    async def test_emoji_at_max_length(self, reactions, make_message):
        message = await make_message()
        result = await reactions.toggle(message.id, "bob", "x" * 10)
        assert result.action == "added"

    async def test_missing_message(self, reactions):
        with pytest.raises(NotFound):
            await reactions.toggle("msg_missing", "bob", "👍")

    async def test_deleted_message(self, reactions, make_message, chat_store):
        message = await make_message()
        await chat_store.update_message_if_active(message.id, is_deleted=True)
        with pytest.raises(ValidationFailed):
            await reactions.toggle(message.id, "bob", "👍")

    async def test_insert_conflict_resolves_to_removed(self, reactions, make_message, chat_store, monkeypatch):
        """If a racing toggle inserted the row first, this toggle removes it."""
        message = await make_message()
        real_delete = chat_store.delete_reaction
        calls = []

        async def delete_missing_once(message_id, user_id, emoji):
            calls.append(emoji)
            if len(calls) == 1:
                # The racing insert lands right after our delete found nothing
                await chat_store.insert_reaction(
                    Reaction(message_id=message_id, user_id=user_id, emoji=emoji)
                )
                return False
            return await real_delete(message_id, user_id, emoji)

        monkeypatch.setattr(chat_store, "delete_reaction", delete_missing_once)
        result = await reactions.toggle(message.id, "bob", "👍")

        assert result.action == "removed"
        assert result.counts == {}


@pytest.mark.asyncio
class TestAggregations:
    async def test_detailed_in_insertion_order(self, reactions, make_message, clock):
        message = await make_message()
        await reactions.toggle(message.id, "bob", "👍")
        clock.advance(1)
        await reactions.toggle(message.id, "alice", "👍")
        await reactions.toggle(message.id, "carol", "🎉")

        detailed = await reactions.get_detailed(message.id)

        assert [r.user_id for r in detailed["👍"]] == ["bob", "alice"]
        assert [r.user_id for r in detailed["🎉"]] == ["carol"]

    async def test_top_breaks_ties_by_first_insertion(self, reactions, make_message):
        message = await make_message()
        await reactions.toggle(message.id, "alice", "🎉")
        await reactions.toggle(message.id, "bob", "👍")
        await reactions.toggle(message.id, "carol", "🔥")
        await reactions.toggle(message.id, "dave", "🔥")

        top = await reactions.get_top(message.id)
        assert [(t.emoji, t.count) for t in top] == [("🔥", 2), ("🎉", 1), ("👍", 1)]

        top_two = await reactions.get_top(message.id, limit=2)
        assert [t.emoji for t in top_two] == ["🔥", "🎉"]

    async def test_counts(self, reactions, make_message):
        message = await make_message()
        assert await reactions.get_counts(message.id) == {}
        await reactions.toggle(message.id, "bob", "👍")
        assert await reactions.get_counts(message.id) == {"👍": 1}

    async def test_user_reactions_in_conversation(self, reactions, make_message, clock):
        """Newest first, other conversations excluded."""
        first = await make_message()
        second = await make_message()
        elsewhere = await make_message(conversation_id="random")

        await reactions.toggle(first.id, "bob", "👍")
        clock.advance(1)
        await reactions.toggle(second.id, "bob", "🎉")
        await reactions.toggle(elsewhere.id, "bob", "🔥")

        found = await reactions.get_user_reactions_in_conversation("bob", "general")
        assert [(r.message_id, r.emoji) for r in found] == [(second.id, "🎉"), (first.id, "👍")]

    async def test_remove_all(self, reactions, make_message):
        message = await make_message()
        await reactions.toggle(message.id, "bob", "👍")
        await reactions.toggle(message.id, "carol", "👍")
        assert await reactions.remove_all(message.id) == 2
        assert await reactions.get_counts(message.id) == {}
