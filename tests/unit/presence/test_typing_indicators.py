"""Tests for throttled typing indicators."""

import asyncio

import pytest

from huddle.services.presence import TypingService
from huddle.settings import PresenceSettings


@pytest.fixture
def typing(ephemeral_store, clock):
    return TypingService(ephemeral_store, clock, PresenceSettings())


@pytest.mark.asyncio
class TestSetTyping:
    async def test_second_call_within_throttle(self, typing, clock):
        """Only the first of two calls within the throttle window is accepted."""
        assert await typing.set_typing("general", "alice", "Alice") is True
        clock.advance(1)
        assert await typing.set_typing("general", "alice", "Alice") is False
        clock.advance(1)
        assert await typing.set_typing("general", "alice", "Alice") is True

    async def test_throttle_is_per_conversation(self, typing):
        assert await typing.set_typing("general", "alice")
        assert await typing.set_typing("random", "alice")
        assert await typing.set_typing("general", "bob")

    async def test_marker_expires(self, typing, clock):
        await typing.set_typing("general", "alice", "Alice")
        assert await typing.is_user_typing("general", "alice")

        clock.advance(3.1)
        assert not await typing.is_user_typing("general", "alice")
        assert await typing.get_typing_users("general") == []

    async def test_stop_typing(self, typing):
        """Stopping clears the marker and the throttle slot."""
        await typing.set_typing("general", "alice")
        await typing.stop_typing("general", "alice")

        assert not await typing.is_user_typing("general", "alice")
        assert await typing.set_typing("general", "alice") is True


@pytest.mark.asyncio
class TestTypingUsers:
    async def test_lists_states_in_start_order(self, typing, clock):
        await typing.set_typing("general", "bob", "Bob")
        clock.advance(0.5)
        await typing.set_typing("general", "alice", "Alice")

        users = await typing.get_typing_users("general")
        assert [(u.user_id, u.display_name) for u in users] == [("bob", "Bob"), ("alice", "Alice")]

    async def test_prefix_collision(self, typing):
        """A conversation id that extends another one is not mixed in."""
        await typing.set_typing("team", "alice")
        await typing.set_typing("team:ops", "bob")

        users = await typing.get_typing_users("team")
        assert [u.user_id for u in users] == ["alice"]


@pytest.mark.asyncio
class TestThrottleSweep:
    async def test_cleanup_drops_stale_entries(self, typing, clock):
        await typing.set_typing("general", "alice")
        clock.advance(200)
        await typing.set_typing("general", "bob")
        clock.advance(101)

        assert typing.cleanup_throttle() == 1
        assert typing.throttle_size == 1

    async def test_background_sweep(self, ephemeral_store, clock):
        typing = TypingService(
            ephemeral_store, clock, PresenceSettings(sweep_interval_seconds=0.01)
        )
        await typing.set_typing("general", "alice")
        clock.advance(400)

        await typing.start()
        try:
            await asyncio.sleep(0.05)
            assert typing.throttle_size == 0
        finally:
            await typing.stop()
        assert not typing.running

    async def test_store_down(self, unavailable_store, clock):
        """An unreachable store rejects the call without consuming the throttle slot."""
        typing = TypingService(unavailable_store, clock, PresenceSettings())

        assert await typing.set_typing("general", "alice") is False
        assert typing.throttle_size == 0
        assert await typing.get_typing_users("general") == []
        assert not await typing.is_user_typing("general", "alice")
        await typing.stop_typing("general", "alice")
