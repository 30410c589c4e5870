"""Tests for the in-process ephemeral store."""

import pytest


@pytest.mark.asyncio
class TestInMemoryEphemeralStore:
    async def test_set_get_delete(self, ephemeral_store):
        await ephemeral_store.set("k", "v")
        assert await ephemeral_store.get("k") == "v"
        assert await ephemeral_store.delete("k") is True
        assert await ephemeral_store.delete("k") is False
        assert await ephemeral_store.get("k") is None

    async def test_ttl(self, ephemeral_store, clock):
        """Keys vanish once their TTL elapses."""
        await ephemeral_store.set("k", "v", ttl_seconds=3)
        clock.advance(2.9)
        assert await ephemeral_store.exists("k")
        clock.advance(0.1)
        assert not await ephemeral_store.exists("k")

    async def test_set_refreshes_ttl(self, ephemeral_store, clock):
        await ephemeral_store.set("k", "v", ttl_seconds=3)
        clock.advance(2)
        await ephemeral_store.set("k", "v", ttl_seconds=3)
        clock.advance(2)
        assert await ephemeral_store.exists("k")

    async def test_exists_many_keeps_order(self, ephemeral_store):
        await ephemeral_store.set("a", "1")
        await ephemeral_store.set("c", "3")
        assert await ephemeral_store.exists_many(["a", "b", "c"]) == [True, False, True]

    async def test_scan_prefix_skips_expired(self, ephemeral_store, clock):
        await ephemeral_store.set("typing:general:alice", "x", ttl_seconds=3)
        await ephemeral_store.set("typing:general:bob", "y", ttl_seconds=10)
        await ephemeral_store.set("typing:random:carol", "z")
        clock.advance(5)

        assert await ephemeral_store.scan_prefix("typing:general:") == {"typing:general:bob": "y"}

    async def test_publish_subscribe(self, ephemeral_store):
        subscription = await ephemeral_store.subscribe("events")
        await ephemeral_store.publish("events", "one")
        await ephemeral_store.publish("other", "ignored")
        await ephemeral_store.publish("events", "two")

        assert await subscription.get(timeout=1) == "one"
        assert await subscription.get(timeout=1) == "two"
        assert await subscription.get(timeout=0.01) is None

    async def test_closed_subscription_receives_nothing(self, ephemeral_store):
        subscription = await ephemeral_store.subscribe("events")
        await subscription.close()
        await ephemeral_store.publish("events", "late")
        assert await subscription.get(timeout=0.01) is None
