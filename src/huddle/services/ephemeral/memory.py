"""
In-process ephemeral store.

Expiry is evaluated lazily against the injected clock, so tests can move
time forward instead of sleeping.
"""

import asyncio
from typing import Iterable, Optional

from loguru import logger

from ...utils.date_utils import Clock, system_clock
from .base import EphemeralStore, Subscription


class MemorySubscription(Subscription):
    def __init__(self, store: "InMemoryEphemeralStore", channel: str):
        self.channel = channel
        self._store = store
        self.queue: asyncio.Queue[str] = asyncio.Queue()

    async def get(self, timeout: Optional[float] = None) -> Optional[str]:
        if timeout is None:
            return await self.queue.get()
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def close(self) -> None:
        self._store._unsubscribe(self)


class InMemoryEphemeralStore(EphemeralStore):
    """Dictionary-backed store with clock-driven TTLs and queue-based pub/sub."""

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._subscribers: dict[str, list[MemorySubscription]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.clock.timestamp():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self.clock.timestamp() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        existed = self._live(key) is not None
        self._data.pop(key, None)
        return existed

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def exists_many(self, keys: Iterable[str]) -> list[bool]:
        return [self._live(key) is not None for key in keys]

    async def scan_prefix(self, prefix: str) -> dict[str, str]:
        found = {}
        for key in [k for k in self._data if k.startswith(prefix)]:
            value = self._live(key)
            if value is not None:
                found[key] = value
        return found

    async def publish(self, channel: str, message: str) -> None:
        subscribers = self._subscribers.get(channel, [])
        for subscription in subscribers:
            subscription.queue.put_nowait(message)
        logger.debug(f"Published to {channel} ({len(subscribers)} subscribers)")

    async def subscribe(self, channel: str) -> Subscription:
        subscription = MemorySubscription(self, channel)
        self._subscribers.setdefault(channel, []).append(subscription)
        return subscription

    def _unsubscribe(self, subscription: MemorySubscription) -> None:
        subscribers = self._subscribers.get(subscription.channel, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    async def close(self) -> None:
        self._subscribers.clear()
