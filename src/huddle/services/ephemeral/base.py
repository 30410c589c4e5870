"""
Ephemeral key/value store interface.

TTL-backed storage for presence and typing signals. The existence of a key is
the signal itself; expiry is the only cleanup. Implementations raise
``ResourceUnavailable`` when the backing service cannot be reached, and
callers on degraded paths absorb it.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Iterable, Optional


class Subscription(ABC):
    """Live subscription to one pub/sub channel."""

    channel: str

    @abstractmethod
    async def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next message, or None if ``timeout`` elapsed first."""

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving messages."""

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while True:
            message = await self.get()
            if message is not None:
                yield message


class EphemeralStore(ABC):
    """Key/value store with per-key TTL and pub/sub notifications."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Value for ``key`` or None if absent/expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Write ``key``; with a TTL the key disappears on its own."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def exists_many(self, keys: Iterable[str]) -> list[bool]:
        """Existence of every key, in order, in a single round trip."""

    @abstractmethod
    async def scan_prefix(self, prefix: str) -> dict[str, str]:
        """All live keys starting with ``prefix`` mapped to their values."""

    @abstractmethod
    async def publish(self, channel: str, message: str) -> None:
        ...

    @abstractmethod
    async def subscribe(self, channel: str) -> Subscription:
        ...

    async def close(self) -> None:
        """Release connections (no-op by default)."""
