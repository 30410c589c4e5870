"""
Redis-backed ephemeral store.

Uses ``redis.asyncio`` with decoded responses. TTLs are native Redis
expirations (``PX``), ``exists_many`` is a single ``MGET``, and prefix
enumeration is ``SCAN`` followed by one ``MGET``. Connection problems are
raised as ResourceUnavailable.
"""

import re
from contextlib import asynccontextmanager
from typing import Iterable, Optional

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError

from ...errors import ResourceUnavailable
from ...settings import settings
from .base import EphemeralStore, Subscription

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


@asynccontextmanager
async def _guard(operation: str):
    try:
        yield
    except (RedisError, OSError) as e:
        raise ResourceUnavailable(f"redis {operation} failed: {e}") from e


class RedisSubscription(Subscription):
    def __init__(self, pubsub, channel: str):
        self.channel = channel
        self.pubsub = pubsub

    async def get(self, timeout: Optional[float] = None) -> Optional[str]:
        async with _guard("get_message"):
            while True:
                message = await self.pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=timeout
                )
                if message is not None:
                    return message["data"]
                if timeout is not None:
                    return None

    async def close(self) -> None:
        async with _guard("unsubscribe"):
            await self.pubsub.unsubscribe(self.channel)
            await self.pubsub.aclose()


class RedisEphemeralStore(EphemeralStore):
    """
    Redis implementation of the ephemeral store.

    Example:
        store = RedisEphemeralStore()
        await store.set("presence:u1", "online", ttl_seconds=300)
        await store.exists_many(["presence:u1", "presence:u2"])  # [True, False]
    """

    def __init__(self, url: str | None = None, socket_timeout: float | None = None):
        self.url = url or settings.redis.url
        self.client = aioredis.from_url(
            self.url,
            decode_responses=True,
            socket_timeout=socket_timeout or settings.redis.socket_timeout,
        )
        logger.debug(f"Redis ephemeral store configured for {self.url}")

    async def get(self, key: str) -> Optional[str]:
        async with _guard("get"):
            return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        async with _guard("set"):
            if ttl_seconds:
                await self.client.set(key, value, px=int(ttl_seconds * 1000))
            else:
                await self.client.set(key, value)

    async def delete(self, key: str) -> bool:
        async with _guard("delete"):
            return bool(await self.client.delete(key))

    async def exists(self, key: str) -> bool:
        async with _guard("exists"):
            return bool(await self.client.exists(key))

    async def exists_many(self, keys: Iterable[str]) -> list[bool]:
        keys = list(keys)
        if not keys:
            return []
        async with _guard("mget"):
            values = await self.client.mget(keys)
        return [value is not None for value in values]

    async def scan_prefix(self, prefix: str) -> dict[str, str]:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        async with _guard("scan"):
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            if not keys:
                return {}
            values = await self.client.mget(keys)
        # Keys may expire between SCAN and MGET
        return {key: value for key, value in zip(keys, values) if value is not None}

    async def publish(self, channel: str, message: str) -> None:
        async with _guard("publish"):
            await self.client.publish(channel, message)

    async def subscribe(self, channel: str) -> Subscription:
        pubsub = self.client.pubsub()
        async with _guard("subscribe"):
            await pubsub.subscribe(channel)
        return RedisSubscription(pubsub, channel)

    async def close(self) -> None:
        await self.client.aclose()
        logger.debug("Redis ephemeral store closed")
