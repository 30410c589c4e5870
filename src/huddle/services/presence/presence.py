"""
Presence service.

A user is online iff ``presence:{user_id}`` exists in the ephemeral store.
The key carries a TTL (5 minutes by default) and heartbeats refresh it, so a
silent client goes offline on its own. There is no third state.

Store outages degrade to "offline" and are logged; presence never fails the
caller. A transition that could not be written returns None and is not
announced.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from loguru import logger
from pydantic import BaseModel

from ...errors import ResourceUnavailable
from ...settings import PresenceSettings, settings
from ...utils.date_utils import Clock, system_clock
from ..ephemeral import EphemeralStore

PRESENCE_CHANNEL = "presence"
ONLINE_MARKER = "online"


class PresenceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class PresenceChange(BaseModel):
    user_id: str
    status: PresenceStatus
    last_seen: datetime


def presence_key(user_id: str) -> str:
    return f"presence:{user_id}"


class PresenceService:
    """TTL-backed online/offline tracking."""

    def __init__(
        self,
        store: EphemeralStore,
        clock: Clock = system_clock,
        presence_settings: PresenceSettings | None = None,
    ):
        self.store = store
        self.clock = clock
        self.settings = presence_settings or settings.presence

    async def _publish(self, change: PresenceChange) -> None:
        await self.store.publish(
            PRESENCE_CHANNEL,
            change.model_dump_json(),
        )

    async def _announce(self, change: PresenceChange) -> None:
        try:
            await self._publish(change)
        except ResourceUnavailable as e:
            logger.warning(f"Failed to publish presence for {change.user_id}: {e.message}")

    async def set_online(self, user_id: str) -> Optional[PresenceChange]:
        """
        Mark ``user_id`` online.

        Returns None when the marker could not be written; the user then
        still reads as offline and nothing should be announced.
        """
        try:
            await self.store.set(
                presence_key(user_id), ONLINE_MARKER, ttl_seconds=self.settings.presence_ttl_seconds
            )
        except ResourceUnavailable as e:
            logger.warning(f"Failed to set {user_id} online: {e.message}")
            return None

        change = PresenceChange(
            user_id=user_id, status=PresenceStatus.ONLINE, last_seen=self.clock.now()
        )
        await self._announce(change)
        return change

    async def set_offline(self, user_id: str) -> Optional[PresenceChange]:
        """Remove the marker; None when the store could not be reached."""
        try:
            await self.store.delete(presence_key(user_id))
        except ResourceUnavailable as e:
            logger.warning(f"Failed to set {user_id} offline: {e.message}")
            return None

        change = PresenceChange(
            user_id=user_id, status=PresenceStatus.OFFLINE, last_seen=self.clock.now()
        )
        await self._announce(change)
        return change

    async def heartbeat(self, user_id: str) -> bool:
        """
        Refresh the presence TTL.

        Returns True when the user was offline before this heartbeat (the
        marker had expired), so the caller can announce the transition.
        """
        try:
            was_online = await self.store.exists(presence_key(user_id))
        except ResourceUnavailable as e:
            logger.warning(f"Heartbeat for {user_id} failed: {e.message}")
            return False

        if not was_online:
            return await self.set_online(user_id) is not None

        try:
            await self.store.set(
                presence_key(user_id), ONLINE_MARKER, ttl_seconds=self.settings.presence_ttl_seconds
            )
        except ResourceUnavailable as e:
            logger.warning(f"Heartbeat for {user_id} failed: {e.message}")
        return False

    async def get_status(self, user_id: str) -> PresenceStatus:
        try:
            online = await self.store.exists(presence_key(user_id))
        except ResourceUnavailable as e:
            logger.warning(f"Presence lookup for {user_id} failed: {e.message}")
            return PresenceStatus.OFFLINE
        return PresenceStatus.ONLINE if online else PresenceStatus.OFFLINE

    async def get_batch_status(self, user_ids: Iterable[str]) -> dict[str, PresenceStatus]:
        """Status for many users in one round trip."""
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return {}
        try:
            flags = await self.store.exists_many(presence_key(u) for u in user_ids)
        except ResourceUnavailable as e:
            logger.warning(f"Batch presence lookup failed: {e.message}")
            flags = [False] * len(user_ids)
        return {
            user_id: PresenceStatus.ONLINE if online else PresenceStatus.OFFLINE
            for user_id, online in zip(user_ids, flags)
        }
