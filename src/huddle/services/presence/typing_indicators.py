"""
Typing indicators.

Accepted ``set_typing`` calls write ``typing:{conversation_id}:{user_id}``
with a 3 second TTL; expiry is the only cleanup the markers need. Calls are
throttled per (user, conversation) to one every 2 seconds, and a throttled
call returns False so the caller does not re-broadcast.

The throttle map lives in process memory. A background sweep drops entries
older than ``throttle_stale_seconds`` so it stays bounded.
"""

import asyncio
from typing import Optional

from loguru import logger
from pydantic import BaseModel, ValidationError

from ...errors import ResourceUnavailable
from ...settings import PresenceSettings, settings
from ...utils.date_utils import Clock, system_clock
from ..ephemeral import EphemeralStore


class TypingState(BaseModel):
    """Payload stored under a live typing key."""

    conversation_id: str
    user_id: str
    display_name: Optional[str] = None
    timestamp: float


def typing_key(conversation_id: str, user_id: str) -> str:
    return f"typing:{conversation_id}:{user_id}"


class TypingService:
    """
    Throttled, TTL-backed typing state.

    Example:
        typing = TypingService(store)
        await typing.start()  # throttle sweeper
        if await typing.set_typing("conv-1", "u1", "Alice"):
            ...  # broadcast typing-state-changed
        await typing.stop()
    """

    def __init__(
        self,
        store: EphemeralStore,
        clock: Clock = system_clock,
        presence_settings: PresenceSettings | None = None,
    ):
        self.store = store
        self.clock = clock
        self.settings = presence_settings or settings.presence
        self._throttle: dict[tuple[str, str], float] = {}
        self._sweeper: asyncio.Task | None = None
        self.running = False

    @property
    def throttle_size(self) -> int:
        return len(self._throttle)

    async def set_typing(
        self, conversation_id: str, user_id: str, display_name: Optional[str] = None
    ) -> bool:
        """Mark the user as typing. False when throttled or the store is down."""
        throttle_key = (user_id, conversation_id)
        now = self.clock.timestamp()
        last = self._throttle.get(throttle_key)
        if last is not None and now - last < self.settings.typing_throttle_seconds:
            logger.debug(f"Typing event throttled for {user_id} in {conversation_id}")
            return False

        # Claim the slot before awaiting so a concurrent call is throttled too
        self._throttle[throttle_key] = now
        state = TypingState(
            conversation_id=conversation_id,
            user_id=user_id,
            display_name=display_name,
            timestamp=now,
        )
        try:
            await self.store.set(
                typing_key(conversation_id, user_id),
                state.model_dump_json(),
                ttl_seconds=self.settings.typing_ttl_seconds,
            )
        except ResourceUnavailable as e:
            logger.warning(f"Failed to set typing indicator for {user_id}: {e.message}")
            if last is None:
                self._throttle.pop(throttle_key, None)
            else:
                self._throttle[throttle_key] = last
            return False

        logger.debug(f"{user_id} typing in {conversation_id}")
        return True

    async def stop_typing(self, conversation_id: str, user_id: str) -> None:
        self._throttle.pop((user_id, conversation_id), None)
        try:
            await self.store.delete(typing_key(conversation_id, user_id))
        except ResourceUnavailable as e:
            logger.warning(f"Failed to stop typing indicator for {user_id}: {e.message}")

    async def get_typing_users(self, conversation_id: str) -> list[TypingState]:
        """Everyone with a live typing marker in the conversation."""
        try:
            entries = await self.store.scan_prefix(f"typing:{conversation_id}:")
        except ResourceUnavailable as e:
            logger.warning(f"Failed to list typing users in {conversation_id}: {e.message}")
            return []

        states = []
        for key, value in entries.items():
            try:
                state = TypingState.model_validate_json(value)
            except ValidationError as e:
                logger.error(f"Unparseable typing marker {key}: {e}")
                continue
            # Prefix scans can also hit conversations whose id extends this one
            if state.conversation_id == conversation_id:
                states.append(state)
        return sorted(states, key=lambda s: s.timestamp)

    async def is_user_typing(self, conversation_id: str, user_id: str) -> bool:
        try:
            return await self.store.exists(typing_key(conversation_id, user_id))
        except ResourceUnavailable as e:
            logger.warning(f"Typing lookup for {user_id} failed: {e.message}")
            return False

    def cleanup_throttle(self) -> int:
        """Drop throttle entries older than the stale threshold."""
        cutoff = self.clock.timestamp() - self.settings.throttle_stale_seconds
        stale = [key for key, ts in self._throttle.items() if ts < cutoff]
        for key in stale:
            del self._throttle[key]
        if stale:
            logger.debug(f"Cleaned up {len(stale)} stale typing throttle entries")
        return len(stale)

    async def start(self) -> None:
        """Start the periodic throttle sweep."""
        if self.running:
            logger.warning("Typing throttle sweeper already running")
            return
        self.running = True
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info("Typing throttle sweeper started")

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._sweeper:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        logger.info("Typing throttle sweeper stopped")

    async def _sweep_loop(self) -> None:
        while self.running:
            try:
                await asyncio.sleep(self.settings.sweep_interval_seconds)
                self.cleanup_throttle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Typing throttle sweep failed: {e}")
