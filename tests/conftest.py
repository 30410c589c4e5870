"""
Pytest configuration and fixtures for Huddle tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import pytest

from huddle.errors import ResourceUnavailable
from huddle.models.context import ConnectionContext, Role
from huddle.models.entities import Message
from huddle.services.conversations import ConversationService
from huddle.services.ephemeral import EphemeralStore, InMemoryEphemeralStore, Subscription
from huddle.services.messages import MessageService
from huddle.services.moderation import ModerationPipeline
from huddle.services.persistence import InMemoryChatStore
from huddle.utils.date_utils import Clock


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def timestamp(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float = 0, **kwargs) -> None:
        self._now += timedelta(seconds=seconds, **kwargs)


class UnavailableEphemeralStore(EphemeralStore):
    """Ephemeral store whose backend is always down."""

    def _down(self):
        raise ResourceUnavailable("redis get failed: Connection refused")

    async def get(self, key: str) -> Optional[str]:
        self._down()

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        self._down()

    async def delete(self, key: str) -> bool:
        self._down()

    async def exists(self, key: str) -> bool:
        self._down()

    async def exists_many(self, keys: Iterable[str]) -> list[bool]:
        self._down()

    async def scan_prefix(self, prefix: str) -> dict[str, str]:
        self._down()

    async def publish(self, channel: str, message: str) -> None:
        self._down()

    async def subscribe(self, channel: str) -> Subscription:
        self._down()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def chat_store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
def ephemeral_store(clock) -> InMemoryEphemeralStore:
    return InMemoryEphemeralStore(clock)


@pytest.fixture
def offline_pipeline() -> ModerationPipeline:
    """Pipeline with no generative backends (always uses the fallback)."""
    return ModerationPipeline(backends=[])


@pytest.fixture
def conversation_service(chat_store, clock) -> ConversationService:
    return ConversationService(chat_store, clock)


@pytest.fixture
def message_service(chat_store, conversation_service, offline_pipeline, clock) -> MessageService:
    return MessageService(chat_store, conversation_service, offline_pipeline, clock)


@pytest.fixture
def make_message(chat_store, clock):
    """Persist a message directly (no conversation bookkeeping)."""

    async def _make(
        sender_id: str = "alice",
        original: str = "hello team",
        sanitized: str = "Hello team.",
        conversation_id: str = "general",
    ) -> Message:
        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            original_content=original,
            sanitized_content=sanitized,
            created_at=clock.now(),
            updated_at=clock.now(),
        )
        return await chat_store.create_message(message)

    return _make


@pytest.fixture
def alice() -> ConnectionContext:
    return ConnectionContext(user_id="alice", display_name="Alice")


@pytest.fixture
def bob() -> ConnectionContext:
    return ConnectionContext(user_id="bob", display_name="Bob")


@pytest.fixture
def admin() -> ConnectionContext:
    return ConnectionContext(user_id="root", role=Role.ADMIN, display_name="Admin")


@pytest.fixture
def unavailable_store() -> UnavailableEphemeralStore:
    return UnavailableEphemeralStore()
