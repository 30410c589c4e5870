"""
Pytest configuration for integration tests.

Integration tests need real services (PostgreSQL, Redis) and are skipped
unless POSTGRES__ENABLED / REDIS__ENABLED are set.
"""

import pytest

from huddle.settings import settings


def pytest_collection_modifyitems(items):
    """Add markers to integration tests."""
    for item in items:
        if "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
async def pg_store():
    if not settings.postgres.enabled:
        pytest.skip("Postgres is disabled")

    from huddle.services.persistence.postgres import PostgresChatStore

    store = PostgresChatStore()
    await store.connect()
    await store.apply_schema()
    yield store
    await store.disconnect()


@pytest.fixture
async def redis_store():
    if not settings.redis.enabled:
        pytest.skip("Redis is disabled")

    from huddle.services.ephemeral.redis_store import RedisEphemeralStore

    store = RedisEphemeralStore()
    yield store
    await store.close()
