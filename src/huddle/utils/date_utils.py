"""
Time helpers.

All persisted timestamps are timezone-aware UTC. Services take a ``Clock``
so mutation windows and TTLs can be evaluated against a controllable time
source in tests and replays.
"""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. from asyncpg TIMESTAMP columns) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """
    Wall-clock time source.

    ``now()`` is used for persisted timestamps and mutation windows,
    ``timestamp()`` (epoch seconds) for throttling and TTL bookkeeping.
    """

    def now(self) -> datetime:
        return utc_now()

    def timestamp(self) -> float:
        return time.time()


system_clock = Clock()
