"""
Huddle Utilities

- date_utils: UTC helpers and the injectable Clock
- retry: ordered "first success wins" helper used by the moderation pipeline
"""

from .date_utils import Clock, ensure_utc, system_clock, utc_now
from .retry import AttemptError, AttemptOutcome, try_in_order

__all__ = [
    # Time
    "Clock",
    "system_clock",
    "utc_now",
    "ensure_utc",
    # Retry
    "try_in_order",
    "AttemptOutcome",
    "AttemptError",
]
