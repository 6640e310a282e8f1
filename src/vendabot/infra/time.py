"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timedelta, timezone
from typing import Callable

DAY = timedelta(days=1)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp written by this package.

    Naive values are assumed to be UTC.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def whole_days_between(start: datetime, end: datetime) -> int:
    """Number of complete days from start to end (floored, may be negative)."""
    return (end - start) // DAY
