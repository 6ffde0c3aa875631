"""
Timestamp utilities for consistent time handling across the system.
"""

import time
from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now(timestamp: Optional[float] = None) -> datetime:
    """Convert a Unix timestamp to an aware UTC datetime.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        timezone-aware datetime in UTC
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    """Milliseconds since the epoch for an aware or naive-UTC datetime."""
    return int(ensure_utc(moment).timestamp() * 1000)


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def to_iso(moment: datetime) -> str:
    return ensure_utc(moment).isoformat()


def from_iso(value: str) -> datetime:
    """Parse an ISO-8601 string produced by to_iso (a trailing 'Z' is accepted)."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(value))


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from earlier to later (negative if reversed)."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / SECONDS_PER_DAY
