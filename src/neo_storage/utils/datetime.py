"""
DateTime utilities for consistent timezone handling.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get the current UTC time with timezone awareness.

    Returns:
        datetime: Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_days(dt: datetime, days: int) -> datetime:
    """Return ``dt`` shifted by a whole number of days."""
    return dt + timedelta(days=days)


class SystemClock:
    """Clock backed by the system wall clock."""

    def now(self) -> datetime:
        return utc_now()
