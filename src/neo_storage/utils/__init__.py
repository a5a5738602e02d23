"""Utilities module for neo-storage."""

from .datetime import SystemClock, add_days, ensure_utc, utc_now
from .uuid import extract_timestamp_from_uuid_v7, generate_uuid_v7

__all__ = [
    # UUID Generation
    "generate_uuid_v7",
    "extract_timestamp_from_uuid_v7",

    # Time
    "utc_now",
    "ensure_utc",
    "add_days",
    "SystemClock",
]
