"""Quota entities package."""

from .quota_usage import QuotaSnapshot, QuotaUsage

__all__ = [
    "QuotaUsage",
    "QuotaSnapshot",
]
