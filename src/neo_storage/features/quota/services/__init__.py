"""Quota services package."""

from .quota_ledger import QuotaLedger

__all__ = ["QuotaLedger"]
