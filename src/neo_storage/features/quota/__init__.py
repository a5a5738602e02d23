"""Quota feature for neo-storage.

Per-user and per-team storage accounting:
- entities/: usage snapshots
- services/: QuotaLedger (reserve, release, usage, totals)
"""

from .entities import QuotaSnapshot, QuotaUsage
from .services import QuotaLedger

__all__ = [
    "QuotaUsage",
    "QuotaSnapshot",
    "QuotaLedger",
]
