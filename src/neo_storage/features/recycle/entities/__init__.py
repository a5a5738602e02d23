"""Recycle entities package."""

from .protocols import ByteStore, RecycleRepository
from .purge_result import PurgeResult
from .recycle_bin import RecycleBinConfig
from .recycle_entry import RecycleEntry

__all__ = [
    "RecycleEntry",
    "RecycleBinConfig",
    "PurgeResult",
    "RecycleRepository",
    "ByteStore",
]
