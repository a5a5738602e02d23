"""Recycle feature for neo-storage.

Soft delete, restore and purge of files and folders:
- entities/: RecycleEntry, RecycleBinConfig, PurgeResult, repository and byte-store protocols
- services/: RecycleLifecycleService and the expiry PurgeSweeper
"""

from .entities import (
    ByteStore,
    PurgeResult,
    RecycleBinConfig,
    RecycleEntry,
    RecycleRepository,
)
from .services import PurgeSweeper, RecycleLifecycleService, sweep_expired

__all__ = [
    "RecycleEntry",
    "RecycleBinConfig",
    "PurgeResult",
    "RecycleRepository",
    "ByteStore",
    "RecycleLifecycleService",
    "PurgeSweeper",
    "sweep_expired",
]
