"""Recycle services package."""

from .purge_sweeper import PurgeSweeper, sweep_expired
from .recycle_service import RecycleLifecycleService

__all__ = [
    "RecycleLifecycleService",
    "PurgeSweeper",
    "sweep_expired",
]
