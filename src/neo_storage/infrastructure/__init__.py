"""Infrastructure adapters: persistence, locking and audit sinks."""

from .audit import InMemoryAuditSink, LoggingAuditSink
from .locking import KeyedLockManager, RedisLockManager
from .persistence import AsyncPGStorageStore, InMemoryStorageStore

__all__ = [
    "AsyncPGStorageStore",
    "InMemoryStorageStore",
    "KeyedLockManager",
    "RedisLockManager",
    "InMemoryAuditSink",
    "LoggingAuditSink",
]
