"""Persistence adapters.

``InMemoryStorageStore`` backs tests and single-process use;
``AsyncPGStorageStore`` is the PostgreSQL adapter. Both implement every
repository protocol, the audit sink and the transaction manager.
"""

from .asyncpg_store import AsyncPGStorageStore
from .memory_store import InMemoryStorageStore

__all__ = [
    "AsyncPGStorageStore",
    "InMemoryStorageStore",
]
