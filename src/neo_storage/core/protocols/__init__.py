"""Core protocols shared by every feature."""

from abc import abstractmethod
from datetime import datetime
from typing import AsyncContextManager, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current time.

    Expiry and notification logic reads time only through this protocol.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


@runtime_checkable
class TransactionManager(Protocol):
    """Atomic unit of work over the persistence adapter.

    Nested calls join the outermost transaction; an exception escaping the
    outermost block rolls back every write made inside it.
    """

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Open (or join) a transaction."""
        ...


@runtime_checkable
class LockManager(Protocol):
    """Keyed mutual exclusion with a bounded wait.

    ``acquire`` takes every key at once, in sorted order, and raises
    ``BusyError`` when a key cannot be taken within the configured timeout.
    Keys already held by the calling task are re-entered.
    """

    @abstractmethod
    def acquire(self, *keys: str) -> AsyncContextManager[None]:
        """Hold all ``keys`` for the duration of the context."""
        ...


__all__ = ["Clock", "TransactionManager", "LockManager"]
