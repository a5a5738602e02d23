"""Protocol interfaces for audit event storage."""

from abc import abstractmethod
from typing import Protocol, runtime_checkable

from .audit_event import AuditEvent


@runtime_checkable
class AuditSink(Protocol):
    """Destination for audit events.

    A sink that shares the engine's transaction manager writes inside the
    current transaction, so events for rolled-back transitions disappear with
    them.
    """

    @abstractmethod
    async def write_event(self, event: AuditEvent) -> None:
        """Persist one event."""
        ...
