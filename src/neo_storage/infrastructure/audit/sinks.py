"""Audit sinks that do not need a database."""

import logging
from typing import List

from ...features.audit.entities import AuditEvent


class InMemoryAuditSink:
    """Collects events in a list, in emission order."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def write_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]


class LoggingAuditSink:
    """Writes each event as one structured log record.

    Events go to the ``neo_storage.audit`` logger at INFO so deployments can
    route them to a dedicated handler.
    """

    def __init__(self, logger_name: str = "neo_storage.audit"):
        self._logger = logging.getLogger(logger_name)

    async def write_event(self, event: AuditEvent) -> None:
        self._logger.info(
            f"{event.event_type.value} {event.outcome.value}",
            extra={"audit_event": event.to_dict()},
        )
