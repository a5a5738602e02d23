"""Audit emitter service.

Builds immutable audit events for permission decisions and lifecycle
transitions and hands them to the configured sink.
"""

import logging
from typing import Any, Optional

from ....config.constants import AuditEventType, AuditOutcome
from ....core.protocols import Clock
from ....core.value_objects import RecycleEntryId, ResourceId, UserId
from ....utils.datetime import SystemClock
from ..entities import AuditEvent, AuditSink

logger = logging.getLogger(__name__)


class AuditEmitter:
    """Records decisions and transitions through an ``AuditSink``.

    Sink failures propagate to the caller: inside a transaction they roll the
    transition back together with its event.
    """

    def __init__(self, sink: AuditSink, clock: Optional[Clock] = None):
        self._sink = sink
        self._clock = clock or SystemClock()

    async def emit(
        self,
        event_type: AuditEventType,
        outcome: AuditOutcome,
        actor_id: Optional[UserId] = None,
        resource_id: Optional[ResourceId] = None,
        entry_id: Optional[RecycleEntryId] = None,
        **details: Any,
    ) -> AuditEvent:
        event = AuditEvent.record(
            event_type=event_type,
            outcome=outcome,
            occurred_at=self._clock.now(),
            actor_id=actor_id,
            resource_id=resource_id,
            entry_id=entry_id,
            details=details,
        )
        await self._sink.write_event(event)
        logger.debug(
            f"Audit {event_type.value} outcome={outcome.value} "
            f"actor={actor_id} resource={resource_id} entry={entry_id}"
        )
        return event

    async def decision(
        self,
        actor_id: Optional[UserId],
        resource_id: ResourceId,
        action: str,
        allow: bool,
        source_rank: int,
        reason: str = "",
    ) -> AuditEvent:
        """Record the outcome of a permission check."""
        return await self.emit(
            AuditEventType.PERMISSION_DECISION,
            AuditOutcome.ALLOWED if allow else AuditOutcome.DENIED,
            actor_id=actor_id,
            resource_id=resource_id,
            action=action,
            source_rank=int(source_rank),
            reason=reason,
        )

    async def success(
        self,
        event_type: AuditEventType,
        actor_id: Optional[UserId] = None,
        resource_id: Optional[ResourceId] = None,
        entry_id: Optional[RecycleEntryId] = None,
        **details: Any,
    ) -> AuditEvent:
        return await self.emit(
            event_type, AuditOutcome.SUCCESS, actor_id=actor_id,
            resource_id=resource_id, entry_id=entry_id, **details,
        )

    async def failure(
        self,
        event_type: AuditEventType,
        error: Exception,
        actor_id: Optional[UserId] = None,
        resource_id: Optional[ResourceId] = None,
        entry_id: Optional[RecycleEntryId] = None,
        **details: Any,
    ) -> AuditEvent:
        error_code = getattr(error, "error_code", type(error).__name__)
        return await self.emit(
            event_type, AuditOutcome.FAILURE, actor_id=actor_id,
            resource_id=resource_id, entry_id=entry_id,
            error_code=error_code, error=str(error), **details,
        )
