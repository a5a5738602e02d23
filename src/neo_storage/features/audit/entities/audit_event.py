"""Audit event entity.

Events are immutable once recorded.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ....config.constants import AuditEventType, AuditOutcome
from ....core.value_objects import AuditEventId, RecycleEntryId, ResourceId, UserId


@dataclass(frozen=True)
class AuditEvent:
    """A permission decision or lifecycle transition."""

    id: AuditEventId
    event_type: AuditEventType
    outcome: AuditOutcome
    occurred_at: datetime
    actor_id: Optional[UserId] = None
    resource_id: Optional[ResourceId] = None
    entry_id: Optional[RecycleEntryId] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def record(
        cls,
        event_type: AuditEventType,
        outcome: AuditOutcome,
        occurred_at: datetime,
        actor_id: Optional[UserId] = None,
        resource_id: Optional[ResourceId] = None,
        entry_id: Optional[RecycleEntryId] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "AuditEvent":
        return cls(
            id=AuditEventId.generate(),
            event_type=event_type,
            outcome=outcome,
            occurred_at=occurred_at,
            actor_id=actor_id,
            resource_id=resource_id,
            entry_id=entry_id,
            details=dict(details or {}),
        )

    @property
    def is_system(self) -> bool:
        """True when the event was caused by the engine itself (no actor)."""
        return self.actor_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "event_type": self.event_type.value,
            "outcome": self.outcome.value,
            "occurred_at": self.occurred_at.isoformat(),
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "resource_id": str(self.resource_id) if self.resource_id else None,
            "entry_id": str(self.entry_id) if self.entry_id else None,
            "details": self.details,
        }
