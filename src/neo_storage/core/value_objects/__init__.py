"""Value objects for neo-storage."""

from .identifiers import (
    AuditEventId,
    EntityId,
    GrantId,
    RecycleEntryId,
    ResourceId,
    TeamId,
    TemplateId,
    UserId,
)

__all__ = [
    "EntityId",
    "UserId",
    "TeamId",
    "ResourceId",
    "GrantId",
    "TemplateId",
    "RecycleEntryId",
    "AuditEventId",
]
