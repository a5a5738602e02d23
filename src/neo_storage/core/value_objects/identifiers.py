"""Value objects for identifiers in neo-storage.

Every identifier wraps a UUID. New identifiers are UUIDv7 so that ids created
later sort after earlier ones.
"""

from dataclasses import dataclass
from uuid import UUID

from ...utils.uuid import generate_uuid_v7


@dataclass(frozen=True, order=True)
class EntityId:
    """Base identifier value object with UUID validation."""
    value: UUID

    def __post_init__(self):
        if not isinstance(self.value, UUID):
            try:
                object.__setattr__(self, 'value', UUID(str(self.value)))
            except (ValueError, TypeError):
                raise ValueError(f"{type(self).__name__} must be a valid UUID, got: {self.value}")

    @classmethod
    def generate(cls):
        """Generate a new identifier using UUIDv7 for time-ordering."""
        return cls(generate_uuid_v7())

    def __str__(self) -> str:
        return str(self.value)


class UserId(EntityId):
    """User principal identifier."""


class TeamId(EntityId):
    """Team identifier."""


class ResourceId(EntityId):
    """File or folder identifier."""


class GrantId(EntityId):
    """Permission grant identifier."""


class TemplateId(EntityId):
    """Permission template identifier."""


class RecycleEntryId(EntityId):
    """Recycle entry identifier (one per deletion episode)."""


class AuditEventId(EntityId):
    """Audit event identifier."""
