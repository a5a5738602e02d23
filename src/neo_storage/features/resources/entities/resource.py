"""Resource domain entity for neo-storage resources feature.

Represents a file or folder in the storage tree. Lifecycle status changes are
made by the recycle lifecycle service through versioned compare-and-swap.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from ....config.constants import ResourceKind, ResourceStatus, ResourceType
from ....core.exceptions import InvalidStateError, ValidationError
from ....core.value_objects import ResourceId, TeamId, UserId

PATH_SEPARATOR = "/"

_ALLOWED_TRANSITIONS = {
    ResourceStatus.ACTIVE: frozenset({ResourceStatus.RECYCLED}),
    ResourceStatus.RECYCLED: frozenset({ResourceStatus.ACTIVE, ResourceStatus.PURGED}),
    ResourceStatus.PURGED: frozenset(),
}


def join_path(parent_path: str, name: str) -> str:
    """Join a parent full path and a child name."""
    if not parent_path:
        return name
    return f"{parent_path}{PATH_SEPARATOR}{name}"


@dataclass
class Resource:
    """File or folder with ownership, placement and lifecycle status.

    ``path`` is the full path of the parent folder (empty at the root), so the
    resource's own location is ``full_path``.
    """

    id: ResourceId
    name: str
    kind: ResourceKind
    owner_id: UserId
    team_id: Optional[TeamId] = None
    parent_id: Optional[ResourceId] = None
    path: str = ""
    size: int = 0
    status: ResourceStatus = ResourceStatus.ACTIVE
    storage_path: Optional[str] = None
    mime_type: Optional[str] = None
    is_public: bool = False
    share_expires_at: Optional[datetime] = None
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Resource name must not be empty")
        if PATH_SEPARATOR in self.name:
            raise ValidationError(f"Resource name must not contain '{PATH_SEPARATOR}': {self.name}")
        if self.size < 0:
            raise ValidationError(f"Resource size must be non-negative, got {self.size}")
        if self.kind == ResourceKind.FOLDER and self.size != 0:
            raise ValidationError("Folders always have size 0")
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValidationError("A resource cannot be its own parent")

    @classmethod
    def new_file(
        cls,
        name: str,
        owner_id: UserId,
        size: int,
        parent: Optional["Resource"] = None,
        team_id: Optional[TeamId] = None,
        storage_path: Optional[str] = None,
        mime_type: Optional[str] = None,
        is_public: bool = False,
        now: Optional[datetime] = None,
    ) -> "Resource":
        """Build a new active file placed under ``parent`` (or at the root)."""
        resource_id = ResourceId.generate()
        created = now or datetime.now(timezone.utc)
        return cls(
            id=resource_id,
            name=name,
            kind=ResourceKind.FILE,
            owner_id=owner_id,
            team_id=team_id if team_id is not None else (parent.team_id if parent else None),
            parent_id=parent.id if parent else None,
            path=parent.full_path if parent else "",
            size=size,
            storage_path=storage_path or f"{owner_id}/{resource_id}",
            mime_type=mime_type,
            is_public=is_public,
            created_at=created,
            updated_at=created,
        )

    @classmethod
    def new_folder(
        cls,
        name: str,
        owner_id: UserId,
        parent: Optional["Resource"] = None,
        team_id: Optional[TeamId] = None,
        is_public: bool = False,
        now: Optional[datetime] = None,
    ) -> "Resource":
        """Build a new active, empty folder."""
        created = now or datetime.now(timezone.utc)
        return cls(
            id=ResourceId.generate(),
            name=name,
            kind=ResourceKind.FOLDER,
            owner_id=owner_id,
            team_id=team_id if team_id is not None else (parent.team_id if parent else None),
            parent_id=parent.id if parent else None,
            path=parent.full_path if parent else "",
            is_public=is_public,
            created_at=created,
            updated_at=created,
        )

    @property
    def is_folder(self) -> bool:
        return self.kind == ResourceKind.FOLDER

    @property
    def is_active(self) -> bool:
        return self.status == ResourceStatus.ACTIVE

    @property
    def is_purged(self) -> bool:
        return self.status == ResourceStatus.PURGED

    @property
    def is_team_owned(self) -> bool:
        return self.team_id is not None

    @property
    def resource_type(self) -> ResourceType:
        return ResourceType.FOLDER if self.is_folder else ResourceType.FILE

    @property
    def full_path(self) -> str:
        return join_path(self.path, self.name)

    def is_share_expired(self, now: datetime) -> bool:
        return self.share_expires_at is not None and self.share_expires_at <= now

    def is_publicly_readable(self, now: datetime) -> bool:
        """Public and the public share has not expired."""
        return self.is_public and not self.is_share_expired(now)

    def transition(self, status: ResourceStatus, now: datetime, **changes) -> "Resource":
        """Return the next version of this resource with a new status.

        Raises:
            InvalidStateError: ``status`` is not reachable from the current one
        """
        status = ResourceStatus(status)
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateError(
                f"Resource {self.id} cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status, version=self.version + 1, updated_at=now, **changes)

    def __str__(self) -> str:
        return f"Resource({self.kind.value}:{self.full_path})"
