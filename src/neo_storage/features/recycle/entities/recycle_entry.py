"""Recycle entry entity.

One entry per deletion episode of a resource. An entry is opened in status
``deleted`` and changes exactly once afterwards: to ``restored`` or to
``permanent``. A resource recycled twice gets two entries.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from ....config.constants import PurgeReason, RecycleStatus, ResourceKind
from ....core.exceptions import InvalidStateError, ValidationError
from ....core.value_objects import RecycleEntryId, ResourceId, TeamId, UserId
from ...resources.entities import Resource


@dataclass
class RecycleEntry:
    """Deletion episode record.

    ``original_path`` is the full path of the parent folder at deletion time;
    restore uses it to detect a renamed parent. ``episode_root_id`` groups the
    entries created by one cascading folder delete.
    """

    id: RecycleEntryId
    resource_id: ResourceId
    owner_id: UserId
    resource_kind: ResourceKind
    file_name: str
    original_parent_id: Optional[ResourceId]
    original_path: str
    size: int
    deleted_by: UserId
    deleted_at: datetime
    expires_at: datetime
    notify_at: datetime
    retention_days: int
    episode_root_id: RecycleEntryId
    team_id: Optional[TeamId] = None
    storage_path: Optional[str] = None
    mime_type: Optional[str] = None
    deleted_reason: Optional[str] = None
    status: RecycleStatus = RecycleStatus.DELETED
    restored_at: Optional[datetime] = None
    restored_by: Optional[UserId] = None
    restored_path: Optional[str] = None
    permanent_deleted_at: Optional[datetime] = None
    permanent_deleted_by: Optional[UserId] = None
    purge_reason: Optional[PurgeReason] = None
    notified_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if self.expires_at < self.deleted_at:
            raise ValidationError("Recycle entry cannot expire before it was deleted")
        if self.retention_days < 0:
            raise ValidationError(f"Retention days must be non-negative, got {self.retention_days}")

    @classmethod
    def open(
        cls,
        resource: Resource,
        deleted_by: UserId,
        deleted_at: datetime,
        retention_days: int,
        notify_days: int,
        episode_root_id: Optional[RecycleEntryId] = None,
        reason: Optional[str] = None,
    ) -> "RecycleEntry":
        """Open the entry for a resource that is being recycled now."""
        entry_id = RecycleEntryId.generate()
        expires_at = deleted_at + timedelta(days=retention_days)
        notify_at = max(expires_at - timedelta(days=notify_days), deleted_at)
        return cls(
            id=entry_id,
            resource_id=resource.id,
            owner_id=resource.owner_id,
            team_id=resource.team_id,
            resource_kind=resource.kind,
            file_name=resource.name,
            original_parent_id=resource.parent_id,
            original_path=resource.path,
            size=resource.size,
            storage_path=resource.storage_path,
            mime_type=resource.mime_type,
            deleted_by=deleted_by,
            deleted_at=deleted_at,
            expires_at=expires_at,
            notify_at=notify_at,
            retention_days=retention_days,
            episode_root_id=episode_root_id or entry_id,
            deleted_reason=reason,
        )

    @property
    def is_open(self) -> bool:
        return self.status == RecycleStatus.DELETED

    @property
    def is_restored(self) -> bool:
        return self.status == RecycleStatus.RESTORED

    @property
    def is_permanent(self) -> bool:
        return self.status == RecycleStatus.PERMANENT

    @property
    def is_folder(self) -> bool:
        return self.resource_kind == ResourceKind.FOLDER

    @property
    def is_episode_root(self) -> bool:
        return self.episode_root_id == self.id

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def can_restore(self, now: datetime) -> bool:
        return self.is_open and not self.is_expired(now)

    def needs_notification(self, now: datetime) -> bool:
        return (
            self.is_open
            and self.notified_at is None
            and self.notify_at <= now < self.expires_at
        )

    def mark_restored(self, actor_id: UserId, now: datetime, restored_path: str) -> "RecycleEntry":
        self._require_open("restore")
        return replace(
            self,
            status=RecycleStatus.RESTORED,
            restored_at=now,
            restored_by=actor_id,
            restored_path=restored_path,
            version=self.version + 1,
        )

    def mark_permanent(self, actor_id: Optional[UserId], now: datetime, reason: PurgeReason) -> "RecycleEntry":
        self._require_open("purge")
        return replace(
            self,
            status=RecycleStatus.PERMANENT,
            permanent_deleted_at=now,
            permanent_deleted_by=actor_id,
            purge_reason=reason,
            version=self.version + 1,
        )

    def mark_notified(self, now: datetime) -> "RecycleEntry":
        self._require_open("notify")
        return replace(self, notified_at=now, version=self.version + 1)

    def _require_open(self, operation: str) -> None:
        if not self.is_open:
            raise InvalidStateError(
                f"Cannot {operation} recycle entry {self.id} in status {self.status.value}",
                details={"entry_id": str(self.id), "status": self.status.value},
            )
