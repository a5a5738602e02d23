"""Recycle bin configuration entity.

Per-principal settings and counters. The counters track open (``deleted``)
entries only; lifetime totals are kept separately for reporting.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from ....config.constants import StorageDefaults
from ....config.settings import StorageEngineSettings
from ....core.exceptions import InvalidStateError, ValidationError
from ....core.value_objects import UserId


@dataclass
class RecycleBinConfig:
    """Recycle bin settings and usage counters for one principal."""

    user_id: UserId
    is_enabled: bool = True
    retention_days: int = StorageDefaults.RECYCLE_RETENTION_DAYS
    notify_before_delete: bool = True
    notify_days: int = StorageDefaults.RECYCLE_NOTIFY_DAYS
    max_storage_bytes: int = StorageDefaults.RECYCLE_MAX_STORAGE_BYTES
    max_item_count: int = StorageDefaults.RECYCLE_MAX_ITEM_COUNT
    current_storage_bytes: int = 0
    current_item_count: int = 0
    total_deleted: int = 0
    total_restored: int = 0
    total_permanent: int = 0
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.retention_days <= 0:
            raise ValidationError(f"Retention days must be positive, got {self.retention_days}")
        if not 0 <= self.notify_days < self.retention_days:
            raise ValidationError(
                f"Notify days must be in [0, {self.retention_days}), got {self.notify_days}"
            )
        if self.max_storage_bytes <= 0 or self.max_item_count <= 0:
            raise ValidationError("Recycle bin capacity must be positive")
        if self.current_storage_bytes < 0 or self.current_item_count < 0:
            raise InvalidStateError(f"Recycle bin counters for {self.user_id} are negative")

    @classmethod
    def default_for(
        cls,
        user_id: UserId,
        settings: Optional[StorageEngineSettings] = None,
        now: Optional[datetime] = None,
    ) -> "RecycleBinConfig":
        """Build the bin a principal gets before configuring anything."""
        created = now or datetime.now(timezone.utc)
        if settings is None:
            return cls(user_id=user_id, created_at=created, updated_at=created)
        return cls(
            user_id=user_id,
            retention_days=settings.recycle_retention_days,
            notify_days=settings.recycle_notify_days,
            max_storage_bytes=settings.recycle_max_storage_bytes,
            max_item_count=settings.recycle_max_item_count,
            created_at=created,
            updated_at=created,
        )

    @property
    def effective_retention_days(self) -> int:
        """Retention applied to new entries; a disabled bin expires them at once."""
        return self.retention_days if self.is_enabled else 0

    @property
    def storage_usage_percent(self) -> float:
        return round(self.current_storage_bytes * 100.0 / self.max_storage_bytes, 2)

    @property
    def item_usage_percent(self) -> float:
        return round(self.current_item_count * 100.0 / self.max_item_count, 2)

    def is_storage_full(self) -> bool:
        return self.current_storage_bytes >= self.max_storage_bytes

    def is_item_count_full(self) -> bool:
        return self.current_item_count >= self.max_item_count

    def would_overflow(self, items: int, size: int) -> bool:
        """True when adding ``items`` entries totalling ``size`` bytes exceeds capacity."""
        return (
            self.current_item_count + items > self.max_item_count
            or self.current_storage_bytes + size > self.max_storage_bytes
        )

    def fits_after_eviction(self, items: int, size: int, ratio: float) -> bool:
        """True when the bin plus the incoming entries sits within ``ratio`` of capacity."""
        return (
            self.current_item_count + items <= int(self.max_item_count * ratio)
            and self.current_storage_bytes + size <= int(self.max_storage_bytes * ratio)
        )

    def record_deleted(self, items: int, size: int, now: datetime) -> "RecycleBinConfig":
        return replace(
            self,
            current_item_count=self.current_item_count + items,
            current_storage_bytes=self.current_storage_bytes + size,
            total_deleted=self.total_deleted + items,
            version=self.version + 1,
            updated_at=now,
        )

    def record_restored(self, items: int, size: int, now: datetime) -> "RecycleBinConfig":
        self._check_release(items, size)
        return replace(
            self,
            current_item_count=self.current_item_count - items,
            current_storage_bytes=self.current_storage_bytes - size,
            total_restored=self.total_restored + items,
            version=self.version + 1,
            updated_at=now,
        )

    def record_purged(self, items: int, size: int, now: datetime) -> "RecycleBinConfig":
        self._check_release(items, size)
        return replace(
            self,
            current_item_count=self.current_item_count - items,
            current_storage_bytes=self.current_storage_bytes - size,
            total_permanent=self.total_permanent + items,
            version=self.version + 1,
            updated_at=now,
        )

    def _check_release(self, items: int, size: int) -> None:
        if items > self.current_item_count or size > self.current_storage_bytes:
            raise InvalidStateError(
                f"Recycle bin counters for {self.user_id} would underflow "
                f"({self.current_item_count} items/{self.current_storage_bytes} bytes, "
                f"releasing {items}/{size})",
                details={"user_id": str(self.user_id)},
            )
