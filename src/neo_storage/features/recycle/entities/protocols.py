"""Protocol interfaces for recycle storage and physical byte reclaim."""

from abc import abstractmethod
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from ....core.value_objects import RecycleEntryId, ResourceId, UserId
from .recycle_bin import RecycleBinConfig
from .recycle_entry import RecycleEntry


@runtime_checkable
class RecycleRepository(Protocol):
    """Protocol for recycle entries and per-principal bin configuration."""

    @abstractmethod
    async def get_entry(self, entry_id: RecycleEntryId) -> Optional[RecycleEntry]:
        """Get a recycle entry by id."""
        ...

    @abstractmethod
    async def add_entry(self, entry: RecycleEntry) -> RecycleEntry:
        """Persist a newly opened entry."""
        ...

    @abstractmethod
    async def compare_and_set_entry(self, entry: RecycleEntry, expected_version: int) -> bool:
        """Replace the stored entry if its version still equals ``expected_version``."""
        ...

    @abstractmethod
    async def get_open_entry_for_resource(self, resource_id: ResourceId) -> Optional[RecycleEntry]:
        """Get the ``deleted``-status entry of a resource, if any."""
        ...

    @abstractmethod
    async def list_episode_entries(self, episode_root_id: RecycleEntryId) -> List[RecycleEntry]:
        """List every entry created by one deletion episode."""
        ...

    @abstractmethod
    async def list_oldest_open_entries(self, owner_id: UserId, limit: int) -> List[RecycleEntry]:
        """List a bin's open entries ordered by ``deleted_at`` ascending."""
        ...

    @abstractmethod
    async def list_expired_entries(
        self,
        now: datetime,
        after: Optional[RecycleEntryId],
        limit: int,
    ) -> List[RecycleEntry]:
        """List open entries with ``expires_at <= now``, ordered by id after ``after``."""
        ...

    @abstractmethod
    async def list_notification_candidates(
        self,
        now: datetime,
        after: Optional[RecycleEntryId],
        limit: int,
    ) -> List[RecycleEntry]:
        """List open, unnotified entries with ``notify_at <= now < expires_at``, ordered by id."""
        ...

    @abstractmethod
    async def get_bin_config(self, user_id: UserId) -> Optional[RecycleBinConfig]:
        """Get a principal's persisted bin configuration."""
        ...

    @abstractmethod
    async def add_bin_config(self, config: RecycleBinConfig) -> RecycleBinConfig:
        """Persist a principal's first bin configuration."""
        ...

    @abstractmethod
    async def compare_and_set_bin_config(self, config: RecycleBinConfig, expected_version: int) -> bool:
        """Replace the stored bin if its version still equals ``expected_version``."""
        ...


@runtime_checkable
class ByteStore(Protocol):
    """Physical storage driver used to reclaim bytes on purge.

    ``delete_bytes`` must be idempotent: deleting an already-missing object
    succeeds, so a purge retried after a rollback is safe.
    """

    @abstractmethod
    async def delete_bytes(self, storage_path: str) -> None:
        """Remove the object stored at ``storage_path``."""
        ...
