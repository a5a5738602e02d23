"""Protocol interfaces for resource data access."""

from abc import abstractmethod
from typing import List, Optional, Protocol, runtime_checkable

from ....config.constants import ResourceStatus
from ....core.value_objects import ResourceId, TeamId, UserId
from .resource import Resource


@runtime_checkable
class ResourceRepository(Protocol):
    """Protocol for file and folder data access."""

    @abstractmethod
    async def get_resource(self, resource_id: ResourceId) -> Optional[Resource]:
        """Get a resource by id, whatever its status."""
        ...

    @abstractmethod
    async def add_resource(self, resource: Resource) -> Resource:
        """Persist a new resource."""
        ...

    @abstractmethod
    async def compare_and_set_resource(self, resource: Resource, expected_version: int) -> bool:
        """Replace the stored resource if its version still equals ``expected_version``."""
        ...

    @abstractmethod
    async def list_children(
        self,
        parent_id: ResourceId,
        status: Optional[ResourceStatus] = None,
    ) -> List[Resource]:
        """List direct children of a folder, optionally filtered by status."""
        ...

    @abstractmethod
    async def find_active_child(
        self,
        parent_id: Optional[ResourceId],
        name: str,
        owner_id: UserId,
        team_id: Optional[TeamId] = None,
    ) -> Optional[Resource]:
        """Find an active resource named ``name`` directly under ``parent_id``.

        At the root (``parent_id is None``) names are scoped to the owning
        team when ``team_id`` is given, otherwise to ``owner_id``.
        """
        ...

    @abstractmethod
    async def list_owned(
        self,
        owner_id: UserId,
        statuses: Optional[List[ResourceStatus]] = None,
    ) -> List[Resource]:
        """List resources owned by a user, optionally filtered by status."""
        ...
