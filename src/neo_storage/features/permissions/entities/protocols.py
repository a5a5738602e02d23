"""Protocol interfaces for grant and template data access."""

from abc import abstractmethod
from typing import List, Optional, Protocol, runtime_checkable

from ....core.value_objects import GrantId, ResourceId, TemplateId
from .grant import GrantSubject, PermissionGrant
from .template import PermissionTemplate


@runtime_checkable
class GrantRepository(Protocol):
    """Protocol for grant and template storage.

    Grants are append-only: there is no update or delete. Reads return expired
    grants too; filtering by expiry is the resolver's job.
    """

    @abstractmethod
    async def add_grant(self, grant: PermissionGrant) -> PermissionGrant:
        """Persist a new grant."""
        ...

    @abstractmethod
    async def get_grant(self, grant_id: GrantId) -> Optional[PermissionGrant]:
        """Get a grant by id."""
        ...

    @abstractmethod
    async def list_resource_grants(self, resource_id: ResourceId) -> List[PermissionGrant]:
        """List every grant scoped to one specific resource."""
        ...

    @abstractmethod
    async def list_subject_grants(self, subject: GrantSubject) -> List[PermissionGrant]:
        """List every grant held by one subject, at any scope."""
        ...

    @abstractmethod
    async def add_template(self, template: PermissionTemplate) -> PermissionTemplate:
        """Persist a new template."""
        ...

    @abstractmethod
    async def get_template(self, template_id: TemplateId) -> Optional[PermissionTemplate]:
        """Get a template by id."""
        ...

    @abstractmethod
    async def get_default_template(self) -> Optional[PermissionTemplate]:
        """Get the template applied to principals with no binding."""
        ...
