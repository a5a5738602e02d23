"""Resource creation service.

Uploads and folder creation: authorize against the parent, reject same-named
siblings, reserve quota, persist. The reservation is released again when
persisting fails.
"""

import logging
from typing import Optional

from ....config.constants import AuditEventType, PermissionAction, TeamMemberRole
from ....core.exceptions import (
    NameConflictError,
    PermissionDeniedError,
    PrincipalNotFoundError,
    ResourceNotFoundError,
    TeamNotFoundError,
    ValidationError,
)
from ....core.protocols import Clock, LockManager, TransactionManager
from ....core.value_objects import ResourceId, TeamId, UserId
from ....utils.datetime import SystemClock
from ....utils.lock_keys import quota_keys, resource_key
from ...audit.services import AuditEmitter
from ...permissions.services import PermissionResolver
from ...principals.entities import Principal, PrincipalRepository
from ...quota.services import QuotaLedger
from ..entities import Resource, ResourceRepository
from .resource_tree import ancestor_chain

logger = logging.getLogger(__name__)


class ResourceService:
    """Creates files and folders under quota and permission control."""

    def __init__(
        self,
        resources: ResourceRepository,
        principals: PrincipalRepository,
        resolver: PermissionResolver,
        ledger: QuotaLedger,
        transactions: TransactionManager,
        locks: LockManager,
        audit: AuditEmitter,
        clock: Optional[Clock] = None,
    ):
        self._resources = resources
        self._principals = principals
        self._resolver = resolver
        self._ledger = ledger
        self._transactions = transactions
        self._locks = locks
        self._audit = audit
        self._clock = clock or SystemClock()

    async def get_resource(self, resource_id: ResourceId) -> Resource:
        resource = await self._resources.get_resource(resource_id)
        if resource is None:
            raise ResourceNotFoundError(resource_id)
        return resource

    async def create_file(
        self,
        actor_id: UserId,
        name: str,
        size: int,
        parent_id: Optional[ResourceId] = None,
        team_id: Optional[TeamId] = None,
        mime_type: Optional[str] = None,
        storage_path: Optional[str] = None,
        is_public: bool = False,
    ) -> Resource:
        """Create a file owned by ``actor_id`` and charge its size to quota.

        Raises:
            PermissionDeniedError: ``write`` is denied on the parent
            NameConflictError: the parent already holds an active same-named resource
            QuotaExceededError: the user or team quota cannot fit ``size``
        """
        actor = await self._load_principal(actor_id)
        parent = await self._load_parent(parent_id)
        team_id = parent.team_id if parent else team_id
        await self._authorize_placement(actor, parent, team_id)

        resource = Resource.new_file(
            name, actor.id, size, parent=parent, team_id=team_id,
            storage_path=storage_path, mime_type=mime_type, is_public=is_public,
            now=self._clock.now(),
        )
        return await self._persist(actor, parent, resource)

    async def create_folder(
        self,
        actor_id: UserId,
        name: str,
        parent_id: Optional[ResourceId] = None,
        team_id: Optional[TeamId] = None,
        is_public: bool = False,
    ) -> Resource:
        """Create an empty folder owned by ``actor_id``."""
        actor = await self._load_principal(actor_id)
        parent = await self._load_parent(parent_id)
        team_id = parent.team_id if parent else team_id
        await self._authorize_placement(actor, parent, team_id)

        folder = Resource.new_folder(
            name, actor.id, parent=parent, team_id=team_id, is_public=is_public, now=self._clock.now(),
        )
        return await self._persist(actor, parent, folder)

    async def _persist(self, actor: Principal, parent: Optional[Resource], resource: Resource) -> Resource:
        keys = quota_keys(resource.owner_id, resource.team_id)
        if parent is not None:
            keys.append(resource_key(parent.id))

        async with self._locks.acquire(*keys):
            if parent is not None:
                current_parent = await self._resources.get_resource(parent.id)
                if current_parent is None or not current_parent.is_active:
                    raise ValidationError(f"Parent folder {parent.id} is no longer active")

            existing = await self._resources.find_active_child(
                resource.parent_id, resource.name, resource.owner_id, resource.team_id,
            )
            if existing is not None:
                raise NameConflictError(resource.parent_id, resource.name)

            await self._ledger.reserve(resource.owner_id, resource.team_id, resource.size)
            try:
                async with self._transactions.transaction():
                    await self._resources.add_resource(resource)
                    await self._audit.success(
                        AuditEventType.RESOURCE_CREATED,
                        actor_id=actor.id,
                        resource_id=resource.id,
                        kind=resource.kind.value,
                        path=resource.full_path,
                        size=resource.size,
                    )
            except Exception:
                await self._ledger.release(resource.owner_id, resource.team_id, resource.size)
                logger.warning(f"Released {resource.size} bytes after failed create of '{resource.full_path}'")
                raise

        logger.info(f"Created {resource.kind.value} '{resource.full_path}' ({resource.size} bytes) for {actor.id}")
        return resource

    async def _authorize_placement(
        self,
        actor: Principal,
        parent: Optional[Resource],
        team_id: Optional[TeamId],
    ) -> None:
        if parent is not None:
            decision = await self._resolver.decide(actor, parent, PermissionAction.WRITE)
            await self._audit.decision(
                actor.id, parent.id, PermissionAction.WRITE.value,
                decision.allow, decision.source_rank, decision.reason,
            )
            if not decision.allow:
                raise PermissionDeniedError(actor.id, parent.id, PermissionAction.WRITE.value, decision.source_rank)
            return

        if team_id is None:
            return

        # Team root: any active member except viewers may add content.
        team = await self._principals.get_team(team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        membership = await self._principals.get_membership(team_id, actor.id)
        if (
            membership is None
            or not membership.is_active
            or membership.role == TeamMemberRole.VIEWER
            or not team.is_active
        ):
            raise PermissionDeniedError(actor.id, f"team:{team_id}", PermissionAction.WRITE.value)

    async def _load_parent(self, parent_id: Optional[ResourceId]) -> Optional[Resource]:
        if parent_id is None:
            return None
        parent = await self._resources.get_resource(parent_id)
        if parent is None:
            raise ResourceNotFoundError(parent_id)
        if not parent.is_folder:
            raise ValidationError(f"Parent {parent_id} is not a folder")
        if not parent.is_active:
            raise ValidationError(f"Parent folder {parent_id} is {parent.status.value}")
        await ancestor_chain(self._resources, parent)
        return parent

    async def _load_principal(self, user_id: UserId) -> Principal:
        principal = await self._principals.get_principal(user_id)
        if principal is None:
            raise PrincipalNotFoundError(user_id)
        return principal
