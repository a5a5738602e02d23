"""Storage engine assembly.

``create_storage_engine`` wires the feature services around one persistence
adapter, one lock manager and one audit sink, and returns a ``StorageEngine``
exposing the operations a request-handling layer calls.
"""

import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional, Union

from .config.constants import AuditEventType, PermissionAction, PurgeReason, TeamMemberRole, UserType
from .config.settings import StorageEngineSettings, load_settings
from .core.exceptions import (
    PermissionDeniedError,
    PrincipalNotFoundError,
    TeamNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from .core.protocols import Clock, LockManager
from .core.value_objects import RecycleEntryId, ResourceId, TeamId, TemplateId, UserId
from .features.audit.entities import AuditSink
from .features.audit.services import AuditEmitter
from .features.permissions.entities import Decision, GrantScope, GrantSubject, PermissionGrant, PermissionTemplate
from .features.permissions.services import GrantService, PermissionResolver
from .features.principals.entities import Principal, Team, TeamMembership
from .features.quota.entities import QuotaSnapshot, QuotaUsage
from .features.quota.services import QuotaLedger
from .features.recycle.entities import ByteStore, PurgeResult, RecycleBinConfig, RecycleEntry
from .features.recycle.services import PurgeSweeper, RecycleLifecycleService, sweep_expired
from .features.resources.entities import Resource
from .features.resources.services import ResourceService
from .infrastructure.locking import KeyedLockManager
from .infrastructure.persistence import InMemoryStorageStore
from .utils.datetime import SystemClock

logger = logging.getLogger(__name__)


class StorageEngine:
    """Facade over the permission, quota and recycle services."""

    def __init__(
        self,
        store,
        settings: StorageEngineSettings,
        clock: Clock,
        locks: LockManager,
        audit: AuditEmitter,
        resolver: PermissionResolver,
        ledger: QuotaLedger,
        resources: ResourceService,
        grants: GrantService,
        lifecycle: RecycleLifecycleService,
        sweeper: PurgeSweeper,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.locks = locks
        self.audit = audit
        self.resolver = resolver
        self.ledger = ledger
        self.resources = resources
        self.grants = grants
        self.lifecycle = lifecycle
        self.sweeper = sweeper

    # Principals

    async def register_principal(
        self,
        username: str,
        quota_total: Optional[int] = None,
        user_type: UserType = UserType.NORMAL,
        template_id: Optional[TemplateId] = None,
    ) -> Principal:
        """Create a principal.

        Without an explicit ``quota_total`` the principal gets the bound
        template's storage quota, or the configured default when unbound.
        """
        template = None
        if template_id is not None:
            template = await self.store.get_template(template_id)
            if template is None:
                raise TemplateNotFoundError(template_id)
        if quota_total is None:
            quota_total = template.storage_quota if template else self.settings.default_user_quota_bytes

        principal = Principal.create(
            username,
            quota_total=quota_total,
            user_type=user_type,
            template_id=template_id,
            now=self.clock.now(),
        )
        await self.store.add_principal(principal)
        logger.info(f"Registered principal {principal.username} ({principal.id})")
        return principal

    async def create_team(
        self,
        name: str,
        creator_id: UserId,
        quota_total: Optional[int] = None,
    ) -> Team:
        """Create a team and make its creator the owner."""
        now = self.clock.now()
        team = Team.create(
            name,
            creator_id,
            quota_total=self.settings.default_team_quota_bytes if quota_total is None else quota_total,
            now=now,
        )
        async with self.store.transaction():
            await self.store.add_team(team)
            await self.store.save_membership(
                TeamMembership(team.id, creator_id, role=TeamMemberRole.OWNER, joined_at=now)
            )
            await self.audit.success(
                AuditEventType.TEAM_CREATED, actor_id=creator_id, team_id=str(team.id), name=team.name,
            )
        logger.info(f"Created team {team.name} ({team.id})")
        return team

    async def add_team_member(
        self,
        team_id: TeamId,
        user_id: UserId,
        role: TeamMemberRole = TeamMemberRole.MEMBER,
        actor_id: Optional[UserId] = None,
    ) -> TeamMembership:
        """Add a member to a team, or change an existing member's role.

        ``actor_id=None`` is the system. Any other actor must be an active
        owner or admin of the team, and only owners hand out the owner role.
        """
        team = await self.store.get_team(team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        if not team.is_active:
            raise ValidationError(f"Team {team_id} is {team.status.value}")
        if await self.store.get_principal(user_id) is None:
            raise PrincipalNotFoundError(user_id)

        if actor_id is not None:
            acting = await self.store.get_membership(team_id, actor_id)
            allowed = acting is not None and acting.can_manage_team()
            if not allowed or (role == TeamMemberRole.OWNER and not acting.is_owner):
                raise PermissionDeniedError(actor_id, f"team:{team_id}", "manage_members")

        membership = TeamMembership(team_id, user_id, role=TeamMemberRole(role), joined_at=self.clock.now())
        async with self.store.transaction():
            await self.store.save_membership(membership)
            await self.audit.success(
                AuditEventType.TEAM_MEMBER_ADDED,
                actor_id=actor_id,
                team_id=str(team_id),
                user_id=str(user_id),
                role=membership.role.value,
            )
        logger.info(f"Added {user_id} to team {team_id} as {membership.role.value}")
        return membership

    # Permissions

    async def resolve(
        self,
        principal_id: Optional[UserId],
        resource_id: ResourceId,
        action: PermissionAction,
    ) -> Decision:
        return await self.resolver.resolve(principal_id, resource_id, action)

    async def issue_grant(
        self,
        actor_id: Optional[UserId],
        subject: GrantSubject,
        scope: GrantScope,
        action: PermissionAction,
        allow: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> PermissionGrant:
        return await self.grants.issue_grant(actor_id, subject, scope, action, allow, expires_at)

    async def revoke(
        self,
        actor_id: Optional[UserId],
        subject: GrantSubject,
        scope: GrantScope,
        action: PermissionAction,
    ) -> PermissionGrant:
        return await self.grants.revoke(actor_id, subject, scope, action)

    async def create_template(
        self,
        actor_id: Optional[UserId],
        name: str,
        description: Optional[str] = None,
        is_default: bool = False,
        storage_quota: Optional[int] = None,
        is_system: bool = False,
    ) -> PermissionTemplate:
        return await self.grants.create_template(
            actor_id, name, description, is_default, storage_quota=storage_quota, is_system=is_system,
        )

    async def bind_template(
        self,
        actor_id: Optional[UserId],
        user_id: UserId,
        template_id: Optional[TemplateId],
    ) -> Principal:
        return await self.grants.bind_template(actor_id, user_id, template_id)

    # Quota

    async def reserve(self, user_id: UserId, team_id: Optional[TeamId], delta_bytes: int) -> QuotaSnapshot:
        return await self.ledger.reserve(user_id, team_id, delta_bytes)

    async def release(self, user_id: UserId, team_id: Optional[TeamId], delta_bytes: int) -> QuotaSnapshot:
        return await self.ledger.release(user_id, team_id, delta_bytes)

    async def usage(self, user_id: UserId, team_id: Optional[TeamId] = None) -> QuotaSnapshot:
        return await self.ledger.usage(user_id, team_id)

    async def set_quota_total(self, account_id: Union[UserId, TeamId], total_bytes: int) -> QuotaUsage:
        return await self.ledger.set_quota_total(account_id, total_bytes)

    # Resources

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
        return await self.resources.create_file(
            actor_id, name, size,
            parent_id=parent_id,
            team_id=team_id,
            mime_type=mime_type,
            storage_path=storage_path,
            is_public=is_public,
        )

    async def create_folder(
        self,
        actor_id: UserId,
        name: str,
        parent_id: Optional[ResourceId] = None,
        team_id: Optional[TeamId] = None,
        is_public: bool = False,
    ) -> Resource:
        return await self.resources.create_folder(
            actor_id, name, parent_id=parent_id, team_id=team_id, is_public=is_public,
        )

    async def get_resource(self, resource_id: ResourceId) -> Resource:
        return await self.resources.get_resource(resource_id)

    # Recycle lifecycle

    async def delete(
        self,
        resource_id: ResourceId,
        actor_id: UserId,
        reason: Optional[str] = None,
    ) -> List[RecycleEntry]:
        return await self.lifecycle.delete(resource_id, actor_id, reason)

    async def restore(
        self,
        entry_id: RecycleEntryId,
        actor_id: UserId,
        target_parent_id: Optional[ResourceId] = None,
    ) -> List[RecycleEntry]:
        return await self.lifecycle.restore(entry_id, actor_id, target_parent_id)

    async def purge(
        self,
        entry_id: RecycleEntryId,
        actor_id: Optional[UserId] = None,
        reason: PurgeReason = PurgeReason.MANUAL,
    ) -> List[PurgeResult]:
        return await self.lifecycle.purge(entry_id, actor_id, reason)

    def list_entries_needing_notification(self, now: Optional[datetime] = None) -> AsyncIterator[RecycleEntry]:
        return self.lifecycle.list_entries_needing_notification(now)

    async def mark_notified(self, entry_id: RecycleEntryId, now: Optional[datetime] = None) -> RecycleEntry:
        return await self.lifecycle.mark_notified(entry_id, now)

    async def sweep_expired(self, now: Optional[datetime] = None) -> List[PurgeResult]:
        return await sweep_expired(
            self.lifecycle, self.store, self.audit,
            now or self.clock.now(), self.settings.sweep_batch_size,
        )

    async def bin_status(self, user_id: UserId) -> RecycleBinConfig:
        return await self.lifecycle.bin_status(user_id)

    async def configure_bin(self, actor_id: UserId, user_id: UserId, **changes) -> RecycleBinConfig:
        return await self.lifecycle.configure_bin(actor_id, user_id, **changes)

    # Background sweep

    def start(self) -> None:
        self.sweeper.start()

    async def stop(self) -> None:
        await self.sweeper.stop()


def create_storage_engine(
    store=None,
    byte_store: Optional[ByteStore] = None,
    settings: Optional[StorageEngineSettings] = None,
    clock: Optional[Clock] = None,
    lock_manager: Optional[LockManager] = None,
    audit_sink: Optional[AuditSink] = None,
) -> StorageEngine:
    """Build a storage engine.

    Args:
        store: persistence adapter implementing every repository protocol and
            the transaction manager (default: a new ``InMemoryStorageStore``)
        byte_store: physical byte reclaim collaborator (required)
        settings: engine settings (default: ``load_settings()``)
        clock: time source (default: ``SystemClock``)
        lock_manager: keyed locks (default: ``KeyedLockManager`` with the
            configured timeout)
        audit_sink: where audit events go (default: the store itself)

    Returns:
        StorageEngine ready to use; the background sweeper is not started.
    """
    if byte_store is None:
        raise ValueError("create_storage_engine requires a byte_store")

    settings = settings or load_settings()
    clock = clock or SystemClock()
    store = store if store is not None else InMemoryStorageStore()
    locks = lock_manager or KeyedLockManager(settings.lock_timeout_seconds)
    audit = AuditEmitter(audit_sink or store, clock)

    resolver = PermissionResolver(store, store, store, clock, settings.lock_timeout_seconds)
    ledger = QuotaLedger(store, store, locks, audit, clock)
    resources = ResourceService(store, store, resolver, ledger, store, locks, audit, clock)
    grants = GrantService(store, store, store, resolver, store, locks, audit, clock)
    lifecycle = RecycleLifecycleService(
        store, store, store, resolver, ledger, byte_store, store, locks, audit, settings, clock,
    )
    sweeper = PurgeSweeper(
        lifecycle, store, audit,
        interval_seconds=settings.sweep_interval_seconds,
        batch_size=settings.sweep_batch_size,
        clock=clock,
    )

    logger.info(f"Storage engine created with {type(store).__name__} and {type(locks).__name__}")
    return StorageEngine(
        store=store,
        settings=settings,
        clock=clock,
        locks=locks,
        audit=audit,
        resolver=resolver,
        ledger=ledger,
        resources=resources,
        grants=grants,
        lifecycle=lifecycle,
        sweeper=sweeper,
    )
