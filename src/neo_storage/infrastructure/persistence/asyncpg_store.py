"""PostgreSQL storage adapter using asyncpg.

Implements the repository protocols, the audit sink and the transaction
manager. A transaction pins one pooled connection in a context variable; every
repository call made by the same task inside the transaction runs on that
connection, and calls outside a transaction borrow a connection per call.

Compare-and-swap writes are ``UPDATE ... WHERE version = $n`` statements whose
affected row count decides the result.
"""

import json
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional

import asyncpg

from ...config.constants import (
    PermissionAction,
    PurgeReason,
    RecycleStatus,
    ResourceKind,
    ResourceStatus,
    ResourceType,
    ScopeKind,
    SubjectKind,
    TeamMemberRole,
    TeamMemberStatus,
    TeamStatus,
    UserStatus,
    UserType,
)
from ...core.exceptions import PersistenceError
from ...core.value_objects import (
    GrantId,
    RecycleEntryId,
    ResourceId,
    TeamId,
    TemplateId,
    UserId,
)
from ...features.audit.entities import AuditEvent
from ...features.permissions.entities import GrantScope, GrantSubject, PermissionGrant, PermissionTemplate
from ...features.principals.entities import Principal, Team, TeamMembership
from ...features.recycle.entities import RecycleBinConfig, RecycleEntry
from ...features.resources.entities import Resource
from .queries import (
    AUDIT_EVENT_INSERT,
    GRANT_GET_BY_ID,
    GRANT_INSERT,
    GRANT_LIST_BY_RESOURCE,
    GRANT_LIST_BY_SUBJECT,
    MEMBERSHIP_GET,
    MEMBERSHIP_LIST_BY_USER,
    MEMBERSHIP_UPSERT,
    PRINCIPAL_COMPARE_AND_SET,
    PRINCIPAL_GET_BY_ID,
    PRINCIPAL_INSERT,
    RECYCLE_BIN_COMPARE_AND_SET,
    RECYCLE_BIN_GET,
    RECYCLE_BIN_INSERT,
    RECYCLE_ENTRY_COMPARE_AND_SET,
    RECYCLE_ENTRY_GET_BY_ID,
    RECYCLE_ENTRY_GET_OPEN_BY_RESOURCE,
    RECYCLE_ENTRY_INSERT,
    RECYCLE_ENTRY_LIST_BY_EPISODE,
    RECYCLE_ENTRY_LIST_EXPIRED,
    RECYCLE_ENTRY_LIST_NOTIFICATION_CANDIDATES,
    RECYCLE_ENTRY_LIST_OLDEST_OPEN,
    RESOURCE_COMPARE_AND_SET,
    RESOURCE_FIND_ACTIVE_CHILD,
    RESOURCE_FIND_ACTIVE_TEAM_ROOT,
    RESOURCE_FIND_ACTIVE_USER_ROOT,
    RESOURCE_GET_BY_ID,
    RESOURCE_INSERT,
    RESOURCE_LIST_CHILDREN,
    RESOURCE_LIST_OWNED,
    TEAM_COMPARE_AND_SET,
    TEAM_GET_BY_ID,
    TEAM_INSERT,
    TEMPLATE_GET_BY_ID,
    TEMPLATE_GET_DEFAULT,
    TEMPLATE_INSERT,
)

logger = logging.getLogger(__name__)


def _value(entity_id) -> Optional[Any]:
    return entity_id.value if entity_id is not None else None


def _wrap(cls, raw):
    return cls(raw) if raw is not None else None


def _affected(status: str) -> int:
    """Row count from an asyncpg command tag such as ``UPDATE 1``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class AsyncPGStorageStore:
    """asyncpg-backed persistence for principals, resources, grants and recycle state."""

    def __init__(self, pool: asyncpg.Pool, schema: str = "storage"):
        self._pool = pool
        self._schema = schema
        self._conn: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
            f"neo_storage_pg_conn_{id(self)}", default=None
        )

    # Transactions and connection handling

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._conn.get() is not None:
            yield
            return

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                token = self._conn.set(conn)
                try:
                    yield
                finally:
                    self._conn.reset(token)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        conn = self._conn.get()
        if conn is not None:
            yield conn
            return
        async with self._pool.acquire() as conn:
            yield conn

    def _q(self, query: str) -> str:
        return query.format(schema=self._schema)

    async def _fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        try:
            async with self._connection() as conn:
                return await conn.fetchrow(self._q(query), *args)
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"Query failed: {e}", details={"schema": self._schema}) from e

    async def _fetch(self, query: str, *args) -> List[asyncpg.Record]:
        try:
            async with self._connection() as conn:
                return await conn.fetch(self._q(query), *args)
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"Query failed: {e}", details={"schema": self._schema}) from e

    async def _execute(self, query: str, *args) -> str:
        try:
            async with self._connection() as conn:
                return await conn.execute(self._q(query), *args)
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"Statement failed: {e}", details={"schema": self._schema}) from e

    async def _swap(self, query: str, *args) -> bool:
        return _affected(await self._execute(query, *args)) == 1

    # Principals, teams, memberships

    async def get_principal(self, user_id: UserId) -> Optional[Principal]:
        row = await self._fetchrow(PRINCIPAL_GET_BY_ID, user_id.value)
        return self._row_to_principal(row) if row else None

    async def add_principal(self, principal: Principal) -> Principal:
        await self._execute(
            PRINCIPAL_INSERT,
            principal.id.value,
            principal.username,
            principal.quota_total,
            principal.quota_used,
            principal.user_type.value,
            principal.status.value,
            _value(principal.template_id),
            principal.version,
            principal.created_at,
            principal.updated_at,
        )
        return principal

    async def compare_and_set_principal(self, principal: Principal, expected_version: int) -> bool:
        return await self._swap(
            PRINCIPAL_COMPARE_AND_SET,
            principal.id.value,
            principal.username,
            principal.quota_total,
            principal.quota_used,
            principal.user_type.value,
            principal.status.value,
            _value(principal.template_id),
            principal.version,
            principal.updated_at,
            expected_version,
        )

    async def get_team(self, team_id: TeamId) -> Optional[Team]:
        row = await self._fetchrow(TEAM_GET_BY_ID, team_id.value)
        return self._row_to_team(row) if row else None

    async def add_team(self, team: Team) -> Team:
        await self._execute(
            TEAM_INSERT,
            team.id.value,
            team.name,
            team.creator_id.value,
            team.quota_total,
            team.quota_used,
            team.status.value,
            team.max_members,
            team.is_public,
            team.version,
            team.created_at,
            team.updated_at,
        )
        return team

    async def compare_and_set_team(self, team: Team, expected_version: int) -> bool:
        return await self._swap(
            TEAM_COMPARE_AND_SET,
            team.id.value,
            team.name,
            team.quota_total,
            team.quota_used,
            team.status.value,
            team.max_members,
            team.is_public,
            team.version,
            team.updated_at,
            expected_version,
        )

    async def list_memberships(self, user_id: UserId) -> List[TeamMembership]:
        rows = await self._fetch(MEMBERSHIP_LIST_BY_USER, user_id.value)
        return [self._row_to_membership(row) for row in rows]

    async def get_membership(self, team_id: TeamId, user_id: UserId) -> Optional[TeamMembership]:
        row = await self._fetchrow(MEMBERSHIP_GET, team_id.value, user_id.value)
        return self._row_to_membership(row) if row else None

    async def save_membership(self, membership: TeamMembership) -> TeamMembership:
        await self._execute(
            MEMBERSHIP_UPSERT,
            membership.team_id.value,
            membership.user_id.value,
            membership.role.value,
            membership.status.value,
            membership.joined_at,
        )
        return membership

    # Resources

    async def get_resource(self, resource_id: ResourceId) -> Optional[Resource]:
        row = await self._fetchrow(RESOURCE_GET_BY_ID, resource_id.value)
        return self._row_to_resource(row) if row else None

    async def add_resource(self, resource: Resource) -> Resource:
        await self._execute(
            RESOURCE_INSERT,
            resource.id.value,
            resource.name,
            resource.kind.value,
            resource.owner_id.value,
            _value(resource.team_id),
            _value(resource.parent_id),
            resource.path,
            resource.size,
            resource.status.value,
            resource.storage_path,
            resource.mime_type,
            resource.is_public,
            resource.share_expires_at,
            resource.version,
            resource.created_at,
            resource.updated_at,
        )
        return resource

    async def compare_and_set_resource(self, resource: Resource, expected_version: int) -> bool:
        return await self._swap(
            RESOURCE_COMPARE_AND_SET,
            resource.id.value,
            resource.name,
            _value(resource.parent_id),
            resource.path,
            resource.size,
            resource.status.value,
            resource.storage_path,
            resource.mime_type,
            resource.is_public,
            resource.share_expires_at,
            resource.version,
            resource.updated_at,
            expected_version,
        )

    async def list_children(
        self,
        parent_id: ResourceId,
        status: Optional[ResourceStatus] = None,
    ) -> List[Resource]:
        rows = await self._fetch(RESOURCE_LIST_CHILDREN, parent_id.value, status.value if status else None)
        return [self._row_to_resource(row) for row in rows]

    async def find_active_child(
        self,
        parent_id: Optional[ResourceId],
        name: str,
        owner_id: UserId,
        team_id: Optional[TeamId] = None,
    ) -> Optional[Resource]:
        if parent_id is not None:
            row = await self._fetchrow(RESOURCE_FIND_ACTIVE_CHILD, parent_id.value, name)
        elif team_id is not None:
            row = await self._fetchrow(RESOURCE_FIND_ACTIVE_TEAM_ROOT, team_id.value, name)
        else:
            row = await self._fetchrow(RESOURCE_FIND_ACTIVE_USER_ROOT, owner_id.value, name)
        return self._row_to_resource(row) if row else None

    async def list_owned(
        self,
        owner_id: UserId,
        statuses: Optional[List[ResourceStatus]] = None,
    ) -> List[Resource]:
        status_values = [s.value for s in statuses] if statuses is not None else None
        rows = await self._fetch(RESOURCE_LIST_OWNED, owner_id.value, status_values)
        return [self._row_to_resource(row) for row in rows]

    # Grants and templates

    async def add_grant(self, grant: PermissionGrant) -> PermissionGrant:
        await self._execute(
            GRANT_INSERT,
            grant.id.value,
            grant.subject.kind.value,
            grant.subject.subject_id.value,
            grant.scope.kind.value,
            _value(grant.scope.resource_id),
            grant.scope.resource_type.value if grant.scope.resource_type else None,
            grant.action.value,
            grant.allow,
            _value(grant.granted_by),
            grant.granted_at,
            grant.expires_at,
        )
        return grant

    async def get_grant(self, grant_id: GrantId) -> Optional[PermissionGrant]:
        row = await self._fetchrow(GRANT_GET_BY_ID, grant_id.value)
        return self._row_to_grant(row) if row else None

    async def list_resource_grants(self, resource_id: ResourceId) -> List[PermissionGrant]:
        rows = await self._fetch(GRANT_LIST_BY_RESOURCE, resource_id.value)
        return [self._row_to_grant(row) for row in rows]

    async def list_subject_grants(self, subject: GrantSubject) -> List[PermissionGrant]:
        rows = await self._fetch(GRANT_LIST_BY_SUBJECT, subject.kind.value, subject.subject_id.value)
        return [self._row_to_grant(row) for row in rows]

    async def add_template(self, template: PermissionTemplate) -> PermissionTemplate:
        await self._execute(
            TEMPLATE_INSERT,
            template.id.value,
            template.name,
            template.description,
            template.is_default,
            template.is_system,
            template.storage_quota,
            template.created_at,
        )
        return template

    async def get_template(self, template_id: TemplateId) -> Optional[PermissionTemplate]:
        row = await self._fetchrow(TEMPLATE_GET_BY_ID, template_id.value)
        return self._row_to_template(row) if row else None

    async def get_default_template(self) -> Optional[PermissionTemplate]:
        row = await self._fetchrow(TEMPLATE_GET_DEFAULT)
        return self._row_to_template(row) if row else None

    # Recycle entries and bins

    async def get_entry(self, entry_id: RecycleEntryId) -> Optional[RecycleEntry]:
        row = await self._fetchrow(RECYCLE_ENTRY_GET_BY_ID, entry_id.value)
        return self._row_to_entry(row) if row else None

    async def add_entry(self, entry: RecycleEntry) -> RecycleEntry:
        await self._execute(
            RECYCLE_ENTRY_INSERT,
            entry.id.value,
            entry.resource_id.value,
            entry.owner_id.value,
            _value(entry.team_id),
            entry.resource_kind.value,
            entry.file_name,
            _value(entry.original_parent_id),
            entry.original_path,
            entry.size,
            entry.storage_path,
            entry.mime_type,
            entry.deleted_by.value,
            entry.deleted_at,
            entry.expires_at,
            entry.notify_at,
            entry.retention_days,
            entry.episode_root_id.value,
            entry.deleted_reason,
            entry.status.value,
            entry.restored_at,
            _value(entry.restored_by),
            entry.restored_path,
            entry.permanent_deleted_at,
            _value(entry.permanent_deleted_by),
            entry.purge_reason.value if entry.purge_reason else None,
            entry.notified_at,
            entry.version,
        )
        return entry

    async def compare_and_set_entry(self, entry: RecycleEntry, expected_version: int) -> bool:
        return await self._swap(
            RECYCLE_ENTRY_COMPARE_AND_SET,
            entry.id.value,
            entry.status.value,
            entry.restored_at,
            _value(entry.restored_by),
            entry.restored_path,
            entry.permanent_deleted_at,
            _value(entry.permanent_deleted_by),
            entry.purge_reason.value if entry.purge_reason else None,
            entry.notified_at,
            entry.version,
            expected_version,
        )

    async def get_open_entry_for_resource(self, resource_id: ResourceId) -> Optional[RecycleEntry]:
        row = await self._fetchrow(RECYCLE_ENTRY_GET_OPEN_BY_RESOURCE, resource_id.value)
        return self._row_to_entry(row) if row else None

    async def list_episode_entries(self, episode_root_id: RecycleEntryId) -> List[RecycleEntry]:
        rows = await self._fetch(RECYCLE_ENTRY_LIST_BY_EPISODE, episode_root_id.value)
        return [self._row_to_entry(row) for row in rows]

    async def list_oldest_open_entries(self, owner_id: UserId, limit: int) -> List[RecycleEntry]:
        rows = await self._fetch(RECYCLE_ENTRY_LIST_OLDEST_OPEN, owner_id.value, limit)
        return [self._row_to_entry(row) for row in rows]

    async def list_expired_entries(
        self,
        now: datetime,
        after: Optional[RecycleEntryId],
        limit: int,
    ) -> List[RecycleEntry]:
        rows = await self._fetch(RECYCLE_ENTRY_LIST_EXPIRED, now, _value(after), limit)
        return [self._row_to_entry(row) for row in rows]

    async def list_notification_candidates(
        self,
        now: datetime,
        after: Optional[RecycleEntryId],
        limit: int,
    ) -> List[RecycleEntry]:
        rows = await self._fetch(RECYCLE_ENTRY_LIST_NOTIFICATION_CANDIDATES, now, _value(after), limit)
        return [self._row_to_entry(row) for row in rows]

    async def get_bin_config(self, user_id: UserId) -> Optional[RecycleBinConfig]:
        row = await self._fetchrow(RECYCLE_BIN_GET, user_id.value)
        return self._row_to_bin(row) if row else None

    async def add_bin_config(self, config: RecycleBinConfig) -> RecycleBinConfig:
        await self._execute(
            RECYCLE_BIN_INSERT,
            config.user_id.value,
            config.is_enabled,
            config.retention_days,
            config.notify_before_delete,
            config.notify_days,
            config.max_storage_bytes,
            config.max_item_count,
            config.current_storage_bytes,
            config.current_item_count,
            config.total_deleted,
            config.total_restored,
            config.total_permanent,
            config.version,
            config.created_at,
            config.updated_at,
        )
        return config

    async def compare_and_set_bin_config(self, config: RecycleBinConfig, expected_version: int) -> bool:
        return await self._swap(
            RECYCLE_BIN_COMPARE_AND_SET,
            config.user_id.value,
            config.is_enabled,
            config.retention_days,
            config.notify_before_delete,
            config.notify_days,
            config.max_storage_bytes,
            config.max_item_count,
            config.current_storage_bytes,
            config.current_item_count,
            config.total_deleted,
            config.total_restored,
            config.total_permanent,
            config.version,
            config.updated_at,
            expected_version,
        )

    # Audit

    async def write_event(self, event: AuditEvent) -> None:
        await self._execute(
            AUDIT_EVENT_INSERT,
            event.id.value,
            event.event_type.value,
            event.outcome.value,
            event.occurred_at,
            _value(event.actor_id),
            _value(event.resource_id),
            _value(event.entry_id),
            json.dumps(event.details, default=str),
        )

    # Row mapping

    @staticmethod
    def _row_to_principal(row) -> Principal:
        return Principal(
            id=UserId(row["id"]),
            username=row["username"],
            quota_total=row["quota_total"],
            quota_used=row["quota_used"],
            user_type=UserType(row["user_type"]),
            status=UserStatus(row["status"]),
            template_id=_wrap(TemplateId, row["template_id"]),
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_team(row) -> Team:
        return Team(
            id=TeamId(row["id"]),
            name=row["name"],
            creator_id=UserId(row["creator_id"]),
            quota_total=row["quota_total"],
            quota_used=row["quota_used"],
            status=TeamStatus(row["status"]),
            max_members=row["max_members"],
            is_public=row["is_public"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_membership(row) -> TeamMembership:
        return TeamMembership(
            team_id=TeamId(row["team_id"]),
            user_id=UserId(row["user_id"]),
            role=TeamMemberRole(row["role"]),
            status=TeamMemberStatus(row["status"]),
            joined_at=row["joined_at"],
        )

    @staticmethod
    def _row_to_resource(row) -> Resource:
        return Resource(
            id=ResourceId(row["id"]),
            name=row["name"],
            kind=ResourceKind(row["kind"]),
            owner_id=UserId(row["owner_id"]),
            team_id=_wrap(TeamId, row["team_id"]),
            parent_id=_wrap(ResourceId, row["parent_id"]),
            path=row["path"],
            size=row["size"],
            status=ResourceStatus(row["status"]),
            storage_path=row["storage_path"],
            mime_type=row["mime_type"],
            is_public=row["is_public"],
            share_expires_at=row["share_expires_at"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_grant(row) -> PermissionGrant:
        subject_kind = SubjectKind(row["subject_kind"])
        subject_cls = {SubjectKind.USER: UserId, SubjectKind.TEAM: TeamId, SubjectKind.TEMPLATE: TemplateId}
        return PermissionGrant(
            id=GrantId(row["id"]),
            subject=GrantSubject(subject_kind, subject_cls[subject_kind](row["subject_id"])),
            scope=GrantScope(
                ScopeKind(row["scope_kind"]),
                resource_id=_wrap(ResourceId, row["resource_id"]),
                resource_type=_wrap(ResourceType, row["resource_type"]),
            ),
            action=PermissionAction(row["action"]),
            allow=row["allow"],
            granted_by=_wrap(UserId, row["granted_by"]),
            granted_at=row["granted_at"],
            expires_at=row["expires_at"],
        )

    @staticmethod
    def _row_to_template(row) -> PermissionTemplate:
        return PermissionTemplate(
            id=TemplateId(row["id"]),
            name=row["name"],
            description=row["description"],
            is_default=row["is_default"],
            is_system=row["is_system"],
            storage_quota=row["storage_quota"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_entry(row) -> RecycleEntry:
        return RecycleEntry(
            id=RecycleEntryId(row["id"]),
            resource_id=ResourceId(row["resource_id"]),
            owner_id=UserId(row["owner_id"]),
            team_id=_wrap(TeamId, row["team_id"]),
            resource_kind=ResourceKind(row["resource_kind"]),
            file_name=row["file_name"],
            original_parent_id=_wrap(ResourceId, row["original_parent_id"]),
            original_path=row["original_path"],
            size=row["size"],
            storage_path=row["storage_path"],
            mime_type=row["mime_type"],
            deleted_by=UserId(row["deleted_by"]),
            deleted_at=row["deleted_at"],
            expires_at=row["expires_at"],
            notify_at=row["notify_at"],
            retention_days=row["retention_days"],
            episode_root_id=RecycleEntryId(row["episode_root_id"]),
            deleted_reason=row["deleted_reason"],
            status=RecycleStatus(row["status"]),
            restored_at=row["restored_at"],
            restored_by=_wrap(UserId, row["restored_by"]),
            restored_path=row["restored_path"],
            permanent_deleted_at=row["permanent_deleted_at"],
            permanent_deleted_by=_wrap(UserId, row["permanent_deleted_by"]),
            purge_reason=_wrap(PurgeReason, row["purge_reason"]),
            notified_at=row["notified_at"],
            version=row["version"],
        )

    @staticmethod
    def _row_to_bin(row) -> RecycleBinConfig:
        return RecycleBinConfig(
            user_id=UserId(row["user_id"]),
            is_enabled=row["is_enabled"],
            retention_days=row["retention_days"],
            notify_before_delete=row["notify_before_delete"],
            notify_days=row["notify_days"],
            max_storage_bytes=row["max_storage_bytes"],
            max_item_count=row["max_item_count"],
            current_storage_bytes=row["current_storage_bytes"],
            current_item_count=row["current_item_count"],
            total_deleted=row["total_deleted"],
            total_restored=row["total_restored"],
            total_permanent=row["total_permanent"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
