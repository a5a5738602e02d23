"""In-memory storage adapter.

Implements every repository protocol, the audit sink and the transaction
manager over plain dictionaries. Transactions keep an undo log in a context
variable: each write inside a transaction records how to revert itself, and an
exception escaping the outermost block replays the log backwards. Concurrent
transactions of different tasks keep separate logs, so rolling one back never
touches the other's writes.
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, Hashable, List, Optional, Tuple

from ...config.constants import ResourceStatus
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
from ...features.permissions.entities import GrantSubject, PermissionGrant, PermissionTemplate
from ...features.principals.entities import Principal, Team, TeamMembership
from ...features.recycle.entities import RecycleBinConfig, RecycleEntry
from ...features.resources.entities import Resource

logger = logging.getLogger(__name__)

_MISSING = object()


class _UndoLog:
    def __init__(self):
        self.actions: List[Callable[[], None]] = []


class InMemoryStorageStore:
    """Dictionary-backed persistence for tests and single-process use."""

    def __init__(self):
        self.principals: Dict[UserId, Principal] = {}
        self.teams: Dict[TeamId, Team] = {}
        self.memberships: Dict[Tuple[TeamId, UserId], TeamMembership] = {}
        self.resources: Dict[ResourceId, Resource] = {}
        self.grants: Dict[GrantId, PermissionGrant] = {}
        self.templates: Dict[TemplateId, PermissionTemplate] = {}
        self.entries: Dict[RecycleEntryId, RecycleEntry] = {}
        self.bins: Dict[UserId, RecycleBinConfig] = {}
        self.events: Dict[Any, AuditEvent] = {}
        self._undo: ContextVar[Optional[_UndoLog]] = ContextVar(f"neo_storage_undo_{id(self)}", default=None)

    # Transactions

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._undo.get() is not None:
            yield
            return

        log = _UndoLog()
        token = self._undo.set(log)
        try:
            yield
        except BaseException:
            for undo in reversed(log.actions):
                undo()
            logger.debug(f"Rolled back {len(log.actions)} write(s)")
            raise
        finally:
            self._undo.reset(token)

    @property
    def in_transaction(self) -> bool:
        return self._undo.get() is not None

    def _put(self, table: Dict, key: Hashable, value: Any) -> None:
        previous = table.get(key, _MISSING)
        table[key] = value
        log = self._undo.get()
        if log is None:
            return

        def undo():
            if previous is _MISSING:
                table.pop(key, None)
            else:
                table[key] = previous

        log.actions.append(undo)

    def _insert(self, table: Dict, key: Hashable, value: Any, entity_type: str) -> Any:
        if key in table:
            raise PersistenceError(f"{entity_type} '{key}' already exists")
        self._put(table, key, value)
        return value

    def _swap(self, table: Dict, key: Hashable, value: Any, expected_version: int) -> bool:
        current = table.get(key)
        if current is None or current.version != expected_version:
            return False
        self._put(table, key, value)
        return True

    # Principals, teams, memberships

    async def get_principal(self, user_id: UserId) -> Optional[Principal]:
        return self.principals.get(user_id)

    async def add_principal(self, principal: Principal) -> Principal:
        return self._insert(self.principals, principal.id, principal, "Principal")

    async def compare_and_set_principal(self, principal: Principal, expected_version: int) -> bool:
        return self._swap(self.principals, principal.id, principal, expected_version)

    async def get_team(self, team_id: TeamId) -> Optional[Team]:
        return self.teams.get(team_id)

    async def add_team(self, team: Team) -> Team:
        return self._insert(self.teams, team.id, team, "Team")

    async def compare_and_set_team(self, team: Team, expected_version: int) -> bool:
        return self._swap(self.teams, team.id, team, expected_version)

    async def list_memberships(self, user_id: UserId) -> List[TeamMembership]:
        return [m for (_, member_id), m in self.memberships.items() if member_id == user_id]

    async def get_membership(self, team_id: TeamId, user_id: UserId) -> Optional[TeamMembership]:
        return self.memberships.get((team_id, user_id))

    async def save_membership(self, membership: TeamMembership) -> TeamMembership:
        self._put(self.memberships, (membership.team_id, membership.user_id), membership)
        return membership

    # Resources

    async def get_resource(self, resource_id: ResourceId) -> Optional[Resource]:
        return self.resources.get(resource_id)

    async def add_resource(self, resource: Resource) -> Resource:
        return self._insert(self.resources, resource.id, resource, "Resource")

    async def compare_and_set_resource(self, resource: Resource, expected_version: int) -> bool:
        return self._swap(self.resources, resource.id, resource, expected_version)

    async def list_children(
        self,
        parent_id: ResourceId,
        status: Optional[ResourceStatus] = None,
    ) -> List[Resource]:
        children = [
            r for r in self.resources.values()
            if r.parent_id == parent_id and (status is None or r.status == status)
        ]
        return sorted(children, key=lambda r: r.name)

    async def find_active_child(
        self,
        parent_id: Optional[ResourceId],
        name: str,
        owner_id: UserId,
        team_id: Optional[TeamId] = None,
    ) -> Optional[Resource]:
        for resource in self.resources.values():
            if not resource.is_active or resource.name != name or resource.parent_id != parent_id:
                continue
            if parent_id is not None:
                return resource
            if team_id is not None and resource.team_id == team_id:
                return resource
            if team_id is None and resource.team_id is None and resource.owner_id == owner_id:
                return resource
        return None

    async def list_owned(
        self,
        owner_id: UserId,
        statuses: Optional[List[ResourceStatus]] = None,
    ) -> List[Resource]:
        return [
            r for r in self.resources.values()
            if r.owner_id == owner_id and (statuses is None or r.status in statuses)
        ]

    # Grants and templates

    async def add_grant(self, grant: PermissionGrant) -> PermissionGrant:
        return self._insert(self.grants, grant.id, grant, "PermissionGrant")

    async def get_grant(self, grant_id: GrantId) -> Optional[PermissionGrant]:
        return self.grants.get(grant_id)

    async def list_resource_grants(self, resource_id: ResourceId) -> List[PermissionGrant]:
        return [g for g in self.grants.values() if g.scope.resource_id == resource_id]

    async def list_subject_grants(self, subject: GrantSubject) -> List[PermissionGrant]:
        return [g for g in self.grants.values() if g.subject == subject]

    async def add_template(self, template: PermissionTemplate) -> PermissionTemplate:
        return self._insert(self.templates, template.id, template, "PermissionTemplate")

    async def get_template(self, template_id: TemplateId) -> Optional[PermissionTemplate]:
        return self.templates.get(template_id)

    async def get_default_template(self) -> Optional[PermissionTemplate]:
        defaults = [t for t in self.templates.values() if t.is_default]
        return max(defaults, key=lambda t: (t.created_at, t.id)) if defaults else None

    # Recycle entries and bins

    async def get_entry(self, entry_id: RecycleEntryId) -> Optional[RecycleEntry]:
        return self.entries.get(entry_id)

    async def add_entry(self, entry: RecycleEntry) -> RecycleEntry:
        return self._insert(self.entries, entry.id, entry, "RecycleEntry")

    async def compare_and_set_entry(self, entry: RecycleEntry, expected_version: int) -> bool:
        return self._swap(self.entries, entry.id, entry, expected_version)

    async def get_open_entry_for_resource(self, resource_id: ResourceId) -> Optional[RecycleEntry]:
        for entry in self.entries.values():
            if entry.resource_id == resource_id and entry.is_open:
                return entry
        return None

    async def list_episode_entries(self, episode_root_id: RecycleEntryId) -> List[RecycleEntry]:
        return sorted(
            (e for e in self.entries.values() if e.episode_root_id == episode_root_id),
            key=lambda e: e.id,
        )

    async def list_oldest_open_entries(self, owner_id: UserId, limit: int) -> List[RecycleEntry]:
        open_entries = [e for e in self.entries.values() if e.owner_id == owner_id and e.is_open]
        return sorted(open_entries, key=lambda e: (e.deleted_at, e.id))[:limit]

    async def list_expired_entries(
        self,
        now: datetime,
        after: Optional[RecycleEntryId],
        limit: int,
    ) -> List[RecycleEntry]:
        return self._page(
            (e for e in self.entries.values() if e.is_open and e.expires_at <= now), after, limit,
        )

    async def list_notification_candidates(
        self,
        now: datetime,
        after: Optional[RecycleEntryId],
        limit: int,
    ) -> List[RecycleEntry]:
        return self._page(
            (
                e for e in self.entries.values()
                if e.is_open and e.notified_at is None and e.notify_at <= now < e.expires_at
            ),
            after,
            limit,
        )

    async def get_bin_config(self, user_id: UserId) -> Optional[RecycleBinConfig]:
        return self.bins.get(user_id)

    async def add_bin_config(self, config: RecycleBinConfig) -> RecycleBinConfig:
        return self._insert(self.bins, config.user_id, config, "RecycleBin")

    async def compare_and_set_bin_config(self, config: RecycleBinConfig, expected_version: int) -> bool:
        return self._swap(self.bins, config.user_id, config, expected_version)

    # Audit

    async def write_event(self, event: AuditEvent) -> None:
        self._insert(self.events, event.id, event, "AuditEvent")

    def audit_log(self) -> List[AuditEvent]:
        return list(self.events.values())

    @staticmethod
    def _page(entries, after: Optional[RecycleEntryId], limit: int) -> List[RecycleEntry]:
        selected = sorted((e for e in entries if after is None or e.id > after), key=lambda e: e.id)
        return selected[:limit]
