"""Recycle lifecycle service.

State machine for resources: ``active -> recycled -> (active | purged)``.

Every transition runs with the affected resource locks held (plus the bin
and quota locks it touches) and writes through versioned compare-and-swap
inside a single transaction, so a concurrent transition on the same resource
either waits or observes ``StaleStateError``. Cascading folder deletes,
restores and purges are all-or-nothing at the transaction boundary.
"""

import logging
from collections import defaultdict, deque
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

from ....config.constants import (
    AuditEventType,
    PermissionAction,
    PurgeOutcome,
    PurgeReason,
    ResourceStatus,
)
from ....config.settings import StorageEngineSettings
from ....core.exceptions import (
    ExpiredError,
    InvalidStateError,
    NameConflictError,
    ParentGoneError,
    PermissionDeniedError,
    PrincipalNotFoundError,
    RecycleEntryNotFoundError,
    ResourceNotFoundError,
    StaleStateError,
    ValidationError,
)
from ....core.protocols import Clock, LockManager, TransactionManager
from ....core.value_objects import RecycleEntryId, ResourceId, TeamId, UserId
from ....utils.datetime import SystemClock
from ....utils.lock_keys import bin_key, quota_keys, resource_key
from ...audit.services import AuditEmitter
from ...permissions.services import PermissionResolver
from ...principals.entities import Principal, PrincipalRepository
from ...quota.services import QuotaLedger
from ...resources.entities import Resource, ResourceRepository, join_path
from ...resources.services.resource_tree import collect_subtree
from ..entities import ByteStore, PurgeResult, RecycleBinConfig, RecycleEntry, RecycleRepository

logger = logging.getLogger(__name__)

_BIN_FIELDS = frozenset({
    "is_enabled",
    "retention_days",
    "notify_before_delete",
    "notify_days",
    "max_storage_bytes",
    "max_item_count",
})


def _rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    if path == old_prefix:
        return new_prefix
    if path.startswith(old_prefix + "/"):
        return join_path(new_prefix, path[len(old_prefix) + 1:])
    raise InvalidStateError(f"Path '{path}' is not under '{old_prefix}'")


class RecycleLifecycleService:
    """Delete, restore and purge with recycle bin bookkeeping."""

    def __init__(
        self,
        resources: ResourceRepository,
        recycle: RecycleRepository,
        principals: PrincipalRepository,
        resolver: PermissionResolver,
        ledger: QuotaLedger,
        byte_store: ByteStore,
        transactions: TransactionManager,
        locks: LockManager,
        audit: AuditEmitter,
        settings: StorageEngineSettings,
        clock: Optional[Clock] = None,
    ):
        self._resources = resources
        self._recycle = recycle
        self._principals = principals
        self._resolver = resolver
        self._ledger = ledger
        self._byte_store = byte_store
        self._transactions = transactions
        self._locks = locks
        self._audit = audit
        self._settings = settings
        self._clock = clock or SystemClock()

    # Delete

    async def delete(
        self,
        resource_id: ResourceId,
        actor_id: UserId,
        reason: Optional[str] = None,
    ) -> List[RecycleEntry]:
        """Recycle a resource and, for folders, every active descendant.

        Returns the opened entries, the resource's own entry first.

        Raises:
            ResourceNotFoundError: the resource does not exist
            PermissionDeniedError: ``delete`` is denied on any node of the subtree
            StaleStateError: the resource is not active or changed concurrently
        """
        actor = await self._load_principal(actor_id)
        root = await self._load_resource(resource_id)
        if not root.is_active:
            raise StaleStateError("Resource", resource_id, f"resource is {root.status.value}")

        snapshot = await collect_subtree(self._resources, root)
        for node in snapshot:
            await self._authorize(actor, node, PermissionAction.DELETE)

        victims = await self._plan_eviction(snapshot)

        owners = {node.owner_id for node in snapshot}
        keys = [resource_key(node.id) for node in snapshot] + [bin_key(owner) for owner in owners]
        for members in victims:
            for member in members:
                keys.append(resource_key(member.resource_id))
                keys.append(bin_key(member.owner_id))
                keys.extend(quota_keys(member.owner_id, member.team_id))

        async with self._locks.acquire(*keys):
            current = await self._load_resource(resource_id)
            nodes = await collect_subtree(self._resources, current) if current.is_active else []
            if {(n.id, n.version) for n in nodes} != {(n.id, n.version) for n in snapshot}:
                raise StaleStateError("Resource", resource_id, "resource or subtree changed during delete")

            await self._evict(victims, nodes)

            actor_bin, _ = await self._load_bin(actor.id)
            retention_days = actor_bin.effective_retention_days
            notify_days = min(actor_bin.notify_days, retention_days)
            now = self._clock.now()

            entries: List[RecycleEntry] = []
            async with self._transactions.transaction():
                episode_root_id: Optional[RecycleEntryId] = None
                for node in nodes:
                    entry = RecycleEntry.open(
                        node, actor.id, now, retention_days, notify_days,
                        episode_root_id=episode_root_id, reason=reason,
                    )
                    episode_root_id = episode_root_id or entry.id
                    await self._swap_resource(node, node.transition(ResourceStatus.RECYCLED, now))
                    await self._recycle.add_entry(entry)
                    entries.append(entry)
                    await self._audit.success(
                        AuditEventType.RESOURCE_RECYCLED,
                        actor_id=actor.id,
                        resource_id=node.id,
                        entry_id=entry.id,
                        episode_root_id=str(episode_root_id),
                        expires_at=entry.expires_at.isoformat(),
                    )

                for owner_id, (count, size) in self._tally(nodes).items():
                    await self._update_bin(owner_id, lambda b, c=count, s=size: b.record_deleted(c, s, now))

        logger.info(
            f"Recycled {len(entries)} resource(s) under {resource_id} by {actor.id}, "
            f"expires {entries[0].expires_at.isoformat()}"
        )
        return entries

    async def _plan_eviction(self, incoming: Sequence[Resource]) -> List[List[RecycleEntry]]:
        """Pick the oldest open entries of each bin the delete would overflow.

        Each victim comes with its episode members so the caller can lock
        them together with the resources being deleted. Bins are planned down
        to the eviction ratio of capacity, counting the incoming entries.
        """
        ratio = self._settings.recycle_eviction_target_ratio
        victims: List[List[RecycleEntry]] = []
        planned: Set[RecycleEntryId] = set()

        for owner_id, (count, size) in self._tally(incoming).items():
            bin_config, _ = await self._load_bin(owner_id)
            if not bin_config.would_overflow(count, size):
                continue

            logger.info(
                f"Recycle bin of {owner_id} over capacity "
                f"({bin_config.current_item_count} items/{bin_config.current_storage_bytes} bytes), evicting"
            )
            remaining = bin_config
            oldest = await self._recycle.list_oldest_open_entries(owner_id, max(bin_config.current_item_count, 1))
            for entry in oldest:
                if remaining.fits_after_eviction(count, size, ratio):
                    break
                if entry.id in planned:
                    continue
                members = await self._episode_members(entry)
                planned.update(m.id for m in members)
                victims.append(members)
                own = [m for m in members if m.owner_id == owner_id]
                remaining = replace(
                    remaining,
                    current_item_count=max(remaining.current_item_count - len(own), 0),
                    current_storage_bytes=max(remaining.current_storage_bytes - sum(m.size for m in own), 0),
                )
        return victims

    async def _evict(self, victims: Sequence[List[RecycleEntry]], incoming: Sequence[Resource]) -> None:
        """FIFO-purge planned victims until their bins fit the incoming entries.

        Runs with the victims' keys already held, after the delete has been
        validated. A delete is never rejected for bin pressure: the first
        failed eviction is audited and ends eviction.
        """
        ratio = self._settings.recycle_eviction_target_ratio
        tally = self._tally(incoming)
        for members in victims:
            entry = members[0]
            count, size = tally.get(entry.owner_id, (0, 0))
            bin_config, _ = await self._load_bin(entry.owner_id)
            if bin_config.fits_after_eviction(count, size, ratio):
                continue
            try:
                await self.purge(entry.id, None, PurgeReason.CAPACITY)
            except StaleStateError as e:
                logger.info(f"Skipped eviction of recycle entry {entry.id}: {e}")
            except Exception as e:
                logger.error(f"Eviction of recycle entry {entry.id} failed: {e}")
                await self._audit.failure(
                    AuditEventType.RESOURCE_PURGED, e,
                    resource_id=entry.resource_id, entry_id=entry.id,
                    reason=PurgeReason.CAPACITY.value,
                )
                return

    # Restore

    async def restore(
        self,
        entry_id: RecycleEntryId,
        actor_id: UserId,
        target_parent_id: Optional[ResourceId] = None,
    ) -> List[RecycleEntry]:
        """Restore an entry and the open entries of its descendants.

        Without ``target_parent_id`` the resource goes back to its original
        parent, which must still be active under its original path.

        Raises:
            RecycleEntryNotFoundError: the entry does not exist
            StaleStateError: the entry is no longer open
            ExpiredError: the entry is past ``expires_at``
            ParentGoneError: the target parent was recycled, purged or renamed
            PermissionDeniedError: ``write`` is denied on the target
            NameConflictError: the target already holds an active same-named resource
        """
        actor = await self._load_principal(actor_id)
        entry = await self._load_entry(entry_id)
        if not entry.is_open:
            raise StaleStateError("RecycleEntry", entry_id, f"entry is {entry.status.value}")

        explicit_target = target_parent_id is not None
        parent_id = target_parent_id if explicit_target else entry.original_parent_id
        members = await self._episode_members(entry)

        keys = [resource_key(m.resource_id) for m in members] + [bin_key(m.owner_id) for m in members]
        if parent_id is not None:
            keys.append(resource_key(parent_id))

        async with self._locks.acquire(*keys):
            entry = await self._load_entry(entry_id)
            if not entry.is_open:
                raise StaleStateError("RecycleEntry", entry_id, f"entry is {entry.status.value}")
            now = self._clock.now()
            if entry.is_expired(now):
                raise ExpiredError(entry_id, entry.expires_at)

            current_members = await self._episode_members(entry)
            if {(m.id, m.version) for m in current_members} != {(m.id, m.version) for m in members}:
                raise StaleStateError("RecycleEntry", entry_id, "episode changed during restore")

            resource = await self._load_resource(entry.resource_id)
            if resource.status != ResourceStatus.RECYCLED:
                raise InvalidStateError(
                    f"Resource {resource.id} is {resource.status.value} but has an open recycle entry"
                )

            parent = await self._restore_target(entry, resource, parent_id, explicit_target)
            await self._authorize(actor, parent or resource, PermissionAction.WRITE)

            conflict = await self._resources.find_active_child(
                parent.id if parent else None, resource.name, resource.owner_id, resource.team_id,
            )
            if conflict is not None:
                raise NameConflictError(parent.id if parent else None, resource.name)

            old_root_path = join_path(entry.original_path, entry.file_name)
            new_parent_path = parent.full_path if parent else ""
            new_root_path = join_path(new_parent_path, resource.name)

            restored: List[RecycleEntry] = []
            async with self._transactions.transaction():
                touched: List[Resource] = []
                for member in members:
                    node = resource if member.id == entry.id else await self._load_resource(member.resource_id)
                    if member.id == entry.id:
                        active = node.transition(
                            ResourceStatus.ACTIVE, now,
                            parent_id=parent.id if parent else None, path=new_parent_path,
                        )
                    else:
                        active = node.transition(
                            ResourceStatus.ACTIVE, now,
                            path=_rebase_path(node.path, old_root_path, new_root_path),
                        )
                    await self._swap_resource(node, active)
                    touched.append(node)

                    closed = member.mark_restored(actor.id, now, active.full_path)
                    await self._swap_entry(member, closed)
                    restored.append(closed)
                    await self._audit.success(
                        AuditEventType.RESOURCE_RESTORED,
                        actor_id=actor.id,
                        resource_id=node.id,
                        entry_id=member.id,
                        restored_path=active.full_path,
                    )

                for owner_id, (count, size) in self._tally(touched).items():
                    await self._update_bin(owner_id, lambda b, c=count, s=size: b.record_restored(c, s, now))

        logger.info(f"Restored {len(restored)} resource(s) from entry {entry_id} to '{new_root_path}'")
        return restored

    async def _restore_target(
        self,
        entry: RecycleEntry,
        resource: Resource,
        parent_id: Optional[ResourceId],
        explicit: bool,
    ) -> Optional[Resource]:
        if parent_id is None:
            return None

        parent = await self._resources.get_resource(parent_id)
        if explicit:
            if parent is None:
                raise ResourceNotFoundError(parent_id)
            if not parent.is_folder:
                raise ValidationError(f"Restore target {parent_id} is not a folder")
            if parent.team_id != resource.team_id:
                raise ValidationError("Restore target belongs to a different team")
            if not parent.is_active:
                raise ParentGoneError(entry.id, parent_id, f"target folder is {parent.status.value}")
            return parent

        if parent is None:
            raise ParentGoneError(entry.id, parent_id, "original folder no longer exists")
        if not parent.is_active:
            raise ParentGoneError(entry.id, parent_id, f"original folder is {parent.status.value}")
        if parent.full_path != entry.original_path:
            raise ParentGoneError(
                entry.id, parent_id,
                f"original folder moved from '{entry.original_path}' to '{parent.full_path}'",
            )
        return parent

    # Purge

    async def purge(
        self,
        entry_id: RecycleEntryId,
        actor_id: Optional[UserId] = None,
        reason: PurgeReason = PurgeReason.MANUAL,
    ) -> List[PurgeResult]:
        """Irreversibly remove an entry's resource and reclaim its bytes.

        ``actor_id=None`` is the system (expiry sweep, eviction) and skips
        authorization; anyone else needs ``delete`` plus ``permanent_delete``.
        Purging an already-permanent entry is a no-op.

        State changes, quota release, bin counters and the byte-store delete
        share one transaction; a byte-store failure rolls the state back.
        """
        entry = await self._load_entry(entry_id)
        if entry.is_permanent:
            return [self._already_purged(entry, reason)]
        if not entry.is_open:
            raise StaleStateError("RecycleEntry", entry_id, f"entry is {entry.status.value}")

        if actor_id is not None:
            actor = await self._load_principal(actor_id)
            resource = await self._load_resource(entry.resource_id)
            await self._authorize(actor, resource, PermissionAction.DELETE)
            await self._authorize(actor, resource, PermissionAction.PERMANENT_DELETE)

        members = await self._episode_members(entry)
        keys: List[str] = []
        for member in members:
            keys.append(resource_key(member.resource_id))
            keys.append(bin_key(member.owner_id))
            keys.extend(quota_keys(member.owner_id, member.team_id))

        async with self._locks.acquire(*keys):
            entry = await self._load_entry(entry_id)
            if entry.is_permanent:
                return [self._already_purged(entry, reason)]
            if not entry.is_open:
                raise StaleStateError("RecycleEntry", entry_id, f"entry is {entry.status.value}")

            current_members = await self._episode_members(entry)
            if {(m.id, m.version) for m in current_members} != {(m.id, m.version) for m in members}:
                raise StaleStateError("RecycleEntry", entry_id, "episode changed during purge")

            now = self._clock.now()
            results: List[PurgeResult] = []
            async with self._transactions.transaction():
                purged_nodes: List[Resource] = []
                released: Dict[Tuple[UserId, Optional[TeamId]], int] = defaultdict(int)

                for member in members:
                    node = await self._load_resource(member.resource_id)
                    if node.status != ResourceStatus.RECYCLED:
                        raise InvalidStateError(
                            f"Resource {node.id} is {node.status.value} but has an open recycle entry"
                        )
                    member_reason = reason if member.id == entry.id else PurgeReason.CASCADE
                    await self._swap_resource(node, node.transition(ResourceStatus.PURGED, now))
                    await self._swap_entry(member, member.mark_permanent(actor_id, now, member_reason))
                    purged_nodes.append(node)
                    released[(node.owner_id, node.team_id)] += node.size
                    results.append(PurgeResult(
                        entry_id=member.id,
                        resource_id=node.id,
                        outcome=PurgeOutcome.PURGED,
                        reason=member_reason,
                        released_bytes=node.size,
                    ))

                for (owner_id, team_id), size in released.items():
                    await self._ledger.release(owner_id, team_id, size)

                for owner_id, (count, size) in self._tally(purged_nodes).items():
                    await self._update_bin(owner_id, lambda b, c=count, s=size: b.record_purged(c, s, now))

                for node in purged_nodes:
                    if not node.is_folder and node.storage_path:
                        await self._byte_store.delete_bytes(node.storage_path)

                for result in results:
                    await self._audit.success(
                        AuditEventType.RESOURCE_PURGED,
                        actor_id=actor_id,
                        resource_id=result.resource_id,
                        entry_id=result.entry_id,
                        reason=result.reason.value,
                        released_bytes=result.released_bytes,
                    )

        logger.info(
            f"Purged {len(results)} resource(s) from entry {entry_id} ({reason.value}), "
            f"released {sum(r.released_bytes for r in results)} bytes"
        )
        return results

    # Notifications and bin status

    async def list_entries_needing_notification(self, now: Optional[datetime] = None) -> AsyncIterator[RecycleEntry]:
        """Yield open, unnotified entries inside their notification window.

        Pages through the repository by id, so iteration is finite and can be
        restarted; entries marked notified are not yielded again.
        """
        now = now or self._clock.now()
        page_size = self._settings.notification_page_size
        notify_flags: Dict[UserId, bool] = {}
        cursor: Optional[RecycleEntryId] = None

        while True:
            page = await self._recycle.list_notification_candidates(now, cursor, page_size)
            for entry in page:
                cursor = entry.id
                if entry.owner_id not in notify_flags:
                    bin_config, _ = await self._load_bin(entry.owner_id)
                    notify_flags[entry.owner_id] = bin_config.notify_before_delete
                if notify_flags[entry.owner_id] and entry.needs_notification(now):
                    yield entry
            if len(page) < page_size:
                return

    async def mark_notified(self, entry_id: RecycleEntryId, now: Optional[datetime] = None) -> RecycleEntry:
        """Record that the owner was notified about an entry's upcoming purge."""
        entry = await self._load_entry(entry_id)
        async with self._locks.acquire(resource_key(entry.resource_id)):
            entry = await self._load_entry(entry_id)
            if entry.notified_at is not None:
                return entry
            if not entry.is_open:
                raise StaleStateError("RecycleEntry", entry_id, f"entry is {entry.status.value}")

            notified = entry.mark_notified(now or self._clock.now())
            async with self._transactions.transaction():
                await self._swap_entry(entry, notified)
                await self._audit.success(
                    AuditEventType.RECYCLE_NOTIFIED,
                    resource_id=entry.resource_id,
                    entry_id=entry.id,
                    expires_at=entry.expires_at.isoformat(),
                )
        return notified

    async def bin_status(self, user_id: UserId) -> RecycleBinConfig:
        """Current bin settings and counters (defaults if never configured)."""
        await self._load_principal(user_id)
        bin_config, _ = await self._load_bin(user_id)
        return bin_config

    async def configure_bin(self, actor_id: UserId, user_id: UserId, **changes) -> RecycleBinConfig:
        """Change a bin's settings. Only the bin's owner or an admin may do so."""
        unknown = set(changes) - _BIN_FIELDS
        if unknown:
            raise ValidationError(f"Unknown recycle bin settings: {', '.join(sorted(unknown))}")

        actor = await self._load_principal(actor_id)
        await self._load_principal(user_id)
        if actor.id != user_id and not actor.is_admin:
            raise PermissionDeniedError(actor_id, f"bin:{user_id}", "configure")

        async with self._locks.acquire(bin_key(user_id)):
            async with self._transactions.transaction():
                updated = await self._update_bin(user_id, lambda b: replace(
                    b, version=b.version + 1, updated_at=self._clock.now(), **changes,
                ))
        logger.info(f"Recycle bin of {user_id} reconfigured: {changes}")
        return updated

    # Helpers

    async def _episode_members(self, entry: RecycleEntry) -> List[RecycleEntry]:
        """``entry`` followed by the open entries of its descendants in the same episode."""
        if not entry.is_folder:
            return [entry]

        by_parent: Dict[ResourceId, List[RecycleEntry]] = defaultdict(list)
        for other in await self._recycle.list_episode_entries(entry.episode_root_id):
            if other.is_open and other.original_parent_id is not None:
                by_parent[other.original_parent_id].append(other)

        members = [entry]
        seen: Set[ResourceId] = {entry.resource_id}
        queue = deque([entry.resource_id])
        while queue:
            for child in by_parent.get(queue.popleft(), []):
                if child.resource_id in seen:
                    raise InvalidStateError(f"Cycle detected in recycle episode {entry.episode_root_id}")
                seen.add(child.resource_id)
                members.append(child)
                queue.append(child.resource_id)
        return members

    async def _authorize(self, actor: Principal, resource: Resource, action: PermissionAction) -> None:
        decision = await self._resolver.decide(actor, resource, action)
        await self._audit.decision(
            actor.id, resource.id, action.value, decision.allow, decision.source_rank, decision.reason,
        )
        if not decision.allow:
            raise PermissionDeniedError(actor.id, resource.id, action.value, decision.source_rank)

    async def _load_bin(self, user_id: UserId) -> Tuple[RecycleBinConfig, bool]:
        """The persisted bin, or a fresh default flagged as new."""
        bin_config = await self._recycle.get_bin_config(user_id)
        if bin_config is not None:
            return bin_config, False
        return RecycleBinConfig.default_for(user_id, self._settings, now=self._clock.now()), True

    async def _update_bin(self, user_id: UserId, change) -> RecycleBinConfig:
        bin_config, is_new = await self._load_bin(user_id)
        if is_new:
            await self._recycle.add_bin_config(bin_config)
        updated = change(bin_config)
        if not await self._recycle.compare_and_set_bin_config(updated, bin_config.version):
            raise StaleStateError("RecycleBin", user_id, "bin counters changed")
        return updated

    async def _swap_resource(self, current: Resource, updated: Resource) -> None:
        if not await self._resources.compare_and_set_resource(updated, current.version):
            raise StaleStateError("Resource", current.id, "status changed concurrently")

    async def _swap_entry(self, current: RecycleEntry, updated: RecycleEntry) -> None:
        if not await self._recycle.compare_and_set_entry(updated, current.version):
            raise StaleStateError("RecycleEntry", current.id, "entry changed concurrently")

    async def _load_principal(self, user_id: UserId) -> Principal:
        principal = await self._principals.get_principal(user_id)
        if principal is None:
            raise PrincipalNotFoundError(user_id)
        return principal

    async def _load_resource(self, resource_id: ResourceId) -> Resource:
        resource = await self._resources.get_resource(resource_id)
        if resource is None:
            raise ResourceNotFoundError(resource_id)
        return resource

    async def _load_entry(self, entry_id: RecycleEntryId) -> RecycleEntry:
        entry = await self._recycle.get_entry(entry_id)
        if entry is None:
            raise RecycleEntryNotFoundError(entry_id)
        return entry

    @staticmethod
    def _tally(nodes: Sequence[Resource]) -> Dict[UserId, Tuple[int, int]]:
        """Item count and byte total per owning principal."""
        tally: Dict[UserId, Tuple[int, int]] = {}
        for node in nodes:
            count, size = tally.get(node.owner_id, (0, 0))
            tally[node.owner_id] = (count + 1, size + node.size)
        return tally

    @staticmethod
    def _already_purged(entry: RecycleEntry, reason: PurgeReason) -> PurgeResult:
        return PurgeResult(
            entry_id=entry.id,
            resource_id=entry.resource_id,
            outcome=PurgeOutcome.ALREADY_PURGED,
            reason=entry.purge_reason or reason,
        )
