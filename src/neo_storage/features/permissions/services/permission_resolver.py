"""Permission resolver.

Merges lifecycle state, ownership, explicit grants, the bound template and the
system default into one allow/deny decision. Resolution has no side effects;
callers audit the decisions they act on.

Tiers, most specific first:
    ownership / team role   owner passes OWNER_ACTIONS; team-owned resources
                            use active owner/admin membership instead
    resource + user         explicit grant on this resource for this principal
    resource + team         explicit grant on this resource for one of the
                            principal's active teams
    principal wildcard      the principal's own type or global grants
    template                the bound (or default) template's grants
    system default          allow ``read`` on unexpired public resources (also
                            for anonymous and inactive principals),
                            deny everything else

Within a tier the latest ``granted_at`` wins, then the greater grant id.
Expired grants are ignored on every read.
"""

import asyncio
import logging
from typing import Awaitable, Iterable, List, Optional, Set, TypeVar

from ....config.constants import OWNER_ACTIONS, PermissionAction, SourceRank, SubjectKind
from ....core.exceptions import BusyError, PrincipalNotFoundError, ResourceNotFoundError
from ....core.protocols import Clock
from ....core.value_objects import ResourceId, TeamId, UserId
from ....utils.datetime import SystemClock
from ...principals.entities import Principal, PrincipalRepository
from ...resources.entities import Resource, ResourceRepository
from ..entities import Decision, GrantRepository, GrantSubject, PermissionGrant

logger = logging.getLogger(__name__)

T = TypeVar("T")


def pick_winner(grants: Iterable[PermissionGrant]) -> Optional[PermissionGrant]:
    """Most specific grant; latest ``granted_at`` then greatest id break ties."""
    best: Optional[PermissionGrant] = None
    for grant in grants:
        if best is None or (grant.rank, grant.granted_at, grant.id) > (best.rank, best.granted_at, best.id):
            best = grant
    return best


class PermissionResolver:
    """Computes ``Decision`` values for (principal, resource, action)."""

    def __init__(
        self,
        principals: PrincipalRepository,
        resources: ResourceRepository,
        grants: GrantRepository,
        clock: Optional[Clock] = None,
        read_timeout_seconds: float = 2.0,
    ):
        self._principals = principals
        self._resources = resources
        self._grants = grants
        self._clock = clock or SystemClock()
        self._read_timeout = read_timeout_seconds

    async def resolve(
        self,
        principal_id: Optional[UserId],
        resource_id: ResourceId,
        action: PermissionAction,
    ) -> Decision:
        """Load the principal and resource, then decide.

        ``principal_id`` may be None for unauthenticated access.

        Raises:
            PrincipalNotFoundError: the principal does not exist
            ResourceNotFoundError: the resource does not exist
            BusyError: a lookup did not complete within the bounded wait
        """
        resource = await self._bounded(self._resources.get_resource(resource_id), f"resource:{resource_id}")
        if resource is None:
            raise ResourceNotFoundError(resource_id)

        principal = None
        if principal_id is not None:
            principal = await self._bounded(self._principals.get_principal(principal_id), f"principal:{principal_id}")
            if principal is None:
                raise PrincipalNotFoundError(principal_id)

        return await self.decide(principal, resource, action)

    async def decide(
        self,
        principal: Optional[Principal],
        resource: Resource,
        action: PermissionAction,
    ) -> Decision:
        """Decide for already-loaded entities."""
        now = self._clock.now()
        action = PermissionAction(action)

        if resource.is_purged:
            return self._log(principal, resource, action, Decision.denied(SourceRank.LIFECYCLE, "resource purged"))

        if principal is None:
            if action == PermissionAction.READ and resource.is_publicly_readable(now):
                decision = Decision.allowed(SourceRank.SYSTEM_DEFAULT, "public resource")
            else:
                decision = Decision.denied(SourceRank.SYSTEM_DEFAULT, "unauthenticated")
            return self._log(principal, resource, action, decision)

        if not principal.is_active:
            # Inactive principals keep the anonymous public read, nothing more.
            if action == PermissionAction.READ and resource.is_publicly_readable(now):
                decision = Decision.allowed(SourceRank.SYSTEM_DEFAULT, "public resource")
            else:
                decision = Decision.denied(SourceRank.LIFECYCLE, "principal inactive")
            return self._log(principal, resource, action, decision)

        team_ids = await self._active_team_ids(principal)

        if action in OWNER_ACTIONS:
            ownership = await self._ownership_decision(principal, resource)
            if ownership is not None:
                return self._log(principal, resource, action, ownership)

        candidates = [
            grant
            for grant in await self._candidate_grants(principal, resource, team_ids)
            if grant.applies_to(resource, action) and not grant.is_expired(now)
        ]
        winner = pick_winner(candidates)
        if winner is not None:
            decision = Decision(winner.allow, winner.rank, winner.id, f"{winner.subject.kind.value} grant")
            return self._log(principal, resource, action, decision)

        if action == PermissionAction.READ and resource.is_publicly_readable(now):
            decision = Decision.allowed(SourceRank.SYSTEM_DEFAULT, "public resource")
        else:
            decision = Decision.denied(SourceRank.SYSTEM_DEFAULT, "no applicable grant")
        return self._log(principal, resource, action, decision)

    async def _ownership_decision(self, principal: Principal, resource: Resource) -> Optional[Decision]:
        if resource.is_team_owned:
            membership = await self._bounded(
                self._principals.get_membership(resource.team_id, principal.id),
                f"membership:{resource.team_id}:{principal.id}",
            )
            if membership is not None and membership.can_manage_team():
                return Decision.allowed(SourceRank.TEAM_ROLE, f"team {membership.role.value}")
            return None

        if resource.owner_id == principal.id:
            return Decision.allowed(SourceRank.OWNERSHIP, "owner")
        return None

    async def _active_team_ids(self, principal: Principal) -> Set[TeamId]:
        memberships = await self._bounded(
            self._principals.list_memberships(principal.id), f"memberships:{principal.id}"
        )
        return {m.team_id for m in memberships if m.is_active}

    async def _candidate_grants(
        self,
        principal: Principal,
        resource: Resource,
        team_ids: Set[TeamId],
    ) -> List[PermissionGrant]:
        grants: List[PermissionGrant] = []

        for grant in await self._bounded(self._grants.list_resource_grants(resource.id), f"grants:{resource.id}"):
            subject = grant.subject
            if subject == GrantSubject.user(principal.id):
                grants.append(grant)
            elif subject.kind == SubjectKind.TEAM and subject.subject_id in team_ids:
                grants.append(grant)

        for grant in await self._bounded(
            self._grants.list_subject_grants(GrantSubject.user(principal.id)), f"grants:{principal.id}"
        ):
            if grant.rank == SourceRank.PRINCIPAL_WILDCARD:
                grants.append(grant)

        template_id = principal.template_id
        if template_id is None:
            default = await self._bounded(self._grants.get_default_template(), "template:default")
            template_id = default.id if default else None
        if template_id is not None:
            grants.extend(
                await self._bounded(
                    self._grants.list_subject_grants(GrantSubject.template(template_id)),
                    f"template:{template_id}",
                )
            )

        return grants

    async def _bounded(self, awaitable: Awaitable[T], key: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._read_timeout)
        except asyncio.TimeoutError:
            raise BusyError(key, self._read_timeout)

    @staticmethod
    def _log(principal: Optional[Principal], resource: Resource, action: PermissionAction, decision: Decision) -> Decision:
        logger.debug(
            f"Resolve {principal.id if principal else 'anonymous'} {action.value} {resource.id}: "
            f"{'allow' if decision.allow else 'deny'} rank={decision.source_rank.name} ({decision.reason})"
        )
        return decision
