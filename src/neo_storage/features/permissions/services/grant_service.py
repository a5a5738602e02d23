"""Grant service for issuing grants and binding templates.

Grants are never mutated. Revoking access issues a newer deny grant for the
same subject, scope and action, which wins the tie-break inside its tier.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ....config.constants import AuditEventType, PermissionAction, ScopeKind, SourceRank
from ....core.exceptions import (
    PermissionDeniedError,
    PrincipalNotFoundError,
    ResourceNotFoundError,
    StaleStateError,
    TemplateNotFoundError,
)
from ....core.protocols import Clock, LockManager, TransactionManager
from ....core.value_objects import TemplateId, UserId
from ....utils.datetime import SystemClock
from ....utils.lock_keys import user_quota_key
from ...audit.services import AuditEmitter
from ...principals.entities import Principal, PrincipalRepository
from ...resources.entities import Resource, ResourceRepository
from ..entities import Decision, GrantRepository, GrantScope, GrantSubject, PermissionGrant, PermissionTemplate
from .permission_resolver import PermissionResolver

logger = logging.getLogger(__name__)


class GrantService:
    """Issues grants, creates templates and binds principals to templates.

    Resource-scoped grants may be issued by the owner (or an active team
    owner/admin on team resources), admins and the system actor
    (``actor_id=None``). Anyone else holding ``share`` may only pass on
    actions they hold themselves, and never ``permanent_delete``.
    Type/global grants, template changes and bindings are reserved for admins
    and the system actor.
    """

    def __init__(
        self,
        grants: GrantRepository,
        principals: PrincipalRepository,
        resources: ResourceRepository,
        resolver: PermissionResolver,
        transactions: TransactionManager,
        locks: LockManager,
        audit: AuditEmitter,
        clock: Optional[Clock] = None,
    ):
        self._grants = grants
        self._principals = principals
        self._resources = resources
        self._resolver = resolver
        self._transactions = transactions
        self._locks = locks
        self._audit = audit
        self._clock = clock or SystemClock()

    async def issue_grant(
        self,
        actor_id: Optional[UserId],
        subject: GrantSubject,
        scope: GrantScope,
        action: PermissionAction,
        allow: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> PermissionGrant:
        """Validate, authorize and persist a new grant."""
        now = self._clock.now()
        grant = PermissionGrant.issue(
            subject=subject,
            scope=scope,
            action=PermissionAction(action),
            allow=allow,
            granted_by=actor_id,
            granted_at=now,
            expires_at=expires_at,
        )

        await self._authorize_issue(actor_id, grant)

        async with self._transactions.transaction():
            await self._grants.add_grant(grant)
            await self._audit.success(
                AuditEventType.GRANT_ISSUED,
                actor_id=actor_id,
                resource_id=scope.resource_id,
                grant_id=str(grant.id),
                subject=f"{subject.kind.value}:{subject.subject_id}",
                scope=scope.kind.value,
                action=grant.action.value,
                allow=allow,
                expires_at=expires_at.isoformat() if expires_at else None,
            )

        logger.info(
            f"Issued {'allow' if allow else 'deny'} grant {grant.id} "
            f"{subject.kind.value}:{subject.subject_id} {grant.action.value} ({scope.kind.value})"
        )
        return grant

    async def revoke(
        self,
        actor_id: Optional[UserId],
        subject: GrantSubject,
        scope: GrantScope,
        action: PermissionAction,
    ) -> PermissionGrant:
        """Supersede earlier grants with a newer deny grant."""
        return await self.issue_grant(actor_id, subject, scope, action, allow=False)

    async def create_template(
        self,
        actor_id: Optional[UserId],
        name: str,
        description: Optional[str] = None,
        is_default: bool = False,
        storage_quota: Optional[int] = None,
        is_system: bool = False,
    ) -> PermissionTemplate:
        await self._require_admin(actor_id, "template")
        if is_system and actor_id is not None:
            raise PermissionDeniedError(actor_id, "template", "create_system_template")
        template = PermissionTemplate.create(
            name, description, is_default,
            storage_quota=storage_quota, is_system=is_system, now=self._clock.now(),
        )
        await self._grants.add_template(template)
        logger.info(f"Created permission template {template.name} ({template.id})")
        return template

    async def bind_template(
        self,
        actor_id: Optional[UserId],
        user_id: UserId,
        template_id: Optional[TemplateId],
    ) -> Principal:
        """Bind a principal to a template, or unbind it with ``template_id=None``."""
        await self._require_admin(actor_id, "template")

        if template_id is not None and await self._grants.get_template(template_id) is None:
            raise TemplateNotFoundError(template_id)

        # The principal row is also written by the quota ledger.
        async with self._locks.acquire(user_quota_key(user_id)):
            principal = await self._principals.get_principal(user_id)
            if principal is None:
                raise PrincipalNotFoundError(user_id)

            updated = replace(
                principal,
                template_id=template_id,
                version=principal.version + 1,
                updated_at=self._clock.now(),
            )
            async with self._transactions.transaction():
                if not await self._principals.compare_and_set_principal(updated, principal.version):
                    raise StaleStateError("Principal", user_id, "template binding raced another update")
                await self._audit.success(
                    AuditEventType.TEMPLATE_BOUND,
                    actor_id=actor_id,
                    user_id=str(user_id),
                    template_id=str(template_id) if template_id else None,
                )

        logger.info(f"Bound principal {user_id} to template {template_id}")
        return updated

    async def _authorize_issue(self, actor_id: Optional[UserId], grant: PermissionGrant) -> None:
        if grant.scope.kind != ScopeKind.RESOURCE:
            await self._require_admin(actor_id, grant.scope.kind.value)
            return

        resource = await self._resources.get_resource(grant.scope.resource_id)
        if resource is None:
            raise ResourceNotFoundError(grant.scope.resource_id)
        if actor_id is None:
            return

        actor = await self._load_principal(actor_id)
        if actor.is_active and actor.is_admin:
            return

        decision = await self._check(actor, resource, PermissionAction.SHARE)
        if decision.source_rank in (SourceRank.OWNERSHIP, SourceRank.TEAM_ROLE):
            return

        # Delegated sharing passes on held actions only.
        if grant.action == PermissionAction.PERMANENT_DELETE:
            raise PermissionDeniedError(actor_id, resource.id, grant.action.value, decision.source_rank)
        if grant.action != PermissionAction.SHARE:
            await self._check(actor, resource, grant.action)

    async def _check(self, actor: Principal, resource: Resource, action: PermissionAction) -> Decision:
        decision = await self._resolver.decide(actor, resource, action)
        await self._audit.decision(
            actor.id, resource.id, action.value,
            decision.allow, decision.source_rank, decision.reason,
        )
        if not decision.allow:
            raise PermissionDeniedError(actor.id, resource.id, action.value, decision.source_rank)
        return decision

    async def _require_admin(self, actor_id: Optional[UserId], target: str) -> None:
        if actor_id is None:
            return
        actor = await self._load_principal(actor_id)
        if not (actor.is_active and actor.is_admin):
            raise PermissionDeniedError(actor_id, target, "administer")

    async def _load_principal(self, user_id: UserId) -> Principal:
        principal = await self._principals.get_principal(user_id)
        if principal is None:
            raise PrincipalNotFoundError(user_id)
        return principal
