"""Quota ledger service.

The ledger is the only writer of ``quota_used``. Reservations for team
resources charge the owning user and the team in one step: both accounts are
checked before either is written, and both writes share one transaction.

Recycling does not release bytes (recycled items still occupy storage), restore
does not re-reserve, and purge releases.
"""

import logging
from dataclasses import replace
from typing import Optional, Tuple, Union

from ....config.constants import AuditEventType
from ....core.exceptions import (
    InvalidStateError,
    PrincipalNotFoundError,
    QuotaExceededError,
    StaleStateError,
    TeamNotFoundError,
    ValidationError,
)
from ....core.protocols import Clock, LockManager, TransactionManager
from ....core.value_objects import TeamId, UserId
from ....utils.datetime import SystemClock
from ....utils.lock_keys import quota_keys, team_quota_key, user_quota_key
from ...audit.services import AuditEmitter
from ...principals.entities import Principal, PrincipalRepository, Team
from ..entities import QuotaSnapshot, QuotaUsage

logger = logging.getLogger(__name__)


class QuotaLedger:
    """Atomic reserve/release of storage bytes per user and per team."""

    def __init__(
        self,
        principals: PrincipalRepository,
        transactions: TransactionManager,
        locks: LockManager,
        audit: AuditEmitter,
        clock: Optional[Clock] = None,
    ):
        self._principals = principals
        self._transactions = transactions
        self._locks = locks
        self._audit = audit
        self._clock = clock or SystemClock()

    async def reserve(self, user_id: UserId, team_id: Optional[TeamId], delta_bytes: int) -> QuotaSnapshot:
        """Charge ``delta_bytes`` to the user and, when given, the team.

        The caller must call :meth:`release` with the same delta if the
        storage write it reserved for fails.

        Raises:
            QuotaExceededError: either account would exceed its total
        """
        self._check_delta(delta_bytes)

        async with self._locks.acquire(*quota_keys(user_id, team_id)):
            principal, team = await self._load(user_id, team_id)

            if principal.quota_used + delta_bytes > principal.quota_total:
                raise QuotaExceededError(
                    f"user:{user_id}", delta_bytes, principal.quota_used, principal.quota_total
                )
            if team is not None and team.quota_used + delta_bytes > team.quota_total:
                raise QuotaExceededError(f"team:{team_id}", delta_bytes, team.quota_used, team.quota_total)

            if delta_bytes == 0:
                return self._snapshot(principal, team)

            principal, team = await self._apply(principal, team, delta_bytes, "reserve")

        logger.debug(f"Reserved {delta_bytes} bytes for user {user_id} team {team_id}")
        return self._snapshot(principal, team)

    async def release(self, user_id: UserId, team_id: Optional[TeamId], delta_bytes: int) -> QuotaSnapshot:
        """Return ``delta_bytes`` to the user and, when given, the team.

        Raises:
            InvalidStateError: the release would drive usage below zero
        """
        self._check_delta(delta_bytes)

        async with self._locks.acquire(*quota_keys(user_id, team_id)):
            principal, team = await self._load(user_id, team_id)

            if principal.quota_used < delta_bytes:
                raise InvalidStateError(
                    f"Quota release of {delta_bytes} bytes underflows user {user_id} "
                    f"(used {principal.quota_used})",
                    details={"account": f"user:{user_id}", "used": principal.quota_used, "delta": delta_bytes},
                )
            if team is not None and team.quota_used < delta_bytes:
                raise InvalidStateError(
                    f"Quota release of {delta_bytes} bytes underflows team {team_id} (used {team.quota_used})",
                    details={"account": f"team:{team_id}", "used": team.quota_used, "delta": delta_bytes},
                )

            if delta_bytes == 0:
                return self._snapshot(principal, team)

            principal, team = await self._apply(principal, team, -delta_bytes, "release")

        logger.debug(f"Released {delta_bytes} bytes for user {user_id} team {team_id}")
        return self._snapshot(principal, team)

    async def usage(self, user_id: UserId, team_id: Optional[TeamId] = None) -> QuotaSnapshot:
        principal, team = await self._load(user_id, team_id)
        return self._snapshot(principal, team)

    async def set_quota_total(self, account_id: Union[UserId, TeamId], total_bytes: int) -> QuotaUsage:
        """Change a user's or a team's quota total.

        Raises:
            ValidationError: the new total is negative or below current usage
        """
        if total_bytes < 0:
            raise ValidationError(f"Quota total must be non-negative, got {total_bytes}")

        now = self._clock.now()
        if isinstance(account_id, TeamId):
            async with self._locks.acquire(team_quota_key(account_id)):
                team = await self._principals.get_team(account_id)
                if team is None:
                    raise TeamNotFoundError(account_id)
                self._check_total(f"team:{account_id}", team.quota_used, total_bytes)
                updated = replace(team, quota_total=total_bytes, version=team.version + 1, updated_at=now)
                async with self._transactions.transaction():
                    if not await self._principals.compare_and_set_team(updated, team.version):
                        raise StaleStateError("Team", account_id, "quota row changed")
                    await self._audit_change(None, account_id, team.quota_total, total_bytes)
            logger.info(f"Team {account_id} quota total set to {total_bytes} bytes")
            return self._team_usage(updated)

        async with self._locks.acquire(user_quota_key(account_id)):
            principal = await self._principals.get_principal(account_id)
            if principal is None:
                raise PrincipalNotFoundError(account_id)
            self._check_total(f"user:{account_id}", principal.quota_used, total_bytes)
            updated = replace(principal, quota_total=total_bytes, version=principal.version + 1, updated_at=now)
            async with self._transactions.transaction():
                if not await self._principals.compare_and_set_principal(updated, principal.version):
                    raise StaleStateError("Principal", account_id, "quota row changed")
                await self._audit_change(account_id, None, principal.quota_total, total_bytes)
        logger.info(f"User {account_id} quota total set to {total_bytes} bytes")
        return self._user_usage(updated)

    async def _apply(
        self,
        principal: Principal,
        team: Optional[Team],
        delta: int,
        operation: str,
    ) -> Tuple[Principal, Optional[Team]]:
        now = self._clock.now()
        new_principal = replace(
            principal, quota_used=principal.quota_used + delta,
            version=principal.version + 1, updated_at=now,
        )
        new_team = None
        if team is not None:
            new_team = replace(team, quota_used=team.quota_used + delta, version=team.version + 1, updated_at=now)

        async with self._transactions.transaction():
            if not await self._principals.compare_and_set_principal(new_principal, principal.version):
                raise StaleStateError("Principal", principal.id, "quota row changed")
            if new_team is not None and not await self._principals.compare_and_set_team(new_team, team.version):
                raise StaleStateError("Team", team.id, "quota row changed")
            await self._audit.success(
                AuditEventType.QUOTA_CHANGED,
                operation=operation,
                user_id=str(principal.id),
                team_id=str(team.id) if team else None,
                delta_bytes=delta,
                user_used=new_principal.quota_used,
                team_used=new_team.quota_used if new_team else None,
            )

        return new_principal, new_team

    async def _load(self, user_id: UserId, team_id: Optional[TeamId]) -> Tuple[Principal, Optional[Team]]:
        principal = await self._principals.get_principal(user_id)
        if principal is None:
            raise PrincipalNotFoundError(user_id)
        team = None
        if team_id is not None:
            team = await self._principals.get_team(team_id)
            if team is None:
                raise TeamNotFoundError(team_id)
        return principal, team

    async def _audit_change(self, user_id, team_id, old_total: int, new_total: int) -> None:
        await self._audit.success(
            AuditEventType.QUOTA_CHANGED,
            operation="set_total",
            user_id=str(user_id) if user_id else None,
            team_id=str(team_id) if team_id else None,
            old_total=old_total,
            new_total=new_total,
        )

    @staticmethod
    def _check_delta(delta_bytes: int) -> None:
        if delta_bytes < 0:
            raise ValidationError(f"Quota delta must be non-negative, got {delta_bytes}")

    @staticmethod
    def _check_total(account: str, used: int, total: int) -> None:
        if total < used:
            raise ValidationError(
                f"Quota total {total} for {account} is below current usage {used}",
                details={"account": account, "used": used, "total": total},
            )

    @staticmethod
    def _user_usage(principal: Principal) -> QuotaUsage:
        return QuotaUsage(f"user:{principal.id}", principal.quota_total, principal.quota_used)

    @staticmethod
    def _team_usage(team: Team) -> QuotaUsage:
        return QuotaUsage(f"team:{team.id}", team.quota_total, team.quota_used)

    def _snapshot(self, principal: Principal, team: Optional[Team]) -> QuotaSnapshot:
        return QuotaSnapshot(
            user=self._user_usage(principal),
            team=self._team_usage(team) if team is not None else None,
        )
