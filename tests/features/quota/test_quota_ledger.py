"""Tests for the quota ledger."""

import asyncio
import pytest

from neo_storage.config.constants import AuditEventType
from neo_storage.core.exceptions import (
    InvalidStateError,
    PrincipalNotFoundError,
    QuotaExceededError,
    ValidationError,
)
from neo_storage.core.value_objects import UserId


class TestReserve:

    @pytest.mark.asyncio
    async def test_reserve_within_quota(self, engine, alice):
        snapshot = await engine.reserve(alice.id, None, 400)

        assert snapshot.user.used_bytes == 400
        assert snapshot.user.available_bytes == 600
        assert snapshot.team is None

    @pytest.mark.asyncio
    async def test_reserve_beyond_quota_changes_nothing(self, engine, alice):
        await engine.reserve(alice.id, None, 900)

        with pytest.raises(QuotaExceededError) as exc_info:
            await engine.reserve(alice.id, None, 101)

        assert exc_info.value.account == f"user:{alice.id}"
        assert (await engine.usage(alice.id)).user.used_bytes == 900

    @pytest.mark.asyncio
    async def test_reserve_exactly_to_the_limit(self, engine, alice):
        snapshot = await engine.reserve(alice.id, None, 1000)

        assert snapshot.user.used_bytes == 1000
        assert snapshot.user.usage_percent == 100.0

    @pytest.mark.asyncio
    async def test_team_reservation_is_all_or_nothing(self, engine, alice, team):
        # Team total 500 is the tighter limit.
        with pytest.raises(QuotaExceededError) as exc_info:
            await engine.reserve(alice.id, team.id, 600)

        assert exc_info.value.account == f"team:{team.id}"
        snapshot = await engine.usage(alice.id, team.id)
        assert snapshot.user.used_bytes == 0
        assert snapshot.team.used_bytes == 0

    @pytest.mark.asyncio
    async def test_user_limit_blocks_team_reservation(self, engine, team):
        small = await engine.register_principal("small", quota_total=50)

        with pytest.raises(QuotaExceededError):
            await engine.reserve(small.id, team.id, 60)

        assert (await engine.usage(small.id, team.id)).team.used_bytes == 0

    @pytest.mark.asyncio
    async def test_team_reservation_charges_both(self, engine, alice, team):
        snapshot = await engine.reserve(alice.id, team.id, 200)

        assert snapshot.user.used_bytes == 200
        assert snapshot.team.used_bytes == 200

    @pytest.mark.asyncio
    async def test_negative_delta_rejected(self, engine, alice):
        with pytest.raises(ValidationError):
            await engine.reserve(alice.id, None, -1)

    @pytest.mark.asyncio
    async def test_unknown_principal(self, engine):
        with pytest.raises(PrincipalNotFoundError):
            await engine.reserve(UserId.generate(), None, 1)

    @pytest.mark.asyncio
    async def test_concurrent_reservations_never_oversubscribe(self, engine):
        carol = await engine.register_principal("carol", quota_total=50)

        outcomes = await asyncio.gather(
            *(engine.reserve(carol.id, None, 10) for _ in range(10)),
            return_exceptions=True,
        )

        succeeded = [o for o in outcomes if not isinstance(o, Exception)]
        rejected = [o for o in outcomes if isinstance(o, QuotaExceededError)]
        assert len(succeeded) == 5
        assert len(rejected) == 5
        assert (await engine.usage(carol.id)).user.used_bytes == 50


class TestRelease:

    @pytest.mark.asyncio
    async def test_release_returns_bytes(self, engine, alice, team):
        await engine.reserve(alice.id, team.id, 300)

        snapshot = await engine.release(alice.id, team.id, 100)

        assert snapshot.user.used_bytes == 200
        assert snapshot.team.used_bytes == 200

    @pytest.mark.asyncio
    async def test_release_underflow_is_an_invariant_error(self, engine, alice):
        await engine.reserve(alice.id, None, 10)

        with pytest.raises(InvalidStateError):
            await engine.release(alice.id, None, 11)

        assert (await engine.usage(alice.id)).user.used_bytes == 10

    @pytest.mark.asyncio
    async def test_changes_are_audited(self, engine, store, alice):
        await engine.reserve(alice.id, None, 10)
        await engine.release(alice.id, None, 10)

        changes = [e for e in store.audit_log() if e.event_type == AuditEventType.QUOTA_CHANGED]
        assert [e.details["operation"] for e in changes] == ["reserve", "release"]
        assert [e.details["delta_bytes"] for e in changes] == [10, -10]


class TestQuotaTotal:

    @pytest.mark.asyncio
    async def test_set_total(self, engine, alice):
        usage = await engine.set_quota_total(alice.id, 2000)

        assert usage.total_bytes == 2000
        assert (await engine.usage(alice.id)).user.total_bytes == 2000

    @pytest.mark.asyncio
    async def test_total_below_usage_rejected(self, engine, alice):
        await engine.reserve(alice.id, None, 500)

        with pytest.raises(ValidationError):
            await engine.set_quota_total(alice.id, 499)

    @pytest.mark.asyncio
    async def test_set_team_total(self, engine, team):
        usage = await engine.set_quota_total(team.id, 800)

        assert usage.account == f"team:{team.id}"
        assert usage.total_bytes == 800
