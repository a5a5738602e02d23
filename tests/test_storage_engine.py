"""Tests for storage engine assembly and audit sinks."""

import logging
import pytest

from neo_storage import InMemoryAuditSink, LoggingAuditSink, create_storage_engine
from neo_storage.config.constants import AuditEventType, TeamMemberRole
from neo_storage.core.exceptions import PermissionDeniedError, PrincipalNotFoundError, TeamNotFoundError
from neo_storage.core.value_objects import TeamId, UserId
from neo_storage.infrastructure.persistence import InMemoryStorageStore


def test_byte_store_is_required(settings):
    with pytest.raises(ValueError):
        create_storage_engine(settings=settings)


@pytest.mark.asyncio
async def test_defaults(byte_store, settings):
    engine = create_storage_engine(byte_store=byte_store, settings=settings)

    principal = await engine.register_principal("erin")

    assert isinstance(engine.store, InMemoryStorageStore)
    assert principal.quota_total == settings.default_user_quota_bytes
    assert engine.locks.timeout_seconds == settings.lock_timeout_seconds


@pytest.mark.asyncio
async def test_team_creator_becomes_owner(engine, store, alice):
    team = await engine.create_team("ops", alice.id)

    membership = await store.get_membership(team.id, alice.id)
    assert membership.role.value == "owner"
    assert team.quota_total == engine.settings.default_team_quota_bytes


@pytest.mark.asyncio
async def test_separate_audit_sink(store, byte_store, settings, clock):
    sink = InMemoryAuditSink()
    engine = create_storage_engine(store=store, byte_store=byte_store, settings=settings,
                                   clock=clock, audit_sink=sink)
    owner = await engine.register_principal("frank", quota_total=10)

    await engine.create_file(owner.id, "a.txt", 1)

    assert len(sink.of_type(AuditEventType.RESOURCE_CREATED)) == 1
    assert store.audit_log() == []


@pytest.mark.asyncio
async def test_logging_audit_sink(store, byte_store, settings, clock, caplog):
    engine = create_storage_engine(store=store, byte_store=byte_store, settings=settings,
                                   clock=clock, audit_sink=LoggingAuditSink("audit_test"))
    owner = await engine.register_principal("gina", quota_total=10)

    with caplog.at_level(logging.INFO, logger="audit_test"):
        await engine.reserve(owner.id, None, 5)

    records = [r for r in caplog.records if r.name == "audit_test"]
    assert len(records) == 1
    assert records[0].audit_event["event_type"] == "quota.changed"
    assert records[0].audit_event["details"]["delta_bytes"] == 5


class TestTeamMembership:

    @pytest.mark.asyncio
    async def test_owner_adds_member_and_change_is_audited(self, engine, store, alice, team):
        carol = await engine.register_principal("carol", quota_total=10)

        membership = await engine.add_team_member(team.id, carol.id, TeamMemberRole.VIEWER, actor_id=alice.id)

        assert (await store.get_membership(team.id, carol.id)) == membership
        added = [e for e in store.audit_log() if e.event_type == AuditEventType.TEAM_MEMBER_ADDED]
        assert added[-1].actor_id == alice.id
        assert added[-1].details == {"team_id": str(team.id), "user_id": str(carol.id), "role": "viewer"}

    @pytest.mark.asyncio
    async def test_unknown_team_or_user(self, engine, alice, team):
        with pytest.raises(TeamNotFoundError):
            await engine.add_team_member(TeamId.generate(), alice.id)
        with pytest.raises(PrincipalNotFoundError):
            await engine.add_team_member(team.id, UserId.generate())

    @pytest.mark.asyncio
    async def test_plain_member_cannot_add_members(self, engine, store, bob, team):
        carol = await engine.register_principal("carol", quota_total=10)

        with pytest.raises(PermissionDeniedError):
            await engine.add_team_member(team.id, carol.id, actor_id=bob.id)

        assert await store.get_membership(team.id, carol.id) is None

    @pytest.mark.asyncio
    async def test_only_owners_hand_out_ownership(self, engine, alice, bob, team):
        carol = await engine.register_principal("carol", quota_total=10)
        await engine.add_team_member(team.id, carol.id, TeamMemberRole.ADMIN, actor_id=alice.id)

        with pytest.raises(PermissionDeniedError):
            await engine.add_team_member(team.id, bob.id, TeamMemberRole.OWNER, actor_id=carol.id)

        promoted = await engine.add_team_member(team.id, bob.id, TeamMemberRole.ADMIN, actor_id=carol.id)
        assert promoted.role == TeamMemberRole.ADMIN
