"""Tests for the permission resolver."""

import asyncio
import random
import pytest
from dataclasses import replace
from datetime import timedelta
from uuid import UUID

from neo_storage.config.constants import (
    PermissionAction,
    ResourceStatus,
    ResourceType,
    SourceRank,
    UserStatus,
)
from neo_storage.core.exceptions import BusyError, PrincipalNotFoundError, ResourceNotFoundError
from neo_storage.core.value_objects import GrantId, ResourceId, TemplateId, UserId
from neo_storage.features.permissions.entities import GrantScope, GrantSubject, PermissionGrant
from neo_storage.features.permissions.services import PermissionResolver, pick_winner


class TestOwnership:
    """Ownership and team-role short-circuits."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [
        PermissionAction.READ, PermissionAction.WRITE, PermissionAction.DELETE, PermissionAction.SHARE,
    ])
    async def test_owner_passes_owner_actions(self, engine, alice, action):
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        decision = await engine.resolve(alice.id, doc.id, action)

        assert decision.allow
        assert decision.source_rank == SourceRank.OWNERSHIP

    @pytest.mark.asyncio
    async def test_owner_needs_grant_for_permanent_delete(self, engine, alice):
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        decision = await engine.resolve(alice.id, doc.id, PermissionAction.PERMANENT_DELETE)

        assert not decision.allow
        assert decision.source_rank == SourceRank.SYSTEM_DEFAULT

    @pytest.mark.asyncio
    async def test_non_owner_is_denied_by_default(self, engine, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        decision = await engine.resolve(bob.id, doc.id, PermissionAction.READ)

        assert not decision
        assert decision.source_rank == SourceRank.SYSTEM_DEFAULT

    @pytest.mark.asyncio
    async def test_team_resource_uses_team_role_not_ownership(self, engine, alice, bob, team):
        plan = await engine.create_file(bob.id, "plan.txt", 10, team_id=team.id)
        assert plan.owner_id == bob.id

        bob_decision = await engine.resolve(bob.id, plan.id, PermissionAction.WRITE)
        alice_decision = await engine.resolve(alice.id, plan.id, PermissionAction.WRITE)

        assert not bob_decision.allow
        assert alice_decision.allow
        assert alice_decision.source_rank == SourceRank.TEAM_ROLE

    @pytest.mark.asyncio
    async def test_inactive_principal_is_denied(self, engine, store, alice):
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        store.principals[alice.id] = replace(store.principals[alice.id], status=UserStatus.SUSPENDED)

        decision = await engine.resolve(alice.id, doc.id, PermissionAction.READ)

        assert not decision.allow
        assert decision.source_rank == SourceRank.LIFECYCLE

    @pytest.mark.asyncio
    async def test_inactive_principal_keeps_public_read(self, engine, store, alice, bob):
        flyer = await engine.create_file(alice.id, "flyer.pdf", 10, is_public=True)
        store.principals[bob.id] = replace(store.principals[bob.id], status=UserStatus.SUSPENDED)

        read = await engine.resolve(bob.id, flyer.id, PermissionAction.READ)
        write = await engine.resolve(bob.id, flyer.id, PermissionAction.WRITE)

        assert read.allow
        assert read.source_rank == SourceRank.SYSTEM_DEFAULT
        assert not write.allow
        assert write.source_rank == SourceRank.LIFECYCLE


class TestLifecycleAndPublicAccess:
    """Purged resources and unauthenticated reads."""

    @pytest.mark.asyncio
    async def test_purged_resource_always_denies(self, engine, store, alice):
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        purged = replace(store.resources[doc.id], status=ResourceStatus.PURGED)

        decision = await engine.resolver.decide(alice, purged, PermissionAction.READ)

        assert not decision.allow
        assert decision.source_rank == SourceRank.LIFECYCLE

    @pytest.mark.asyncio
    async def test_anonymous_reads_public_resource_only(self, engine, alice):
        public = await engine.create_file(alice.id, "flyer.pdf", 10, is_public=True)
        private = await engine.create_file(alice.id, "diary.txt", 10)

        assert (await engine.resolve(None, public.id, PermissionAction.READ)).allow
        assert not (await engine.resolve(None, public.id, PermissionAction.WRITE)).allow
        assert not (await engine.resolve(None, private.id, PermissionAction.READ)).allow

    @pytest.mark.asyncio
    async def test_expired_public_share_is_not_readable(self, engine, clock, alice):
        public = await engine.create_file(alice.id, "flyer.pdf", 10, is_public=True)
        expired = replace(public, share_expires_at=clock.now() - timedelta(hours=1))

        decision = await engine.resolver.decide(None, expired, PermissionAction.READ)

        assert not decision.allow

    @pytest.mark.asyncio
    async def test_missing_resource_or_principal_raises(self, engine, alice):
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        with pytest.raises(ResourceNotFoundError):
            await engine.resolve(alice.id, ResourceId.generate(), PermissionAction.READ)
        with pytest.raises(PrincipalNotFoundError):
            await engine.resolve(UserId.generate(), doc.id, PermissionAction.READ)


class TestGrantPrecedence:
    """Explicit grants, templates and tie-breaks."""

    @pytest.mark.asyncio
    async def test_resource_grant_overrides_template_in_either_order(self, engine, clock, alice, bob):
        template = await engine.create_template(None, "restricted", is_default=True)
        first = await engine.create_file(alice.id, "first.txt", 10)
        second = await engine.create_file(alice.id, "second.txt", 10)

        # Template deny issued before the resource grant on the first file...
        await engine.issue_grant(
            None, GrantSubject.template(template.id), GrantScope.of_type(ResourceType.FILE),
            PermissionAction.READ, allow=False,
        )
        clock.advance(minutes=1)
        await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(first.id), PermissionAction.READ)

        # ...and after it on the second.
        clock.advance(minutes=1)
        await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(second.id), PermissionAction.READ)
        clock.advance(minutes=1)
        await engine.issue_grant(
            None, GrantSubject.template(template.id), GrantScope.everywhere(),
            PermissionAction.READ, allow=False,
        )

        for resource in (first, second):
            decision = await engine.resolve(bob.id, resource.id, PermissionAction.READ)
            assert decision.allow
            assert decision.source_rank == SourceRank.RESOURCE_USER

    @pytest.mark.asyncio
    async def test_template_applies_when_nothing_more_specific(self, engine, alice, bob):
        template = await engine.create_template(None, "readers")
        await engine.issue_grant(
            None, GrantSubject.template(template.id), GrantScope.everywhere(), PermissionAction.READ,
        )
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        before = await engine.resolve(bob.id, doc.id, PermissionAction.READ)
        await engine.bind_template(None, bob.id, template.id)
        after = await engine.resolve(bob.id, doc.id, PermissionAction.READ)

        assert not before.allow
        assert after.allow
        assert after.source_rank == SourceRank.TEMPLATE

    @pytest.mark.asyncio
    async def test_latest_grant_wins_within_tier(self, engine, clock, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        subject, scope = GrantSubject.user(bob.id), GrantScope.resource(doc.id)

        await engine.issue_grant(alice.id, subject, scope, PermissionAction.READ)
        assert (await engine.resolve(bob.id, doc.id, PermissionAction.READ)).allow

        clock.advance(minutes=5)
        revocation = await engine.revoke(alice.id, subject, scope, PermissionAction.READ)
        denied = await engine.resolve(bob.id, doc.id, PermissionAction.READ)
        assert not denied.allow
        assert denied.grant_id == revocation.id

        clock.advance(minutes=5)
        await engine.issue_grant(alice.id, subject, scope, PermissionAction.READ)
        assert (await engine.resolve(bob.id, doc.id, PermissionAction.READ)).allow

    @pytest.mark.asyncio
    async def test_principal_wildcard_loses_to_resource_deny(self, engine, clock, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        other = await engine.create_file(alice.id, "other.txt", 10)
        await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                 PermissionAction.READ, allow=False)
        clock.advance(minutes=1)
        await engine.issue_grant(None, GrantSubject.user(bob.id), GrantScope.of_type(ResourceType.FILE),
                                 PermissionAction.READ)

        on_doc = await engine.resolve(bob.id, doc.id, PermissionAction.READ)
        on_other = await engine.resolve(bob.id, other.id, PermissionAction.READ)

        assert not on_doc.allow
        assert on_doc.source_rank == SourceRank.RESOURCE_USER
        assert on_other.allow
        assert on_other.source_rank == SourceRank.PRINCIPAL_WILDCARD

    @pytest.mark.asyncio
    async def test_expired_team_share_grant_is_inert(self, engine, store, clock, alice, bob, team):
        plan = await engine.create_file(alice.id, "plan.txt", 10, team_id=team.id)
        grant = await engine.issue_grant(
            alice.id, GrantSubject.team(team.id), GrantScope.resource(plan.id), PermissionAction.READ,
            expires_at=clock.now() + timedelta(days=1),
        )

        shared = await engine.resolve(bob.id, plan.id, PermissionAction.READ)
        assert shared.allow
        assert shared.source_rank == SourceRank.RESOURCE_TEAM

        clock.advance(days=2)
        expired = await engine.resolve(bob.id, plan.id, PermissionAction.READ)

        assert not expired.allow
        assert grant.id in store.grants


class TestPickWinner:
    """Deterministic tie-break of same-tier grants."""

    def _grant(self, clock, value: int, allow: bool, granted_at=None, subject=None, scope=None):
        return PermissionGrant(
            id=GrantId(UUID(int=value)),
            subject=subject or GrantSubject.user(UserId(UUID(int=1000))),
            scope=scope or GrantScope.resource(ResourceId(UUID(int=2000))),
            action=PermissionAction.READ,
            allow=allow,
            granted_by=None,
            granted_at=granted_at or clock.now(),
        )

    def test_identical_timestamps_fall_back_to_grant_id(self, clock):
        low = self._grant(clock, 1, allow=True)
        high = self._grant(clock, 2, allow=False)

        assert pick_winner([low, high]) is high
        assert pick_winner([high, low]) is high

    def test_no_grants_no_winner(self):
        assert pick_winner([]) is None

    @pytest.mark.parametrize("seed", range(25))
    def test_resource_grant_beats_template_regardless_of_order(self, clock, seed):
        rng = random.Random(seed)
        template_subject = GrantSubject.template(TemplateId(UUID(int=3000)))
        grants = []
        for i in range(rng.randint(1, 8)):
            grants.append(self._grant(
                clock, 10 + i, allow=rng.random() < 0.5,
                granted_at=clock.now() + timedelta(seconds=rng.randint(0, 10_000)),
                subject=template_subject, scope=GrantScope.everywhere(),
            ))
        explicit = self._grant(
            clock, 1, allow=rng.random() < 0.5,
            granted_at=clock.now() - timedelta(days=rng.randint(0, 365)),
        )
        grants.insert(rng.randint(0, len(grants)), explicit)

        winner = pick_winner(grants)

        assert winner is explicit
        assert winner.rank == SourceRank.RESOURCE_USER


class _SlowPrincipals:
    async def get_principal(self, user_id):
        await asyncio.sleep(1)


class TestBoundedReads:

    @pytest.mark.asyncio
    async def test_slow_lookup_raises_busy(self, engine, store, clock, alice):
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        resolver = PermissionResolver(_SlowPrincipals(), store, store, clock, read_timeout_seconds=0.01)

        with pytest.raises(BusyError):
            await resolver.resolve(alice.id, doc.id, PermissionAction.READ)
