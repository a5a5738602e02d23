"""Tests for grant issuing, templates and bindings."""

import pytest
from datetime import timedelta

from neo_storage.config.constants import (
    AuditEventType,
    AuditOutcome,
    PermissionAction,
    ResourceStatus,
    ResourceType,
    SourceRank,
    TeamMemberRole,
    UserType,
)
from neo_storage.core.exceptions import (
    PermissionDeniedError,
    ResourceNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from neo_storage.core.value_objects import ResourceId, TemplateId
from neo_storage.features.permissions.entities import GrantScope, GrantSubject


class TestIssueGrant:

    @pytest.mark.asyncio
    async def test_resource_grant_requires_share(self, engine, store, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await engine.issue_grant(bob.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                     PermissionAction.READ)

        assert exc_info.value.action == PermissionAction.SHARE.value
        assert not any(g.scope.resource_id == doc.id for g in store.grants.values())
        denials = [
            e for e in store.audit_log()
            if e.event_type == AuditEventType.PERMISSION_DECISION and e.outcome == AuditOutcome.DENIED
        ]
        assert denials and denials[-1].actor_id == bob.id

    @pytest.mark.asyncio
    async def test_shared_grantee_can_reshare(self, engine, clock, alice, bob):
        carol = await engine.register_principal("carol", quota_total=100)
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        for action in (PermissionAction.SHARE, PermissionAction.READ):
            await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id), action)
        clock.advance(seconds=1)

        await engine.issue_grant(bob.id, GrantSubject.user(carol.id), GrantScope.resource(doc.id),
                                 PermissionAction.READ)

        assert (await engine.resolve(carol.id, doc.id, PermissionAction.READ)).allow

    @pytest.mark.asyncio
    async def test_sharer_cannot_pass_on_actions_they_lack(self, engine, store, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                 PermissionAction.SHARE)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await engine.issue_grant(bob.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                     PermissionAction.DELETE)

        assert exc_info.value.action == PermissionAction.DELETE.value
        assert not (await engine.resolve(bob.id, doc.id, PermissionAction.DELETE)).allow

    @pytest.mark.asyncio
    async def test_sharer_cannot_grant_permanent_delete(self, engine, store, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        for action in (PermissionAction.SHARE, PermissionAction.DELETE):
            await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id), action)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await engine.issue_grant(bob.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                     PermissionAction.PERMANENT_DELETE)
        assert exc_info.value.action == PermissionAction.PERMANENT_DELETE.value

        entry = (await engine.delete(doc.id, bob.id))[0]
        with pytest.raises(PermissionDeniedError):
            await engine.purge(entry.id, bob.id)
        assert store.resources[doc.id].status == ResourceStatus.RECYCLED

    @pytest.mark.asyncio
    async def test_owner_and_team_admin_grant_any_action(self, engine, alice, bob, team):
        carol = await engine.register_principal("carol", quota_total=100)
        await engine.add_team_member(team.id, carol.id, TeamMemberRole.ADMIN, actor_id=alice.id)
        doc = await engine.create_file(alice.id, "notes.txt", 10)
        plan = await engine.create_file(alice.id, "plan.txt", 10, team_id=team.id)

        await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                 PermissionAction.PERMANENT_DELETE)
        await engine.issue_grant(carol.id, GrantSubject.user(bob.id), GrantScope.resource(plan.id),
                                 PermissionAction.PERMANENT_DELETE)

        assert (await engine.resolve(bob.id, doc.id, PermissionAction.PERMANENT_DELETE)).allow
        assert (await engine.resolve(bob.id, plan.id, PermissionAction.PERMANENT_DELETE)).allow

    @pytest.mark.asyncio
    async def test_wildcard_grants_require_admin(self, engine, alice, bob):
        admin = await engine.register_principal("root", quota_total=0, user_type=UserType.ADMIN)

        with pytest.raises(PermissionDeniedError):
            await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.everywhere(),
                                     PermissionAction.READ)

        grant = await engine.issue_grant(admin.id, GrantSubject.user(bob.id), GrantScope.everywhere(),
                                         PermissionAction.READ)
        assert grant.rank == SourceRank.PRINCIPAL_WILDCARD

    @pytest.mark.asyncio
    async def test_grant_on_missing_resource(self, engine, alice, bob):
        with pytest.raises(ResourceNotFoundError):
            await engine.issue_grant(alice.id, GrantSubject.user(bob.id),
                                     GrantScope.resource(ResourceId.generate()), PermissionAction.READ)

    @pytest.mark.asyncio
    async def test_team_grant_outside_resource_scope_is_invalid(self, engine, team):
        with pytest.raises(ValidationError):
            await engine.issue_grant(None, GrantSubject.team(team.id), GrantScope.of_type(ResourceType.FILE),
                                     PermissionAction.READ)

    @pytest.mark.asyncio
    async def test_expiry_must_follow_grant_time(self, engine, clock, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        with pytest.raises(ValidationError):
            await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                     PermissionAction.READ, expires_at=clock.now() - timedelta(seconds=1))

    @pytest.mark.asyncio
    async def test_issued_grant_is_audited(self, engine, store, alice, bob):
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        grant = await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(doc.id),
                                         PermissionAction.WRITE)

        issued = [e for e in store.audit_log() if e.event_type == AuditEventType.GRANT_ISSUED]
        assert len(issued) == 1
        assert issued[0].details["grant_id"] == str(grant.id)
        assert issued[0].details["action"] == "write"


class TestTemplates:

    @pytest.mark.asyncio
    async def test_only_admins_manage_templates(self, engine, alice):
        with pytest.raises(PermissionDeniedError):
            await engine.create_template(alice.id, "mine")

    @pytest.mark.asyncio
    async def test_bind_unknown_template(self, engine, bob):
        with pytest.raises(TemplateNotFoundError):
            await engine.bind_template(None, bob.id, TemplateId.generate())

    @pytest.mark.asyncio
    async def test_bound_template_replaces_default(self, engine, alice, bob):
        default = await engine.create_template(None, "default", is_default=True)
        editors = await engine.create_template(None, "editors")
        await engine.issue_grant(None, GrantSubject.template(default.id), GrantScope.everywhere(),
                                 PermissionAction.READ)
        await engine.issue_grant(None, GrantSubject.template(editors.id), GrantScope.everywhere(),
                                 PermissionAction.WRITE)
        doc = await engine.create_file(alice.id, "notes.txt", 10)

        assert (await engine.resolve(bob.id, doc.id, PermissionAction.READ)).allow

        bound = await engine.bind_template(None, bob.id, editors.id)

        assert bound.template_id == editors.id
        assert bound.version == bob.version + 1
        assert not (await engine.resolve(bob.id, doc.id, PermissionAction.READ)).allow
        assert (await engine.resolve(bob.id, doc.id, PermissionAction.WRITE)).allow

    @pytest.mark.asyncio
    async def test_template_quota_applies_on_registration(self, engine, settings):
        small = await engine.create_template(None, "small", storage_quota=2048)

        bound = await engine.register_principal("hank", template_id=small.id)
        explicit = await engine.register_principal("ivy", quota_total=10, template_id=small.id)
        unbound = await engine.register_principal("jo")

        assert bound.quota_total == 2048
        assert bound.template_id == small.id
        assert explicit.quota_total == 10
        assert unbound.quota_total == settings.default_user_quota_bytes

    @pytest.mark.asyncio
    async def test_register_with_unknown_template(self, engine, store):
        with pytest.raises(TemplateNotFoundError):
            await engine.register_principal("kim", template_id=TemplateId.generate())

        assert not any(p.username == "kim" for p in store.principals.values())

    @pytest.mark.asyncio
    async def test_system_templates_need_system_actor(self, engine):
        admin = await engine.register_principal("root", quota_total=0, user_type=UserType.ADMIN)

        with pytest.raises(PermissionDeniedError):
            await engine.create_template(admin.id, "builtin", is_system=True)

        builtin = await engine.create_template(None, "builtin", is_system=True)
        assert builtin.is_system
        assert builtin.storage_quota == 5 * 1024 ** 3
