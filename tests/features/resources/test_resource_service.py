"""Tests for file and folder creation."""

import pytest

from neo_storage.config.constants import AuditEventType, PermissionAction, ResourceKind, TeamMemberRole
from neo_storage.core.exceptions import (
    NameConflictError,
    PermissionDeniedError,
    PersistenceError,
    QuotaExceededError,
    ResourceNotFoundError,
    ValidationError,
)
from neo_storage.core.value_objects import ResourceId
from neo_storage.features.permissions.entities import GrantScope, GrantSubject


class TestCreateFile:

    @pytest.mark.asyncio
    async def test_upload_charges_quota(self, engine, store, alice):
        doc = await engine.create_file(alice.id, "report.pdf", 80, mime_type="application/pdf")

        assert doc.kind == ResourceKind.FILE
        assert doc.full_path == "report.pdf"
        assert store.resources[doc.id] == doc
        assert (await engine.usage(alice.id)).user.used_bytes == 80

    @pytest.mark.asyncio
    async def test_nested_paths(self, engine, alice):
        docs = await engine.create_folder(alice.id, "docs")
        drafts = await engine.create_folder(alice.id, "drafts", parent_id=docs.id)
        note = await engine.create_file(alice.id, "note.txt", 5, parent_id=drafts.id)

        assert drafts.path == "docs"
        assert note.path == "docs/drafts"
        assert note.full_path == "docs/drafts/note.txt"

    @pytest.mark.asyncio
    async def test_same_name_in_same_folder_conflicts(self, engine, alice):
        await engine.create_file(alice.id, "report.pdf", 80)

        with pytest.raises(NameConflictError):
            await engine.create_file(alice.id, "report.pdf", 10)

        assert (await engine.usage(alice.id)).user.used_bytes == 80

    @pytest.mark.asyncio
    async def test_same_name_in_different_roots_is_fine(self, engine, alice, bob):
        await engine.create_file(alice.id, "report.pdf", 10)
        await engine.create_file(bob.id, "report.pdf", 10)

    @pytest.mark.asyncio
    async def test_over_quota_persists_nothing(self, engine, store, alice):
        with pytest.raises(QuotaExceededError):
            await engine.create_file(alice.id, "huge.bin", 1001)

        assert store.resources == {}

    @pytest.mark.asyncio
    async def test_failed_write_releases_reservation(self, engine, store, alice, mocker):
        mocker.patch.object(store, "add_resource", side_effect=PersistenceError("disk full"))

        with pytest.raises(PersistenceError):
            await engine.create_file(alice.id, "report.pdf", 80)

        assert (await engine.usage(alice.id)).user.used_bytes == 0

    @pytest.mark.asyncio
    async def test_write_on_parent_required(self, engine, alice, bob):
        shared = await engine.create_folder(alice.id, "shared")

        with pytest.raises(PermissionDeniedError):
            await engine.create_file(bob.id, "intruder.txt", 1, parent_id=shared.id)

        await engine.issue_grant(alice.id, GrantSubject.user(bob.id), GrantScope.resource(shared.id),
                                 PermissionAction.WRITE)
        guest = await engine.create_file(bob.id, "guest.txt", 1, parent_id=shared.id)

        assert guest.owner_id == bob.id
        assert (await engine.usage(bob.id)).user.used_bytes == 1

    @pytest.mark.asyncio
    async def test_parent_must_be_active_folder(self, engine, alice):
        doc = await engine.create_file(alice.id, "report.pdf", 10)

        with pytest.raises(ValidationError):
            await engine.create_file(alice.id, "child.txt", 1, parent_id=doc.id)
        with pytest.raises(ResourceNotFoundError):
            await engine.create_file(alice.id, "child.txt", 1, parent_id=ResourceId.generate())

    @pytest.mark.asyncio
    async def test_creation_is_audited(self, engine, store, alice):
        doc = await engine.create_file(alice.id, "report.pdf", 10)

        created = [e for e in store.audit_log() if e.event_type == AuditEventType.RESOURCE_CREATED]
        assert len(created) == 1
        assert created[0].resource_id == doc.id
        assert created[0].details["size"] == 10


class TestTeamResources:

    @pytest.mark.asyncio
    async def test_member_uploads_to_team_root(self, engine, bob, team):
        doc = await engine.create_file(bob.id, "plan.md", 40, team_id=team.id)

        snapshot = await engine.usage(bob.id, team.id)
        assert doc.team_id == team.id
        assert snapshot.user.used_bytes == 40
        assert snapshot.team.used_bytes == 40

    @pytest.mark.asyncio
    async def test_viewer_cannot_upload(self, engine, team):
        viewer = await engine.register_principal("viewer", quota_total=100)
        await engine.add_team_member(team.id, viewer.id, TeamMemberRole.VIEWER)

        with pytest.raises(PermissionDeniedError):
            await engine.create_file(viewer.id, "plan.md", 1, team_id=team.id)

    @pytest.mark.asyncio
    async def test_outsider_cannot_upload(self, engine, team):
        outsider = await engine.register_principal("outsider", quota_total=100)

        with pytest.raises(PermissionDeniedError):
            await engine.create_folder(outsider.id, "mine", team_id=team.id)

    @pytest.mark.asyncio
    async def test_children_inherit_team(self, engine, alice, team):
        folder = await engine.create_folder(alice.id, "assets", team_id=team.id)
        logo = await engine.create_file(alice.id, "logo.png", 20, parent_id=folder.id)

        assert logo.team_id == team.id
        assert (await engine.usage(alice.id, team.id)).team.used_bytes == 20
