"""Pytest configuration and fixtures for neo-storage tests."""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from neo_storage.config.constants import ResourceStatus, TeamMemberRole
from neo_storage.config.settings import load_settings
from neo_storage.factory import create_storage_engine
from neo_storage.infrastructure.persistence import InMemoryStorageStore


class ManualClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


def owned_bytes(store: InMemoryStorageStore, user_id) -> int:
    """Bytes a principal should be charged: active plus recycled resources."""
    return sum(
        r.size for r in store.resources.values()
        if r.owner_id == user_id and r.status in (ResourceStatus.ACTIVE, ResourceStatus.RECYCLED)
    )


@pytest.fixture
def start_time():
    """Fixed starting instant for clock-driven tests."""
    return datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(start_time):
    return ManualClock(start_time)


@pytest.fixture
def settings():
    """Engine settings with defaults only (no .env file)."""
    return load_settings(_env_file=None)


@pytest.fixture
def store():
    return InMemoryStorageStore()


@pytest.fixture
def byte_store():
    """Mock byte store collaborator."""
    mock = AsyncMock()
    mock.delete_bytes = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def engine(store, byte_store, settings, clock):
    return create_storage_engine(store=store, byte_store=byte_store, settings=settings, clock=clock)


@pytest_asyncio.fixture
async def alice(engine):
    """Regular principal with a 1000 byte quota."""
    return await engine.register_principal("alice", quota_total=1000)


@pytest_asyncio.fixture
async def bob(engine):
    """Second regular principal with a 1000 byte quota."""
    return await engine.register_principal("bob", quota_total=1000)


@pytest_asyncio.fixture
async def team(engine, alice, bob):
    """Team owned by alice with bob as a plain member."""
    created = await engine.create_team("design", alice.id, quota_total=500)
    await engine.add_team_member(created.id, bob.id, TeamMemberRole.MEMBER)
    return created
