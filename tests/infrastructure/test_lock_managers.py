"""Tests for the keyed and Redis lock managers."""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError, LockError

from neo_storage.core.exceptions import BusyError, PersistenceError
from neo_storage.infrastructure.locking import KeyedLockManager, RedisLockManager
from neo_storage.utils.lock_keys import bin_key, ordered_keys, resource_key, team_quota_key, user_quota_key


class TestLockKeyOrdering:

    def test_namespaces_are_ordered(self):
        keys = [team_quota_key("t"), user_quota_key("u"), bin_key("u"), resource_key("b"), resource_key("a")]

        assert ordered_keys(keys) == [
            "resource:a", "resource:b", "bin:u", "quota:user:u", "quota:team:t",
        ]

    def test_duplicates_removed(self):
        assert ordered_keys(["bin:x", "bin:x"]) == ["bin:x"]


class TestKeyedLockManager:

    @pytest.mark.asyncio
    async def test_reentrant_for_holding_task(self):
        locks = KeyedLockManager(timeout_seconds=0.1)

        async with locks.acquire("quota:user:a"):
            async with locks.acquire("quota:user:a", "quota:team:t"):
                assert locks.is_locked("quota:team:t")
            assert locks.held_by_current_task("quota:user:a")
            assert not locks.is_locked("quota:team:t")

        assert not locks.is_locked("quota:user:a")

    @pytest.mark.asyncio
    async def test_contended_key_raises_busy(self):
        locks = KeyedLockManager(timeout_seconds=0.05)
        holding = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with locks.acquire("resource:a"):
                holding.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await holding.wait()

        with pytest.raises(BusyError):
            async with locks.acquire("bin:u", "resource:a"):
                pass

        assert not locks.is_locked("bin:u")
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_waiters_run_in_turn(self):
        locks = KeyedLockManager(timeout_seconds=1.0)
        order = []

        async def worker(name):
            async with locks.acquire("resource:a"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("first"), worker("second"))

        assert order in (
            ["first-in", "first-out", "second-in", "second-out"],
            ["second-in", "second-out", "first-in", "first-out"],
        )

    @pytest.mark.asyncio
    async def test_unused_locks_are_dropped(self):
        locks = KeyedLockManager()

        async with locks.acquire("resource:a", "bin:u"):
            pass

        assert locks._locks == {}
        assert locks._refs == {}


def _redis_client(acquired=True):
    client = MagicMock()
    created = {}

    def make_lock(name, timeout, blocking_timeout):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=acquired(name) if callable(acquired) else acquired)
        lock.release = AsyncMock()
        created[name] = lock
        return lock

    client.lock.side_effect = make_lock
    client.created = created
    return client


class TestRedisLockManager:

    @pytest.mark.asyncio
    async def test_acquires_in_order_and_releases_in_reverse(self):
        client = _redis_client()
        locks = RedisLockManager(client, timeout_seconds=0.5, lease_seconds=10, prefix="t:")

        async with locks.acquire("quota:user:u", "resource:a"):
            names = [c.args[0] for c in client.lock.call_args_list]
            assert names == ["t:resource:a", "t:quota:user:u"]

        for lock in client.created.values():
            lock.release.assert_awaited_once()
        assert client.lock.call_args_list[0].kwargs == {"timeout": 10, "blocking_timeout": 0.5}

    @pytest.mark.asyncio
    async def test_busy_key_releases_what_was_taken(self):
        client = _redis_client(acquired=lambda name: name != "t:bin:u")
        locks = RedisLockManager(client, prefix="t:")

        with pytest.raises(BusyError):
            async with locks.acquire("resource:a", "bin:u"):
                pass

        client.created["t:resource:a"].release.assert_awaited_once()
        client.created["t:bin:u"].release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nested_acquire_skips_held_keys(self):
        client = _redis_client()
        locks = RedisLockManager(client, prefix="t:")

        async with locks.acquire("quota:user:u"):
            async with locks.acquire("quota:user:u", "quota:team:t"):
                pass

        names = [c.args[0] for c in client.lock.call_args_list]
        assert names == ["t:quota:user:u", "t:quota:team:t"]

    @pytest.mark.asyncio
    async def test_connection_failure_is_a_persistence_error(self):
        client = MagicMock()
        lock = MagicMock()
        lock.acquire = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        client.lock.return_value = lock
        locks = RedisLockManager(client)

        with pytest.raises(PersistenceError):
            async with locks.acquire("resource:a"):
                pass

    @pytest.mark.asyncio
    async def test_expired_lease_reported_on_release(self):
        client = _redis_client()
        locks = RedisLockManager(client, prefix="t:")

        with pytest.raises(PersistenceError) as exc_info:
            async with locks.acquire("resource:a"):
                client.created["t:resource:a"].release.side_effect = LockError("not owned")

        assert exc_info.value.details["keys"] == ["resource:a"]
