"""Redis-backed keyed lock manager for multi-process deployments.

Uses redis-py's asyncio ``Lock`` (token-based, with a lease so a crashed
holder cannot block a key forever). Re-entrancy is tracked per task through a
context variable holding the keys the current task already owns.
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, FrozenSet, List, Tuple

from redis.asyncio import Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError, RedisError

from ...core.exceptions import BusyError, PersistenceError
from ...utils.lock_keys import ordered_keys

logger = logging.getLogger(__name__)

_held_keys: ContextVar[FrozenSet[str]] = ContextVar("neo_storage_redis_held_keys", default=frozenset())


class RedisLockManager:
    """Distributed keyed locks with a bounded wait and a lease."""

    def __init__(
        self,
        client: Redis,
        timeout_seconds: float = 2.0,
        lease_seconds: float = 30.0,
        prefix: str = "neo-storage:lock:",
    ):
        self._client = client
        self._timeout = timeout_seconds
        self._lease = lease_seconds
        self._prefix = prefix

    @asynccontextmanager
    async def acquire(self, *keys: str) -> AsyncIterator[None]:
        held = _held_keys.get()
        taken: List[Tuple[str, Lock]] = []
        try:
            for key in ordered_keys(keys):
                if key in held:
                    continue
                taken.append((key, await self._acquire_one(key)))
        except BaseException:
            await self._release_all(taken)
            raise

        token = _held_keys.set(held | {key for key, _ in taken})
        try:
            yield
        finally:
            _held_keys.reset(token)
            await self._release_all(taken)

    async def _acquire_one(self, key: str) -> Lock:
        lock = self._client.lock(
            f"{self._prefix}{key}",
            timeout=self._lease,
            blocking_timeout=self._timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            raise PersistenceError(f"Failed to acquire lock '{key}': {e}") from e
        if not acquired:
            logger.warning(f"Lock wait on '{key}' exceeded {self._timeout}s")
            raise BusyError(key, self._timeout)
        return lock

    async def _release_all(self, taken: List[Tuple[str, Lock]]) -> None:
        failures: List[str] = []
        for key, lock in reversed(taken):
            try:
                await lock.release()
            except LockError as e:
                logger.error(f"Lock '{key}' lease expired before release: {e}")
                failures.append(key)
        if failures:
            raise PersistenceError(
                f"Lock lease expired while held: {', '.join(failures)}",
                details={"keys": failures},
            )
