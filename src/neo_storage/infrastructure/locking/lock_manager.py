"""In-process keyed lock manager.

One ``asyncio.Lock`` per key, created on demand and dropped once nobody holds
or waits for it. Locks are re-entrant for the task holding them, so a service
that already holds ``quota:user:<id>`` can call the quota ledger, which takes
the same key again.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from ...core.exceptions import BusyError
from ...utils.lock_keys import ordered_keys

logger = logging.getLogger(__name__)


class KeyedLockManager:
    """Re-entrant keyed locks with a bounded wait.

    Keys are acquired in namespace order; a key that cannot be taken within
    ``timeout_seconds`` raises ``BusyError`` after releasing everything this
    call took.
    """

    def __init__(self, timeout_seconds: float = 2.0):
        self._timeout = timeout_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}
        self._owners: Dict[str, asyncio.Task] = {}
        self._depth: Dict[str, int] = {}

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def is_locked(self, key: str) -> bool:
        return key in self._owners

    def held_by_current_task(self, key: str) -> bool:
        return self._owners.get(key) is asyncio.current_task()

    @asynccontextmanager
    async def acquire(self, *keys: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        taken: List[str] = []
        try:
            for key in ordered_keys(keys):
                await self._acquire_one(key, task)
                taken.append(key)
            yield
        finally:
            for key in reversed(taken):
                self._release_one(key)

    async def _acquire_one(self, key: str, task: Optional[asyncio.Task]) -> None:
        if task is not None and self._owners.get(key) is task:
            self._depth[key] += 1
            return

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self._timeout)
        except asyncio.TimeoutError:
            self._unref(key)
            logger.warning(f"Lock wait on '{key}' exceeded {self._timeout}s")
            raise BusyError(key, self._timeout)
        except BaseException:
            self._unref(key)
            raise

        self._owners[key] = task
        self._depth[key] = 1

    def _release_one(self, key: str) -> None:
        self._depth[key] -= 1
        if self._depth[key] > 0:
            return
        del self._depth[key]
        del self._owners[key]
        self._locks[key].release()
        self._unref(key)

    def _unref(self, key: str) -> None:
        self._refs[key] -= 1
        if self._refs[key] == 0:
            del self._refs[key]
            del self._locks[key]
