"""Expiry sweep for the recycle bin.

``sweep_expired`` purges every open entry whose retention has run out. The
``PurgeSweeper`` background task calls it on a fixed interval and can be
cancelled at any point: entries are purged one transaction at a time and
purged entries are never reprocessed.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Set

from ....config.constants import AuditEventType, PurgeOutcome, PurgeReason
from ....core.protocols import Clock
from ....core.value_objects import RecycleEntryId
from ....utils.datetime import SystemClock
from ...audit.services import AuditEmitter
from ..entities import PurgeResult, RecycleRepository
from .recycle_service import RecycleLifecycleService

logger = logging.getLogger(__name__)


async def sweep_expired(
    lifecycle: RecycleLifecycleService,
    recycle: RecycleRepository,
    audit: AuditEmitter,
    now: datetime,
    batch_size: int = 100,
) -> List[PurgeResult]:
    """Purge every open entry with ``expires_at <= now``.

    A failing entry is reported as ``FAILED`` in the results, logged and
    audited; the sweep moves on to the next entry.
    """
    results: List[PurgeResult] = []
    handled: Set[RecycleEntryId] = set()
    cursor: Optional[RecycleEntryId] = None

    while True:
        page = await recycle.list_expired_entries(now, cursor, batch_size)
        for entry in page:
            cursor = entry.id
            if entry.id in handled:
                continue
            try:
                purged = await lifecycle.purge(entry.id, None, PurgeReason.EXPIRED)
            except Exception as e:
                logger.error(f"Failed to purge expired recycle entry {entry.id}: {e}")
                await audit.failure(
                    AuditEventType.RESOURCE_PURGED, e,
                    resource_id=entry.resource_id, entry_id=entry.id,
                    reason=PurgeReason.EXPIRED.value,
                )
                handled.add(entry.id)
                results.append(PurgeResult(
                    entry_id=entry.id,
                    resource_id=entry.resource_id,
                    outcome=PurgeOutcome.FAILED,
                    reason=PurgeReason.EXPIRED,
                    error=str(e),
                ))
                continue

            for result in purged:
                if result.entry_id not in handled:
                    handled.add(result.entry_id)
                    results.append(result)

        if len(page) < batch_size:
            break

    purged_count = sum(1 for r in results if r.outcome == PurgeOutcome.PURGED)
    failed_count = sum(1 for r in results if r.outcome == PurgeOutcome.FAILED)
    logger.info(
        f"Expiry sweep at {now.isoformat()}: {purged_count} purged, {failed_count} failed, "
        f"{sum(r.released_bytes for r in results)} bytes released"
    )
    return results


class PurgeSweeper:
    """Background task running the expiry sweep on a fixed interval."""

    def __init__(
        self,
        lifecycle: RecycleLifecycleService,
        recycle: RecycleRepository,
        audit: AuditEmitter,
        interval_seconds: float = 300.0,
        batch_size: int = 100,
        clock: Optional[Clock] = None,
    ):
        self._lifecycle = lifecycle
        self._recycle = recycle
        self._audit = audit
        self._interval = interval_seconds
        self._batch_size = batch_size
        self._clock = clock or SystemClock()
        self._task: Optional[asyncio.Task] = None
        self._last_results: List[PurgeResult] = []

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_results(self) -> List[PurgeResult]:
        return list(self._last_results)

    async def run_once(self, now: Optional[datetime] = None) -> List[PurgeResult]:
        self._last_results = await sweep_expired(
            self._lifecycle, self._recycle, self._audit,
            now or self._clock.now(), self._batch_size,
        )
        return self._last_results

    def start(self) -> None:
        if self.is_running:
            logger.warning("Purge sweeper already running")
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Started purge sweeper (interval {self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped purge sweeper")

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Purge sweep failed: {e}")
            await asyncio.sleep(self._interval)
