"""Tests for the background expiry sweep."""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from neo_storage.config.constants import PurgeOutcome, ResourceStatus
from neo_storage.config.settings import load_settings
from neo_storage.factory import create_storage_engine
from neo_storage.features.recycle.services import PurgeSweeper


async def _recycle_files(engine, owner, count, size=1):
    entries = []
    for i in range(count):
        doc = await engine.create_file(owner.id, f"old-{i}.txt", size)
        entries.extend(await engine.delete(doc.id, owner.id))
    return entries


class TestSweepExpired:

    @pytest.mark.asyncio
    async def test_failing_entry_does_not_stop_the_sweep(self, engine, store, byte_store, alice, clock):
        entries = await _recycle_files(engine, alice, 3)
        failing_path = store.resources[entries[1].resource_id].storage_path

        async def delete_bytes(path):
            if path == failing_path:
                raise RuntimeError("object locked")

        byte_store.delete_bytes.side_effect = delete_bytes
        clock.advance(days=31)

        results = await engine.sweep_expired()

        outcomes = {r.entry_id: r.outcome for r in results}
        assert outcomes[entries[0].id] == PurgeOutcome.PURGED
        assert outcomes[entries[1].id] == PurgeOutcome.FAILED
        assert outcomes[entries[2].id] == PurgeOutcome.PURGED
        assert store.resources[entries[1].resource_id].status == ResourceStatus.RECYCLED
        assert (await engine.usage(alice.id)).user.used_bytes == 1

    @pytest.mark.asyncio
    async def test_sweep_pages_through_entries(self, store, byte_store, clock):
        engine = create_storage_engine(
            store=store, byte_store=byte_store, clock=clock,
            settings=load_settings(_env_file=None, sweep_batch_size=2),
        )
        owner = await engine.register_principal("paging", quota_total=100)
        entries = await _recycle_files(engine, owner, 5)
        clock.advance(days=31)

        results = await engine.sweep_expired()

        assert sorted(r.entry_id for r in results) == sorted(e.id for e in entries)
        assert all(r.outcome == PurgeOutcome.PURGED for r in results)
        assert byte_store.delete_bytes.await_count == 5


class TestPurgeSweeper:

    @pytest.mark.asyncio
    async def test_run_once_records_results(self, engine, store, alice, clock):
        await _recycle_files(engine, alice, 2)
        sweeper = PurgeSweeper(engine.lifecycle, store, engine.audit, interval_seconds=60, clock=clock)

        results = await sweeper.run_once(clock.now() + timedelta(days=31))

        assert len(results) == 2
        assert sweeper.last_results == results

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine, store, alice, clock):
        await _recycle_files(engine, alice, 1)
        clock.advance(days=31)
        sweeper = PurgeSweeper(engine.lifecycle, store, engine.audit, interval_seconds=0.01, clock=clock)

        sweeper.start()
        assert sweeper.is_running
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert not sweeper.is_running
        assert (await engine.usage(alice.id)).user.used_bytes == 0

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self, engine, clock):
        lifecycle = AsyncMock()
        recycle = AsyncMock()
        calls = []

        async def list_expired_entries(now, after, limit):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            return []

        recycle.list_expired_entries.side_effect = list_expired_entries
        sweeper = PurgeSweeper(lifecycle, recycle, engine.audit, interval_seconds=0.01, clock=clock)

        sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_engine_starts_and_stops_sweeper(self, engine):
        engine.start()
        assert engine.sweeper.is_running

        await engine.stop()

        assert not engine.sweeper.is_running
