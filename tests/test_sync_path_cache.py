"""Unit tests for the sync path window cache and its refill gate.

WHY: The window is the only place the mapper reads timesteps from. A
window that grows past its size, loses its index bookkeeping, lets two
refills interleave or applies a page fetched for an older position
would put the highlight on the wrong word.

HOW: Tests are organized by concern:
  - TestConstruction: argument validation
  - TestRefill: first fill, shifting refills, window bounds, exhaustion
  - TestLookups: timestep_at / needs_refill at the edges
  - TestConcurrency: single in-flight refill, failures, stale drops
  - TestRefillGate: the generation/in-flight primitive on its own

RULES:
- Async code is driven with asyncio.run(), no plugin
- Slow stores are modelled with futures the test resolves by hand
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Tuple
from unittest.mock import AsyncMock

import pytest
from conftest import BOOK_ID, SCENARIO_ROWS, settle

from readalong_sync.cache.sync_path import SyncPathCache
from readalong_sync.cache.window import RefillGate
from readalong_sync.storage.memory import InMemoryBookStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _store(count: int = 40) -> InMemoryBookStore:
    """Word i starts at timestep 3 * i."""
    store = InMemoryBookStore()
    store.set_sync_path(BOOK_ID, [(i, 3 * i) for i in range(count)])
    return store


class GatedSource:
    """Sync path source whose queries wait until the test releases them."""

    def __init__(self, store: InMemoryBookStore) -> None:
        self._store = store
        self.calls: List[Tuple[int, int]] = []
        self.pending: Dict[int, asyncio.Future] = {}

    async def query_sync_path(self, book_id, limit, offset):  # noqa: ANN001
        self.calls.append((limit, offset))
        future = asyncio.get_running_loop().create_future()
        self.pending[offset] = future
        await future
        return self._store.page(book_id, limit, offset)

    def release(self, offset: int) -> None:
        self.pending.pop(offset).set_result(None)


# ---------------------------------------------------------------------------
# TestConstruction
# ---------------------------------------------------------------------------


class TestConstruction:

    def test_cache_size_must_exceed_threshold(self):
        with pytest.raises(ValueError, match="cache_size"):
            SyncPathCache(_store(), BOOK_ID, cache_size=2, reload_threshold=2)

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError):
            SyncPathCache(_store(), BOOK_ID, cache_size=5, reload_threshold=-1)

    def test_starts_empty(self):
        cache = SyncPathCache(_store(), BOOK_ID, cache_size=10, reload_threshold=2)
        assert cache.size == 0
        assert cache.timestep_at(0) is None
        assert cache.needs_refill(0)


# ---------------------------------------------------------------------------
# TestRefill
# ---------------------------------------------------------------------------


class TestRefill:

    def test_first_refill_fills_window(self):
        async def run():
            cache = SyncPathCache(_store(), BOOK_ID, cache_size=10, reload_threshold=2)
            assert await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert cache.size == 10
        assert cache.first_word_index == 0
        assert cache.last_word_index == 9
        assert cache.offset == 10
        assert cache.window() == [3 * i for i in range(10)]

    def test_second_refill_keeps_threshold_tail(self):
        async def run():
            cache = SyncPathCache(_store(), BOOK_ID, cache_size=10, reload_threshold=2)
            await cache.refill()
            await cache.refill()
            return cache

        cache = asyncio.run(run())
        # Words 8, 9 retained; 8 new words 10..17 fetched.
        assert cache.first_word_index == 8
        assert cache.last_word_index == 17
        assert cache.size == 10
        assert cache.offset == 18
        assert cache.timestep_at(8) == 24
        assert cache.timestep_at(17) == 51

    def test_window_bound_and_monotonic_after_many_refills(self):
        async def run():
            cache = SyncPathCache(_store(40), BOOK_ID, cache_size=7, reload_threshold=2)
            snapshots = []
            while not cache.exhausted:
                await cache.refill()
                snapshots.append((cache.first_word_index, cache.last_word_index, cache.window()))
            return cache, snapshots

        cache, snapshots = asyncio.run(run())
        for first, last, window in snapshots:
            assert len(window) <= 7
            assert first + len(window) - 1 == last
            assert window == sorted(window)
        assert cache.last_word_index == 39

    def test_short_page_marks_exhausted(self):
        async def run():
            cache = SyncPathCache(_store(5), BOOK_ID, cache_size=10, reload_threshold=2)
            await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert cache.exhausted
        assert cache.size == 5
        assert not cache.needs_refill(4)

    def test_reset_moves_window(self):
        async def run():
            cache = SyncPathCache(_store(), BOOK_ID, cache_size=10, reload_threshold=2)
            await cache.refill()
            cache.reset(25)
            assert cache.size == 0
            await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert cache.first_word_index == 25
        assert cache.timestep_at(25) == 75
        assert cache.timestep_at(24) is None

    def test_reset_clears_exhausted(self):
        async def run():
            cache = SyncPathCache(_store(5), BOOK_ID, cache_size=10, reload_threshold=2)
            await cache.refill()
            assert cache.exhausted
            cache.reset(0)
            return cache

        assert not asyncio.run(run()).exhausted

    def test_oversized_page_is_trimmed(self):
        source = AsyncMock()
        source.query_sync_path.return_value = (0, list(range(20)))

        async def run():
            cache = SyncPathCache(source, BOOK_ID, cache_size=5, reload_threshold=1)
            await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert cache.window() == [0, 1, 2, 3, 4]
        source.query_sync_path.assert_awaited_once_with(BOOK_ID, 5, 0)

    def test_table_starting_above_offset_reanchors_empty_window(self):
        store = InMemoryBookStore()
        store.set_sync_path(BOOK_ID, SCENARIO_ROWS)

        async def run():
            cache = SyncPathCache(store, BOOK_ID, cache_size=10, reload_threshold=2)
            assert await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert cache.first_word_index == 10
        assert cache.last_word_index == 16
        assert cache.offset == 17
        assert cache.timestep_at(0) is None
        assert cache.timestep_at(10) == 0
        assert cache.timestep_at(15) == 12

    def test_page_leaving_a_hole_is_refused(self, caplog):
        source = AsyncMock()
        source.query_sync_path.side_effect = [(0, list(range(10))), (12, [100, 101])]

        async def run():
            cache = SyncPathCache(source, BOOK_ID, cache_size=10, reload_threshold=2)
            assert await cache.refill()
            assert not await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert cache.window() == list(range(10))
        assert cache.first_word_index == 0
        assert cache.timestep_at(12) is None
        assert cache.exhausted
        assert not cache.needs_refill(9)
        assert "starts at word 12" in caplog.text


# ---------------------------------------------------------------------------
# TestLookups
# ---------------------------------------------------------------------------


class TestLookups:

    def test_timestep_outside_window_is_none(self):
        async def run():
            cache = SyncPathCache(_store(), BOOK_ID, cache_size=10, reload_threshold=2)
            await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert cache.timestep_at(-1) is None
        assert cache.timestep_at(10) is None
        assert cache.contains(9)

    def test_needs_refill_near_window_end(self):
        async def run():
            cache = SyncPathCache(_store(), BOOK_ID, cache_size=10, reload_threshold=2)
            await cache.refill()
            return cache

        cache = asyncio.run(run())
        assert not cache.needs_refill(7)
        assert cache.needs_refill(8)
        assert cache.needs_refill(9)


# ---------------------------------------------------------------------------
# TestConcurrency
# ---------------------------------------------------------------------------


class TestConcurrency:

    def test_only_one_refill_in_flight(self):
        async def run():
            source = GatedSource(_store())
            cache = SyncPathCache(source, BOOK_ID, cache_size=10, reload_threshold=2)
            assert cache.request_refill()
            assert not cache.request_refill()
            assert not await cache.refill()
            await settle()
            assert cache.refilling
            assert len(source.calls) == 1
            source.release(0)
            await settle()
            return cache

        cache = asyncio.run(run())
        assert not cache.refilling
        assert cache.size == 10

    def test_failed_refill_releases_gate(self, caplog):
        source = AsyncMock()
        source.query_sync_path.side_effect = RuntimeError("database is locked")

        async def run():
            cache = SyncPathCache(source, BOOK_ID, cache_size=10, reload_threshold=2)
            ok = await cache.refill()
            return cache, ok

        cache, ok = asyncio.run(run())
        assert not ok
        assert not cache.refilling
        assert cache.size == 0
        assert "Sync path refill failed" in caplog.text

    def test_stale_refill_after_seek_is_dropped(self):
        """A page fetched for the old position must not land after a seek."""

        async def run():
            source = GatedSource(_store(2000))
            cache = SyncPathCache(source, BOOK_ID, cache_size=20, reload_threshold=2)
            first = asyncio.ensure_future(cache.refill())
            await settle()
            source.release(0)
            assert await first
            assert (cache.first_word_index, cache.last_word_index) == (0, 19)

            # Old-window refill goes out, then the reader seeks far ahead.
            assert cache.request_refill()
            await settle()
            cache.reset(1000)
            seek_refill = asyncio.ensure_future(cache.refill())
            await settle()

            # Late completion for the old window arrives first.
            source.release(20)
            await settle()
            assert cache.size == 0
            assert cache.first_word_index == 1000

            source.release(1000)
            assert await seek_refill
            return cache

        cache = asyncio.run(run())
        assert cache.first_word_index == 1000
        assert cache.timestep_at(1000) == 3000
        assert cache.timestep_at(25) is None

    def test_close_cancels_refill(self):
        async def run():
            source = GatedSource(_store())
            cache = SyncPathCache(source, BOOK_ID, cache_size=10, reload_threshold=2)
            cache.request_refill()
            await settle()
            cache.close()
            await settle()
            return cache

        cache = asyncio.run(run())
        assert cache.size == 0
        assert not cache.request_refill()
        assert not cache.needs_refill(0)


# ---------------------------------------------------------------------------
# TestRefillGate
# ---------------------------------------------------------------------------


class TestRefillGate:

    def test_acquire_and_release(self):
        gate = RefillGate()
        generation = gate.try_acquire()
        assert generation == 0
        assert gate.try_acquire() is None
        gate.release(generation)
        assert gate.try_acquire() == 0

    def test_invalidate_makes_old_generation_stale(self):
        gate = RefillGate()
        old = gate.try_acquire()
        gate.invalidate()
        assert not gate.is_current(old)
        new = gate.try_acquire()
        assert new == old + 1
        # Releasing the stale generation must not free the new refill.
        gate.release(old)
        assert gate.in_flight

    def test_closed_gate_refuses(self):
        gate = RefillGate()
        gate.close()
        assert gate.closed
        assert gate.try_acquire() is None
        assert not gate.is_current(gate.generation)
