"""Unit tests for the playhead mapper.

WHY: The mapper decides which word is highlighted at every tick. It has
to advance exactly one word at a time, pick the right word when several
share a timestep, never run ahead of loaded data, and fall silent once
closed.

HOW: Tests are organized by concern:
  - TestTickAdvance: tie-break, monotonicity, rate, duration clamp
  - TestDataNotReady: missing text spans and stalled refills
  - TestSeek: audio positioning, resume, supersession, missing entries
  - TestEvents: sentence boundaries, zoom and failing event sinks
  - TestPersistence: position writes and their failures
  - TestClose: teardown stops all output

RULES:
- The tick task sleeps in never_wake(), so tests call tick() directly
- Async code is driven with asyncio.run(), no plugin
"""

from __future__ import annotations

import asyncio
from typing import Dict, List
from unittest.mock import AsyncMock

import pytest
from conftest import (
    BOOK_ID,
    COUNTED_TEXT,
    LINEAR_ROWS,
    FakeAudio,
    FakeZoom,
    RecordingEvents,
    never_wake,
    settle,
)

from readalong_sync.cache.sync_path import SyncPathCache
from readalong_sync.cache.text_window import TextWindowCache
from readalong_sync.core.navigator import SentenceNavigator
from readalong_sync.core.segmenter import segment_text
from readalong_sync.player.mapper import PlayheadMapper, PlayheadState
from readalong_sync.storage.memory import InMemoryBookStore, StringTextSource


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _linear_store() -> InMemoryBookStore:
    store = InMemoryBookStore()
    store.set_sync_path(BOOK_ID, LINEAR_ROWS)
    return store


def _mapper(
    source,
    audio: FakeAudio,
    events: RecordingEvents,
    text_source=None,
    cache_size: int = 7,
    **kwargs,
) -> PlayheadMapper:
    sync = SyncPathCache(source, BOOK_ID, cache_size=cache_size, reload_threshold=2)
    text = TextWindowCache(
        text_source or StringTextSource(COUNTED_TEXT), cache_size=4096, retain_size=256,
    )
    return PlayheadMapper(
        sync, text, audio, events, book_id=BOOK_ID, sleep=never_wake, **kwargs,
    )


async def _ticks(mapper: PlayheadMapper, count: int) -> List[int]:
    """Tick ``count`` times, letting refills run in between."""
    positions = []
    for _ in range(count):
        mapper.tick()
        await settle(2)
        positions.append(mapper.current_word_index)
    return positions


class GatedSource:
    """Sync path source whose queries wait until the test releases them."""

    def __init__(self, store: InMemoryBookStore) -> None:
        self._store = store
        self.pending: Dict[int, asyncio.Future] = {}

    async def query_sync_path(self, book_id, limit, offset):  # noqa: ANN001
        future = asyncio.get_running_loop().create_future()
        self.pending[offset] = future
        await future
        return self._store.page(book_id, limit, offset)

    def release(self, offset: int) -> None:
        self.pending.pop(offset).set_result(None)


class SwitchableText:
    """Text source that fails until ``available`` is set."""

    def __init__(self) -> None:
        self.available = False

    async def extract(self, char_offset: int, length: int) -> str:
        if not self.available:
            raise OSError("document not laid out yet")
        return COUNTED_TEXT[char_offset:char_offset + length]


class FlakyEvents(RecordingEvents):
    """Event sink whose highlight_word raises once, for one word."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self._fail_on = fail_on

    def highlight_word(self, word_index, span) -> None:  # noqa: ANN001
        if word_index == self._fail_on:
            self._fail_on = None
            raise RuntimeError("renderer detached")
        super().highlight_word(word_index, span)


# ---------------------------------------------------------------------------
# TestTickAdvance
# ---------------------------------------------------------------------------


class TestTickAdvance:

    def test_shared_timestep_picks_word_by_word(self, book_store, fake_audio, events):
        """Words 10..16 at [0, 0, 0, 5, 5, 12, 20]: five ticks reach word 13, not 14."""

        async def run():
            mapper = _mapper(book_store, fake_audio, events)
            assert await mapper.seek(10)
            mapper.play()
            for _ in range(5):
                mapper.tick()
            after_five = mapper.current_word_index
            mapper.tick()
            after_six = mapper.current_word_index
            mapper.close()
            return after_five, after_six, mapper.elapsed_seconds

        after_five, after_six, elapsed = asyncio.run(run())
        assert after_five == 13
        assert after_six == 14
        assert elapsed == pytest.approx(0.12)
        assert events.highlighted_indices == [10, 11, 12, 13, 14]

    def test_playhead_is_monotonic(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            await mapper.seek(0)
            mapper.play()
            positions = await _ticks(mapper, 120)
            mapper.close()
            return positions

        positions = asyncio.run(run())
        assert positions == sorted(positions)
        assert positions[-1] == 16
        assert events.highlighted_indices == list(range(17))

    def test_at_most_one_word_per_tick(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            await mapper.seek(0)
            mapper.play()
            mapper.sync_elapsed(1.0)
            positions = await _ticks(mapper, 4)
            mapper.close()
            return positions

        assert asyncio.run(run()) == [1, 2, 3, 4]

    def test_rate_scales_elapsed_time(self, fake_audio, events):
        fake_audio.rate = 2.0

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            await mapper.seek(0)
            mapper.play()
            await _ticks(mapper, 5)
            mapper.close()
            return mapper

        mapper = asyncio.run(run())
        assert mapper.elapsed_seconds == pytest.approx(0.2)
        assert mapper.current_word_index == 2

    def test_elapsed_clamped_to_audio_duration(self, events):
        audio = FakeAudio(duration=0.1)

        async def run():
            mapper = _mapper(_linear_store(), audio, events)
            await mapper.seek(0)
            mapper.play()
            await _ticks(mapper, 50)
            mapper.close()
            return mapper

        mapper = asyncio.run(run())
        assert mapper.elapsed_seconds == pytest.approx(0.1)
        assert mapper.current_word_index == 1

    def test_idle_tick_does_nothing(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            await mapper.seek(0)
            moved = mapper.tick()
            mapper.close()
            return moved, mapper

        moved, mapper = asyncio.run(run())
        assert not moved
        assert mapper.elapsed_seconds == 0

    def test_non_positive_tick_period_rejected(self, fake_audio, events):
        with pytest.raises(ValueError, match="tick_period"):
            _mapper(_linear_store(), fake_audio, events, tick_period=0)


# ---------------------------------------------------------------------------
# TestDataNotReady
# ---------------------------------------------------------------------------


class TestDataNotReady:

    def test_highlight_waits_for_text_then_catches_up(self, fake_audio, events):
        text = SwitchableText()

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events, text_source=text)
            await mapper.seek(0)
            mapper.play()
            await _ticks(mapper, 10)
            assert events.highlights == []
            assert mapper.current_word_index == 2
            text.available = True
            await _ticks(mapper, 2)
            mapper.close()

        asyncio.run(run())
        assert events.highlighted_indices == [2]

    def test_no_advance_past_loaded_window(self, fake_audio, events):
        store = _linear_store()

        async def run():
            source = GatedSource(store)
            mapper = _mapper(source, fake_audio, events)
            seek = asyncio.ensure_future(mapper.seek(0))
            await settle()
            source.release(0)
            assert await seek
            mapper.play()
            # Window holds words 0..6; the refill for 7.. never completes.
            mapper.sync_elapsed(10.0)
            positions = await _ticks(mapper, 20)
            mapper.close()
            return positions

        positions = asyncio.run(run())
        assert positions[-1] == 6


# ---------------------------------------------------------------------------
# TestSeek
# ---------------------------------------------------------------------------


class TestSeek:

    def test_seek_positions_audio(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            ok = await mapper.seek(12)
            mapper.close()
            return ok, mapper

        ok, mapper = asyncio.run(run())
        assert ok
        assert mapper.current_word_index == 12
        assert mapper.elapsed_seconds == pytest.approx(60 * 0.02)
        assert ("seek", pytest.approx(1.2)) in fake_audio.calls
        assert events.highlighted_indices == [12]
        assert mapper.state == PlayheadState.IDLE

    def test_seek_with_start_playing(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            await mapper.seek(3, start_playing=True)
            state = mapper.state
            mapper.close()
            return state

        assert asyncio.run(run()) == PlayheadState.PLAYING
        assert ("play",) in fake_audio.calls

    def test_seek_while_playing_keeps_playing(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            await mapper.seek(0)
            mapper.play()
            await mapper.seek(8)
            state = mapper.state
            mapper.close()
            return state

        assert asyncio.run(run()) == PlayheadState.PLAYING
        assert fake_audio.calls.count(("play",)) == 1

    def test_pause_during_seek_cancels_resume(self, fake_audio, events):
        async def run():
            source = GatedSource(_linear_store())
            mapper = _mapper(source, fake_audio, events)
            seek = asyncio.ensure_future(mapper.seek(4, start_playing=True))
            await settle()
            assert mapper.state == PlayheadState.SEEKING
            mapper.pause()
            source.release(4)
            await seek
            state = mapper.state
            mapper.close()
            return state

        assert asyncio.run(run()) == PlayheadState.IDLE

    def test_superseded_seek_is_abandoned(self, fake_audio, events):
        async def run():
            source = GatedSource(_linear_store())
            mapper = _mapper(source, fake_audio, events)
            first = asyncio.ensure_future(mapper.seek(3))
            await settle()
            second = asyncio.ensure_future(mapper.seek(8))
            await settle()
            source.release(3)
            assert not await first
            source.release(8)
            assert await second
            mapper.close()
            return mapper

        mapper = asyncio.run(run())
        assert mapper.current_word_index == 8
        assert events.highlighted_indices == [8]

    def test_seek_past_sync_path_fails(self, fake_audio, events, caplog):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            ok = await mapper.seek(50)
            mapper.close()
            return ok, mapper

        ok, mapper = asyncio.run(run())
        assert not ok
        assert mapper.state == PlayheadState.IDLE
        assert "No sync path entry for word 50" in caplog.text

    def test_seek_uses_anchor_for_text_window(self, fake_audio, events):
        starts = {w.index: w.start_char for w in segment_text(COUNTED_TEXT).words}

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events, anchor_for=starts.get)
            await mapper.seek(12)
            first_char = mapper._text.first_char_index
            mapper.close()
            return first_char

        assert asyncio.run(run()) == starts[12]
        assert events.highlights == [(12, (starts[12], starts[12] + len("word12")))]


# ---------------------------------------------------------------------------
# TestEvents
# ---------------------------------------------------------------------------


class TestEvents:

    def test_sentence_boundaries_emitted_on_sentence_change(self, fake_audio, events):
        navigator = SentenceNavigator(segment_text(COUNTED_TEXT).sentences)

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events, navigator=navigator)
            await mapper.seek(0)
            mapper.play()
            await _ticks(mapper, 120)
            mapper.close()

        asyncio.run(run())
        assert events.boundaries == [
            (None, 0, 5), (0, 5, 10), (5, 10, 15), (10, 15, 17),
        ]

    def test_zoom_follows_highlight_when_enabled(self, fake_audio, events):
        zoom = FakeZoom()

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events, zoom=zoom)
            mapper.zoom_enabled = True
            await mapper.seek(2)
            mapper.close()

        asyncio.run(run())
        assert len(zoom.zooms) == 1
        index, box, fit = zoom.zooms[0]
        assert index == 2
        assert box.x == 100.0
        assert 1.0 <= fit.zoom <= 3.0

    def test_no_zoom_when_disabled(self, fake_audio, events):
        zoom = FakeZoom()

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events, zoom=zoom)
            await mapper.seek(2)
            mapper.close()

        asyncio.run(run())
        assert zoom.zooms == []

    def test_failing_sink_does_not_stop_tick_task(self, fake_audio, caplog):
        events = FlakyEvents(fail_on=1)

        async def one_loop_turn(delay: float) -> None:
            await asyncio.sleep(0)

        async def run():
            sync = SyncPathCache(_linear_store(), BOOK_ID, cache_size=7, reload_threshold=2)
            text = TextWindowCache(StringTextSource(COUNTED_TEXT), cache_size=4096, retain_size=256)
            mapper = PlayheadMapper(sync, text, fake_audio, events, sleep=one_loop_turn)
            await mapper.seek(0)
            mapper.play()
            await settle(400)
            state = mapper.state
            mapper.close()
            return state

        state = asyncio.run(run())
        assert state == PlayheadState.PLAYING
        assert events.highlighted_indices == list(range(17))
        assert "Tick failed at word 1" in caplog.text

    def test_failing_sink_during_seek_still_finishes_seek(self, fake_audio, caplog):
        events = FlakyEvents(fail_on=3)

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            ok = await mapper.seek(3)
            state = mapper.state
            mapper.play()
            mapper.tick()
            mapper.close()
            return ok, state

        ok, state = asyncio.run(run())
        assert ok
        assert state == PlayheadState.IDLE
        assert events.highlighted_indices == [3]
        assert "Highlight failed after seek to word 3" in caplog.text


# ---------------------------------------------------------------------------
# TestPersistence
# ---------------------------------------------------------------------------


class TestPersistence:

    def test_position_saved_on_advance(self, fake_audio, events):
        store = _linear_store()

        async def run():
            mapper = _mapper(store, fake_audio, events, positions=store)
            await mapper.seek(0)
            mapper.play()
            await _ticks(mapper, 12)
            await mapper.flush()
            mapper.close()
            return mapper.current_word_index

        current = asyncio.run(run())
        assert store.position(BOOK_ID) == current == 2

    def test_persistence_failure_is_logged(self, fake_audio, events, caplog):
        positions = AsyncMock()
        positions.save_last_played_word.side_effect = RuntimeError("disk full")

        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events, positions=positions)
            ok = await mapper.seek(3)
            await mapper.flush()
            await settle()
            mapper.close()
            return ok

        assert asyncio.run(run())
        assert "Failed to save play position" in caplog.text
        positions.save_last_played_word.assert_awaited_with(BOOK_ID, 3)


# ---------------------------------------------------------------------------
# TestClose
# ---------------------------------------------------------------------------


class TestClose:

    def test_close_stops_events_and_audio(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            await mapper.seek(0)
            mapper.play()
            mapper.close()
            before = list(events.highlights)
            moved = mapper.tick()
            ok = await mapper.seek(5)
            return mapper, before, moved, ok

        mapper, before, moved, ok = asyncio.run(run())
        assert mapper.closed
        assert not moved
        assert not ok
        assert events.highlights == before
        assert fake_audio.calls[-1] == ("pause",)
        assert mapper.state == PlayheadState.IDLE

    def test_play_after_close_is_ignored(self, fake_audio, events):
        async def run():
            mapper = _mapper(_linear_store(), fake_audio, events)
            mapper.close()
            mapper.play()
            return mapper.state

        assert asyncio.run(run()) == PlayheadState.IDLE
        assert fake_audio.calls == []
