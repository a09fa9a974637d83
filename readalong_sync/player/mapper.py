"""Playhead-to-word mapping driven by a periodic tick.

WHY: The audio engine reports elapsed time only a few times per second,
far too coarse for word-level highlighting. The mapper keeps its own
virtual clock, advances it every tick by ``tick_period × rate``, converts
it to a timestep and compares that with the sync path to decide when the
next word starts. A highlight is emitted once per word transition, never
on every tick.

HOW: A three-state machine:
  IDLE:    not playing; ticks are ignored
  PLAYING: the tick task runs and the playhead advances
  SEEKING: both caches were reset to a new word and the mapper is
           waiting for the first page of the sync path
Each tick looks at the next candidate word only (the current word + 1,
clamped to the loaded window). If its timestep has been reached, the
playhead moves to it and the position is persisted fire-and-forget. The
highlight is emitted as soon as the text cache can resolve the word's
span; when it cannot yet, the mapper asks for a refill and tries again
on the next tick.

RULES:
- All state changes happen on the event loop that runs the ticks
- At most one word of advance per tick
- current_word_index never decreases while playing (seek may move it)
- Data not ready → skip this tick, never block and never guess
- A seek superseded by a newer seek is abandoned when its refill returns
- The virtual clock is clamped to the audio duration when it is known,
  so words timed beyond the end of the audio are never reached
- After close() no events are emitted and all refills become no-ops
- A failing event sink costs one tick; the highlight is retried and the
  tick task keeps running
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
from typing import Awaitable, Callable, Optional, Set

from readalong_sync.cache.sync_path import SyncPathCache
from readalong_sync.cache.text_window import TextWindowCache
from readalong_sync.config import TIMESTEP_S
from readalong_sync.core.navigator import SentenceNavigator
from readalong_sync.core.viewport import fit_viewport
from readalong_sync.player.interfaces import (
    AudioEngine,
    PositionStore,
    ReaderEvents,
    ZoomCapability,
)

logger = logging.getLogger(__name__)

# Absorbs float drift from summing tick periods (0.02 * 5 != 0.1).
_STEP_EPSILON = 1e-6


class PlayheadState(str, enum.Enum):
    IDLE = "idle"
    PLAYING = "playing"
    SEEKING = "seeking"


class PlayheadMapper:
    """Converts elapsed audio time into word transitions.

    Args:
        sync_cache: Window over the word → timestep table.
        text_cache: Window over the document text, for highlight spans.
        audio: The audio engine (rate, duration, play/pause/seek).
        events: Receives highlight and sentence-boundary events.
        book_id: Key used when persisting the position.
        positions: Where the last played word is saved; None disables it.
        zoom: Zoom capability of the renderer, if it has one.
        navigator: Sentence lookup for sentence-boundary events.
        anchor_for: Maps a word index to the char offset where that word
            starts, used to re-anchor the text cache on seek.
        tick_period: Seconds per tick, equal to one sync-table timestep.
        sleep: Awaitable used by the tick task to wait one period;
            defaults to asyncio.sleep. A simulation passes a faster clock.
    """

    def __init__(
        self,
        sync_cache: SyncPathCache,
        text_cache: TextWindowCache,
        audio: AudioEngine,
        events: ReaderEvents,
        book_id: Optional[str] = None,
        positions: Optional[PositionStore] = None,
        zoom: Optional[ZoomCapability] = None,
        navigator: Optional[SentenceNavigator] = None,
        anchor_for: Optional[Callable[[int], Optional[int]]] = None,
        tick_period: float = TIMESTEP_S,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if tick_period <= 0:
            raise ValueError("tick_period must be positive")
        self._sleep = sleep or asyncio.sleep
        self._sync = sync_cache
        self._text = text_cache
        self._audio = audio
        self._events = events
        self._book_id = book_id
        self._positions = positions
        self._zoom = zoom
        self._navigator = navigator
        self._anchor_for = anchor_for
        self.tick_period = tick_period

        self.state = PlayheadState.IDLE
        self.elapsed_seconds = 0.0
        self.current_word_index = -1
        self.zoom_enabled = False

        self._highlighted_index = -1
        self._sentence_start: Optional[int] = None
        self._resume_after_seek = False
        self._seek_generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._persist_tasks: Set[asyncio.Task] = set()
        self._closed = False
        self._audio_playing = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def highlighted_index(self) -> int:
        return self._highlighted_index

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self) -> None:
        if self._closed:
            return
        if self.state == PlayheadState.SEEKING:
            self._resume_after_seek = True
            return
        if self.state == PlayheadState.PLAYING:
            return
        self.state = PlayheadState.PLAYING
        self._audio.play()
        self._audio_playing = True
        self._start_timer()
        logger.debug("Playhead playing from word %d", self.current_word_index)

    def pause(self) -> None:
        if self.state == PlayheadState.SEEKING:
            self._resume_after_seek = False
            return
        if self.state != PlayheadState.PLAYING:
            return
        self.state = PlayheadState.IDLE
        self._audio.pause()
        self._audio_playing = False
        self._stop_timer()
        logger.debug("Playhead paused at word %d", self.current_word_index)

    def sync_elapsed(self, seconds: float) -> None:
        """Adopt the audio engine's own elapsed time."""
        if not self._closed:
            self.elapsed_seconds = seconds

    def _start_timer(self) -> None:
        if self._timer is None or self._timer.done():
            self._timer = asyncio.ensure_future(self._tick_loop())

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _tick_loop(self) -> None:
        while True:
            await self._sleep(self.tick_period)
            try:
                self.tick()
            except Exception:
                logger.warning(
                    "Tick failed at word %d", self.current_word_index, exc_info=True,
                )

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """Advance the virtual clock by one period.

        Must be called on the event loop. Returns True when the playhead
        moved to a new word during this tick.
        """
        if self._closed or self.state != PlayheadState.PLAYING:
            return False

        cursor = max(self.current_word_index, self._sync.first_word_index)
        if self._sync.needs_refill(cursor):
            self._sync.request_refill()

        self.elapsed_seconds += self.tick_period * self._audio.rate
        duration = self._audio.duration
        if duration is not None and self.elapsed_seconds > duration:
            self.elapsed_seconds = duration
        audio_step = math.floor(self.elapsed_seconds / self.tick_period + _STEP_EPSILON)

        advanced = False
        candidate = self._candidate()
        if candidate is not None and candidate > self.current_word_index:
            timestep = self._sync.timestep_at(candidate)
            if timestep is not None and timestep <= audio_step:
                self.current_word_index = candidate
                advanced = True
                self._persist(candidate)

        self._catch_up_highlight()
        return advanced

    def _candidate(self) -> Optional[int]:
        if self._sync.size == 0:
            return None
        candidate = self.current_word_index + 1
        if candidate > self._sync.last_word_index:
            candidate = self._sync.last_word_index
        if candidate < self._sync.first_word_index:
            candidate = self._sync.first_word_index
        return candidate

    def _catch_up_highlight(self) -> None:
        index = self.current_word_index
        if self._closed or index < 0 or index == self._highlighted_index:
            return
        if self._text.needs_refill(index):
            self._text.request_refill()
        span = self._text.span_of(index)
        if span is None:
            return

        self._events.highlight_word(index, span)
        self._highlighted_index = index
        if self.zoom_enabled and self._zoom is not None:
            self._zoom_to(index)
        if self._navigator is not None:
            prev, curr, nxt = self._navigator.adjacent_sentence_starts(index)
            if curr != self._sentence_start:
                self._sentence_start = curr
                self._events.sentence_boundaries(prev, curr, nxt)

    def _zoom_to(self, index: int) -> None:
        box = self._zoom.word_bounding_box(index)
        if box is None:
            return
        try:
            fit = fit_viewport(self._zoom.viewport(), box)
        except ValueError:
            logger.debug("Skipping zoom for word %d with degenerate box %s", index, box)
            return
        self._zoom.zoom_to_word(index, box, fit)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, word_index: int) -> None:
        if self._positions is None or self._book_id is None:
            return
        task = asyncio.ensure_future(
            self._positions.save_last_played_word(self._book_id, word_index)
        )
        self._persist_tasks.add(task)
        task.add_done_callback(self._on_persist_done)

    def _on_persist_done(self, task: asyncio.Task) -> None:
        self._persist_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Failed to save play position: %s", exc)

    async def flush(self) -> None:
        """Wait for outstanding position writes."""
        if self._persist_tasks:
            await asyncio.gather(*list(self._persist_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Seek
    # ------------------------------------------------------------------

    async def seek(
        self,
        word_index: int,
        start_playing: bool = False,
        char_offset: Optional[int] = None,
    ) -> bool:
        """Jump to ``word_index``, reloading both caches around it.

        Args:
            word_index: Target word.
            start_playing: Start playback once the target is loaded.
            char_offset: Where the target word starts in the document, if
                the caller knows; otherwise it is looked up.

        Returns:
            True if the target was loaded and the audio moved to it; False
            when the seek was superseded, the mapper closed, or the sync
            path has no entry for the target.
        """
        if self._closed:
            return False
        if self.state == PlayheadState.SEEKING:
            resume = self._resume_after_seek or start_playing
        else:
            resume = self.state == PlayheadState.PLAYING or start_playing

        self._seek_generation += 1
        generation = self._seek_generation
        self.state = PlayheadState.SEEKING
        self._resume_after_seek = resume

        anchor = char_offset if char_offset is not None else self._anchor(word_index)
        self._sync.reset(word_index)
        if anchor is not None:
            self._text.reset(anchor, word_index)
        else:
            self._text.reset(0, 0)
        self.current_word_index = word_index
        self._highlighted_index = -1
        self._sentence_start = None
        logger.debug("Seeking to word %d", word_index)

        await self._sync.refill()
        if self._closed or generation != self._seek_generation:
            return False

        timestep = self._sync.timestep_at(word_index)
        if timestep is None:
            logger.warning("No sync path entry for word %d", word_index)
            self._finish_seek()
            return False

        self.elapsed_seconds = timestep * self.tick_period
        self._audio.seek(self.elapsed_seconds)

        await self._text.refill()
        if self._closed or generation != self._seek_generation:
            return False

        try:
            self._catch_up_highlight()
        except Exception:
            logger.warning("Highlight failed after seek to word %d", word_index, exc_info=True)
        self._persist(word_index)
        self._finish_seek()
        return True

    def _anchor(self, word_index: int) -> Optional[int]:
        span = self._text.span_of(word_index)
        if span is not None:
            return span[0]
        if self._anchor_for is not None:
            return self._anchor_for(word_index)
        return None

    def _finish_seek(self) -> None:
        resume = self._resume_after_seek
        self._resume_after_seek = False
        if resume:
            self.state = PlayheadState.PLAYING
            if not self._audio_playing:
                self._audio.play()
                self._audio_playing = True
            self._start_timer()
        else:
            self.state = PlayheadState.IDLE
            if self._audio_playing:
                self._audio.pause()
                self._audio_playing = False
            self._stop_timer()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_timer()
        if self._audio_playing:
            self._audio.pause()
            self._audio_playing = False
        self._sync.close()
        self._text.close()
        self.state = PlayheadState.IDLE
        self._seek_generation += 1
        logger.debug("Playhead closed at word %d", self.current_word_index)
