"""Headless playback of a book against a simulated audio clock.

WHY: Checking a sync path against its text should not need a renderer or
an audio device. Running the real session, caches and mapper over an
in-memory store with a clock that does not wait shows exactly which
word would be highlighted when, in a fraction of the real duration.

HOW: run_simulation() loads the rows into an InMemoryBookStore, segments
the text, and opens a ReadingSession whose tick task sleeps through
SimulatedClock (one loop iteration per tick instead of 20 ms). Highlight
events are recorded as HighlightRecords and optionally streamed to a
callback. The run ends when the last synced word is highlighted or the
tick budget is spent.

RULES:
- The audio duration is one timestep past the last word's start
- The default tick budget covers the audio at the given rate plus one
  tick per word, so the run always terminates
- The session is closed on every exit path
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from readalong_sync.config import TIMESTEP_S
from readalong_sync.core.navigator import SentenceNavigator
from readalong_sync.core.segmenter import segment_text
from readalong_sync.player.session import ReadingSession
from readalong_sync.storage.memory import InMemoryBookStore, StringTextSource

logger = logging.getLogger(__name__)


@dataclass
class HighlightRecord:
    word_index: int
    text: str
    elapsed_seconds: float


@dataclass
class SimulationResult:
    highlights: List[HighlightRecord] = field(default_factory=list)
    sentence_starts: List[int] = field(default_factory=list)
    ticks: int = 0
    final_word_index: int = -1
    elapsed_seconds: float = 0.0


class SimulatedAudioEngine:
    """Audio engine stand-in that only records transport calls."""

    def __init__(self, duration: Optional[float] = None, rate: float = 1.0) -> None:
        self.duration = duration
        self.rate = rate
        self.playing = False
        self.position = 0.0

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def seek(self, seconds: float) -> None:
        self.position = seconds


class SimulatedClock:
    """Drop-in for asyncio.sleep that yields once instead of waiting."""

    def __init__(self, max_ticks: Optional[int], expired: asyncio.Event) -> None:
        self.ticks = 0
        self.max_ticks = max_ticks
        self._expired = expired

    async def __call__(self, delay: float) -> None:
        self.ticks += 1
        if self.max_ticks is not None and self.ticks >= self.max_ticks:
            self._expired.set()
        await asyncio.sleep(0)


class _RecordingEvents:
    def __init__(
        self,
        text: str,
        last_word_index: int,
        finished: asyncio.Event,
        result: SimulationResult,
        on_highlight: Optional[Callable[[HighlightRecord], None]],
    ) -> None:
        self._text = text
        self._last_word_index = last_word_index
        self._finished = finished
        self._result = result
        self._on_highlight = on_highlight
        self.elapsed: Callable[[], float] = lambda: 0.0

    def highlight_word(self, word_index: int, span: Tuple[int, int]) -> None:
        record = HighlightRecord(word_index, self._text[span[0]:span[1]], self.elapsed())
        self._result.highlights.append(record)
        if self._on_highlight is not None:
            self._on_highlight(record)
        if word_index >= self._last_word_index:
            self._finished.set()

    def sentence_boundaries(
        self, prev: Optional[int], curr: Optional[int], next_: Optional[int],
    ) -> None:
        if curr is not None:
            self._result.sentence_starts.append(curr)


async def run_simulation(
    text: str,
    rows: Sequence[Tuple[int, int]],
    start_word: Optional[int] = None,
    rate: float = 1.0,
    max_ticks: Optional[int] = None,
    on_highlight: Optional[Callable[[HighlightRecord], None]] = None,
    book_id: str = "simulation",
) -> SimulationResult:
    """Play ``text`` against the sync path ``rows`` without real time passing.

    Args:
        text: The document text, numbered the way the reader numbers it.
        rows: (word index, start timestep) pairs.
        start_word: Word to start from; None starts at the first synced word.
        rate: Playback rate multiplier.
        max_ticks: Tick budget; None derives one from the sync path.
        on_highlight: Called for every highlight as it happens.

    Raises:
        ValueError: If rows is empty or rate is not positive.
    """
    if not rows:
        raise ValueError("Sync path is empty")
    if rate <= 0:
        raise ValueError("rate must be positive")

    store = InMemoryBookStore()
    store.set_sync_path(book_id, rows)
    if start_word is None:
        start_word = min(word for word, _ in rows)
    store.set_position(book_id, start_word)

    last_word_index = max(word for word, _ in rows)
    last_timestep = max(timestep for _, timestep in rows)
    if max_ticks is None:
        max_ticks = math.ceil((last_timestep + 1) / rate) + last_word_index + 50

    segmented = segment_text(text)
    result = SimulationResult()
    finished = asyncio.Event()
    events = _RecordingEvents(text, last_word_index, finished, result, on_highlight)
    clock = SimulatedClock(max_ticks, finished)
    audio = SimulatedAudioEngine(duration=(last_timestep + 1) * TIMESTEP_S)

    session = ReadingSession(
        book_id,
        store,
        StringTextSource(text),
        audio,
        events,
        positions=store,
        navigator=SentenceNavigator(segmented.sentences),
        elements=segmented.elements,
        sleep=clock,
    )
    audio.rate = rate
    events.elapsed = lambda: session.mapper.elapsed_seconds

    try:
        await session.open()
        if not finished.is_set():
            session.play()
            await finished.wait()
    finally:
        await session.close()

    if not result.highlights or result.highlights[-1].word_index < last_word_index:
        logger.warning("Simulation stopped after %d ticks before the last word", clock.ticks)
    result.ticks = clock.ticks
    result.final_word_index = session.current_word_index
    result.elapsed_seconds = session.mapper.elapsed_seconds
    return result
