"""Shared test fixtures for the readalong_sync test suite.

WHY: The segmenter, navigator, caches, mapper and session tests all need
the same small documents, sync paths and collaborator doubles. Keeping
them here means every module is tested against identical data.

HOW: Plain module-level constants for the sample data plus small fake
classes for the audio engine, the event sink and the zoom capability.
Fixtures build fresh instances per test.

RULES:
- SAMPLE_TEXT numbers its words 0..4: This is | A very complete
- COUNTED_TEXT has 17 words, word<N> at index N, sentence every 5 words
- SCENARIO_ROWS holds only words 10..16, timed [0, 0, 0, 5, 5, 12, 20]
- never_wake() is a tick-task sleep that never returns, so tests drive
  PlayheadMapper.tick() by hand
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

import pytest

from readalong_sync.core.ir import Rect, Viewport
from readalong_sync.storage.memory import InMemoryBookStore, StringTextSource

# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------

SAMPLE_TEXT = "This is. A very complete."


def _counted_text(count: int) -> str:
    parts = []
    for i in range(count):
        sep = ". " if i % 5 == 4 else " "
        parts.append("word{}{}".format(i, sep))
    return "".join(parts).rstrip() + "."


COUNTED_TEXT = _counted_text(17)

# ---------------------------------------------------------------------------
# Sync paths
# ---------------------------------------------------------------------------

# The table starts at word 10; words 0..9 have no entry.
SCENARIO_ROWS: List[Tuple[int, int]] = list(zip(range(10, 17), [0, 0, 0, 5, 5, 12, 20]))

# One word every 5 timesteps (100 ms).
LINEAR_ROWS: List[Tuple[int, int]] = [(i, i * 5) for i in range(17)]

BOOK_ID = "book-1"


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class FakeAudio:
    """Audio engine double recording transport calls."""

    def __init__(self, duration: Optional[float] = None) -> None:
        self.rate = 1.0
        self.duration = duration
        self.calls: List[Tuple] = []

    def play(self) -> None:
        self.calls.append(("play",))

    def pause(self) -> None:
        self.calls.append(("pause",))

    def seek(self, seconds: float) -> None:
        self.calls.append(("seek", seconds))


class RecordingEvents:
    """ReaderEvents double recording every event in order."""

    def __init__(self) -> None:
        self.highlights: List[Tuple[int, Tuple[int, int]]] = []
        self.boundaries: List[Tuple[Optional[int], Optional[int], Optional[int]]] = []

    def highlight_word(self, word_index: int, span: Tuple[int, int]) -> None:
        self.highlights.append((word_index, span))

    def sentence_boundaries(self, prev, curr, next_) -> None:  # noqa: ANN001
        self.boundaries.append((prev, curr, next_))

    @property
    def highlighted_indices(self) -> List[int]:
        return [i for i, _ in self.highlights]


class FakeZoom:
    """ZoomCapability double: every word is a 40x20 box on one line."""

    def __init__(self, viewport: Optional[Viewport] = None) -> None:
        self._viewport = viewport or Viewport(300, 200, 1.0, 3.0, 1000, 500)
        self.zooms: List[Tuple] = []

    def viewport(self) -> Viewport:
        return self._viewport

    def word_bounding_box(self, word_index: int) -> Optional[Rect]:
        return Rect(x=word_index * 50.0, y=10.0, width=40.0, height=20.0)

    def zoom_to_word(self, word_index, box, fit) -> None:  # noqa: ANN001
        self.zooms.append((word_index, box, fit))


async def never_wake(delay: float) -> None:
    """Tick-task sleep that never returns; the test calls tick() itself."""
    await asyncio.get_running_loop().create_future()


async def settle(rounds: int = 5) -> None:
    """Let background refill tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def book_store():
    """InMemoryBookStore holding SCENARIO_ROWS under BOOK_ID."""
    store = InMemoryBookStore()
    store.set_sync_path(BOOK_ID, SCENARIO_ROWS)
    return store


@pytest.fixture
def counted_source():
    return StringTextSource(COUNTED_TEXT)


@pytest.fixture
def fake_audio():
    return FakeAudio()


@pytest.fixture
def events():
    return RecordingEvents()
