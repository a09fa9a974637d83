"""Narrow interfaces to the collaborators the synchronisation core consumes.

WHY: The store, the document renderer and the audio engine all live
outside this package. The caches and the mapper only need a handful of
calls from each, and spelling those out as protocols lets the session be
wired to a database, an HTTP API or a test double without any runtime
type inspection. Zoom support is a separate capability handed in at
construction; a renderer that cannot zoom simply does not supply one.

RULES:
- Store and text calls are async; they may be slow and may fail
- Audio engine and event sink calls are sync and must return promptly
- A missing capability is passed as None, never probed for
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Tuple

from readalong_sync.core.ir import Rect, Viewport
from readalong_sync.core.viewport import ViewportFit


class SyncPathSource(Protocol):
    async def query_sync_path(
        self, book_id: str, limit: int, offset: int,
    ) -> Tuple[int, List[int]]:
        """Return (min word index, timesteps) ordered by word index."""


class PositionStore(Protocol):
    async def save_last_played_word(self, book_id: str, word_index: int) -> None:
        ...

    async def get_last_played_word(self, book_id: str) -> Optional[int]:
        ...


class TextSource(Protocol):
    async def extract(self, char_offset: int, length: int) -> str:
        """Up to ``length`` characters from ``char_offset``; fewer at the end."""


class AudioEngine(Protocol):
    rate: float
    duration: Optional[float]

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def seek(self, seconds: float) -> None:
        ...


class ReaderEvents(Protocol):
    def highlight_word(self, word_index: int, span: Tuple[int, int]) -> None:
        ...

    def sentence_boundaries(
        self, prev: Optional[int], curr: Optional[int], next_: Optional[int],
    ) -> None:
        ...


class ZoomCapability(Protocol):
    def viewport(self) -> Viewport:
        ...

    def word_bounding_box(self, word_index: int) -> Optional[Rect]:
        ...

    def zoom_to_word(self, word_index: int, box: Rect, fit: ViewportFit) -> None:
        ...
