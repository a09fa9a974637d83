"""One reading session: caches, playhead mapper and controls for a book.

WHY: The playhead, the two caches and the sentence navigator only make
sense together and only for one book at a time. Owning them in an
explicit session object (instead of shared singletons) lets several
sessions coexist and keeps teardown in one place.

HOW: ReadingSession builds the caches and the mapper from the supplied
collaborators. open() resumes from the persisted position; the transport
and skip controls translate into mapper calls; close() tears everything
down. It is also an async context manager.

RULES:
- A never-played book (no position, or -1) starts at word 0
- Reading the saved position is best-effort; failures start at word 0
- Skip controls need a navigator; without one they do nothing
- Tap-to-play accepts "word-<n>" and "pre-word-<n>" element ids only
- cycle_rate() walks RATE_OPTIONS and wraps around
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Iterable, Optional

from readalong_sync.cache.sync_path import SyncPathCache
from readalong_sync.cache.text_window import TextWindowCache
from readalong_sync.config import (
    DEFAULT_RATE_INDEX,
    RATE_OPTIONS,
    SYNC_PATH_CACHE_SIZE,
    SYNC_PATH_RELOAD_THRESHOLD,
    TEXT_CACHE_RETAIN,
    TEXT_CACHE_SIZE,
    TEXT_RELOAD_THRESHOLD,
    TIMESTEP_S,
    rate_label,
)
from readalong_sync.core.ir import Word
from readalong_sync.core.navigator import SentenceNavigator
from readalong_sync.core.segmenter import parse_word_element_id
from readalong_sync.player.interfaces import (
    AudioEngine,
    PositionStore,
    ReaderEvents,
    SyncPathSource,
    TextSource,
    ZoomCapability,
)
from readalong_sync.player.mapper import PlayheadMapper, PlayheadState

logger = logging.getLogger(__name__)


class ReadingSession:
    """Read-along playback of one book.

    Args:
        book_id: Store key of the book.
        sync_source: Paginated word → timestep store.
        text_source: Extraction of the rendered document text.
        audio: The audio engine.
        events: Receiver of highlight / sentence-boundary events.
        positions: Where the play position is saved and read back.
        navigator: Sentence lookup, required for the skip controls.
        zoom: Zoom capability of the renderer, if any.
        elements: Segmented words of the document; lets a seek re-anchor
            the text cache directly at the target word.
    """

    def __init__(
        self,
        book_id: str,
        sync_source: SyncPathSource,
        text_source: TextSource,
        audio: AudioEngine,
        events: ReaderEvents,
        positions: Optional[PositionStore] = None,
        navigator: Optional[SentenceNavigator] = None,
        zoom: Optional[ZoomCapability] = None,
        elements: Optional[Iterable[Word]] = None,
        sync_cache_size: int = SYNC_PATH_CACHE_SIZE,
        sync_reload_threshold: int = SYNC_PATH_RELOAD_THRESHOLD,
        text_cache_size: int = TEXT_CACHE_SIZE,
        text_retain_size: int = TEXT_CACHE_RETAIN,
        text_reload_threshold: int = TEXT_RELOAD_THRESHOLD,
        tick_period: float = TIMESTEP_S,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.book_id = book_id
        self._audio = audio
        self._positions = positions
        self._navigator = navigator
        self._anchors: Dict[int, int] = {}
        if elements is not None:
            for word in elements:
                if not word.is_gap:
                    self._anchors[word.index] = word.start_char

        self.sync_cache = SyncPathCache(
            sync_source, book_id, sync_cache_size, sync_reload_threshold,
        )
        self.text_cache = TextWindowCache(
            text_source, text_cache_size, text_retain_size, text_reload_threshold,
        )
        self.mapper = PlayheadMapper(
            self.sync_cache,
            self.text_cache,
            audio,
            events,
            book_id=book_id,
            positions=positions,
            zoom=zoom,
            navigator=navigator,
            anchor_for=self._anchors.get if self._anchors else None,
            tick_period=tick_period,
            sleep=sleep,
        )
        self._rate_index = DEFAULT_RATE_INDEX
        self._audio.rate = RATE_OPTIONS[self._rate_index]

    async def __aenter__(self) -> ReadingSession:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()

    @property
    def current_word_index(self) -> int:
        return self.mapper.current_word_index

    @property
    def is_playing(self) -> bool:
        return self.mapper.state == PlayheadState.PLAYING

    @property
    def rate_label(self) -> str:
        return rate_label(self._rate_index)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> int:
        """Load the saved position and seek there. Returns the start word."""
        start = 0
        if self._positions is not None:
            try:
                saved = await self._positions.get_last_played_word(self.book_id)
            except Exception:
                logger.warning("Could not read play position for book %s", self.book_id, exc_info=True)
                saved = None
            if saved is not None and saved >= 0:
                start = saved
        logger.info("Opening book %s at word %d", self.book_id, start)
        await self.mapper.seek(start)
        return start

    async def close(self) -> None:
        self.mapper.close()
        await self.mapper.flush()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self) -> None:
        self.mapper.play()

    def pause(self) -> None:
        self.mapper.pause()

    def toggle_play(self) -> None:
        if self.is_playing:
            self.pause()
        else:
            self.play()

    def handle_elapsed(self, seconds: float) -> None:
        """Callback for the audio engine's elapsed-time notifications."""
        self.mapper.sync_elapsed(seconds)

    def cycle_rate(self) -> str:
        """Switch to the next playback rate and return its label."""
        self._rate_index = (self._rate_index + 1) % len(RATE_OPTIONS)
        self._audio.rate = RATE_OPTIONS[self._rate_index]
        return self.rate_label

    def set_zoom_mode(self, enabled: bool) -> None:
        self.mapper.zoom_enabled = enabled

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def seek_to_word(self, word_index: int, start_playing: bool = False) -> bool:
        return await self.mapper.seek(word_index, start_playing=start_playing)

    async def skip_backward(self) -> Optional[int]:
        if self._navigator is None:
            return None
        target = self._navigator.skip_backward_target(self.current_word_index)
        if target is None:
            return None
        await self.mapper.seek(target)
        return target

    async def skip_forward(self) -> Optional[int]:
        if self._navigator is None:
            return None
        target = self._navigator.skip_forward_target(self.current_word_index)
        if target is None:
            return None
        await self.mapper.seek(target)
        return target

    async def play_from_element(self, element_id: Optional[str]) -> bool:
        """Start playing from a tapped or selected word element."""
        word_index = parse_word_element_id(element_id)
        if word_index is None:
            logger.info("Cannot play from selection %r: not a word element", element_id)
            return False
        return await self.mapper.seek(word_index, start_playing=True)
