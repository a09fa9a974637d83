"""Sliding window over the paginated word-index → audio-timestep table.

WHY: A book's sync path has one row per word, far too many to hold for
a long work, and far too slow to query on every 20 ms tick. The playhead
only ever needs the few words around it, so a small window is kept in
memory and slid forward as playback advances.

HOW: The window is a fixed-capacity deque. A refill keeps the last
``reload_threshold`` entries (they are the ones the playhead is reading),
fetches the next ``cache_size - retained`` rows from the store starting
at ``offset``, and appends them:

    [~~~~~~~|###]  ->  [###|_______]  ->  [###|#######]

first_word_index is recomputed as ``offset - retained`` and the offset
advances by the number of rows received. A short page means the end of
the table: the window shrinks to what was actually fetched and no further
refills are attempted until the next reset().

A page whose first word lies above the requested offset is accepted only
into an empty window: the table simply starts later than asked, so the
window is re-anchored at that word. Into a non-empty window such a page
would leave a hole, so it is refused and the window is frozen.

RULES:
- len(window) <= cache_size, always
- first_word_index + len(window) - 1 is the highest fetched word index
- timestep_at() returns None for any index outside the window
- At most one refill in flight; extra requests are dropped
- A refill completing after reset()/close() is discarded
- Store failures are logged and leave the window untouched
- Window entries always belong to consecutive word indices
"""

from __future__ import annotations

import collections
import logging
from typing import Deque, List, Optional

from readalong_sync.cache.window import RefillGate
from readalong_sync.config import SYNC_PATH_CACHE_SIZE, SYNC_PATH_RELOAD_THRESHOLD
from readalong_sync.player.interfaces import SyncPathSource

logger = logging.getLogger(__name__)


class SyncPathCache:
    """Window of audio timesteps for a contiguous run of word indices."""

    def __init__(
        self,
        source: SyncPathSource,
        book_id: str,
        cache_size: int = SYNC_PATH_CACHE_SIZE,
        reload_threshold: int = SYNC_PATH_RELOAD_THRESHOLD,
    ) -> None:
        if reload_threshold < 0:
            raise ValueError("reload_threshold must not be negative")
        if cache_size <= reload_threshold:
            raise ValueError(
                "cache_size ({}) must be larger than reload_threshold ({})".format(
                    cache_size, reload_threshold
                )
            )
        self._source = source
        self._book_id = book_id
        self.cache_size = cache_size
        self.reload_threshold = reload_threshold
        self._gate = RefillGate()
        self._window: Deque[int] = collections.deque(maxlen=cache_size)
        self._first_word_index = 0
        self._offset = 0
        self._exhausted = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def first_word_index(self) -> int:
        return self._first_word_index

    @property
    def last_word_index(self) -> int:
        """Highest word index in the window (first - 1 when empty)."""
        return self._first_word_index + len(self._window) - 1

    @property
    def offset(self) -> int:
        """Next word index to fetch from the store."""
        return self._offset

    @property
    def size(self) -> int:
        return len(self._window)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def refilling(self) -> bool:
        return self._gate.in_flight

    def window(self) -> List[int]:
        return list(self._window)

    def contains(self, word_index: int) -> bool:
        return self._first_word_index <= word_index <= self.last_word_index

    def timestep_at(self, word_index: int) -> Optional[int]:
        if not self.contains(word_index):
            return None
        return self._window[word_index - self._first_word_index]

    def needs_refill(self, cursor: int) -> bool:
        """True when ``cursor`` is within reload_threshold of the window end."""
        if self._exhausted or self._gate.closed:
            return False
        if not self._window:
            return True
        return cursor - self._first_word_index >= len(self._window) - self.reload_threshold

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def reset(self, word_index: int) -> None:
        """Drop the window and restart fetching at ``word_index``."""
        self._gate.invalidate()
        self._window.clear()
        self._first_word_index = word_index
        self._offset = word_index
        self._exhausted = False
        logger.debug("Sync path cache reset to word %d", word_index)

    def request_refill(self) -> bool:
        """Start a background refill unless one is already running."""
        generation = self._gate.try_acquire()
        if generation is None:
            return False
        self._gate.spawn(self._run_refill(generation))
        return True

    async def refill(self) -> bool:
        """Refill now and wait for it; False if dropped, stale or failed."""
        generation = self._gate.try_acquire()
        if generation is None:
            return False
        return await self._run_refill(generation)

    def close(self) -> None:
        self._gate.close()

    async def _run_refill(self, generation: int) -> bool:
        retained = min(self.reload_threshold, len(self._window))
        limit = self.cache_size - retained
        offset = self._offset
        try:
            min_word_index, timesteps = await self._source.query_sync_path(
                self._book_id, limit, offset,
            )
            if not self._gate.is_current(generation):
                logger.debug("Dropping stale sync path page at offset %d", offset)
                return False
            return self._apply(offset, retained, limit, min_word_index, list(timesteps))
        except Exception:
            logger.warning(
                "Sync path refill failed for book %s at offset %d",
                self._book_id, offset, exc_info=True,
            )
            return False
        finally:
            self._gate.release(generation)

    def _apply(
        self,
        offset: int,
        retained: int,
        limit: int,
        min_word_index: int,
        timesteps: List[int],
    ) -> bool:
        if len(timesteps) > limit:
            logger.warning(
                "Store returned %d rows for a page of %d; extra rows ignored",
                len(timesteps), limit,
            )
            timesteps = timesteps[:limit]
        if timesteps and min_word_index != offset:
            if self._window or min_word_index < offset:
                logger.warning(
                    "Page at offset %d starts at word %d; keeping words %d..%d",
                    offset, min_word_index, self._first_word_index, self.last_word_index,
                )
                self._exhausted = True
                return False
            logger.debug(
                "Sync path for book %s starts at word %d", self._book_id, min_word_index,
            )
            offset = min_word_index

        kept = list(self._window)[len(self._window) - retained:] if retained else []
        self._window = collections.deque(kept + timesteps, maxlen=self.cache_size)
        self._first_word_index = offset - retained
        self._offset = offset + len(timesteps)
        if len(timesteps) < limit:
            self._exhausted = True

        logger.debug(
            "Sync path window now covers words %d..%d",
            self._first_word_index, self.last_word_index,
        )
        return True
