"""In-memory book store and text source.

WHY: The caches and the session consume a paginated sync path store, a
position store and a text source through narrow async interfaces. The
HTTP server, the CLI simulation and the tests all need a concrete,
dependency-free implementation of those interfaces; a dict-backed store
is enough for a single-process tool.

HOW: InMemoryBookStore keeps, per book id, the sync path rows sorted by
word index and the last played word. All access goes through a
threading.Lock because the FastAPI app serves requests from a thread pool
as well as the event loop. A sync path is a contiguous run of word ids
that may start above zero; a page holds the first `limit` rows whose
word id is at least `offset`, which is SQL LIMIT/OFFSET when the run
starts at word 0. StringTextSource serves extract() calls from
a string held in memory.

RULES:
- query_sync_path() raises BookNotFoundError for an unknown book
- Rows are replaced wholesale by set_sync_path(); never merged
- Word ids with gaps are rejected with ValueError
- Offsets/limits below zero are rejected with ValueError
- get_last_played_word() returns None for a book never played
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

SyncPathRow = Tuple[int, int]


class BookNotFoundError(KeyError):
    """Raised when a book id has no sync path in the store."""

    def __init__(self, book_id: str) -> None:
        self.book_id = book_id
        super().__init__(book_id)

    def __str__(self) -> str:
        return "No sync path stored for book '{}'".format(self.book_id)


class InMemoryBookStore:
    """Thread-safe store of sync paths and play positions."""

    def __init__(self) -> None:
        self._sync_paths: Dict[str, List[SyncPathRow]] = {}
        self._positions: Dict[str, int] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Sync path
    # ------------------------------------------------------------------

    def set_sync_path(self, book_id: str, rows: Iterable[SyncPathRow]) -> int:
        """Replace the sync path of ``book_id``; returns the row count."""
        ordered = sorted((int(w), int(t)) for w, t in rows)
        for (prev, _), (word, _) in zip(ordered, ordered[1:]):
            if word != prev + 1:
                raise ValueError(
                    "sync path word ids must be contiguous: word {} follows word {}".format(word, prev)
                )
        with self._lock:
            self._sync_paths[book_id] = ordered
        logger.info("Stored %d sync path rows for book %s", len(ordered), book_id)
        return len(ordered)

    def has_book(self, book_id: str) -> bool:
        with self._lock:
            return book_id in self._sync_paths

    def row_count(self, book_id: str) -> int:
        with self._lock:
            rows = self._sync_paths.get(book_id)
        if rows is None:
            raise BookNotFoundError(book_id)
        return len(rows)

    def delete_book(self, book_id: str) -> bool:
        with self._lock:
            found = self._sync_paths.pop(book_id, None) is not None
            self._positions.pop(book_id, None)
        return found

    def page(self, book_id: str, limit: int, offset: int) -> Tuple[int, List[int]]:
        """Synchronous page query used by both the async API and the server.

        Returns the first ``limit`` rows whose word id is at least ``offset``.
        """
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must not be negative")
        with self._lock:
            rows = self._sync_paths.get(book_id)
            if rows is None:
                raise BookNotFoundError(book_id)
            start = max(0, offset - rows[0][0]) if rows else 0
            window = rows[start:start + limit]
        min_word_index = window[0][0] if window else 0
        return min_word_index, [timestep for _, timestep in window]

    async def query_sync_path(
        self, book_id: str, limit: int, offset: int,
    ) -> Tuple[int, List[int]]:
        return self.page(book_id, limit, offset)

    # ------------------------------------------------------------------
    # Play position
    # ------------------------------------------------------------------

    def set_position(self, book_id: str, word_index: int) -> None:
        with self._lock:
            self._positions[book_id] = word_index

    def position(self, book_id: str) -> Optional[int]:
        with self._lock:
            return self._positions.get(book_id)

    async def save_last_played_word(self, book_id: str, word_index: int) -> None:
        self.set_position(book_id, word_index)

    async def get_last_played_word(self, book_id: str) -> Optional[int]:
        return self.position(book_id)


class StringTextSource:
    """TextSource over a document held in memory."""

    def __init__(self, text: str) -> None:
        self._text = text

    def __len__(self) -> int:
        return len(self._text)

    async def extract(self, char_offset: int, length: int) -> str:
        if char_offset < 0 or length < 0:
            raise ValueError("char_offset and length must not be negative")
        return self._text[char_offset:char_offset + length]
