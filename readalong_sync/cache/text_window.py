"""Sliding window over the rendered document text with derived word spans.

WHY: The highlight needs the character span of the spoken word, but the
rendered document is only reachable through an offset/length text
extraction, which is asynchronous and too slow to call per tick. Keeping
a window of raw text and indexing its words as it is loaded makes span
lookups for the words around the playhead free.

HOW: Same shape as the sync path window. A refill keeps the last
``retain_size`` characters, widened back to the start of the open word
and of the last ``reload_threshold`` resolved words, extracts the next
``cache_size - retained`` characters (at least ``cache_size -
retain_size``) and appends them. While appending, the new characters are
scanned for runs of word characters (the segmenter's own predicate):
a gap→word transition opens a span for the next word index, a word→gap
transition closes it. A word still open at the end of a chunk stays open
and is extended by the next refill rather than restarted. A short
extraction means the end of the document, which closes any open word.

RULES:
- The window starts at a word boundary given to reset()
- span_of() returns None for a word whose end is not known yet, or whose
  span is not entirely inside the current buffer
- Spans are absolute document character offsets, end exclusive
- A word cut by a chunk boundary is never dropped from the buffer before
  it resolves; the buffer may exceed cache_size to hold it
- At most one refill in flight; stale completions after reset() are dropped
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from readalong_sync.cache.window import RefillGate
from readalong_sync.config import TEXT_CACHE_RETAIN, TEXT_CACHE_SIZE, TEXT_RELOAD_THRESHOLD
from readalong_sync.core.segmenter import WORD_RUN_RE
from readalong_sync.player.interfaces import TextSource

logger = logging.getLogger(__name__)

Span = Tuple[int, int]


class TextWindowCache:
    """Window of document text plus word-index → char-span table."""

    def __init__(
        self,
        source: TextSource,
        cache_size: int = TEXT_CACHE_SIZE,
        retain_size: int = TEXT_CACHE_RETAIN,
        reload_threshold: int = TEXT_RELOAD_THRESHOLD,
    ) -> None:
        if retain_size < 0 or reload_threshold < 0:
            raise ValueError("retain_size and reload_threshold must not be negative")
        if cache_size <= retain_size:
            raise ValueError(
                "cache_size ({}) must be larger than retain_size ({})".format(
                    cache_size, retain_size
                )
            )
        self._source = source
        self.cache_size = cache_size
        self.retain_size = retain_size
        self.reload_threshold = reload_threshold
        self._gate = RefillGate()
        self._buffer = ""
        self._first_char = 0
        self._next_char = 0
        self._spans: Dict[int, Tuple[int, Optional[int]]] = {}
        self._next_word_index = 0
        self._open_word: Optional[int] = None
        self._exhausted = False

    @property
    def first_char_index(self) -> int:
        return self._first_char

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def refilling(self) -> bool:
        return self._gate.in_flight

    def span_of(self, word_index: int) -> Optional[Span]:
        entry = self._spans.get(word_index)
        if entry is None:
            return None
        start, end = entry
        if end is None:
            return None
        if start < self._first_char or end > self._first_char + len(self._buffer):
            return None
        return start, end

    def text_of(self, word_index: int) -> Optional[str]:
        span = self.span_of(word_index)
        if span is None:
            return None
        return self._buffer[span[0] - self._first_char:span[1] - self._first_char]

    def resolved_range(self) -> Optional[Tuple[int, int]]:
        """(lowest, highest) word index whose span is resolvable, or None."""
        indices = [i for i in self._spans if self.span_of(i) is not None]
        if not indices:
            return None
        return min(indices), max(indices)

    def needs_refill(self, word_index: int) -> bool:
        """True when ``word_index`` is near or past the last resolved word."""
        if self._exhausted or self._gate.closed:
            return False
        resolved = self.resolved_range()
        if resolved is None:
            return True
        return word_index > resolved[1] - self.reload_threshold

    def reset(self, char_offset: int = 0, first_word_index: int = 0) -> None:
        """Restart the window at ``char_offset``.

        The first word found at or after ``char_offset`` is numbered
        ``first_word_index``; the offset must not fall inside a word.
        """
        self._gate.invalidate()
        self._buffer = ""
        self._first_char = char_offset
        self._next_char = char_offset
        self._spans = {}
        self._next_word_index = first_word_index
        self._open_word = None
        self._exhausted = False
        logger.debug(
            "Text cache reset to char %d (word %d)", char_offset, first_word_index,
        )

    def request_refill(self) -> bool:
        generation = self._gate.try_acquire()
        if generation is None:
            return False
        self._gate.spawn(self._run_refill(generation))
        return True

    async def refill(self) -> bool:
        generation = self._gate.try_acquire()
        if generation is None:
            return False
        return await self._run_refill(generation)

    def close(self) -> None:
        self._gate.close()

    def _retain_from(self) -> int:
        """Lowest buffered char the next refill has to keep.

        The retain tail is widened back to the start of the open word and
        of the last ``reload_threshold`` resolved words, so a word longer
        than the tail stays resolvable.
        """
        end = self._first_char + len(self._buffer)
        keep = end - min(self.retain_size, len(self._buffer))
        starts: List[int] = []
        if self.reload_threshold:
            resolved = sorted(i for i in self._spans if self.span_of(i) is not None)
            starts.extend(self._spans[i][0] for i in resolved[-self.reload_threshold:])
        if self._open_word is not None:
            starts.append(self._spans[self._open_word][0])
        if starts:
            keep = min(keep, min(starts))
        return max(keep, self._first_char)

    async def _run_refill(self, generation: int) -> bool:
        retained = self._first_char + len(self._buffer) - self._retain_from()
        limit = max(self.cache_size - retained, self.cache_size - self.retain_size)
        offset = self._next_char
        try:
            chunk = await self._source.extract(offset, limit)
            if not self._gate.is_current(generation):
                logger.debug("Dropping stale text extraction at char %d", offset)
                return False
            self._apply(offset, retained, limit, chunk or "")
            return True
        except Exception:
            logger.warning("Text extraction failed at char %d", offset, exc_info=True)
            return False
        finally:
            self._gate.release(generation)

    def _apply(self, offset: int, retained: int, limit: int, chunk: str) -> None:
        if len(chunk) > limit:
            chunk = chunk[:limit]
        kept = self._buffer[len(self._buffer) - retained:] if retained else ""
        self._buffer = kept + chunk
        self._first_char = offset - retained
        self._next_char = offset + len(chunk)

        self._index_words(offset, chunk)
        if len(chunk) < limit:
            self._exhausted = True
            self._close_open_word(offset + len(chunk))

        # Spans that slid out of the buffer can never resolve again.
        stale: List[int] = [
            i for i, (start, end) in self._spans.items()
            if end is not None and start < self._first_char
        ]
        for i in stale:
            del self._spans[i]

    def _index_words(self, offset: int, chunk: str) -> None:
        cursor = 0
        for match in WORD_RUN_RE.finditer(chunk):
            if match.start() > cursor:
                self._close_open_word(offset + cursor)
            if self._open_word is None:
                self._open_word = self._next_word_index
                self._spans[self._open_word] = (offset + match.start(), None)
            cursor = match.end()
            if cursor < len(chunk):
                self._close_open_word(offset + cursor)
        if cursor < len(chunk):
            self._close_open_word(offset + cursor)

    def _close_open_word(self, end: int) -> None:
        if self._open_word is None:
            return
        start, _ = self._spans[self._open_word]
        self._spans[self._open_word] = (start, end)
        self._open_word = None
        self._next_word_index += 1
