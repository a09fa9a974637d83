"""Sentence-level navigation for the skip backward / skip forward controls.

WHY: Readers skip by sentence, not by word. The controls need the first
word of the previous, current and next sentence around the playhead,
e.g. for "...This is. A |very| complete. Full sentence..." with the
playhead on "very", the starts of "This", "A" and "Full".

HOW: Sentences come from the segmenter already in document order, so
their first-word indices are sorted. A bisect over those starts finds the
sentence holding a word in O(log n).

RULES:
- first_word_of_sentence / last_word_of_sentence return None for an
  index outside every sentence
- prev is None when the current sentence is the first one
- next is last_word_of_sentence + 1, which may equal end_index
  (one past the last word) for the final sentence
- skip_forward_target refuses to go past the last word
"""

from __future__ import annotations

import bisect
from typing import List, Optional, Sequence, Tuple

from readalong_sync.core.ir import Sentence


class SentenceNavigator:
    """Looks up sentence boundaries around a word index."""

    def __init__(self, sentences: Sequence[Sentence]) -> None:
        self._sentences: List[Sentence] = list(sentences)
        self._starts: List[int] = [s.first_word_index for s in self._sentences]

    @property
    def end_index(self) -> int:
        """One past the last real word covered by the navigator."""
        if not self._sentences:
            return 0
        return self._sentences[-1].last_word_index + 1

    def _find(self, word_index: int) -> Optional[int]:
        pos = bisect.bisect_right(self._starts, word_index) - 1
        if pos < 0:
            return None
        if word_index > self._sentences[pos].last_word_index:
            return None
        return pos

    def first_word_of_sentence(self, word_index: int) -> Optional[int]:
        pos = self._find(word_index)
        if pos is None:
            return None
        return self._starts[pos]

    def last_word_of_sentence(self, word_index: int) -> Optional[int]:
        pos = self._find(word_index)
        if pos is None:
            return None
        return self._sentences[pos].last_word_index

    def adjacent_sentence_starts(
        self, word_index: int,
    ) -> Tuple[Optional[int], Optional[int], Optional[int]]:
        """Return (prev, curr, next) sentence starts around ``word_index``."""
        curr = self.first_word_of_sentence(word_index)
        if curr is None:
            return None, None, None
        prev = self.first_word_of_sentence(curr - 1)
        last = self.last_word_of_sentence(word_index)
        nxt = last + 1 if last is not None else None
        return prev, curr, nxt

    def skip_backward_target(self, word_index: int) -> Optional[int]:
        """Start of the current sentence, or of the previous one when
        the playhead already sits on the current sentence's first word."""
        prev, curr, _ = self.adjacent_sentence_starts(word_index)
        if curr is None:
            return None
        if curr == word_index:
            return prev
        return curr

    def skip_forward_target(self, word_index: int) -> Optional[int]:
        _, _, nxt = self.adjacent_sentence_starts(word_index)
        if nxt is None or nxt >= self.end_index:
            return None
        return nxt
