"""Data structures shared by the segmenter, navigator, caches and renderer.

WHY: Word indices are the one key every part of the system agrees on:
the sync table is keyed by them, the renderer tags elements with them,
and the last played position is persisted as one. Having a single typed
representation of words and sentences keeps those consumers honest.

HOW: Small dataclasses:
  Word         : one word or separator gap with its index and char span
  Sentence     : ordered run of Words closed by ".", "!" or "?" (or end)
  SegmentedText: the output of one segmentation pass
  Rect         : a word bounding box in content coordinates
  Viewport     : frame size, zoom limits and optional content bounds

RULES:
- Word.index is zero-based and global across sections of one work
- A gap carries the index of the word that follows it
- Every real word belongs to exactly one sentence
- start_char/end_char are offsets into the text given to the segmenter,
  shifted by the section's char_offset
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Word:
    """A single word or separator span.

    RULES:
    - is_gap=False: a maximal run of word characters, highlightable
    - is_gap=True: a maximal run of separator characters, never highlighted
    - end_char is exclusive
    """

    index: int
    text: str
    is_gap: bool
    start_char: int
    end_char: int

    @property
    def element_id(self) -> str:
        """Renderer identifier: ``word-<n>`` or ``pre-word-<n>``."""
        prefix = "pre-word" if self.is_gap else "word"
        return "{}-{}".format(prefix, self.index)


@dataclass
class Sentence:
    """An ordered, non-empty run of Words (gaps included)."""

    words: List[Word] = field(default_factory=list)

    @property
    def first_word_index(self) -> int:
        for word in self.words:
            if not word.is_gap:
                return word.index
        return self.words[0].index

    @property
    def last_word_index(self) -> int:
        """Index of the last real word; a trailing gap does not count."""
        for word in reversed(self.words):
            if not word.is_gap:
                return word.index
        return self.words[-1].index - 1

    @property
    def text(self) -> str:
        return "".join(w.text for w in self.words).strip()

    def contains(self, word_index: int) -> bool:
        return self.first_word_index <= word_index <= self.last_word_index


@dataclass
class SegmentedText:
    """Result of segmenting one section of a document.

    RULES:
    - elements: words and gaps in document order
    - sentences: partition of elements; empty when there are no real words
    - start_index: the first word index handed out
    - next_index: the index the following section should start from
    """

    elements: List[Word]
    sentences: List[Sentence]
    start_index: int
    next_index: int

    @property
    def words(self) -> List[Word]:
        """Real words only, gaps dropped."""
        return [w for w in self.elements if not w.is_gap]

    @property
    def word_count(self) -> int:
        return self.next_index - self.start_index

    def word_at(self, word_index: int) -> Optional[Word]:
        pos = word_index - self.start_index
        words = self.words
        if 0 <= pos < len(words):
            return words[pos]
        return None


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in content coordinates."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Viewport:
    """Visible frame and the limits the zoom calculation must respect.

    container_width/container_height are the full content size; when None
    the offset in that dimension is left unclamped.
    """

    frame_width: float
    frame_height: float
    min_zoom: float
    max_zoom: float
    container_width: Optional[float] = None
    container_height: Optional[float] = None
