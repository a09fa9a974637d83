"""Word and sentence segmentation with globally stable word indices.

WHY: The sync table, the text cache, the renderer tags and the persisted
play position all refer to words by index. Those indices are only useful
if every party derives them the same way from the same text, so the
splitting rule lives here, once, and the text cache reuses its predicate.

HOW: The text is tokenised into alternating maximal runs of word
characters and separator characters. Word runs get consecutive indices;
each separator run (gap) is tagged with the index of the word that
follows it. Sentences are closed by a gap containing ".", "!" or "?".
WordSegmenter numbers several sections in a row and remembers which
sections it has already processed, so re-running it is a no-op.

RULES:
- Word characters: Unicode letters, digits, underscore, and ' ‘ ’ ‛
- Empty input (or input with no word characters) yields zero words
- Output is a pure function of (text, start_index, char_offset)
- Sentences without a real word are merged into a neighbour
- Element ids are "word-<n>" for words and "pre-word-<n>" for gaps
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from readalong_sync.core.ir import SegmentedText, Sentence, Word

_WORD_CLASS = r"\w'‘’‛"

# One alternation: group 1 is a word run, group 2 a separator run.
_TOKEN_RE = re.compile(r"([{0}]+)|([^{0}]+)".format(_WORD_CLASS))

WORD_RUN_RE = re.compile(r"[{}]+".format(_WORD_CLASS))
"""Matches one maximal run of word characters."""

_SENTENCE_END_RE = re.compile(r"[.!?]")

_ELEMENT_ID_RE = re.compile(r"^(?:pre-)?word-(\d+)$")


def is_word_char(ch: str) -> bool:
    """True if ``ch`` belongs to a word rather than a gap."""
    return WORD_RUN_RE.fullmatch(ch) is not None


def word_element_id(word_index: int, is_gap: bool = False) -> str:
    return "{}-{}".format("pre-word" if is_gap else "word", word_index)


def parse_word_element_id(element_id: Optional[str]) -> Optional[int]:
    """Reverse of word_element_id; returns None for anything else.

    A gap id resolves to the word it precedes, which is what tapping
    on a separator should start from.
    """
    if not element_id:
        return None
    match = _ELEMENT_ID_RE.match(element_id)
    if match is None:
        return None
    return int(match.group(1))


def _tokenise(text: str, start_index: int, char_offset: int) -> List[Word]:
    elements: List[Word] = []
    word_index = start_index
    for match in _TOKEN_RE.finditer(text):
        is_gap = match.group(1) is None
        elements.append(Word(
            index=word_index,
            text=match.group(0),
            is_gap=is_gap,
            start_char=char_offset + match.start(),
            end_char=char_offset + match.end(),
        ))
        if not is_gap:
            word_index += 1
    return elements


def _group_sentences(elements: List[Word]) -> List[Sentence]:
    raw: List[List[Word]] = []
    current: List[Word] = []
    for element in elements:
        current.append(element)
        if element.is_gap and _SENTENCE_END_RE.search(element.text):
            raw.append(current)
            current = []
    if current:
        raw.append(current)

    sentences: List[Sentence] = []
    pending: List[Word] = []
    for group in raw:
        if any(not w.is_gap for w in group):
            sentences.append(Sentence(words=pending + group))
            pending = []
        elif sentences:
            sentences[-1].words.extend(group)
        else:
            pending.extend(group)
    if pending and sentences:
        sentences[-1].words.extend(pending)
    return sentences


def segment_text(text: str, start_index: int = 0, char_offset: int = 0) -> SegmentedText:
    """Split ``text`` into indexed words, gaps and sentences.

    Args:
        text: Section text. None or "" is treated as empty.
        start_index: Index given to the first word, so numbering can
            continue across sections.
        char_offset: Added to every element's char span, so spans are
            document-absolute when sections are concatenated.

    Returns:
        SegmentedText whose next_index is where the next section starts.
    """
    elements = _tokenise(text or "", start_index, char_offset)
    word_count = sum(1 for e in elements if not e.is_gap)
    return SegmentedText(
        elements=elements,
        sentences=_group_sentences(elements),
        start_index=start_index,
        next_index=start_index + word_count,
    )


class WordSegmenter:
    """Numbers consecutive document sections with one running word index.

    Each section is identified by a key (an href, a page number...). A key
    that was already processed returns its earlier result untouched and
    does not advance the counter.
    """

    def __init__(self, start_index: int = 0) -> None:
        self._next_index = start_index
        self._next_char = 0
        self._processed: Dict[str, SegmentedText] = {}
        self._order: List[str] = []

    @property
    def next_index(self) -> int:
        return self._next_index

    def is_processed(self, key: str) -> bool:
        return key in self._processed

    def segment(self, key: str, text: str) -> SegmentedText:
        existing = self._processed.get(key)
        if existing is not None:
            return existing

        result = segment_text(text, self._next_index, self._next_char)
        self._processed[key] = result
        self._order.append(key)
        self._next_index = result.next_index
        self._next_char += len(text or "")
        return result

    def sections(self) -> List[SegmentedText]:
        return [self._processed[k] for k in self._order]

    def sentences(self) -> List[Sentence]:
        out: List[Sentence] = []
        for section in self.sections():
            out.extend(section.sentences)
        return out

    def elements(self) -> List[Word]:
        out: List[Word] = []
        for section in self.sections():
            out.extend(section.elements)
        return out


def segment_sections(texts: Iterable[str], start_index: int = 0) -> List[SegmentedText]:
    """Segment several sections in order with continuous numbering."""
    segmenter = WordSegmenter(start_index)
    return [segmenter.segment(str(i), text) for i, text in enumerate(texts)]
