"""Word list exporter: one real word per line.

WHY: The aligner that produces sync paths consumes the book as a flat
word list whose line numbers are the word indices. Exporting it from the
same segmentation the reader uses guarantees both sides number words
identically.

RULES:
- Gaps are dropped; line N (0-based) holds the word with index start + N
- Trailing newline after the last word; empty document → empty file
- Output suffix: ".words"
"""

from __future__ import annotations

from typing import List, Sequence

from readalong_sync.core.ir import SegmentedText
from readalong_sync.exporters.base import BaseExporter, ExportOutput


class WordListExporter(BaseExporter):

    @property
    def name(self) -> str:
        return "Word list"

    def export(self, sections: Sequence[SegmentedText]) -> List[ExportOutput]:
        lines: List[str] = []
        for section in sections:
            lines.extend(word.text for word in section.words)
        content = "".join(line + "\n" for line in lines)
        return [ExportOutput(suffix=".words", content=content, media_type="text/plain")]
