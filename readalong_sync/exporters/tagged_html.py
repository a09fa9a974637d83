"""Tagged HTML exporter: the document wrapped in addressable word spans.

WHY: The renderer locates words by element id to highlight them, to
measure their bounding boxes for zoom, and to turn a tap into a word
index. This exporter writes that markup so any HTML renderer can be
driven by the read-along player.

HOW: Every word becomes ``<span class="word" id="word-N">`` and every
separator run ``<span class="word-gap" id="pre-word-N">``, with N the
index the element carries. Sections are wrapped in a ``<section>`` each.
Text is HTML-escaped; newlines inside gaps are preserved.

RULES:
- Element ids round-trip through parse_word_element_id()
- Output suffix: ".html"
"""

from __future__ import annotations

import html
from typing import List, Sequence

from readalong_sync.config import HIGHLIGHT_COLOR_CSS
from readalong_sync.core.ir import SegmentedText, Word
from readalong_sync.exporters.base import BaseExporter, ExportOutput

_STYLE = (
    "  <style>\n"
    "    .word.highlight {{ background-color: {}; }}\n"
    "    .word-gap {{ white-space: pre-wrap; }}\n"
    "  </style>\n"
)


def _span(word: Word) -> str:
    css_class = "word-gap" if word.is_gap else "word"
    return '<span class="{}" id="{}">{}</span>'.format(
        css_class, word.element_id, html.escape(word.text)
    )


class TaggedHtmlExporter(BaseExporter):

    def __init__(self, title: str = "Read-along") -> None:
        self._title = title

    @property
    def name(self) -> str:
        return "Tagged HTML"

    def export(self, sections: Sequence[SegmentedText]) -> List[ExportOutput]:
        parts = [
            "<!DOCTYPE html>\n",
            "<html>\n<head>\n",
            '  <meta charset="utf-8">\n',
            "  <title>{}</title>\n".format(html.escape(self._title)),
            _STYLE.format(HIGHLIGHT_COLOR_CSS),
            "</head>\n<body>\n",
        ]
        for section in sections:
            parts.append("<section>")
            parts.extend(_span(word) for word in section.elements)
            parts.append("</section>\n")
        parts.append("</body>\n</html>\n")
        return [ExportOutput(suffix=".html", content="".join(parts), media_type="text/html")]
