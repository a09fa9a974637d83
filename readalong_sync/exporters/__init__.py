"""Exporter registry: pluggable output formats for segmented documents.

WHY: The CLI and tests need a single lookup to find an exporter by key.
A central dict makes adding a format one import and one line.

HOW: EXPORTERS maps string keys to exporter *classes* (not instances).
Callers instantiate as needed: ``exporter = EXPORTERS["word_list"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags)
- Values are BaseExporter subclasses (not instances)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Type

from readalong_sync.exporters.tagged_html import TaggedHtmlExporter
from readalong_sync.exporters.word_list import WordListExporter
from readalong_sync.exporters.word_manifest import WordManifestExporter

if TYPE_CHECKING:
    from readalong_sync.exporters.base import BaseExporter

EXPORTERS: Dict[str, Type[BaseExporter]] = {
    "word_manifest": WordManifestExporter,
    "word_list": WordListExporter,
    "tagged_html": TaggedHtmlExporter,
}
