"""JSON word manifest exporter.

WHY: Tools that build sync paths or annotate books need the word
numbering together with the char spans and sentence starts, in a form
that is checked before it is handed over. The manifest is validated
against word_manifest.schema.json so a consumer can rely on its shape.

HOW: Flattens all sections into one element list and one sentence list.
Each element carries its renderer id, index, text, gap flag and char
span. The output is validated with jsonschema before returning.

RULES:
- "word_count" is the number of real words across all sections
- "sentences" holds [first_word_index, last_word_index] pairs
- Validate output against the schema before returning; raise on failure
- Output suffix: "-words.json"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import jsonschema

from readalong_sync import __version__
from readalong_sync.core.ir import SegmentedText
from readalong_sync.exporters.base import BaseExporter, ExportOutput

_SCHEMA_PATH = Path(__file__).resolve().parent / "word_manifest.schema.json"

_CACHED_SCHEMA: Optional[Dict[str, Any]] = None


def _get_schema() -> Dict[str, Any]:
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(_SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


def build_manifest(sections: Sequence[SegmentedText]) -> Dict[str, Any]:
    elements: List[Dict[str, Any]] = []
    sentences: List[List[int]] = []
    word_count = 0
    for section in sections:
        word_count += section.word_count
        for word in section.elements:
            elements.append({
                "id": word.element_id,
                "index": word.index,
                "text": word.text,
                "is_gap": word.is_gap,
                "start_char": word.start_char,
                "end_char": word.end_char,
            })
        for sentence in section.sentences:
            sentences.append([sentence.first_word_index, sentence.last_word_index])

    return {
        "version": __version__,
        "start_index": sections[0].start_index if sections else 0,
        "word_count": word_count,
        "elements": elements,
        "sentences": sentences,
    }


class WordManifestExporter(BaseExporter):

    @property
    def name(self) -> str:
        return "Word manifest JSON"

    def export(self, sections: Sequence[SegmentedText]) -> List[ExportOutput]:
        """Build the manifest and validate it.

        Raises:
            jsonschema.ValidationError: If the manifest does not conform
                to word_manifest.schema.json.
        """
        manifest = build_manifest(sections)
        jsonschema.validate(instance=manifest, schema=_get_schema())
        content = json.dumps(manifest, indent=2, ensure_ascii=False)
        return [ExportOutput(suffix="-words.json", content=content, media_type="application/json")]
