"""Abstract base exporter and output container.

WHY: The segmented document is written out in several shapes: a plain
word list, a JSON manifest for tooling, and tagged HTML for renderers.
A common base lets the CLI and tests drive any exporter generically.

HOW: BaseExporter is an ABC with two requirements, a ``name`` property
and an ``export()`` method. ExportOutput bundles a file suffix with its
content and MIME type.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``export()``
- ``export()`` returns a list; single-file exporters return one item
- ``suffix`` starts with a dot or hyphen, e.g. ``".words"``
- The caller is responsible for prepending the source filename stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence

from readalong_sync.core.ir import SegmentedText


@dataclass
class ExportOutput:
    """One output file produced by an exporter.

    Attributes:
        suffix: File suffix appended to the source stem.
        content: The file content.
        media_type: MIME type for the content.
    """

    suffix: str
    content: str
    media_type: str


class BaseExporter(ABC):
    """Abstract base for all exporters.

    To add a new export format:
    1. Create a new file in exporters/
    2. Subclass BaseExporter
    3. Implement export() and name
    4. Register in EXPORTERS dict in exporters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'Word list'."""

    @abstractmethod
    def export(self, sections: Sequence[SegmentedText]) -> List[ExportOutput]:
        """Convert segmented sections (in document order) into output files."""
