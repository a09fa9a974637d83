"""Parse sync path CSV files (``wordId,startTimeStep`` per line).

WHY: Sync paths are produced offline by an aligner and handed over as a
two-column CSV. Importing one must reject malformed data up front; a
bad row discovered mid-playback would silently desynchronise the
highlight.

HOW: csv.reader over the text. A first row whose cells are not integers
is treated as a header. Each remaining row must hold exactly two
non-negative integers. Rows are returned sorted by word id.

RULES:
- Blank lines are skipped
- Duplicate word ids are an error
- Word ids must run without gaps; the first id may be above zero
- Timesteps must be non-decreasing in word order
- Errors carry the 1-based line number
"""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import List, Tuple

SyncPathRow = Tuple[int, int]


class SyncPathFormatError(ValueError):
    """Raised when sync path CSV content is malformed."""

    def __init__(self, line: int, message: str) -> None:
        self.line = line
        super().__init__("line {}: {}".format(line, message))


def _is_header(row: List[str]) -> bool:
    try:
        [int(cell) for cell in row]
    except ValueError:
        return True
    return False


def parse_sync_path_csv(text: str) -> List[SyncPathRow]:
    numbered: List[Tuple[int, int, int]] = []
    seen = set()
    for line_no, row in enumerate(csv.reader(io.StringIO(text)), start=1):
        cells = [cell.strip() for cell in row]
        if not any(cells):
            continue
        if not numbered and line_no == 1 and _is_header(cells):
            continue
        if len(cells) != 2:
            raise SyncPathFormatError(line_no, "expected 2 columns, got {}".format(len(cells)))
        try:
            word_id, timestep = int(cells[0]), int(cells[1])
        except ValueError:
            raise SyncPathFormatError(line_no, "non-integer value in {!r}".format(row)) from None
        if word_id < 0 or timestep < 0:
            raise SyncPathFormatError(line_no, "negative value in {!r}".format(row))
        if word_id in seen:
            raise SyncPathFormatError(line_no, "duplicate word id {}".format(word_id))
        seen.add(word_id)
        numbered.append((word_id, timestep, line_no))

    numbered.sort()
    for prev, cur in zip(numbered, numbered[1:]):
        if cur[0] != prev[0] + 1:
            raise SyncPathFormatError(
                cur[2],
                "word ids must be contiguous: word {} follows word {}".format(cur[0], prev[0]),
            )
        if cur[1] < prev[1]:
            raise SyncPathFormatError(
                cur[2],
                "timestep of word {} ({}) is earlier than word {} ({})".format(
                    cur[0], cur[1], prev[0], prev[1]
                ),
            )
    return [(word_id, timestep) for word_id, timestep, _ in numbered]


def load_sync_path_csv(path: Path) -> List[SyncPathRow]:
    return parse_sync_path_csv(Path(path).read_text(encoding="utf-8"))
