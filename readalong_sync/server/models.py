"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation.

HOW: Each endpoint pair (request + response) has its own model. All
models include Field descriptions for the /docs UI.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Word elements are serialised with the same ids the renderer uses
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Sync path
# ---------------------------------------------------------------------------


class SyncPathPage(BaseModel):
    """One page of a book's sync path, starting at a word offset."""

    book_id: str = Field(description="Book identifier.")
    min_word_index: int = Field(
        description="Word index of the first timestep in the page (0 when empty).",
    )
    timesteps: List[int] = Field(
        description="Start timesteps in word order; one timestep = 20 ms by default.",
    )


class SyncPathImportResponse(BaseModel):
    """Result of uploading a sync path CSV."""

    book_id: str = Field(description="Book identifier.")
    rows: int = Field(description="Number of sync path rows now stored for the book.")


# ---------------------------------------------------------------------------
# Play position
# ---------------------------------------------------------------------------


class PositionBody(BaseModel):
    """Last played word sent by a reader."""

    word_index: int = Field(ge=-1, description="Last played word index; -1 means never played.")


class PositionResponse(BaseModel):
    book_id: str = Field(description="Book identifier.")
    word_index: int = Field(description="Last played word index.")


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------


class SegmentRequest(BaseModel):
    """Text to split into indexed words and sentences.

    RULES:
    - start_index continues numbering from an earlier section
    - char_offset shifts all char spans (document-absolute spans)
    """

    text: str = Field(description="Section text to segment.")
    start_index: int = Field(default=0, ge=0, description="Index of the first word.")
    char_offset: int = Field(default=0, ge=0, description="Offset added to all char spans.")


class WordElement(BaseModel):
    id: str = Field(description="Renderer element id: 'word-<n>' or 'pre-word-<n>'.")
    index: int = Field(description="Word index (a gap carries the index of the following word).")
    text: str = Field(description="Element text.")
    is_gap: bool = Field(description="True for separator runs between words.")
    start_char: int = Field(description="Inclusive start offset.")
    end_char: int = Field(description="Exclusive end offset.")


class SentenceRange(BaseModel):
    first_word_index: int = Field(description="Index of the first real word.")
    last_word_index: int = Field(description="Index of the last real word.")
    text: str = Field(description="Sentence text, stripped.")


class SegmentResponse(BaseModel):
    elements: List[WordElement] = Field(description="Words and gaps in document order.")
    sentences: List[SentenceRange] = Field(description="Sentence partition of the words.")
    start_index: int = Field(description="Index given to the first word.")
    next_index: int = Field(description="Index the next section should start from.")


# ---------------------------------------------------------------------------
# Viewport
# ---------------------------------------------------------------------------


class FitRequest(BaseModel):
    """Frame, zoom limits and target word box for a viewport fit."""

    frame_width: float = Field(gt=0, description="Visible frame width.")
    frame_height: float = Field(gt=0, description="Visible frame height.")
    min_zoom: float = Field(gt=0, description="Minimum zoom factor.")
    max_zoom: float = Field(gt=0, description="Maximum zoom factor.")
    target_x: float = Field(description="Word box left edge in content coordinates.")
    target_y: float = Field(description="Word box top edge in content coordinates.")
    target_width: float = Field(description="Word box width.")
    target_height: float = Field(description="Word box height.")
    container_width: Optional[float] = Field(
        default=None, description="Full content width; omit to leave offset_x unclamped.",
    )
    container_height: Optional[float] = Field(
        default=None, description="Full content height; omit to leave offset_y unclamped.",
    )


class FitResponse(BaseModel):
    zoom: float = Field(description="Zoom factor within [min_zoom, max_zoom].")
    offset_x: float = Field(description="Content x offset to scroll to.")
    offset_y: float = Field(description="Content y offset to scroll to.")


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error body returned by every non-2xx response."""

    detail: str = Field(description="Human-readable error message.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service status, 'ok' when healthy.")
    version: str = Field(description="Package version.")
