"""FastAPI application serving sync paths, play positions and helpers.

WHY: Readers running in another process (a web view, a mobile shell, the
BookStoreClient) need HTTP access to the paginated sync path and to the
last played word. The segmentation and viewport fit are exposed as well
so a thin renderer can share the exact indexing and zoom rules.

HOW: A single FastAPI app over a module-level InMemoryBookStore. Sync
paths are uploaded as CSV files (multipart) and read back one page at a time,
starting at a word offset. Errors from the store and the CSV parser are mapped to
HTTP status codes with a consistent ErrorResponse body.

RULES:
- Unknown book → 404, malformed CSV or arguments → 400
- A book never played has no position: GET position → 404
- The book store is a singleton created at import time
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile

from readalong_sync import __version__
from readalong_sync.config import (
    READALONG_API_HOST,
    READALONG_API_PORT,
    SYNC_PATH_CACHE_SIZE,
)
from readalong_sync.core.segmenter import segment_text
from readalong_sync.core.viewport import fit
from readalong_sync.server.models import (
    ErrorResponse,
    FitRequest,
    FitResponse,
    HealthResponse,
    PositionBody,
    PositionResponse,
    SegmentRequest,
    SegmentResponse,
    SentenceRange,
    SyncPathImportResponse,
    SyncPathPage,
    WordElement,
)
from readalong_sync.storage.memory import BookNotFoundError, InMemoryBookStore
from readalong_sync.storage.sync_path_csv import SyncPathFormatError, parse_sync_path_csv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

book_store = InMemoryBookStore()

app = FastAPI(
    title="Read-Along Sync API",
    description=(
        "REST API for read-along playback: upload and page through "
        "word-level sync paths, save and restore the last played word, "
        "segment text into indexed words, and fit the viewport to a word."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Endpoints: Sync path
# ---------------------------------------------------------------------------


@app.put(
    "/books/{book_id}/sync-path",
    response_model=SyncPathImportResponse,
    tags=["sync-path"],
    summary="Upload a sync path CSV",
    description=(
        "Replace the sync path of a book with the rows of a "
        "'wordId,startTimeStep' CSV file. A header row is optional."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Malformed CSV"},
    },
)
async def upload_sync_path(
    book_id: str,
    file: Annotated[
        UploadFile,
        File(description="CSV file with one 'wordId,startTimeStep' row per word"),
    ],
) -> SyncPathImportResponse:
    content = await file.read()
    try:
        rows = parse_sync_path_csv(content.decode("utf-8"))
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Sync path CSV must be UTF-8 text")
    except SyncPathFormatError as exc:
        raise HTTPException(status_code=400, detail="Invalid sync path CSV: {}".format(exc))

    count = book_store.set_sync_path(book_id, rows)
    return SyncPathImportResponse(book_id=book_id, rows=count)


@app.get(
    "/books/{book_id}/sync-path",
    response_model=SyncPathPage,
    tags=["sync-path"],
    summary="Read one page of a sync path",
    description=(
        "Return up to `limit` timesteps ordered by word index, starting at "
        "word `offset`. A page past the end is empty."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Book not found"},
    },
)
async def get_sync_path(
    book_id: str,
    limit: Annotated[int, Query(ge=0, description="Maximum number of rows.")] = SYNC_PATH_CACHE_SIZE,
    offset: Annotated[int, Query(ge=0, description="First word index of the page.")] = 0,
) -> SyncPathPage:
    try:
        min_word_index, timesteps = book_store.page(book_id, limit, offset)
    except BookNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return SyncPathPage(book_id=book_id, min_word_index=min_word_index, timesteps=timesteps)


@app.delete(
    "/books/{book_id}",
    status_code=204,
    tags=["sync-path"],
    summary="Delete a book",
    description="Delete the sync path and saved position of a book.",
    responses={
        404: {"model": ErrorResponse, "description": "Book not found"},
    },
)
async def delete_book(book_id: str) -> None:
    if not book_store.delete_book(book_id):
        raise HTTPException(status_code=404, detail=str(BookNotFoundError(book_id)))


# ---------------------------------------------------------------------------
# Endpoints: Play position
# ---------------------------------------------------------------------------


@app.get(
    "/books/{book_id}/position",
    response_model=PositionResponse,
    tags=["position"],
    summary="Get the last played word",
    responses={
        404: {"model": ErrorResponse, "description": "Book never played"},
    },
)
async def get_position(book_id: str) -> PositionResponse:
    word_index = book_store.position(book_id)
    if word_index is None:
        raise HTTPException(
            status_code=404,
            detail="No play position saved for book '{}'".format(book_id),
        )
    return PositionResponse(book_id=book_id, word_index=word_index)


@app.put(
    "/books/{book_id}/position",
    response_model=PositionResponse,
    tags=["position"],
    summary="Save the last played word",
)
async def put_position(book_id: str, body: PositionBody) -> PositionResponse:
    book_store.set_position(book_id, body.word_index)
    logger.debug("Saved position %d for book %s", body.word_index, book_id)
    return PositionResponse(book_id=book_id, word_index=body.word_index)


# ---------------------------------------------------------------------------
# Endpoints: Text and viewport helpers
# ---------------------------------------------------------------------------


@app.post(
    "/segment",
    response_model=SegmentResponse,
    tags=["text"],
    summary="Split text into indexed words and sentences",
    description=(
        "Tokenise a section of text into words and separator gaps, number "
        "the words from start_index, and group them into sentences."
    ),
)
async def segment(body: SegmentRequest) -> SegmentResponse:
    result = segment_text(body.text, body.start_index, body.char_offset)
    return SegmentResponse(
        elements=[
            WordElement(
                id=word.element_id,
                index=word.index,
                text=word.text,
                is_gap=word.is_gap,
                start_char=word.start_char,
                end_char=word.end_char,
            )
            for word in result.elements
        ],
        sentences=[
            SentenceRange(
                first_word_index=s.first_word_index,
                last_word_index=s.last_word_index,
                text=s.text,
            )
            for s in result.sentences
        ],
        start_index=result.start_index,
        next_index=result.next_index,
    )


@app.post(
    "/viewport/fit",
    response_model=FitResponse,
    tags=["viewport"],
    summary="Fit the viewport to a word box",
    responses={
        400: {"model": ErrorResponse, "description": "Degenerate box or zoom limits"},
    },
)
async def viewport_fit(body: FitRequest) -> FitResponse:
    try:
        result = fit(
            body.frame_width,
            body.frame_height,
            body.min_zoom,
            body.max_zoom,
            body.target_x,
            body.target_y,
            body.target_width,
            body.target_height,
            body.container_width,
            body.container_height,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return FitResponse(zoom=result.zoom, offset_x=result.offset_x, offset_y=result.offset_y)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api(host: str = READALONG_API_HOST, port: int = READALONG_API_PORT) -> None:
    """Entry point for the readalong-api console script."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)
