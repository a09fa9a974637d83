"""Async HTTP client for a remote read-along book store.

WHY: A reader running on another machine than the book store still needs
the paginated sync path and the last played position. This client speaks
the HTTP API served by readalong_sync.server.app and implements the same
SyncPathSource / PositionStore calls as the in-memory store, so a
ReadingSession can be wired to either.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. BookStoreClient is an
async context manager: enter it to open the connection pool, exit to
close it. Each store call maps onto one request:
  query_sync_path        → GET  /books/{id}/sync-path?limit=&offset=
  get_last_played_word   → GET  /books/{id}/position
  save_last_played_word  → PUT  /books/{id}/position
  upload_sync_path       → PUT  /books/{id}/sync-path (multipart CSV)

RULES:
- Always use the async context manager (async with BookStoreClient() as c:)
- base_url defaults to READALONG_API_URL from config
- Non-2xx responses raise BookStoreAPIError with the status and body
- A 404 on the position endpoint means "never played" and returns None
- transport is for tests (httpx.MockTransport / ASGITransport)
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import httpx

from readalong_sync.config import READALONG_API_URL


class BookStoreAPIError(Exception):
    """Raised when the book store API returns an error response.

    RULES:
    - Always include status_code and message
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Book store API error {status_code}: {message}")


class BookStoreClient:
    """Async client for the read-along book store HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or READALONG_API_URL).rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> BookStoreClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "BookStoreClient must be used as an async context manager: "
                "async with BookStoreClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Sync path
    # ------------------------------------------------------------------

    async def query_sync_path(
        self, book_id: str, limit: int, offset: int,
    ) -> Tuple[int, List[int]]:
        """Fetch one page of the sync path.

        Returns:
            (min word index of the page, timesteps in word order). An
            empty page comes back as (0, []).
        """
        client = self._ensure_client()
        resp = await client.get(
            f"/books/{book_id}/sync-path",
            params={"limit": limit, "offset": offset},
        )
        if resp.status_code != 200:
            raise BookStoreAPIError(resp.status_code, resp.text)

        data = resp.json()
        return int(data["min_word_index"]), [int(t) for t in data["timesteps"]]

    async def upload_sync_path(self, book_id: str, csv_path: Path) -> int:
        """Upload a sync path CSV for ``book_id``; returns the stored row count."""
        client = self._ensure_client()
        csv_path = Path(csv_path)
        with open(csv_path, "rb") as f:
            resp = await client.put(
                f"/books/{book_id}/sync-path",
                files={"file": (csv_path.name, f, "text/csv")},
            )

        if resp.status_code not in (200, 201):
            raise BookStoreAPIError(resp.status_code, resp.text)

        return int(resp.json()["rows"])

    # ------------------------------------------------------------------
    # Play position
    # ------------------------------------------------------------------

    async def get_last_played_word(self, book_id: str) -> Optional[int]:
        client = self._ensure_client()
        resp = await client.get(f"/books/{book_id}/position")
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise BookStoreAPIError(resp.status_code, resp.text)

        value = resp.json().get("word_index")
        return None if value is None else int(value)

    async def save_last_played_word(self, book_id: str, word_index: int) -> None:
        client = self._ensure_client()
        resp = await client.put(
            f"/books/{book_id}/position",
            json={"word_index": word_index},
        )
        if resp.status_code not in (200, 204):
            raise BookStoreAPIError(resp.status_code, resp.text)
