"""Configuration constants, playback-rate table, and .env loading.

WHY: Cache sizes, the timestep unit, zoom limits and the API location are
tuning knobs that should be easy to find and override without touching
logic. Keeping them as plain module-level data makes them obvious to
humans and tools alike.

HOW: python-dotenv loads the .env file on import. Every constant reads an
environment variable with a documented default. Numeric values go
through small parsing helpers that fail loudly on garbage.

RULES:
- TIMESTEP_S is both the sync-table time unit and the tick period (20 ms)
- Cache sizes must exceed their reload thresholds (checked by the caches)
- RATE_OPTIONS and RATE_LABELS are parallel tuples; 1× is the default
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(
            "Environment variable {} must be an integer, got {!r}".format(name, raw)
        ) from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(
            "Environment variable {} must be a number, got {!r}".format(name, raw)
        ) from None


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

TIMESTEP_S = _env_float("READALONG_TIMESTEP_S", 0.02)
"""Duration of one sync-table timestep, in seconds. Also the tick period."""

# ---------------------------------------------------------------------------
# Cache sizing
# ---------------------------------------------------------------------------

SYNC_PATH_CACHE_SIZE = _env_int("READALONG_SYNC_PATH_CACHE_SIZE", 20)
SYNC_PATH_RELOAD_THRESHOLD = _env_int("READALONG_SYNC_PATH_RELOAD_THRESHOLD", 2)

TEXT_CACHE_SIZE = _env_int("READALONG_TEXT_CACHE_SIZE", 4096)
TEXT_CACHE_RETAIN = _env_int("READALONG_TEXT_CACHE_RETAIN", 256)
TEXT_RELOAD_THRESHOLD = _env_int("READALONG_TEXT_RELOAD_THRESHOLD", 2)

# ---------------------------------------------------------------------------
# Playback rates
# ---------------------------------------------------------------------------

RATE_OPTIONS: tuple[float, ...] = (0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0)
RATE_LABELS: tuple[str, ...] = ("½×", "¾×", "1×", "1¼×", "1½×", "1¾×", "2×")
DEFAULT_RATE_INDEX = 2


def rate_label(index: int) -> str:
    """Return the display label for a RATE_OPTIONS index (wraps around)."""
    return RATE_LABELS[index % len(RATE_LABELS)]


# ---------------------------------------------------------------------------
# Highlight and zoom
# ---------------------------------------------------------------------------

HIGHLIGHT_COLOR_CSS = os.getenv("READALONG_HIGHLIGHT_COLOR", "rgba(255, 255, 0, 0.3)")
DEFAULT_MIN_ZOOM = _env_float("READALONG_MIN_ZOOM", 1.0)
DEFAULT_MAX_ZOOM = _env_float("READALONG_MAX_ZOOM", 3.0)

# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

READALONG_API_URL = os.getenv("READALONG_API_URL", "http://127.0.0.1:8000")
READALONG_API_HOST = os.getenv("READALONG_API_HOST", "0.0.0.0")
READALONG_API_PORT = _env_int("READALONG_API_PORT", 8000)
