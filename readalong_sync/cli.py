"""Command-line interface for read-along sync tooling.

WHY: Preparing a book for read-along playback means numbering its words,
handing the word list to an aligner, importing the resulting sync path
and checking that highlights land where they should. The CLI puts each
of those steps behind one subcommand.

HOW: argparse with subcommands:
  segment           print the sentences and word ranges of a text file
  export            write word list / manifest / tagged HTML files
  import-sync-path  upload a sync path CSV to a book store server
  simulate          play a text against a sync path headlessly
  fit               compute the viewport fit for one word box
  serve             run the HTTP API
Async work runs via asyncio.run(). Status messages go to stderr; command
results go to stdout so they can be piped.

RULES:
- Status output goes to stderr (not stdout)
- --verbose enables DEBUG logging, otherwise INFO
- Output naming: {stem}{suffix}, numeric suffix for conflicts (-words-2.json)
- Errors print "Error: ..." to stderr and exit with status 1
- Python 3.9 compatible, no match/case, no X | Y unions
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx

from readalong_sync import __version__
from readalong_sync.api.client import BookStoreAPIError, BookStoreClient
from readalong_sync.config import (
    DEFAULT_MAX_ZOOM,
    DEFAULT_MIN_ZOOM,
    READALONG_API_HOST,
    READALONG_API_PORT,
    READALONG_API_URL,
)
from readalong_sync.core.segmenter import segment_text
from readalong_sync.core.viewport import fit
from readalong_sync.exporters import EXPORTERS
from readalong_sync.exporters.base import ExportOutput
from readalong_sync.player.simulation import HighlightRecord, run_simulation
from readalong_sync.storage.sync_path_csv import SyncPathFormatError, load_sync_path_csv


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _read_text(path_str: str) -> str:
    path = Path(path_str)
    if not path.is_file():
        _fail("File not found: {}".format(path))
    return path.read_text(encoding="utf-8")


def _resolve_output_path(stem: str, suffix: str, output_dir: Path) -> Path:
    """Return {stem}{suffix} in output_dir, or {stem}{name}-N{ext} if taken."""
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name = suffix[:dot_idx]
        suffix_ext = suffix[dot_idx:]
    else:
        suffix_name = suffix
        suffix_ext = ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(output: ExportOutput, stem: str, output_dir: Path) -> Path:
    path = _resolve_output_path(stem, output.suffix, output_dir)
    path.write_text(output.content, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_segment(args: argparse.Namespace) -> None:
    result = segment_text(_read_text(args.text_file), args.start_index)
    for sentence in result.sentences:
        print("{}\t{}\t{}".format(
            sentence.first_word_index, sentence.last_word_index, sentence.text,
        ))
    _status("{} words, {} sentences (next index {})".format(
        result.word_count, len(result.sentences), result.next_index,
    ))


def _cmd_export(args: argparse.Namespace) -> None:
    input_path = Path(args.text_file).resolve()
    text = _read_text(args.text_file)

    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _fail("Output directory does not exist: {}".format(output_dir))

    if args.formats:
        format_keys = [f.strip() for f in args.formats.split(",")]
        for key in format_keys:
            if key not in EXPORTERS:
                available = ", ".join(sorted(EXPORTERS.keys()))
                _fail("Unknown format '{}'. Available formats: {}".format(key, available))
    else:
        format_keys = list(EXPORTERS.keys())

    sections = [segment_text(text, args.start_index)]
    saved_files: List[Path] = []
    for key in format_keys:
        exporter = EXPORTERS[key]()
        _status("Running {} exporter...".format(exporter.name))
        for output in exporter.export(sections):
            saved_path = _save_output(output, input_path.stem, output_dir)
            saved_files.append(saved_path)
            _status("  Saved: {}".format(saved_path.name))

    _status("Done! Saved {} file(s) to {}".format(len(saved_files), output_dir))


async def _upload_sync_path(args: argparse.Namespace) -> int:
    async with BookStoreClient(base_url=args.api_url) as client:
        return await client.upload_sync_path(args.book_id, Path(args.csv_file))


def _cmd_import_sync_path(args: argparse.Namespace) -> None:
    csv_path = Path(args.csv_file)
    if not csv_path.is_file():
        _fail("File not found: {}".format(csv_path))
    try:
        rows = load_sync_path_csv(csv_path)
    except SyncPathFormatError as exc:
        _fail("Invalid sync path CSV: {}".format(exc))
    _status("Uploading {} rows for book {}...".format(len(rows), args.book_id))

    try:
        count = asyncio.run(_upload_sync_path(args))
    except (BookStoreAPIError, httpx.HTTPError) as exc:
        _fail(str(exc))
    _status("Stored {} rows.".format(count))


def _cmd_simulate(args: argparse.Namespace) -> None:
    text = _read_text(args.text_file)
    try:
        rows = load_sync_path_csv(Path(args.csv_file))
    except FileNotFoundError:
        _fail("File not found: {}".format(args.csv_file))
    except SyncPathFormatError as exc:
        _fail("Invalid sync path CSV: {}".format(exc))

    def _print_highlight(record: HighlightRecord) -> None:
        print("{}\t{:.2f}\t{}".format(record.word_index, record.elapsed_seconds, record.text))

    try:
        result = asyncio.run(run_simulation(
            text,
            rows,
            start_word=args.start_word,
            rate=args.rate,
            max_ticks=args.max_ticks,
            on_highlight=_print_highlight,
        ))
    except ValueError as exc:
        _fail(str(exc))

    _status("Highlighted {} words over {:.2f}s of audio in {} ticks (last word {}).".format(
        len(result.highlights), result.elapsed_seconds, result.ticks, result.final_word_index,
    ))


def _cmd_fit(args: argparse.Namespace) -> None:
    container_width, container_height = args.container if args.container else (None, None)
    try:
        result = fit(
            args.frame[0], args.frame[1],
            args.min_zoom, args.max_zoom,
            args.target[0], args.target[1], args.target[2], args.target[3],
            container_width, container_height,
        )
    except ValueError as exc:
        _fail(str(exc))
    print(json.dumps({
        "zoom": result.zoom,
        "offset_x": result.offset_x,
        "offset_y": result.offset_y,
    }))


def _cmd_serve(args: argparse.Namespace) -> None:
    from readalong_sync.server.app import run_api
    run_api(host=args.host, port=args.port)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser; separate from main() so tests can inspect it."""
    parser = argparse.ArgumentParser(
        prog="readalong_sync",
        description="Word-level read-along tooling: segment texts, export word "
                    "lists, import sync paths and simulate playback.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("segment", help="Print sentences with their word index ranges.")
    p.add_argument("text_file", help="UTF-8 text file.")
    p.add_argument("--start-index", type=int, default=0, help="Index of the first word (default: 0).")
    p.set_defaults(func=_cmd_segment)

    p = sub.add_parser("export", help="Write word list, manifest and tagged HTML files.")
    p.add_argument("text_file", help="UTF-8 text file.")
    p.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of formats. "
             "Available: {}. Default: all.".format(", ".join(sorted(EXPORTERS.keys()))),
    )
    p.add_argument("--output-dir", default=None, help="Directory for output files (default: next to input).")
    p.add_argument("--start-index", type=int, default=0, help="Index of the first word (default: 0).")
    p.set_defaults(func=_cmd_export)

    p = sub.add_parser("import-sync-path", help="Upload a sync path CSV to a book store server.")
    p.add_argument("book_id", help="Book identifier.")
    p.add_argument("csv_file", help="CSV with 'wordId,startTimeStep' rows.")
    p.add_argument("--api-url", default=READALONG_API_URL, help="Server URL (default: %(default)s).")
    p.set_defaults(func=_cmd_import_sync_path)

    p = sub.add_parser("simulate", help="Play a text against a sync path without audio.")
    p.add_argument("text_file", help="UTF-8 text file.")
    p.add_argument("csv_file", help="CSV with 'wordId,startTimeStep' rows.")
    p.add_argument("--start-word", type=int, default=None, help="Word index to start from.")
    p.add_argument("--rate", type=float, default=1.0, help="Playback rate (default: %(default)s).")
    p.add_argument("--max-ticks", type=int, default=None, help="Stop after this many ticks.")
    p.set_defaults(func=_cmd_simulate)

    p = sub.add_parser("fit", help="Compute zoom and offsets that frame one word box.")
    p.add_argument("--frame", type=float, nargs=2, required=True, metavar=("W", "H"), help="Frame size.")
    p.add_argument(
        "--target", type=float, nargs=4, required=True, metavar=("X", "Y", "W", "H"), help="Word box.",
    )
    p.add_argument("--container", type=float, nargs=2, default=None, metavar=("W", "H"), help="Content size.")
    p.add_argument("--min-zoom", type=float, default=DEFAULT_MIN_ZOOM, help="Minimum zoom (default: %(default)s).")
    p.add_argument("--max-zoom", type=float, default=DEFAULT_MAX_ZOOM, help="Maximum zoom (default: %(default)s).")
    p.set_defaults(func=_cmd_fit)

    p = sub.add_parser("serve", help="Run the HTTP API.")
    p.add_argument("--host", default=READALONG_API_HOST, help="Bind address (default: %(default)s).")
    p.add_argument("--port", type=int, default=READALONG_API_PORT, help="Port (default: %(default)s).")
    p.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI; explicit argv is for testing."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args.func(args)


if __name__ == "__main__":
    main()
