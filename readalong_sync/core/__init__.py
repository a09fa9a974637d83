"""Pure segmentation, navigation and geometry modules.

WHY: The core package holds the rules every other layer depends on:
how text becomes indexed words and sentences, how sentence skips are
resolved, and how a word box maps to a zoom level. They are pure so
they can be tested exhaustively and reused by the server and the CLI.

HOW: ir.py defines the data structures, segmenter.py builds them from
text, navigator.py answers sentence-boundary questions, viewport.py
computes zoom and offsets.

RULES:
- No I/O, no logging, no global state in this package
- Word indexing rules change only together with persisted data
"""
