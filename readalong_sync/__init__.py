"""Read-along synchronisation core: word-level highlight driven by audio.

WHY: A book read aloud comes with a precomputed table mapping each word
position to the audio timestep at which it is spoken. Turning that table
into a live highlight that follows playback needs more than a lookup:
the table and the document text are both paginated, the timer runs every
20 ms, and I/O must never block the tick.

HOW: Four layers: segment (core: words, sentences, geometry), cache
(sliding windows over the sync table and the document text), play
(playhead mapper + reading session), serve (store adapters, HTTP API,
exporters, CLI). Each layer is independently testable.

RULES:
- Word indices produced by the segmenter are the stable contract; caches,
  persistence and the renderer all key off them
- The core package is pure (no I/O, no logging)
- Everything that touches a collaborator is async and runs on one event loop
"""

__version__ = "0.1.0"
