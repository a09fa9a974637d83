"""Playhead mapping and the reading session that owns it.

WHY: Word-level highlighting is a loop of timer ticks, cache lookups and
side effects. This package keeps that loop and the transport commands
built on it (play, pause, seek, skip, tap-to-play) together.

HOW: interfaces.py declares the collaborators, mapper.py runs the tick
state machine, session.py wires caches, mapper and navigator for one book.
"""
