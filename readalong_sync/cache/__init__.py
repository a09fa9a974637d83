"""Sliding-window caches over paginated backing sources.

WHY: Neither the sync path table nor the document text can be read on
the 20 ms tick path. Both are loaded a page at a time into windows that
follow the playhead.

HOW: window.py holds the shared refill gate (in-flight flag + generation
counter); sync_path.py windows the word → timestep table; text_window.py
windows the document text and derives word spans as it loads.

RULES:
- Lookups outside a window return None, never raise
- Refills are asynchronous and never overlap within one cache
"""
