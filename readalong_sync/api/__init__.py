"""Book store API client package: async HTTP access to a remote book store.

WHY: Sessions can read sync paths and save positions over HTTP instead of
from an in-process store. This package keeps all of that HTTP traffic
behind one client class.

RULES:
- All HTTP calls to the book store go through BookStoreClient
- The client satisfies the same protocols as InMemoryBookStore
"""

from readalong_sync.api.client import BookStoreAPIError, BookStoreClient

__all__ = ["BookStoreAPIError", "BookStoreClient"]
