"""
Protocol definition for entry backends.

The service talks to exactly one backend, chosen at construction time:

- EntryStore (local SQLite with full-text tag index)
- EntryClient (HTTP client to the remote entry service)
"""

from typing import Optional, Protocol, runtime_checkable

from .types import Entry, ListResult, QueryFilter, SearchResult


@runtime_checkable
class EntryBackend(Protocol):
    """
    Capability set shared by the local store and the remote client.

    Every operation accepts an optional per-call ``timeout`` in seconds.
    Lookups that find nothing return None.
    """

    def create(self, entry: Entry, *, timeout: Optional[float] = None) -> str: ...

    def get_by_id(self, id: str, *, timeout: Optional[float] = None) -> Optional[Entry]: ...

    def get_by_key(self, key: str, *, timeout: Optional[float] = None) -> Optional[Entry]: ...

    def update(self, entry: Entry, *, timeout: Optional[float] = None) -> None: ...

    def search(
        self, query: QueryFilter, *, timeout: Optional[float] = None,
    ) -> SearchResult: ...

    def list_all(
        self, query: QueryFilter, *, timeout: Optional[float] = None,
    ) -> ListResult: ...

    def count_by_category(
        self, category: str, *, timeout: Optional[float] = None,
    ) -> int: ...

    def close(self) -> None: ...
