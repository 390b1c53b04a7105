"""
Tidbits

A personal store of knowledge entries (bookmarks, quotes, snippets, media
references) with full-text tag search and offline sync to a remote
entry service.

Quick Start:
    from tidbits import EntryService, NewEntry, create_backends, load_or_create_settings

    settings = load_or_create_settings()
    bundle = create_backends(settings)
    service = EntryService(settings, bundle.backend, client=bundle.client, queue=bundle.queue)
    service.add(NewEntry(key="go-docs", value="https://go.dev/doc",
                         category="bookmark", namespace="go", tags=["golang"]))

CLI Usage:
    tidbits add go-docs https://go.dev/doc -c bookmark -n go -t golang
    tidbits search --keyword golang
    tidbits sync

Environment Variables:
    TIDBITS_HOME        - Override the home directory (default ~/.tidbits)
    TIDBITS_SERVER_URL  - Override the remote service URL
    TIDBITS_VERBOSE     - Set to 1 for debug logging
"""

from .backend import create_backends
from .config import Settings, load_or_create_settings
from .errors import TidbitsError
from .service import EntryService
from .types import BatchResult, Entry, NewEntry, QueryFilter, SearchResult

__version__ = "0.1.0"
__all__ = [
    "BatchResult",
    "Entry",
    "EntryService",
    "NewEntry",
    "QueryFilter",
    "SearchResult",
    "Settings",
    "TidbitsError",
    "create_backends",
    "load_or_create_settings",
]
