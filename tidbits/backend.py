"""
Backend factory.

Creates the active entry backend, the remote client used for sync, and
the sync queue from settings. ``mode = "local"`` stores entries in
SQLite; ``mode = "remote"`` sends them straight to the entry service.
In both modes the remote client, when a server URL is configured, is
what ``sync`` replays buffered entries against.
"""

from typing import NamedTuple, Optional

from .config import LOCAL_MODE, MODES, REMOTE_MODE, Settings
from .errors import ConfigurationError
from .protocol import EntryBackend
from .remote_client import EntryClient
from .sync_queue import SyncQueue


class BackendBundle(NamedTuple):
    """Collaborators handed to the service."""
    backend: EntryBackend
    client: Optional[EntryClient]
    queue: SyncQueue
    is_local: bool


def create_client(settings: Settings) -> Optional[EntryClient]:
    """Remote client for the configured server, or None without one."""
    if not settings.server_url:
        return None
    return EntryClient(settings.server_url, timeout=settings.request_timeout)


def create_backends(settings: Settings) -> BackendBundle:
    """
    Build the backends selected by ``settings.mode``.

    Raises:
        ConfigurationError: For an unknown mode, or remote mode without a
            server URL
    """
    settings.validate()
    client = create_client(settings)
    queue = SyncQueue(settings.sync_file)

    if settings.mode == LOCAL_MODE:
        from .entry_store import EntryStore
        store = EntryStore(settings.db_path)
        return BackendBundle(backend=store, client=client, queue=queue, is_local=True)

    if settings.mode == REMOTE_MODE:
        if client is None:
            raise ConfigurationError("remote mode requires a server url")
        return BackendBundle(backend=client, client=client, queue=queue, is_local=False)

    raise ConfigurationError(
        f"Unknown mode: {settings.mode!r}. Available: {list(MODES)}"
    )
