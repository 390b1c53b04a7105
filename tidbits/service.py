"""
Entry service: the operations the command layer calls.

The service validates input, hands it to its backend (local store or
remote client), and translates backend failures into the error the
caller should act on:

- a rejected remote request or duplicate key becomes DataError
- ServerError passes through unchanged so the caller can buffer the
  entry in the sync queue
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .config import Settings
from .errors import (
    ClientError,
    ConfigurationError,
    DataError,
    DuplicateKeyError,
    TidbitsError,
)
from .media import MediaDownloader
from .protocol import EntryBackend
from .remote_client import EntryClient
from .sync_queue import SyncQueue, validate_batch
from .types import (
    BatchResult,
    Entry,
    ListResult,
    NewEntry,
    QueryFilter,
    SearchResult,
    is_blank,
)

logger = logging.getLogger(__name__)

ADD_DATA_ERROR = "unable to add entry due to given data"
UPDATE_DATA_ERROR = "unable to update entry due to given data"


def _lowercase_lookups(query: QueryFilter) -> QueryFilter:
    """Copy of ``query`` with key, category and namespace as stored."""
    return replace(
        query,
        key=query.key.lower(),
        category=query.category.lower(),
        namespace=query.namespace.lower(),
    )


class EntryService:
    """
    Validates entries and routes them to a single backend.

    Remote-only operations (sync) use ``client``; when the backend is
    itself the remote client the two are the same object.
    """

    def __init__(
        self,
        settings: Settings,
        backend: EntryBackend,
        client: Optional[EntryClient] = None,
        queue: Optional[SyncQueue] = None,
        media: Optional[MediaDownloader] = None,
    ):
        self._settings = settings
        self._backend = backend
        self._client = client
        self._queue = queue if queue is not None else SyncQueue(settings.sync_file)
        self._media = media if media is not None else MediaDownloader(settings.media_dir)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def queue(self) -> SyncQueue:
        return self._queue

    @property
    def is_remote(self) -> bool:
        return self._client is not None and self._backend is self._client

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add(self, new_entry: NewEntry, *, timeout: Optional[float] = None) -> Entry:
        """
        Validate and store a new entry.

        Returns:
            The stored entry with its id

        Raises:
            DataError: If the entry is invalid, the key already exists, or
                the remote service rejects the request
            ServerError: If the remote service failed or was unreachable
        """
        new_entry.validate()
        entry = new_entry.to_entry()

        try:
            new_id = self._backend.create(entry, timeout=timeout)
        except ClientError as e:
            raise DataError(f"{ADD_DATA_ERROR}: {e}") from e
        except DuplicateKeyError as e:
            raise DataError(f"{ADD_DATA_ERROR}: key {entry.key!r} already exists") from e

        if self.is_remote:
            entry.id = new_id
        logger.info("Added entry %s (%s)", entry.key, entry.id)
        return entry

    def update(self, entry: Entry, *, timeout: Optional[float] = None) -> None:
        """
        Validate and replace an existing entry.

        Raises:
            DataError: If the entry is invalid or the remote service
                rejects it
            NotFoundError: If no entry has this id (local store)
        """
        entry.validate()
        entry = replace(
            entry,
            key=entry.key.lower(),
            category=entry.category.lower(),
            namespace=entry.namespace.lower(),
        )
        try:
            self._backend.update(entry, timeout=timeout)
        except ClientError as e:
            raise DataError(f"{UPDATE_DATA_ERROR}: {e}") from e
        except DuplicateKeyError as e:
            raise DataError(f"{UPDATE_DATA_ERROR}: key {entry.key!r} already exists") from e
        logger.info("Updated entry %s (%s)", entry.key, entry.id)

    def import_batch(
        self, new_entries: list[NewEntry], *, timeout: Optional[float] = None,
    ) -> BatchResult:
        """
        Store many entries, each independently.

        Every entry is validated before anything is written; one invalid
        record rejects the whole batch. After that, one entry failing does
        not stop the rest.

        Raises:
            DataError: Naming the first invalid record
        """
        validate_batch(new_entries)

        result = BatchResult()
        for new_entry in new_entries:
            try:
                entry = self.add(new_entry, timeout=timeout)
            except TidbitsError as e:
                logger.warning("Import of %s failed: %s", new_entry.key, e)
                result.add_failure(new_entry.key, str(e))
                continue
            result.add_success(new_entry.key, entry.id)

        logger.info(
            "Import finished: %d added, %d failed",
            len(result.new_ids), len(result.failed_keys),
        )
        return result

    def save_for_sync(self, new_entry: NewEntry) -> None:
        """Buffer an entry in the sync queue for a later ``sync``."""
        self._queue.append(new_entry)

    def sync(self, *, timeout: Optional[float] = None) -> Optional[BatchResult]:
        """
        Replay buffered entries against the remote service.

        Returns:
            Per-key outcomes, or None when nothing was buffered

        Raises:
            ConfigurationError: If no remote service is configured
            DataError: If a buffered entry is invalid (nothing is sent)
        """
        if self._client is None:
            raise ConfigurationError("sync needs a server url to be configured")
        client = self._client
        return self._queue.drain(lambda e: client.create(e, timeout=timeout))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def search(
        self, query: QueryFilter, *, timeout: Optional[float] = None,
    ) -> Optional[SearchResult]:
        """
        Search entries. Returns None when the filter has no criteria.

        Raises:
            DataError: If limit or offset is out of range
        """
        if query.nothing_to_look_for():
            return None
        query.validate()
        return self._backend.search(_lowercase_lookups(query), timeout=timeout)

    def list_all(
        self, query: Optional[QueryFilter] = None, *, timeout: Optional[float] = None,
    ) -> ListResult:
        """Full entries matching a filter; an empty filter matches all."""
        query = query or QueryFilter()
        query.validate()
        return self._backend.list_all(_lowercase_lookups(query), timeout=timeout)

    def get_by_id(self, id: str, *, timeout: Optional[float] = None) -> Optional[Entry]:
        if is_blank(id):
            raise DataError("entry id is empty")
        return self._backend.get_by_id(id, timeout=timeout)

    def get_by_key(self, key: str, *, timeout: Optional[float] = None) -> Optional[Entry]:
        if is_blank(key):
            raise DataError("entry key is empty")
        return self._backend.get_by_key(key.lower(), timeout=timeout)

    def count_by_category(
        self, category: str, *, timeout: Optional[float] = None,
    ) -> int:
        if is_blank(category):
            raise DataError("entry category is empty")
        return self._backend.count_by_category(category.lower(), timeout=timeout)

    # -------------------------------------------------------------------------
    # Media
    # -------------------------------------------------------------------------

    def save_media(self, new_entry: NewEntry) -> Optional[Path]:
        """
        Download the media an entry's value points at.

        Returns:
            Path of the saved file, or None for a local file

        Raises:
            NotAMediaFileError: If the value is neither a web address nor
                an existing local file
            MediaError: If the download fails
        """
        return self._media.save(new_entry)

    def close(self) -> None:
        """Close the backend and, when separate, the remote client."""
        self._backend.close()
        if self._client is not None and self._client is not self._backend:
            self._client.close()
