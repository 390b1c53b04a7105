"""
Offline sync queue backed by a YAML log file.

Entries that could not be committed to the remote service (server error,
no connectivity) are appended here and replayed later by ``tidbits sync``.

The log is a multi-document YAML stream: one entry per document,
documents separated by ``---``. The first document carries no leading
separator, so the file is a well-formed stream after every append.

Drain is all-or-nothing on validation and best-effort on delivery:
every buffered entry is validated before any is submitted, then each is
submitted independently. The log is truncated only after every entry
has been attempted. Entries that fail replay are reported, not
re-appended.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

import yaml

from .errors import DataError, SyncQueueError, TidbitsError
from .types import BatchResult, NewEntry

logger = logging.getLogger(__name__)

DOCUMENT_SEPARATOR = "---\n"


def dump_document(new_entry: NewEntry) -> str:
    """Serialize one entry as a YAML document (no separator)."""
    return yaml.safe_dump(
        new_entry.to_document(),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def dump_documents(new_entries: list[NewEntry]) -> str:
    """Serialize entries as a multi-document stream in sync log format."""
    return DOCUMENT_SEPARATOR.join(dump_document(e) for e in new_entries)


def parse_documents(text: str, source: str = "<string>") -> list[NewEntry]:
    """
    Decode a multi-document YAML stream into entries.

    Empty documents are skipped.

    Raises:
        SyncQueueError: If the text is not valid YAML or a document is
            not a mapping
    """
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise SyncQueueError(f"unable to decode {source}: {e}") from e

    new_entries = []
    for index, doc in enumerate(documents):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise SyncQueueError(
                f"record {index} in {source} is not a mapping"
            )
        new_entries.append(NewEntry.from_document(doc))
    return new_entries


def validate_batch(new_entries: list[NewEntry]) -> None:
    """
    Validate every entry, stopping at the first invalid one.

    Raises:
        DataError: Naming the index of the invalid record
    """
    for index, new_entry in enumerate(new_entries):
        try:
            new_entry.validate()
        except DataError as e:
            raise DataError(
                f"record {index} is not valid: {e}", violations=e.violations,
            ) from e


class SyncQueue:
    """
    Append-only YAML log of entries awaiting remote submission.

    The queue owns its log file between append and drain.
    """

    def __init__(self, path: Path):
        """
        Args:
            path: Path to the YAML log file (created on first append)
        """
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _is_empty(self) -> bool:
        try:
            return self._path.stat().st_size == 0
        except FileNotFoundError:
            return True
        except OSError as e:
            raise SyncQueueError(f"unable to check sync file {self._path}: {e}") from e

    def append(self, new_entry: NewEntry) -> None:
        """
        Append one entry to the log and flush it to disk.

        Raises:
            SyncQueueError: If the log cannot be written
        """
        content = dump_document(new_entry)
        if not self._is_empty():
            content = DOCUMENT_SEPARATOR + content

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise SyncQueueError(
                f"unable to save entry {new_entry.key!r} for later sync: {e}"
            ) from e

        logger.info("Buffered entry %s for sync", new_entry.key)

    def load(self) -> list[NewEntry]:
        """
        Read every buffered entry in log order.

        A missing log holds no entries.
        """
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise SyncQueueError(f"unable to read sync file {self._path}: {e}") from e
        return parse_documents(text, source=str(self._path))

    def count(self) -> int:
        """Number of buffered entries."""
        return len(self.load())

    def clear(self) -> None:
        """Truncate the log to empty."""
        if not self._path.exists():
            return
        try:
            with open(self._path, "w", encoding="utf-8") as f:
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise SyncQueueError(f"unable to truncate sync file {self._path}: {e}") from e

    def drain(self, create: Callable[[NewEntry], str]) -> Optional[BatchResult]:
        """
        Replay every buffered entry through ``create`` and empty the log.

        Args:
            create: Submits one entry and returns its new id; raises on
                failure

        Returns:
            Per-key outcomes, or None when the log holds no entries

        Raises:
            DataError: If any buffered entry is invalid. Nothing is
                submitted and the log is left untouched.
            SyncQueueError: If the log cannot be read or truncated
        """
        new_entries = self.load()
        if not new_entries:
            return None

        validate_batch(new_entries)

        result = BatchResult()
        for new_entry in new_entries:
            try:
                new_id = create(new_entry)
            except TidbitsError as e:
                logger.warning("Sync of %s failed: %s", new_entry.key, e)
                result.add_failure(new_entry.key, str(e))
                continue
            result.add_success(new_entry.key, new_id)

        # Every entry has been attempted; only now is the log emptied
        self.clear()

        logger.info(
            "Sync finished: %d committed, %d failed",
            len(result.new_ids), len(result.failed_keys),
        )
        return result
