"""
Entry store using SQLite.

Entries live in one base table. Their tag strings are mirrored into an
FTS5 index (``tags_index``) by triggers, so full-text search over tags
never needs application code to keep the index in step:

- after insert: the new row's tags are indexed under its internal id
- after delete: the old row's index entry is removed
- after update: the old entry is removed and the new tags indexed

Nothing in this module writes to ``tags_index`` directly.
"""

import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .errors import DuplicateKeyError, NotFoundError, StorageError
from .query_builder import (
    ENTRY_COLUMNS,
    ITEM_COLUMNS,
    Statement,
    build_search_statements,
)
from .types import Entry, EntryItem, ListResult, QueryFilter, SearchResult, split_tags

logger = logging.getLogger(__name__)

# Seconds to wait on a locked database before giving up
DEFAULT_BUSY_TIMEOUT = 5.0

# SQLite VM instructions between deadline checks
_DEADLINE_CHECK_INTERVAL = 1000

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS entries (
    internal_id INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    key TEXT NOT NULL UNIQUE,
    value TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL,
    namespace TEXT NOT NULL,
    tag_values TEXT NOT NULL,
    reference TEXT,
    media_type TEXT,
    created_on TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_entries_category ON entries(category);
CREATE INDEX IF NOT EXISTS idx_entries_namespace ON entries(namespace);

CREATE VIRTUAL TABLE IF NOT EXISTS tags_index USING fts5(
    tag_values,
    content='entries',
    content_rowid='internal_id'
);
"""

TRIGGERS_DDL = """
CREATE TRIGGER IF NOT EXISTS entries_ai AFTER INSERT ON entries BEGIN
    INSERT INTO tags_index(rowid, tag_values)
    VALUES (new.internal_id, new.tag_values);
END;

CREATE TRIGGER IF NOT EXISTS entries_ad AFTER DELETE ON entries BEGIN
    INSERT INTO tags_index(tags_index, rowid, tag_values)
    VALUES ('delete', old.internal_id, old.tag_values);
END;

CREATE TRIGGER IF NOT EXISTS entries_au AFTER UPDATE ON entries BEGIN
    INSERT INTO tags_index(tags_index, rowid, tag_values)
    VALUES ('delete', old.internal_id, old.tag_values);
    INSERT INTO tags_index(rowid, tag_values)
    VALUES (new.internal_id, new.tag_values);
END;
"""


def _row_to_entry(row: sqlite3.Row) -> Entry:
    return Entry(
        id=row["id"],
        key=row["key"],
        value=row["value"],
        notes=row["notes"] or "",
        category=row["category"],
        namespace=row["namespace"],
        tags=split_tags(row["tag_values"]),
        reference=row["reference"] or "",
        media_type=row["media_type"] or "",
    )


def _row_to_item(row: sqlite3.Row) -> EntryItem:
    return EntryItem(
        id=row["id"],
        key=row["key"],
        category=row["category"],
        namespace=row["namespace"],
        tags=split_tags(row["tag_values"]),
    )


class EntryStore:
    """
    SQLite-backed store for knowledge entries.

    Owns the ``entries`` table and its full-text tag index. Lookups that
    find nothing return None; constraint violations raise
    DuplicateKeyError so callers can tell them apart from other
    StorageErrors.
    """

    def __init__(self, db_path: Path, timeout: float = DEFAULT_BUSY_TIMEOUT):
        """
        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait for a database lock
        """
        self._db_path = db_path
        self._timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database, schema, index and triggers."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self._db_path), timeout=self._timeout, check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            # Key substring search is case-sensitive
            self._conn.execute("PRAGMA case_sensitive_like = ON")
            self._conn.executescript(SCHEMA_DDL)
            self._conn.executescript(TRIGGERS_DDL)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"unable to initialize database {self._db_path}: {e}") from e

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("entry store is closed")
        return self._conn

    def sqlite_version(self) -> str:
        return self.conn.execute("SELECT sqlite_version()").fetchone()[0]

    @contextmanager
    def _deadline(self, timeout: Optional[float]) -> Iterator[None]:
        """Interrupt statements still running after ``timeout`` seconds.

        An interrupted statement raises sqlite3.OperationalError, which the
        callers wrap as StorageError.
        """
        if timeout is None:
            yield
            return
        expires = time.monotonic() + timeout
        self.conn.set_progress_handler(
            lambda: 1 if time.monotonic() > expires else 0,
            _DEADLINE_CHECK_INTERVAL,
        )
        try:
            yield
        finally:
            self.conn.set_progress_handler(None, 0)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def create(self, entry: Entry, *, timeout: Optional[float] = None) -> str:
        """
        Insert a new entry.

        Args:
            entry: Entry with its id already assigned

        Returns:
            The entry's id

        Raises:
            DuplicateKeyError: If the key or id is already stored
            StorageError: On any other database failure
        """
        try:
            with self._deadline(timeout), self.conn:
                self.conn.execute("""
                    INSERT INTO entries
                    (id, key, value, notes, category, namespace,
                     tag_values, reference, media_type)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    entry.id, entry.key, entry.value, entry.notes,
                    entry.category, entry.namespace, entry.tag_values,
                    entry.reference, entry.media_type,
                ))
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(
                f"unable to create entry {entry.key!r}: {e}"
            ) from e
        except sqlite3.Error as e:
            raise StorageError(f"unable to create entry {entry.key!r}: {e}") from e

        logger.debug("Created entry %s (%s)", entry.key, entry.id)
        return entry.id

    def update(self, entry: Entry, *, timeout: Optional[float] = None) -> None:
        """
        Replace every mutable field of the entry with the same id.

        The tag index is refreshed by the after-update trigger.

        Raises:
            NotFoundError: If no entry has this id
            DuplicateKeyError: If the new key belongs to another entry
            StorageError: On any other database failure
        """
        try:
            with self._deadline(timeout), self.conn:
                cursor = self.conn.execute("""
                    UPDATE entries
                    SET key = ?, value = ?, notes = ?, category = ?,
                        namespace = ?, tag_values = ?, reference = ?,
                        media_type = ?
                    WHERE id = ?
                """, (
                    entry.key, entry.value, entry.notes, entry.category,
                    entry.namespace, entry.tag_values, entry.reference,
                    entry.media_type, entry.id,
                ))
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(
                f"unable to update entry {entry.id!r}: {e}"
            ) from e
        except sqlite3.Error as e:
            raise StorageError(f"unable to update entry {entry.id!r}: {e}") from e

        if cursor.rowcount == 0:
            raise NotFoundError(f"entry {entry.id!r} does not exist")

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def _get_one(
        self, column: str, value: str, timeout: Optional[float],
    ) -> Optional[Entry]:
        try:
            with self._deadline(timeout):
                row = self.conn.execute(
                    f"SELECT {ENTRY_COLUMNS} FROM entries e WHERE e.{column} = ?",
                    (value,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"unable to get entry by {column}: {e}") from e
        if row is None:
            return None
        return _row_to_entry(row)

    def get_by_id(self, id: str, *, timeout: Optional[float] = None) -> Optional[Entry]:
        """Get an entry by id. Returns None if it does not exist."""
        return self._get_one("id", id, timeout)

    def get_by_key(self, key: str, *, timeout: Optional[float] = None) -> Optional[Entry]:
        """Get an entry by key. Returns None if it does not exist."""
        return self._get_one("key", key, timeout)

    def _count(self, statement: Statement) -> int:
        return self.conn.execute(statement.sql, statement.params).fetchone()[0]

    def search(
        self, query: QueryFilter, *, timeout: Optional[float] = None,
    ) -> SearchResult:
        """
        Find entry projections matching a filter, one page at a time.

        The count and the page are two separate queries without a shared
        transaction. A write landing between them can leave ``total``
        out of step with ``items``; with a single local writer this is
        accepted.
        """
        statements = build_search_statements(query, ITEM_COLUMNS)
        try:
            with self._deadline(timeout):
                total = self._count(statements.count)
                rows = self.conn.execute(
                    statements.data.sql, statements.data.params,
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(
                "Search failed for filter %r (query: %s): %s",
                query, statements.data.sql, e,
            )
            raise StorageError(f"unable to search entries: {e}") from e

        return SearchResult(
            items=[_row_to_item(r) for r in rows],
            total=total,
            limit=query.limit,
            offset=query.offset,
        )

    def list_all(
        self, query: QueryFilter, *, timeout: Optional[float] = None,
    ) -> ListResult:
        """
        Like search, but returns full entries. An empty filter matches all
        entries, so this also serves export scans.
        """
        statements = build_search_statements(query, ENTRY_COLUMNS)
        try:
            with self._deadline(timeout):
                total = self._count(statements.count)
                rows = self.conn.execute(
                    statements.data.sql, statements.data.params,
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(
                "Listing failed for filter %r (query: %s): %s",
                query, statements.data.sql, e,
            )
            raise StorageError(f"unable to list entries: {e}") from e

        return ListResult(
            items=[_row_to_entry(r) for r in rows],
            total=total,
            limit=query.limit,
            offset=query.offset,
        )

    def count_by_category(
        self, category: str, *, timeout: Optional[float] = None,
    ) -> int:
        """Count entries in a category."""
        try:
            with self._deadline(timeout):
                cursor = self.conn.execute(
                    "SELECT COUNT(*) FROM entries WHERE category = ?", (category,),
                )
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"unable to count entries: {e}") from e

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
