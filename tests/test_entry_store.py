"""Tests for tidbits.entry_store: SQLite storage with FTS5 tag index."""

import pytest

from tidbits.entry_store import EntryStore
from tidbits.errors import DuplicateKeyError, NotFoundError, StorageError
from tidbits.types import QueryFilter

from tests.conftest import make_new_entry


def _add(store, key, **overrides):
    entry = make_new_entry(key=key, **overrides).to_entry()
    store.create(entry)
    return entry


def _fts_rowids(store, keyword):
    rows = store.conn.execute(
        "SELECT rowid FROM tags_index WHERE tags_index MATCH ?", (f'"{keyword}"',),
    ).fetchall()
    return {r[0] for r in rows}


def _internal_id(store, id):
    return store.conn.execute(
        "SELECT internal_id FROM entries WHERE id = ?", (id,),
    ).fetchone()[0]


class TestSchema:
    def test_reopen_keeps_data(self, tmp_path):
        db = tmp_path / "entries.db"
        with EntryStore(db) as first:
            entry = _add(first, "kept")
        with EntryStore(db) as second:
            assert second.get_by_id(entry.id) == entry

    def test_creates_parent_directory(self, tmp_path):
        db = tmp_path / "nested" / "dir" / "entries.db"
        with EntryStore(db):
            assert db.exists()

    def test_closed_store_raises(self, tmp_path):
        s = EntryStore(tmp_path / "entries.db")
        s.close()
        with pytest.raises(StorageError, match="closed"):
            s.get_by_id("x")


class TestCreateAndGet:
    def test_round_trip(self, store):
        entry = make_new_entry(
            notes="official", reference="go.dev", media_type="",
        ).to_entry()
        returned_id = store.create(entry)

        assert returned_id == entry.id
        assert store.get_by_id(entry.id) == entry
        assert store.get_by_key(entry.key) == entry

    def test_missing_returns_none(self, store):
        assert store.get_by_id("nonexistent") is None
        assert store.get_by_key("nonexistent") is None

    def test_duplicate_key_rejected(self, store):
        _add(store, "same")
        with pytest.raises(DuplicateKeyError):
            _add(store, "same")

    def test_duplicate_key_is_storage_error(self, store):
        _add(store, "same")
        with pytest.raises(StorageError):
            _add(store, "same")


class TestIndexConsistency:
    def test_create_indexes_tags(self, store):
        entry = _add(store, "a", tags=["alpha", "beta"])
        internal_id = _internal_id(store, entry.id)
        assert internal_id in _fts_rowids(store, "alpha")
        assert internal_id in _fts_rowids(store, "beta")

    def test_update_reindexes_tags(self, store):
        entry = _add(store, "a", tags=["alpha"])
        internal_id = _internal_id(store, entry.id)

        entry.tags = ["gamma"]
        store.update(entry)

        assert internal_id not in _fts_rowids(store, "alpha")
        assert internal_id in _fts_rowids(store, "gamma")

    def test_delete_removes_index_entry(self, store):
        entry = _add(store, "a", tags=["alpha"])
        with store.conn:
            store.conn.execute("DELETE FROM entries WHERE id = ?", (entry.id,))
        assert _fts_rowids(store, "alpha") == set()


class TestUpdate:
    def test_replaces_fields(self, store):
        entry = _add(store, "a")
        entry.value = "changed"
        entry.notes = "note"
        store.update(entry)
        assert store.get_by_id(entry.id).value == "changed"
        assert store.get_by_id(entry.id).notes == "note"

    def test_unknown_id(self, store):
        entry = make_new_entry().to_entry()
        with pytest.raises(NotFoundError):
            store.update(entry)

    def test_key_taken_by_other_entry(self, store):
        _add(store, "a")
        b = _add(store, "b")
        b.key = "a"
        with pytest.raises(DuplicateKeyError):
            store.update(b)


class TestSearch:
    @pytest.fixture
    def populated(self, store):
        _add(store, "go-docs", category="bookmark", namespace="go", tags=["golang", "docs"])
        _add(store, "go-tour", category="bookmark", namespace="go", tags=["golang", "tutorial"])
        _add(store, "rust-book", category="bookmark", namespace="rust", tags=["rust", "docs"])
        _add(store, "quote-1", category="quote", namespace="misc", tags=["wisdom"])
        return store

    def test_by_keyword(self, populated):
        result = populated.search(QueryFilter(keyword="golang"))
        assert sorted(result.keys()) == ["go-docs", "go-tour"]
        assert result.total == 2

    def test_keywords_are_anded(self, populated):
        result = populated.search(QueryFilter(keyword="golang docs"))
        assert list(result.keys()) == ["go-docs"]

    def test_hyphenated_keyword(self, store):
        _add(store, "k", tags=["go-1"])
        result = store.search(QueryFilter(keyword="go-1"))
        assert list(result.keys()) == ["k"]

    def test_by_key_substring(self, populated):
        result = populated.search(QueryFilter(key="go-"))
        assert sorted(result.keys()) == ["go-docs", "go-tour"]

    def test_key_substring_is_case_sensitive(self, populated):
        assert populated.search(QueryFilter(key="GO-")).total == 0

    def test_key_wildcards_match_literally(self, populated):
        assert populated.search(QueryFilter(key="_")).total == 0
        assert populated.search(QueryFilter(key="%")).total == 0
        _add(populated, "snake_case")
        assert list(populated.search(QueryFilter(key="e_c")).keys()) == ["snake_case"]

    def test_combined_filters(self, populated):
        result = populated.search(QueryFilter(keyword="docs", namespace="rust"))
        assert list(result.keys()) == ["rust-book"]

    def test_by_category(self, populated):
        assert populated.search(QueryFilter(category="quote")).total == 1

    def test_items_carry_projection(self, populated):
        item = populated.search(QueryFilter(key="quote")).items[0]
        assert item.category == "quote"
        assert item.namespace == "misc"
        assert item.tags == ["wisdom"]

    def test_no_match(self, populated):
        result = populated.search(QueryFilter(keyword="python"))
        assert result.items == []
        assert result.total == 0


class TestPagination:
    def test_pages_are_bounded_and_total_is_unpaginated(self, store):
        for i in range(12):
            _add(store, f"entry-{i:02d}", tags=["paged"])

        first = store.search(QueryFilter(keyword="paged", limit=5, offset=0))
        last = store.search(QueryFilter(keyword="paged", limit=5, offset=10))

        assert len(first.items) == 5
        assert len(last.items) == 2
        assert first.total == last.total == 12
        assert first.total_pages() == 3

    def test_pages_do_not_overlap(self, store):
        for i in range(6):
            _add(store, f"entry-{i}", category="c")
        seen = []
        for offset in (0, 2, 4):
            seen.extend(store.search(QueryFilter(category="c", limit=2, offset=offset)).keys())
        assert sorted(seen) == [f"entry-{i}" for i in range(6)]
        assert len(set(seen)) == 6

    def test_offset_into_last_page(self, store):
        """An offset halfway through returns only the remaining rows, in order."""
        for i in range(10):
            _add(store, f"half-{i}", tags=["half"])

        full = store.search(QueryFilter(keyword="half", limit=10))
        half = store.search(QueryFilter(keyword="half", limit=10, offset=5))

        assert len(full.items) == 10
        assert len(half.items) == 5
        assert half.total == 10
        assert list(half.keys()) == list(full.keys())[5:]


class TestListAll:
    def test_empty_filter_lists_all(self, store):
        for i in range(3):
            _add(store, f"e{i}")
        result = store.list_all(QueryFilter(limit=100))
        assert result.total == 3
        assert [e.key for e in result.items] == ["e0", "e1", "e2"]
        assert result.items[0].value == "https://go.dev/doc"

    def test_filters_by_namespace(self, store):
        _add(store, "a", namespace="one")
        _add(store, "b", namespace="two")
        result = store.list_all(QueryFilter(namespace="two"))
        assert [e.key for e in result.items] == ["b"]


class TestCountByCategory:
    def test_counts(self, store):
        _add(store, "a", category="quote")
        _add(store, "b", category="quote")
        _add(store, "c", category="bookmark")
        assert store.count_by_category("quote") == 2
        assert store.count_by_category("missing") == 0


class TestDeadline:
    def test_expired_deadline_interrupts(self, store):
        rows = [
            (f"id-{i}", f"bulk-{i}", "v", "bookmark", "go", "bulk")
            for i in range(2000)
        ]
        with store.conn:
            store.conn.executemany(
                "INSERT INTO entries (id, key, value, category, namespace, tag_values) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
        with pytest.raises(StorageError):
            store.search(QueryFilter(key="bulk", limit=100), timeout=-1)

    def test_store_usable_after_deadline_call(self, store):
        _add(store, "a")
        store.search(QueryFilter(category="bookmark"), timeout=5)
        assert store.search(QueryFilter(category="bookmark")).total == 1
