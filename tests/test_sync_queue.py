"""Tests for tidbits.sync_queue: the offline YAML log."""

import pytest

from tidbits.errors import DataError, ServerError, SyncQueueError
from tidbits.sync_queue import (
    SyncQueue,
    dump_documents,
    parse_documents,
    validate_batch,
)

from tests.conftest import make_new_entry


class TestAppend:
    def test_first_document_has_no_separator(self, queue):
        queue.append(make_new_entry("a"))
        text = queue.path.read_text()
        assert not text.startswith("---")
        assert "Key: a" in text

    def test_later_documents_are_separated(self, queue):
        queue.append(make_new_entry("a"))
        queue.append(make_new_entry("b"))
        text = queue.path.read_text()
        assert text.count("---\n") == 1
        assert [e.key for e in queue.load()] == ["a", "b"]

    def test_creates_parent_directory(self, tmp_path):
        q = SyncQueue(tmp_path / "deep" / "sync.yaml")
        q.append(make_new_entry())
        assert q.count() == 1

    def test_preserves_fields(self, queue):
        original = make_new_entry(notes="über", reference="ref", media_type="png")
        queue.append(original)
        assert queue.load() == [original]

    def test_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        q = SyncQueue(blocker / "sync.yaml")
        with pytest.raises(SyncQueueError):
            q.append(make_new_entry())


class TestLoad:
    def test_missing_file_is_empty(self, queue):
        assert queue.load() == []
        assert queue.count() == 0

    def test_invalid_yaml(self, queue):
        queue.path.write_text("Key: [unclosed\n")
        with pytest.raises(SyncQueueError):
            queue.load()

    def test_non_mapping_document(self, queue):
        queue.path.write_text("- just\n- a list\n")
        with pytest.raises(SyncQueueError, match="not a mapping"):
            queue.load()


class TestDocuments:
    def test_dump_and_parse_stream(self):
        entries = [make_new_entry("a"), make_new_entry("b", tags=["x"])]
        assert parse_documents(dump_documents(entries)) == entries

    def test_empty_documents_skipped(self):
        text = "---\nKey: a\nValue: v\nCategory: c\nNamespace: n\nTags: [t]\n---\n"
        assert [e.key for e in parse_documents(text)] == ["a"]

    def test_validate_batch_names_record(self):
        entries = [make_new_entry("a"), make_new_entry("b", category="")]
        with pytest.raises(DataError, match="record 1 is not valid") as exc_info:
            validate_batch(entries)
        assert exc_info.value.violations == ["entry category is empty"]


class TestDrain:
    def test_empty_log_returns_none(self, queue):
        assert queue.drain(lambda e: "id") is None

    def test_durability_every_entry_accounted_for(self, queue):
        """Three buffered entries: each ends up committed or failed, log emptied."""
        for key in ("a", "b", "c"):
            queue.append(make_new_entry(key))

        def create(new_entry):
            if new_entry.key == "b":
                raise ServerError("down", status_code=503)
            return f"id-{new_entry.key}"

        result = queue.drain(create)

        assert len(result.new_ids) + len(result.failed_keys) == 3
        assert result.new_ids == {"a": "id-a", "c": "id-c"}
        assert "b" in result.failed_keys
        assert queue.path.read_text() == ""
        assert queue.count() == 0

    def test_truncates_only_after_all_attempts(self, queue):
        for key in ("a", "b"):
            queue.append(make_new_entry(key))
        sizes = []

        def create(new_entry):
            sizes.append(queue.path.stat().st_size)
            return "id"

        queue.drain(create)
        assert all(size > 0 for size in sizes)
        assert queue.path.stat().st_size == 0

    def test_invalid_entry_blocks_whole_drain(self, queue):
        queue.append(make_new_entry("a"))
        queue.append(make_new_entry("b", namespace=""))
        calls = []

        with pytest.raises(DataError):
            queue.drain(lambda e: calls.append(e) or "id")

        assert calls == []
        assert queue.count() == 2

    def test_failed_entries_are_not_rebuffered(self, queue):
        queue.append(make_new_entry("a"))

        def create(new_entry):
            raise ServerError("still down")

        result = queue.drain(create)
        assert result.failed_keys == {"a": "still down"}
        assert queue.count() == 0

    def test_unexpected_exception_propagates(self, queue):
        queue.append(make_new_entry("a"))

        def create(new_entry):
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            queue.drain(create)
        assert queue.count() == 1

    def test_append_after_drain_starts_fresh(self, queue):
        queue.append(make_new_entry("a"))
        queue.drain(lambda e: "id")
        queue.append(make_new_entry("b"))
        assert not queue.path.read_text().startswith("---")
        assert [e.key for e in queue.load()] == ["b"]
