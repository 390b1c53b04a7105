"""
Shared pytest fixtures for tidbits tests.

Every test gets its own home directory so nothing touches ~/.tidbits.
"""

from pathlib import Path

import pytest

from tidbits.config import Settings
from tidbits.entry_store import EntryStore
from tidbits.sync_queue import SyncQueue
from tidbits.types import NewEntry


def make_new_entry(key: str = "go-docs", **overrides) -> NewEntry:
    """A valid NewEntry; override any field."""
    fields = {
        "key": key,
        "value": "https://go.dev/doc",
        "category": "bookmark",
        "namespace": "go",
        "tags": ["golang", "docs"],
        "notes": "",
    }
    fields.update(overrides)
    return NewEntry(**fields)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch) -> Path:
    """Point TIDBITS_HOME at a temp directory and drop env overrides."""
    home = tmp_path / "tidbits-home"
    monkeypatch.setenv("TIDBITS_HOME", str(home))
    monkeypatch.delenv("TIDBITS_SERVER_URL", raising=False)
    monkeypatch.delenv("TIDBITS_VERBOSE", raising=False)
    return home


@pytest.fixture
def settings(isolated_home) -> Settings:
    return Settings(home=isolated_home)


@pytest.fixture
def store(tmp_path):
    """EntryStore on a fresh database, closed after the test."""
    s = EntryStore(tmp_path / "entries.db")
    yield s
    s.close()


@pytest.fixture
def queue(tmp_path) -> SyncQueue:
    return SyncQueue(tmp_path / "sync.yaml")
