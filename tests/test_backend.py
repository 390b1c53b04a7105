"""Tests for tidbits.backend: choosing the backend from settings."""

from unittest.mock import patch

import pytest

from tidbits.backend import create_backends, create_client
from tidbits.config import REMOTE_MODE
from tidbits.entry_store import EntryStore
from tidbits.errors import ConfigurationError
from tidbits.protocol import EntryBackend
from tidbits.remote_client import EntryClient


class TestCreateClient:
    def test_none_without_url(self, settings):
        assert create_client(settings) is None

    def test_uses_configured_timeout(self, settings):
        settings.server_url = "http://svc"
        settings.request_timeout = 3.0
        with patch("tidbits.remote_client.httpx.Client") as MockClient:
            client = create_client(settings)
        assert isinstance(client, EntryClient)
        assert MockClient.call_args.kwargs["timeout"] == 3.0


class TestCreateBackends:
    def test_local_mode(self, settings):
        bundle = create_backends(settings)
        try:
            assert bundle.is_local
            assert isinstance(bundle.backend, EntryStore)
            assert isinstance(bundle.backend, EntryBackend)
            assert bundle.client is None
            assert bundle.queue.path == settings.sync_file
            assert settings.db_path.exists()
        finally:
            bundle.backend.close()

    def test_local_mode_with_server_for_sync(self, settings):
        settings.server_url = "http://svc"
        with patch("tidbits.remote_client.httpx.Client"):
            bundle = create_backends(settings)
        try:
            assert bundle.is_local
            assert isinstance(bundle.client, EntryClient)
        finally:
            bundle.backend.close()

    def test_remote_mode(self, settings):
        settings.mode = REMOTE_MODE
        settings.server_url = "http://svc"
        with patch("tidbits.remote_client.httpx.Client"):
            bundle = create_backends(settings)
        assert not bundle.is_local
        assert bundle.backend is bundle.client
        assert isinstance(bundle.backend, EntryBackend)
        assert not settings.db_path.exists()

    def test_remote_mode_without_url(self, settings):
        settings.mode = REMOTE_MODE
        with pytest.raises(ConfigurationError):
            create_backends(settings)

    def test_unknown_mode(self, settings):
        settings.mode = "cloud"
        with pytest.raises(ConfigurationError):
            create_backends(settings)
