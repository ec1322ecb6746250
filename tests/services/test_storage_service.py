"""Tests for the StorageClient facade over the in-memory backend."""

from __future__ import annotations

import io

import pytest

from s3bridge.common.config import Settings
from s3bridge.infra.storage.client import BackendCapabilities
from s3bridge.infra.storage.staging import ChainedReader
from s3bridge.services.storage_service import StorageClient
from tests.services.mock_storage import MockStorageBackend


def _client(sized_transfer: bool) -> tuple[StorageClient, MockStorageBackend]:
    backend = MockStorageBackend(
        capabilities=BackendCapabilities(name="memory", sized_transfer=sized_transfer)
    )
    return StorageClient(settings=Settings(ENABLE_METRICS=False), backend=backend), backend


class TestWriteSizeHint:
    def test_sized_backend_gets_length_of_seekable_stream(self):
        client, backend = _client(sized_transfer=True)
        stream = io.BytesIO(b"0123456789")
        stream.seek(2)

        client.write("d/f.bin", stream)

        assert backend.put_sizes == [8]
        assert backend.objects["d/f.bin"] == b"23456789"

    def test_sized_backend_without_measurable_length(self):
        client, backend = _client(sized_transfer=True)

        client.write("d/f.bin", ChainedReader(io.BytesIO(b"ab"), io.BytesIO(b"cd")))

        assert backend.put_sizes == [None]

    def test_explicit_size_is_kept(self):
        client, backend = _client(sized_transfer=True)

        client.write("d/f.bin", io.BytesIO(b"abc"), size=3)

        assert backend.put_sizes == [3]

    def test_single_request_backend_is_not_measured(self):
        client, backend = _client(sized_transfer=False)

        client.write("d/f.bin", io.BytesIO(b"abc"))

        assert backend.put_sizes == [None]


def test_default_settings_when_only_backend_given():
    backend = MockStorageBackend()
    client = StorageClient(backend=backend)

    assert client.backend is backend
    assert "expires=600" in client.get_presigned_url("d/f.bin")


@pytest.mark.parametrize("paths, expected", [((), []), (("a", "b"), ["a", "b"])])
def test_remove_many(paths, expected):
    client, backend = _client(sized_transfer=False)
    backend.objects.update({"a": b"1", "b": b"2"})

    assert client.remove_many(*paths) == expected
