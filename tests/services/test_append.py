"""Tests for the append orchestrator."""

from __future__ import annotations

import io

import pytest

from s3bridge.infra.storage.client import BackendCapabilities, StorageError
from s3bridge.services.append import (
    AppendOrchestrator,
    AppendStrategy,
    choose_append_strategy,
    object_exists,
)
from tests.services.mock_storage import MockStorageBackend

CAPS = BackendCapabilities(name="test", min_multipart_size=100)


class TestChooseAppendStrategy:
    def test_missing_object_is_created(self):
        assert (
            choose_append_strategy(exists=False, size_bytes=None, capabilities=CAPS)
            is AppendStrategy.CREATE
        )

    def test_empty_object_is_concatenated(self):
        assert (
            choose_append_strategy(exists=True, size_bytes=0, capabilities=CAPS)
            is AppendStrategy.CONCATENATE
        )

    def test_threshold_is_inclusive_for_concatenation(self):
        assert (
            choose_append_strategy(exists=True, size_bytes=100, capabilities=CAPS)
            is AppendStrategy.CONCATENATE
        )

    def test_above_threshold_uses_multipart_copy(self):
        assert (
            choose_append_strategy(exists=True, size_bytes=101, capabilities=CAPS)
            is AppendStrategy.MULTIPART_COPY
        )

    def test_default_threshold_is_five_mebibytes(self):
        caps = BackendCapabilities(name="default")
        assert (
            choose_append_strategy(
                exists=True, size_bytes=5 * 1024 * 1024, capabilities=caps
            )
            is AppendStrategy.CONCATENATE
        )
        assert (
            choose_append_strategy(
                exists=True, size_bytes=5 * 1024 * 1024 + 1, capabilities=caps
            )
            is AppendStrategy.MULTIPART_COPY
        )

    def test_existing_object_requires_size(self):
        with pytest.raises(ValueError):
            choose_append_strategy(exists=True, size_bytes=None, capabilities=CAPS)


@pytest.fixture()
def backend():
    return MockStorageBackend()


@pytest.fixture()
def orchestrator(backend):
    return AppendOrchestrator(backend, metrics_enabled=False)


class TestObjectExists:
    def test_exact_key_exists(self, backend):
        backend.objects["d/f.csv"] = b"x"
        assert object_exists(backend, "d/f.csv") is True

    def test_longer_sibling_does_not_count(self, backend):
        backend.objects["d/f.csv.bak"] = b"x"
        assert object_exists(backend, "d/f.csv") is False

    def test_missing(self, backend):
        assert object_exists(backend, "d/f.csv") is False


class TestAppend:
    def test_creates_missing_object(self, orchestrator, backend):
        result = orchestrator.append("d/new.txt", io.BytesIO(b"hello"))

        assert result == "d/new.txt"
        assert backend.objects["d/new.txt"] == b"hello"
        assert "create_multipart_upload" not in backend.calls
        assert "head_object" not in backend.calls

    def test_small_object_is_concatenated(self, orchestrator, backend):
        backend.objects["d/small.txt"] = b"abc"

        orchestrator.append("d/small.txt", io.BytesIO(b"def"))

        assert backend.objects["d/small.txt"] == b"abcdef"
        assert "create_multipart_upload" not in backend.calls
        assert backend.calls.count("put_object") == 1

    def test_large_object_uses_copy_and_upload_parts(self, orchestrator, backend):
        original = bytes(range(40))
        backend.objects["d/large.bin"] = original

        orchestrator.append("d/large.bin", b"\xff")

        assert backend.objects["d/large.bin"] == original + b"\xff"
        assert backend.calls[-4:] == [
            "create_multipart_upload",
            "upload_part_copy",
            "upload_part",
            "complete_multipart_upload",
        ]
        assert backend.uploads["mock-upload-1"]["parts"][1] == original
        assert backend.uploads["mock-upload-1"]["parts"][2] == b"\xff"

    def test_repeated_appends_rescan_size(self, orchestrator, backend):
        backend.objects["d/grow.bin"] = b"a" * 10

        orchestrator.append("d/grow.bin", b"b" * 10)
        orchestrator.append("d/grow.bin", b"c" * 10)

        # 10 -> 20 bytes concatenated, 20 bytes is above the threshold of 16
        assert backend.objects["d/grow.bin"] == b"a" * 10 + b"b" * 10 + b"c" * 10
        assert backend.calls.count("create_multipart_upload") == 1

    def test_closes_caller_stream(self, orchestrator):
        stream = io.BytesIO(b"data")
        orchestrator.append("d/x.txt", stream)
        assert stream.closed

    def test_rejects_blank_path(self, orchestrator, backend):
        with pytest.raises(StorageError, match="must not be empty") as excinfo:
            orchestrator.append("  ", b"data")

        assert excinfo.value.operation == "append"
        assert backend.calls == []

    def test_rejects_missing_data(self, orchestrator, backend):
        with pytest.raises(StorageError, match="Cannot append empty stream") as excinfo:
            orchestrator.append("d/x.txt", None)

        assert excinfo.value.path == "d/x.txt"
        assert backend.calls == []

    @pytest.mark.parametrize(
        "failing", ["upload_part_copy", "upload_part", "complete_multipart_upload"]
    )
    def test_failure_aborts_upload_and_wraps_cause(self, orchestrator, backend, failing):
        original = b"z" * 32
        backend.objects["d/large.bin"] = original
        backend.fail_on.add(failing)

        with pytest.raises(StorageError, match="Cannot append data for path") as excinfo:
            orchestrator.append("d/large.bin", b"new")

        assert excinfo.value.operation == "append"
        assert excinfo.value.path == "d/large.bin"
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert str(excinfo.value.__cause__) == f"{failing} failed"
        assert backend.calls[-1] == "abort_multipart_upload"
        assert backend.uploads["mock-upload-1"]["state"] == "aborted"
        assert backend.objects["d/large.bin"] == original

    def test_abort_failure_does_not_mask_original_error(self, orchestrator, backend):
        backend.objects["d/large.bin"] = b"z" * 32
        backend.fail_on.add("upload_part")
        backend.abort_error = ConnectionError("abort failed too")

        with pytest.raises(StorageError) as excinfo:
            orchestrator.append("d/large.bin", b"new")

        assert str(excinfo.value.__cause__) == "upload_part failed"
        assert "abort_multipart_upload" in backend.calls

    def test_failure_before_initiate_does_not_abort(self, orchestrator, backend):
        backend.objects["d/large.bin"] = b"z" * 32
        backend.fail_on.add("create_multipart_upload")

        with pytest.raises(StorageError):
            orchestrator.append("d/large.bin", b"new")

        assert "abort_multipart_upload" not in backend.calls

    def test_stat_failure_is_wrapped(self, orchestrator, backend):
        backend.objects["d/f.txt"] = b"x"
        backend.fail_on.add("head_object")

        with pytest.raises(StorageError) as excinfo:
            orchestrator.append("d/f.txt", b"y")

        assert excinfo.value.operation == "append"
        assert backend.objects["d/f.txt"] == b"x"
