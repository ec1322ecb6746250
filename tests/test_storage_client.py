"""End-to-end storage client tests against an in-process S3 (moto).

Every test in this module runs once per backend.
"""

from __future__ import annotations

import io
import os

import boto3
import pytest

from s3bridge.infra.storage.client import PutOptions, StorageError
from s3bridge.services.storage_service import build_storage_client


MIB = 1024 * 1024
TEST_BUCKET = "test-bucket"


def _read(client, path: str) -> bytes:
    stream = client.read(path)
    try:
        return stream.read()
    finally:
        stream.close()


class TestObjectLifecycle:
    def test_write_list_read_remove(self, storage_client):
        payload = os.urandom(1024)

        assert storage_client.write("dir/file.ext", io.BytesIO(payload)) == "dir/file.ext"
        assert storage_client.list("dir/") == ["dir/file.ext"]
        assert _read(storage_client, "dir/file.ext") == payload
        assert storage_client.get_size("dir/file.ext") == 1024

        storage_client.remove("dir/file.ext")

        assert storage_client.list("dir/") == []

    def test_write_bytes_with_known_size(self, storage_client):
        storage_client.write("sized.bin", io.BytesIO(b"0123456789"), size=10)
        assert _read(storage_client, "sized.bin") == b"0123456789"

    def test_write_none_is_rejected(self, storage_client):
        with pytest.raises(StorageError, match="Cannot write empty stream"):
            storage_client.write("x.bin", None)

    def test_write_closes_stream(self, storage_client):
        stream = io.BytesIO(b"data")
        storage_client.write("closed.bin", stream)
        assert stream.closed

    def test_content_type_is_stored(self, storage_client):
        storage_client.write(
            "report.csv", b"a,b\n", options=PutOptions(content_type="text/csv")
        )

        head = storage_client.backend.head_object(object_key="report.csv")
        assert head.content_type == "text/csv"

    def test_upload_local_file(self, storage_client, tmp_path):
        source = tmp_path / "local.txt"
        source.write_bytes(b"from disk")

        storage_client.upload("uploads/local.txt", str(source))

        assert _read(storage_client, "uploads/local.txt") == b"from disk"

    def test_upload_missing_file_fails(self, storage_client, tmp_path):
        with pytest.raises(StorageError, match="Cannot upload file"):
            storage_client.upload("uploads/none.txt", str(tmp_path / "none.txt"))

    def test_read_missing_object_fails(self, storage_client):
        with pytest.raises(StorageError, match="Error creating input stream") as excinfo:
            storage_client.read("missing/object.bin")

        assert excinfo.value.operation == "read"

    def test_get_size_of_missing_object_fails(self, storage_client):
        with pytest.raises(StorageError, match="Error getting size"):
            storage_client.get_size("missing/object.bin")

    @pytest.mark.parametrize("path", ["", "   "])
    def test_blank_path_is_rejected(self, storage_client, path):
        with pytest.raises(StorageError, match="must not be empty"):
            storage_client.write(path, b"data")

    def test_remove_many(self, storage_client):
        for name in ("m/1", "m/2", "m/3"):
            storage_client.write(name, b"x")

        removed = storage_client.remove_many("m/1", "m/3")

        assert sorted(removed) == ["m/1", "m/3"]
        assert storage_client.list("m/") == ["m/2"]

    def test_remove_many_without_paths(self, storage_client):
        assert storage_client.remove_many() == []


class TestListing:
    def test_nested_keys_collapse_into_prefix(self, storage_client):
        storage_client.write("a/b/c.txt", b"x")

        assert storage_client.list("a/") == ["a/b/"]
        assert storage_client.list_recursive("a/") == ["a/b/c.txt"]

    def test_max_keys_and_start_after(self, storage_client):
        for name in ("k/1", "k/2", "k/3"):
            storage_client.write(name, b"x")

        assert storage_client.list("k/", max_keys=2) == ["k/1", "k/2"]
        assert storage_client.list("k/", start_after="k/1") == ["k/2", "k/3"]

    def test_missing_prefix_lists_nothing(self, storage_client):
        assert storage_client.list("nothing/here/") == []


class TestAppend:
    def test_append_creates_missing_object(self, storage_client):
        storage_client.append("logs/new.log", io.BytesIO(b"first"))
        assert _read(storage_client, "logs/new.log") == b"first"

    def test_small_object_is_concatenated(self, storage_client):
        storage_client.write("logs/app.log", b"line 1\n")

        storage_client.append("logs/app.log", io.BytesIO(b"line 2\n"))

        assert _read(storage_client, "logs/app.log") == b"line 1\nline 2\n"

    def test_large_object_grows_by_one_byte(self, storage_client):
        original = os.urandom(6 * MIB)
        storage_client.write("big/blob.bin", io.BytesIO(original), size=len(original))

        storage_client.append("big/blob.bin", io.BytesIO(b"\x7f"))

        assert storage_client.get_size("big/blob.bin") == 6 * MIB + 1
        content = _read(storage_client, "big/blob.bin")
        assert content[-1:] == b"\x7f"
        assert content[:-1] == original

    def test_blank_path_is_rejected(self, storage_client):
        with pytest.raises(StorageError, match="must not be empty"):
            storage_client.append(" ", b"data")


class TestMultipart:
    @pytest.fixture
    def part_files(self, tmp_path):
        first = tmp_path / "part1.bin"
        first.write_bytes(b"a" * (5 * MIB))
        second = tmp_path / "part2.bin"
        second.write_bytes(b"b" * 100)
        return str(first), str(second)

    def test_upload_and_complete(self, storage_client, part_files):
        upload_id = storage_client.initiate_multipart_upload("dir/file.ext")
        etags = [
            storage_client.upload_multipart_part("dir/file.ext", upload_id, number, name)
            for number, name in enumerate(part_files, start=1)
        ]

        storage_client.complete_multipart_upload("dir/file.ext", upload_id, etags)

        assert storage_client.get_size("dir/file.ext") == 5 * MIB + 100

    def test_presigned_part_url(self, storage_client):
        upload_id = storage_client.initiate_multipart_upload("dir/file.ext")

        url = storage_client.presign_part_url("dir/file.ext", upload_id, 3)

        assert "partNumber=3" in url
        assert upload_id in url
        assert "dir/file.ext" in url

    def test_complete_after_abort_fails(self, storage_client, part_files):
        upload_id = storage_client.initiate_multipart_upload("dir/file.ext")
        etag = storage_client.upload_multipart_part(
            "dir/file.ext", upload_id, 1, part_files[1]
        )
        storage_client.abort_multipart_upload("dir/file.ext", upload_id)

        with pytest.raises(StorageError):
            storage_client.complete_multipart_upload("dir/file.ext", upload_id, [etag])

    def test_second_complete_leaves_object_intact(self, storage_client, part_files):
        upload_id = storage_client.initiate_multipart_upload("dir/file.ext")
        etag = storage_client.upload_multipart_part(
            "dir/file.ext", upload_id, 1, part_files[1]
        )
        storage_client.complete_multipart_upload("dir/file.ext", upload_id, [etag])

        # S3 may accept a repeated complete of a recently completed upload;
        # either way the assembled object must not change.
        try:
            storage_client.complete_multipart_upload("dir/file.ext", upload_id, [etag])
        except StorageError as exc:
            assert exc.operation == "complete_multipart"

        assert _read(storage_client, "dir/file.ext") == b"b" * 100

    def test_complete_without_parts_fails(self, storage_client):
        upload_id = storage_client.initiate_multipart_upload("dir/file.ext")

        with pytest.raises(StorageError, match="without parts"):
            storage_client.complete_multipart_upload("dir/file.ext", upload_id, [])

    def test_upload_after_abort_fails(self, storage_client, part_files):
        upload_id = storage_client.initiate_multipart_upload("dir/file.ext")
        storage_client.abort_multipart_upload("dir/file.ext", upload_id)

        with pytest.raises(StorageError):
            storage_client.upload_multipart_part(
                "dir/file.ext", upload_id, 1, part_files[1]
            )

    def test_second_abort_depends_on_backend(self, storage_client):
        upload_id = storage_client.initiate_multipart_upload("dir/file.ext")
        storage_client.abort_multipart_upload("dir/file.ext", upload_id)

        if storage_client.backend.capabilities.idempotent_abort:
            storage_client.abort_multipart_upload("dir/file.ext", upload_id)
        else:
            with pytest.raises(StorageError, match="Failed to abort multipart upload"):
                storage_client.abort_multipart_upload("dir/file.ext", upload_id)


class TestPresignedUrls:
    def test_download_url(self, storage_client):
        storage_client.write("docs/a.pdf", b"%PDF")

        url = storage_client.get_presigned_url("docs/a.pdf")

        assert url.startswith("https://")
        assert "docs/a.pdf" in url
        assert "X-Amz-Expires=600" in url

    def test_upload_url_with_custom_ttl(self, storage_client):
        url = storage_client.get_presigned_url("docs/b.pdf", "PUT", expires_in=120)

        assert "docs/b.pdf" in url
        assert "X-Amz-Expires=120" in url

    def test_unsupported_method(self, storage_client):
        with pytest.raises(StorageError, match="Unsupported presign method"):
            storage_client.get_presigned_url("docs/a.pdf", "DELETE")


@pytest.mark.parametrize("use_sdk", [True, False], ids=["aws-sdk", "s3-compatible"])
def test_sub_path_is_applied_and_stripped(aws, settings_factory, use_sdk):
    client = build_storage_client(
        settings_factory(S3_AWS_SDK=use_sdk, S3_SUB_PATH="/tenant/"),
        ensure_bucket=True,
    )

    client.write("a.txt", b"scoped")

    raw = boto3.client("s3", region_name="us-east-1")
    stored = raw.get_object(Bucket=TEST_BUCKET, Key="tenant/a.txt")["Body"].read()
    assert stored == b"scoped"
    assert client.list("") == ["a.txt"]
    assert client.list_recursive("") == ["a.txt"]


@pytest.mark.parametrize("use_sdk", [True, False], ids=["aws-sdk", "s3-compatible"])
@pytest.mark.parametrize("sub_path", ["tenant", None], ids=["sub-path", "no-sub-path"])
def test_append_with_leading_slash_keeps_content(aws, settings_factory, use_sdk, sub_path):
    client = build_storage_client(
        settings_factory(S3_AWS_SDK=use_sdk, S3_SUB_PATH=sub_path),
        ensure_bucket=True,
    )

    client.append("/logs/a.log", b"one ")
    client.append("/logs/a.log", b"two")

    assert _read(client, "/logs/a.log") == b"one two"
    assert _read(client, "logs/a.log") == b"one two"


def test_ensure_bucket_is_idempotent(aws, settings_factory):
    settings = settings_factory(S3_AWS_SDK=False)
    build_storage_client(settings, ensure_bucket=True)
    build_storage_client(settings, ensure_bucket=True)

    raw = boto3.client("s3", region_name="us-east-1")
    names = [bucket["Name"] for bucket in raw.list_buckets()["Buckets"]]
    assert names == [TEST_BUCKET]
