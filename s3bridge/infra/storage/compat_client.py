"""S3-compatible storage backend built directly on botocore.

Targets MinIO-style services: every write is one unsplit PutObject request,
no checksum algorithm is requested, and aborting an upload the service no
longer knows about is treated as already released.

Dependencies:
    - botocore
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, BinaryIO, Sequence

from botocore.exceptions import ClientError

from s3bridge.infra.storage.client import (
    BackendCapabilities,
    CompletedPart,
    MultipartUpload,
    ObjectHead,
    Payload,
    PutOptions,
    StorageError,
    is_not_found,
)
from s3bridge.infra.storage.keys import KeyMapper
from s3bridge.infra.storage.staging import sized_body

if TYPE_CHECKING:
    from s3bridge.common.config import Settings

logger = logging.getLogger("s3bridge.storage")

_PRESIGN_METHODS = {"GET": "get_object", "PUT": "put_object"}


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code") or "")
    return ""


class S3CompatibleBackend:
    """Single-request backend for S3-compatible services such as MinIO."""

    def __init__(self, *, settings: "Settings", client: Any | None = None) -> None:
        self._settings = settings
        self.bucket = settings.S3_BUCKET
        self._keys = KeyMapper.from_sub_path(settings.S3_SUB_PATH)
        self._client = client if client is not None else self._build_client(settings)
        self.capabilities = BackendCapabilities(
            name="s3-compatible",
            sized_transfer=False,
            checksum_algorithm=None,
            idempotent_abort=True,
        )

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a botocore S3 client; blank keys fall back to the default chain."""
        from botocore.config import Config
        from botocore.session import get_session

        summary = settings.describe()
        logger.info(
            "Creating S3-compatible client endpoint=%s region=%s bucket=%s "
            "access_key=%s secret_key=%s",
            summary["endpoint"],
            summary["region"],
            summary["bucket"],
            summary["access_key"],
            summary["secret_key"],
            extra={"extra": summary},
        )
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": settings.addressing_style},
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            retries={"total_max_attempts": settings.S3_MAX_ATTEMPTS, "mode": "standard"},
        )
        kwargs: dict[str, Any] = {
            "endpoint_url": settings.S3_ENDPOINT_URL,
            "region_name": settings.S3_REGION,
            "config": config,
        }
        if settings.has_static_credentials:
            kwargs["aws_access_key_id"] = settings.S3_ACCESS_KEY_ID
            kwargs["aws_secret_access_key"] = settings.S3_SECRET_ACCESS_KEY
        else:
            logger.debug("Using the default credential chain")
        return get_session().create_client("s3", **kwargs)

    def create_bucket_if_not_exists(self) -> None:
        if not self.bucket or not self.bucket.strip():
            logger.debug("Bucket name is empty, skipping bucket creation")
            return
        try:
            self._client.head_bucket(Bucket=self.bucket)
            logger.debug("Bucket %s already exists", self.bucket)
            return
        except Exception as exc:
            if not is_not_found(exc):
                raise StorageError(
                    f"Error creating bucket: {self.bucket}: {exc}",
                    operation="create_bucket",
                ) from exc

        params: dict[str, Any] = {"Bucket": self.bucket}
        region = self._settings.S3_REGION
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self._client.create_bucket(**params)
        except Exception as exc:
            if _error_code(exc) in {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}:
                return
            raise StorageError(
                f"Error creating bucket: {self.bucket}: {exc}",
                operation="create_bucket",
            ) from exc
        logger.info("Created bucket %s", self.bucket)

    def put_object(
        self,
        *,
        object_key: str,
        data: Payload,
        size: int | None = None,
        options: PutOptions | None = None,
    ) -> None:
        """Write an object with a single PutObject request."""
        key = self._keys.to_remote(object_key, operation="write")
        try:
            with sized_body(data, size) as (body, length):
                self._client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentLength=length,
                    **PutOptions.request_args(options),
                )
        except Exception as exc:
            raise StorageError(
                f"Cannot write stream: {object_key}: {exc}",
                operation="write",
                path=object_key,
            ) from exc

    def upload_file(
        self,
        *,
        object_key: str,
        filename: str,
        options: PutOptions | None = None,
    ) -> None:
        key = self._keys.to_remote(object_key, operation="upload")
        try:
            with open(filename, "rb") as handle:
                with sized_body(handle) as (body, length):
                    self._client.put_object(
                        Bucket=self.bucket,
                        Key=key,
                        Body=body,
                        ContentLength=length,
                        **PutOptions.request_args(options),
                    )
        except Exception as exc:
            raise StorageError(
                f"Cannot upload file: {filename}: {exc}",
                operation="upload",
                path=object_key,
            ) from exc

    def get_object(self, *, object_key: str) -> BinaryIO:
        key = self._keys.to_remote(object_key, operation="read")
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            raise StorageError(
                f"Error creating input stream for path: {object_key}: {exc}",
                operation="read",
                path=object_key,
            ) from exc
        return response["Body"]

    def list_objects(
        self,
        *,
        prefix: str,
        delimiter: str | None = "/",
        max_keys: int | None = None,
        start_after: str | None = None,
    ) -> list[str]:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Prefix": self._keys.to_remote_prefix(prefix),
        }
        if delimiter:
            params["Delimiter"] = delimiter
        if start_after:
            params["StartAfter"] = self._keys.to_remote(start_after, operation="list")

        paginator = self._client.get_paginator("list_objects_v2")
        pagination: dict[str, int] = {}
        if max_keys is not None:
            pagination["PageSize"] = int(max_keys)

        keys: list[str] = []
        try:
            for page in paginator.paginate(**params, PaginationConfig=pagination):
                entries = [
                    entry["Prefix"] for entry in page.get("CommonPrefixes") or []
                ]
                entries.extend(obj["Key"] for obj in page.get("Contents") or [])
                keys.extend(sorted(entries))
                if max_keys is not None and len(keys) >= max_keys:
                    break
        except Exception as exc:
            raise StorageError(
                f"Error getting list of objects for path: {prefix}: {exc}",
                operation="list",
                path=prefix,
            ) from exc

        if max_keys is not None:
            keys = keys[:max_keys]
        return [self._keys.to_logical(key) for key in keys]

    def head_object(self, *, object_key: str) -> ObjectHead:
        key = self._keys.to_remote(object_key, operation="stat")
        try:
            response = self._client.head_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            raise StorageError(
                f"Error getting size: {object_key}: {exc}",
                operation="stat",
                path=object_key,
            ) from exc

        size = response.get("ContentLength")
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
        )

    def delete_object(self, *, object_key: str) -> None:
        key = self._keys.to_remote(object_key, operation="remove")
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            raise StorageError(
                f"Error deleting file: {object_key}: {exc}",
                operation="remove",
                path=object_key,
            ) from exc

    def delete_objects(self, *, object_keys: Sequence[str]) -> list[str]:
        if not object_keys:
            return []
        remote = [self._keys.to_remote(key, operation="remove") for key in object_keys]
        deleted: list[str] = []
        # DeleteObjects accepts at most 1000 keys per request.
        for start in range(0, len(remote), 1000):
            chunk = remote[start : start + 1000]
            try:
                response = self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in chunk], "Quiet": True},
                )
            except Exception as exc:
                raise StorageError(
                    f"Error deleting files: {exc}", operation="remove"
                ) from exc
            errors = response.get("Errors") or []
            if errors:
                failed = ", ".join(
                    self._keys.to_logical(str(err.get("Key"))) for err in errors
                )
                raise StorageError(
                    f"Error deleting files: {failed}", operation="remove"
                )
            deleted.extend(self._keys.to_logical(key) for key in chunk)
        return deleted

    def create_multipart_upload(
        self,
        *,
        object_key: str,
        options: PutOptions | None = None,
    ) -> MultipartUpload:
        key = self._keys.to_remote(object_key, operation="initiate_multipart")
        try:
            response = self._client.create_multipart_upload(
                Bucket=self.bucket, Key=key, **PutOptions.request_args(options)
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to create multipart upload: {exc}",
                operation="initiate_multipart",
                path=object_key,
            ) from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError(
                "S3 response missing UploadId",
                operation="initiate_multipart",
                path=object_key,
            )
        return MultipartUpload(
            upload_id=str(upload_id), bucket=self.bucket, object_key=object_key
        )

    def upload_part(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        data: Payload,
        size: int | None = None,
    ) -> str:
        key = self._keys.to_remote(object_key, operation="upload_part")
        try:
            with sized_body(data, size) as (body, length):
                response = self._client.upload_part(
                    Bucket=self.bucket,
                    Key=key,
                    UploadId=upload_id,
                    PartNumber=int(part_number),
                    Body=body,
                    ContentLength=length,
                )
        except Exception as exc:
            raise StorageError(
                f"Failed to upload part {part_number}: {exc}",
                operation="upload_part",
                path=object_key,
            ) from exc
        return str(response["ETag"])

    def upload_part_copy(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        source_key: str,
        source_range: tuple[int, int] | None = None,
    ) -> str:
        key = self._keys.to_remote(object_key, operation="upload_part_copy")
        source = self._keys.to_remote(source_key, operation="upload_part_copy")
        # MinIO accepts the copy source as a "bucket/key" string.
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "UploadId": upload_id,
            "PartNumber": int(part_number),
            "CopySource": f"{self.bucket}/{source}",
        }
        if source_range is not None:
            params["CopySourceRange"] = f"bytes={source_range[0]}-{source_range[1]}"
        try:
            response = self._client.upload_part_copy(**params)
        except Exception as exc:
            raise StorageError(
                f"Failed to copy part {part_number}: {exc}",
                operation="upload_part_copy",
                path=object_key,
            ) from exc
        return str(response["CopyPartResult"]["ETag"])

    def complete_multipart_upload(
        self,
        *,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        key = self._keys.to_remote(object_key, operation="complete_multipart")
        try:
            self._client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": part.etag, "PartNumber": int(part.part_number)}
                        for part in parts
                    ]
                },
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to complete multipart upload: {exc}",
                operation="complete_multipart",
                path=object_key,
            ) from exc

    def abort_multipart_upload(self, *, object_key: str, upload_id: str) -> None:
        """Abort a multipart upload; an unknown upload id counts as released."""
        key = self._keys.to_remote(object_key, operation="abort_multipart")
        try:
            self._client.abort_multipart_upload(
                Bucket=self.bucket, Key=key, UploadId=upload_id
            )
        except Exception as exc:
            if _error_code(exc) == "NoSuchUpload":
                logger.debug(
                    "Multipart upload %s for %s already released", upload_id, object_key
                )
                return
            raise StorageError(
                f"Failed to abort multipart upload: {exc}",
                operation="abort_multipart",
                path=object_key,
            ) from exc

    def presign(
        self,
        *,
        object_key: str,
        method: str,
        expires_in: int,
        extra_params: dict[str, Any] | None = None,
    ) -> str:
        key = self._keys.to_remote(object_key, operation="presign")
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        params.update(extra_params or {})
        try:
            client_method = (
                "upload_part"
                if "UploadId" in params
                else _PRESIGN_METHODS[method.upper()]
            )
            url = self._client.generate_presigned_url(
                client_method, Params=params, ExpiresIn=int(expires_in)
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to generate presigned URL: {exc}",
                operation="presign",
                path=object_key,
            ) from exc
        if not url:
            raise StorageError(
                "Generated presigned URL is empty", operation="presign", path=object_key
            )
        return str(url)
