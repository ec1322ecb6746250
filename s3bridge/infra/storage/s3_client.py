"""S3 storage backend built on boto3 and its transfer manager.

Writes go through s3transfer, which splits large payloads into parts and
uploads them concurrently when the size is known up front. Every write
carries a checksum algorithm so the service verifies the content.

Dependencies:
    - boto3
    - botocore
    - s3transfer
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, BinaryIO, Sequence

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
from s3bridge.infra.storage.staging import as_stream, sized_body

if TYPE_CHECKING:
    from boto3.s3.transfer import TransferConfig

    from s3bridge.common.config import Settings

logger = logging.getLogger("s3bridge.storage")

_PRESIGN_METHODS = {"GET": "get_object", "PUT": "put_object"}


class S3TransferBackend:
    """S3 backend using the boto3 transfer manager for writes.

    Supports AWS S3 and S3-compatible services that accept checksummed
    uploads.
    """

    def __init__(self, *, settings: "Settings", client: Any | None = None) -> None:
        """Initialize the backend with configuration from settings.

        Args:
            settings: Storage settings containing the S3 configuration.
            client: Pre-built boto3 S3 client, mainly for tests.

        Raises:
            StorageError: If boto3 is not installed.
        """
        self._settings = settings
        self.bucket = settings.S3_BUCKET
        self._keys = KeyMapper.from_sub_path(settings.S3_SUB_PATH)
        self._client = client if client is not None else self._build_client(settings)
        self.capabilities = BackendCapabilities(
            name="aws-sdk",
            sized_transfer=True,
            checksum_algorithm=settings.S3_CHECKSUM_ALGORITHM,
            idempotent_abort=False,
        )

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for the AWS SDK backend. "
                "Install with: pip install boto3"
            ) from exc

        summary = settings.describe()
        logger.info(
            "Creating AWS SDK client endpoint=%s region=%s bucket=%s "
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
        return boto3.client("s3", **kwargs)

    def _transfer_config(self, size: int | None) -> "TransferConfig":
        from boto3.s3.transfer import TransferConfig

        threshold = int(self._settings.S3_MULTIPART_THRESHOLD_BYTES)
        if size is None:
            # Unknown length: parts are buffered one at a time.
            return TransferConfig(
                multipart_threshold=threshold,
                multipart_chunksize=threshold,
                max_concurrency=1,
                use_threads=False,
            )
        limits = self.capabilities
        chunk_size = max(threshold, -(-int(size) // limits.max_parts))
        return TransferConfig(
            multipart_threshold=threshold,
            multipart_chunksize=min(chunk_size, limits.max_part_size),
            max_concurrency=int(self._settings.S3_MAX_CONCURRENCY),
        )

    def _write_args(self, options: PutOptions | None) -> dict[str, str]:
        args = {"ChecksumAlgorithm": self.capabilities.checksum_algorithm or "CRC32"}
        args.update(PutOptions.request_args(options))
        return args

    def create_bucket_if_not_exists(self) -> None:
        """Create the configured bucket unless it already exists."""
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
        """Write an object through the transfer manager."""
        key = self._keys.to_remote(object_key, operation="write")
        if size is None and isinstance(data, (bytes, bytearray)):
            size = len(data)
        try:
            self._client.upload_fileobj(
                as_stream(data),
                self.bucket,
                key,
                ExtraArgs=self._write_args(options),
                Config=self._transfer_config(size),
            )
        except Exception as exc:
            raise StorageError(
                f"Cannot write object: {object_key}: {exc}",
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
        """Upload a local file through the transfer manager."""
        key = self._keys.to_remote(object_key, operation="upload")
        try:
            size = os.path.getsize(filename)
            self._client.upload_file(
                filename,
                self.bucket,
                key,
                ExtraArgs=self._write_args(options),
                Config=self._transfer_config(size),
            )
        except Exception as exc:
            raise StorageError(
                f"Cannot upload file: {filename}: {exc}",
                operation="upload",
                path=object_key,
            ) from exc

    def get_object(self, *, object_key: str) -> BinaryIO:
        """Open an object for streaming reads."""
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
        """List keys and common prefixes under a prefix."""
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Prefix": self._keys.to_remote_prefix(prefix),
        }
        if delimiter:
            params["Delimiter"] = delimiter
        if start_after:
            params["StartAfter"] = self._keys.to_remote(start_after, operation="list")
        if max_keys is not None:
            params["MaxKeys"] = int(max_keys)

        keys: list[str] = []
        try:
            while True:
                response = self._client.list_objects_v2(**params)
                page = [
                    entry["Prefix"] for entry in response.get("CommonPrefixes") or []
                ]
                page.extend(obj["Key"] for obj in response.get("Contents") or [])
                keys.extend(sorted(page))
                if max_keys is not None and len(keys) >= max_keys:
                    break
                if not response.get("IsTruncated"):
                    break
                params["ContinuationToken"] = response["NextContinuationToken"]
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
        """Get object metadata without downloading the content."""
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
        """Delete an object from storage."""
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
        """Delete several objects in one request."""
        if not object_keys:
            return []
        remote = [self._keys.to_remote(key, operation="remove") for key in object_keys]
        try:
            response = self._client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in remote], "Quiet": True},
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
            raise StorageError(f"Error deleting files: {failed}", operation="remove")
        return list(object_keys)

    def create_multipart_upload(
        self,
        *,
        object_key: str,
        options: PutOptions | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        key = self._keys.to_remote(object_key, operation="initiate_multipart")
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        params.update(PutOptions.request_args(options))

        try:
            response = self._client.create_multipart_upload(**params)
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
            upload_id=str(upload_id),
            bucket=self.bucket,
            object_key=object_key,
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
        """Upload one part and return its ETag."""
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
        """Copy a byte range of an existing object as one part."""
        key = self._keys.to_remote(object_key, operation="upload_part_copy")
        source = self._keys.to_remote(source_key, operation="upload_part_copy")
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "UploadId": upload_id,
            "PartNumber": int(part_number),
            "CopySource": {"Bucket": self.bucket, "Key": source},
        }
        if source_range is not None:
            first, last = source_range
            params["CopySourceRange"] = f"bytes={int(first)}-{int(last)}"
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
        """Complete a multipart upload by combining all parts."""
        key = self._keys.to_remote(object_key, operation="complete_multipart")
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            self._client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to complete multipart upload: {exc}",
                operation="complete_multipart",
                path=object_key,
            ) from exc

    def abort_multipart_upload(self, *, object_key: str, upload_id: str) -> None:
        """Abort a multipart upload; an unknown upload id is an error."""
        key = self._keys.to_remote(object_key, operation="abort_multipart")
        try:
            self._client.abort_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
            )
        except Exception as exc:
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
        """Generate a presigned URL."""
        key = self._keys.to_remote(object_key, operation="presign")
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        params.update(extra_params or {})
        try:
            if "UploadId" in params:
                client_method = "upload_part"
            else:
                client_method = _PRESIGN_METHODS[method.upper()]
            url = self._client.generate_presigned_url(
                client_method,
                Params=params,
                ExpiresIn=int(expires_in),
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
