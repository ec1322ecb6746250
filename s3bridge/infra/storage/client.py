"""Storage backend protocol and data types.

This module defines the contract every S3-protocol backend implements,
covering plain object operations, the multipart primitives used by the
append and session layers, and presigned URL generation.

All keys accepted and returned here are *logical* keys: implementations
apply the configured sub-path themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, BinaryIO, Protocol, Sequence, Union

MIN_MULTIPART_SIZE = 5 * 1024 * 1024
MAX_PART_SIZE = 5 * 1024 * 1024 * 1024
MAX_PART_NUMBER = 10000

# Body accepted by write-style operations
Payload = Union[bytes, bytearray, BinaryIO]


class StorageError(RuntimeError):
    """Raised when object storage operations fail.

    Carries the failed operation name and the logical object path; the
    original exception is available as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.path = path


def is_not_found(error: BaseException | None) -> bool:
    """Return True when ``error`` (or its cause chain) is a missing object or bucket."""
    while error is not None:
        response = getattr(error, "response", None) or {}
        code = str((response.get("Error") or {}).get("Code") or "")
        if code in {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}:
            return True
        error = error.__cause__
    return False


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None


@dataclass(frozen=True, slots=True)
class PutOptions:
    """Optional headers for write operations."""

    content_type: str | None = None
    content_disposition: str | None = None

    def to_request_args(self) -> dict[str, str]:
        args: dict[str, str] = {}
        if self.content_type is not None:
            args["ContentType"] = self.content_type
        if self.content_disposition is not None:
            args["ContentDisposition"] = self.content_disposition
        return args

    @staticmethod
    def request_args(options: "PutOptions | None") -> dict[str, str]:
        if options is None:
            return {}
        return options.to_request_args()


@dataclass(frozen=True, slots=True)
class BackendCapabilities:
    """Static description of what a backend can do.

    The append strategy and the session layer read these flags instead of
    branching on the backend type.
    """

    name: str
    min_multipart_size: int = MIN_MULTIPART_SIZE
    max_part_size: int = MAX_PART_SIZE
    max_parts: int = MAX_PART_NUMBER
    sized_transfer: bool = False
    checksum_algorithm: str | None = None
    idempotent_abort: bool = False


class StorageBackend(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations must provide all methods defined here.
    """

    capabilities: BackendCapabilities
    bucket: str

    def create_bucket_if_not_exists(self) -> None:
        """Create the configured bucket unless it already exists.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def put_object(
        self,
        *,
        object_key: str,
        data: Payload,
        size: int | None = None,
        options: PutOptions | None = None,
    ) -> None:
        """Write ``data`` as the full content of ``object_key``.

        Args:
            object_key: Logical object key.
            data: Bytes or a readable binary stream.
            size: Content length when known in advance.
            options: Optional content headers.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def upload_file(
        self,
        *,
        object_key: str,
        filename: str,
        options: PutOptions | None = None,
    ) -> None:
        """Upload a local file as ``object_key``.

        Raises:
            StorageError: If the file cannot be read or the upload fails.
        """
        ...

    def get_object(self, *, object_key: str) -> BinaryIO:
        """Open ``object_key`` for reading. The caller closes the stream.

        Raises:
            StorageError: If the object doesn't exist or operation fails.
        """
        ...

    def list_objects(
        self,
        *,
        prefix: str,
        delimiter: str | None = "/",
        max_keys: int | None = None,
        start_after: str | None = None,
    ) -> list[str]:
        """List keys and common prefixes under ``prefix``.

        Args:
            prefix: Logical key prefix.
            delimiter: Grouping delimiter, ``None`` for a recursive listing.
            max_keys: Maximum number of entries, ``None`` for all.
            start_after: Logical key to start listing after.

        Returns:
            Logical keys (and ``/``-terminated prefixes) in backend order.
        """
        ...

    def head_object(self, *, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            StorageError: If the object doesn't exist or operation fails.
        """
        ...

    def delete_object(self, *, object_key: str) -> None:
        """Delete an object from storage."""
        ...

    def delete_objects(self, *, object_keys: Sequence[str]) -> list[str]:
        """Delete several objects in one request.

        Returns:
            The logical keys that were deleted.

        Raises:
            StorageError: If the request fails or any key reports an error.
        """
        ...

    def create_multipart_upload(
        self,
        *,
        object_key: str,
        options: PutOptions | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.
        """
        ...

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
        ...

    def upload_part_copy(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        source_key: str,
        source_range: tuple[int, int] | None = None,
    ) -> str:
        """Copy a byte range of ``source_key`` server-side as one part.

        Args:
            source_range: Inclusive ``(first, last)`` byte offsets, or
                ``None`` for the whole source object.

        Returns:
            The ETag of the copied part.
        """
        ...

    def complete_multipart_upload(
        self,
        *,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        ...

    def abort_multipart_upload(self, *, object_key: str, upload_id: str) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        ...

    def presign(
        self,
        *,
        object_key: str,
        method: str,
        expires_in: int,
        extra_params: dict[str, Any] | None = None,
    ) -> str:
        """Generate a presigned URL.

        Args:
            object_key: Logical object key.
            method: ``GET`` or ``PUT``.
            expires_in: URL expiration time in seconds.
            extra_params: Extra request parameters, e.g. ``UploadId`` and
                ``PartNumber`` for a part upload.

        Returns:
            Presigned URL.
        """
        ...
