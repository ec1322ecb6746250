"""Object storage backends.

This package provides a protocol-based abstraction over S3-protocol object
storage with two implementations: a transfer-manager backend for AWS S3 and
a single-request backend for S3-compatible services such as MinIO.
"""

from .client import (
    BackendCapabilities,
    CompletedPart,
    MultipartUpload,
    ObjectHead,
    PutOptions,
    StorageBackend,
    StorageError,
    is_not_found,
)
from .compat_client import S3CompatibleBackend
from .factory import build_backend
from .keys import KeyMapper
from .s3_client import S3TransferBackend

__all__ = [
    "BackendCapabilities",
    "CompletedPart",
    "KeyMapper",
    "MultipartUpload",
    "ObjectHead",
    "PutOptions",
    "S3CompatibleBackend",
    "S3TransferBackend",
    "StorageBackend",
    "StorageError",
    "build_backend",
    "is_not_found",
]
