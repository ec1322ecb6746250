"""Unified client for S3-protocol object storage."""

from s3bridge.common.config import Settings
from s3bridge.common.logging import setup_logging
from s3bridge.infra.storage.client import PutOptions, StorageError
from s3bridge.services.storage_service import StorageClient, build_storage_client

__version__ = "0.1.0"

__all__ = [
    "PutOptions",
    "Settings",
    "StorageClient",
    "StorageError",
    "build_storage_client",
    "setup_logging",
]
