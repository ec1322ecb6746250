from .append import (
    AppendOrchestrator,
    AppendStrategy,
    choose_append_strategy,
    object_exists,
)
from .multipart import MultipartSession, parts_from_etags
from .presign import PresignedUrl, PresignedUrlIssuer
from .storage_service import StorageClient, build_storage_client
from .writer import RemoteStorageWriter

__all__ = [
    "AppendOrchestrator",
    "AppendStrategy",
    "MultipartSession",
    "PresignedUrl",
    "PresignedUrlIssuer",
    "RemoteStorageWriter",
    "StorageClient",
    "build_storage_client",
    "choose_append_strategy",
    "object_exists",
    "parts_from_etags",
]
