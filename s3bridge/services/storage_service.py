"""Storage client facade.

This module composes a backend, the append orchestrator, the multipart
session driver and the presigned URL issuer behind one synchronous API.
Every operation blocks until the backend answers and reports failures as
:class:`StorageError`.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Sequence

from s3bridge.common.config import Settings
from s3bridge.common.logging import setup_logging
from s3bridge.infra.observability.tracking import track_operation
from s3bridge.infra.storage.client import (
    Payload,
    PutOptions,
    StorageBackend,
    StorageError,
)
from s3bridge.infra.storage.factory import build_backend
from s3bridge.infra.storage.staging import remaining_length
from s3bridge.services.append import AppendOrchestrator
from s3bridge.services.multipart import MultipartSession
from s3bridge.services.presign import PresignedUrlIssuer
from s3bridge.services.writer import RemoteStorageWriter

startup_logger = logging.getLogger("s3bridge.startup")


class StorageClient:
    """Unified client for S3-protocol object storage.

    The backend is chosen once from ``settings.S3_AWS_SDK`` unless one is
    passed in explicitly; without settings the defaults of
    :class:`Settings` apply.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        backend: StorageBackend | None = None,
        ensure_bucket: bool = False,
    ) -> None:
        settings = settings or Settings()
        self._settings = settings
        self._backend = backend or build_backend(settings)
        self._presigner = PresignedUrlIssuer(
            self._backend, expires_in=settings.S3_PRESIGN_EXPIRES_SECONDS
        )
        self._sessions = MultipartSession(self._backend, self._presigner)
        self._appender = AppendOrchestrator(
            self._backend, metrics_enabled=settings.ENABLE_METRICS
        )
        if ensure_bucket:
            self.create_bucket_if_not_exists()
        startup_logger.info(
            "Storage client ready backend=%s bucket=%s",
            self._backend.capabilities.name,
            self._backend.bucket or "-",
        )

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def _track(self, operation: str, path: str | None = None):
        return track_operation(
            operation,
            path=path,
            backend=self._backend.capabilities.name,
            metrics_enabled=self._settings.ENABLE_METRICS,
        )

    def create_bucket_if_not_exists(self) -> None:
        with self._track("create_bucket"):
            self._backend.create_bucket_if_not_exists()

    def write(
        self,
        path: str,
        data: Payload,
        *,
        size: int | None = None,
        options: PutOptions | None = None,
    ) -> str:
        """Write ``data`` as the whole content of ``path``.

        Args:
            path: Logical object path.
            data: Bytes or a readable binary stream; streams are closed
                afterwards.
            size: Content length when known; lets the transfer backend
                split and parallelize the upload.
            options: Optional content type and disposition.

        Returns:
            The logical path written.
        """
        if data is None:
            raise StorageError("Cannot write empty stream", operation="write", path=path)
        if size is None and self._backend.capabilities.sized_transfer:
            size = remaining_length(data)
        with self._track("write", path):
            try:
                self._backend.put_object(
                    object_key=path, data=data, size=size, options=options
                )
            finally:
                if not isinstance(data, (bytes, bytearray)):
                    data.close()
        return path

    def upload(
        self, path: str, filename: str, *, options: PutOptions | None = None
    ) -> str:
        """Upload the local file ``filename`` to ``path``."""
        with self._track("upload", path):
            self._backend.upload_file(object_key=path, filename=filename, options=options)
        return path

    def append(self, path: str, data: Payload) -> str:
        """Append ``data`` to ``path``, creating it when missing."""
        with self._track("append", path):
            return self._appender.append(path, data)

    def read(self, path: str) -> BinaryIO:
        """Open ``path`` for reading; the caller closes the stream."""
        with self._track("read", path):
            return self._backend.get_object(object_key=path)

    def list(
        self,
        path: str,
        *,
        max_keys: int | None = None,
        start_after: str | None = None,
    ) -> list[str]:
        """List the immediate children of ``path``.

        Nested keys are collapsed into ``/``-terminated prefixes.
        """
        with self._track("list", path):
            return self._backend.list_objects(
                prefix=path, delimiter="/", max_keys=max_keys, start_after=start_after
            )

    def list_recursive(self, path: str) -> list[str]:
        """List every key under ``path``."""
        with self._track("list_recursive", path):
            return self._backend.list_objects(prefix=path, delimiter=None)

    def remove(self, path: str) -> str:
        with self._track("remove", path):
            self._backend.delete_object(object_key=path)
        return path

    def remove_many(self, *paths: str) -> list[str]:
        if not paths:
            return []
        with self._track("remove_many"):
            return self._backend.delete_objects(object_keys=list(paths))

    def get_size(self, path: str) -> int:
        with self._track("get_size", path):
            return self._backend.head_object(object_key=path).size_bytes

    def get_presigned_url(
        self,
        path: str,
        method: str = "GET",
        *,
        expires_in: int | None = None,
    ) -> str:
        """Presign a GET or PUT of ``path``.

        ``expires_in`` defaults to ``S3_PRESIGN_EXPIRES_SECONDS``.
        """
        with self._track("presign", path):
            return self._presigner.issue(path, method, expires_in=expires_in).url

    def remote_storage_writer(self, path: str, buffer_size: int) -> RemoteStorageWriter:
        return RemoteStorageWriter(path, buffer_size, self)

    def initiate_multipart_upload(
        self, path: str, *, options: PutOptions | None = None
    ) -> str:
        with self._track("initiate_multipart", path):
            return self._sessions.initiate(path, options=options)

    def presign_part_url(self, path: str, upload_id: str, part_number: int) -> str:
        with self._track("presign_part", path):
            return self._sessions.presign_part_url(path, upload_id, part_number)

    def upload_multipart_part(
        self, path: str, upload_id: str, part_number: int, filename: str
    ) -> str:
        with self._track("upload_part", path):
            return self._sessions.upload_part(path, upload_id, part_number, filename)

    def complete_multipart_upload(
        self, path: str, upload_id: str, etags: Sequence[str]
    ) -> str:
        with self._track("complete_multipart", path):
            return self._sessions.complete(path, upload_id, etags)

    def abort_multipart_upload(self, path: str, upload_id: str) -> None:
        with self._track("abort_multipart", path):
            self._sessions.abort(path, upload_id)


def build_storage_client(
    settings: Settings | None = None,
    *,
    ensure_bucket: bool = False,
    configure_logging: bool = False,
) -> StorageClient:
    """Build a client from ``settings`` or, when omitted, the environment.

    ``configure_logging`` installs the JSON log handlers at ``LOG_LEVEL``;
    leave it off when the host application owns logging.
    """
    settings = settings or Settings.from_environment()
    if configure_logging:
        setup_logging(settings.LOG_LEVEL)
    return StorageClient(settings=settings, ensure_bucket=ensure_bucket)
