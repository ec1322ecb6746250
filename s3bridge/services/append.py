"""Create-or-append orchestration.

Appending picks one of three strategies from the current object size:

* the object does not exist: plain write;
* the object is at most the minimum multipart part size: stream the
  original, chain the new bytes behind it and write the result in one
  request;
* the object is larger: server-side copy of the whole object as part 1,
  upload of the new bytes as part 2, then complete. Any failure aborts the
  upload on a best-effort basis and re-raises the original error.

Each call appends exactly once; repeated appends re-read the size and
decide again.
"""

from __future__ import annotations

import enum
import logging
from typing import BinaryIO

from s3bridge.infra.observability.metrics import APPEND_STRATEGIES
from s3bridge.infra.storage.client import (
    BackendCapabilities,
    CompletedPart,
    Payload,
    StorageBackend,
    StorageError,
)
from s3bridge.infra.storage.keys import normalize_key
from s3bridge.infra.storage.staging import ChainedReader, as_stream

logger = logging.getLogger("s3bridge.append")

COPY_PART_NUMBER = 1
APPEND_PART_NUMBER = 2


class AppendStrategy(str, enum.Enum):
    CREATE = "create"
    CONCATENATE = "concatenate"
    MULTIPART_COPY = "multipart_copy"


def choose_append_strategy(
    *,
    exists: bool,
    size_bytes: int | None,
    capabilities: BackendCapabilities,
) -> AppendStrategy:
    """Pick the append strategy for an object of ``size_bytes``.

    Raises:
        ValueError: If the object exists but its size is unknown.
    """
    if not exists:
        return AppendStrategy.CREATE
    if size_bytes is None:
        raise ValueError("size_bytes is required for an existing object")
    if size_bytes <= capabilities.min_multipart_size:
        return AppendStrategy.CONCATENATE
    return AppendStrategy.MULTIPART_COPY


def object_exists(backend: StorageBackend, path: str) -> bool:
    """Check existence with a one-entry listing under ``path``."""
    keys = backend.list_objects(prefix=path, delimiter="/", max_keys=1)
    return bool(keys) and normalize_key(keys[0]) == normalize_key(path)


class AppendOrchestrator:
    """Appends bytes to objects on one backend."""

    def __init__(self, backend: StorageBackend, *, metrics_enabled: bool = True) -> None:
        self._backend = backend
        self._metrics_enabled = metrics_enabled

    def append(self, path: str, data: Payload) -> str:
        """Append ``data`` to ``path``, creating the object when missing.

        The caller's stream is closed once the call returns or fails.

        Returns:
            The logical path of the updated object.

        Raises:
            StorageError: Wrapping whatever failed, with operation ``append``.
        """
        if not path or not normalize_key(path).strip():
            raise StorageError(
                "Object path must not be empty", operation="append", path=path
            )
        if data is None:
            raise StorageError(
                "Cannot append empty stream", operation="append", path=path
            )
        stream = as_stream(data)
        try:
            return self._append(path, stream)
        except Exception as exc:
            logger.error("Cannot append data for path: %s", path, exc_info=True)
            raise StorageError(
                f"Cannot append data for path: {path}",
                operation="append",
                path=path,
            ) from exc
        finally:
            stream.close()

    def _append(self, path: str, stream: BinaryIO) -> str:
        exists = object_exists(self._backend, path)
        size = self._backend.head_object(object_key=path).size_bytes if exists else None
        strategy = choose_append_strategy(
            exists=exists,
            size_bytes=size,
            capabilities=self._backend.capabilities,
        )
        if self._metrics_enabled:
            APPEND_STRATEGIES.labels(strategy.value).inc()

        if strategy is AppendStrategy.CREATE:
            logger.debug("Appending to non-existing object %s", path)
            self._backend.put_object(object_key=path, data=stream)
            return path

        logger.debug(
            "Appending to %s with size %s using %s", path, size, strategy.value
        )
        if strategy is AppendStrategy.CONCATENATE:
            original = self._backend.get_object(object_key=path)
            with ChainedReader(original, stream) as combined:
                self._backend.put_object(object_key=path, data=combined)
            return path

        return self._append_multipart(path, stream, size)

    def _append_multipart(self, path: str, stream: BinaryIO, size: int) -> str:
        upload = self._backend.create_multipart_upload(object_key=path)
        try:
            copied_etag = self._backend.upload_part_copy(
                object_key=path,
                upload_id=upload.upload_id,
                part_number=COPY_PART_NUMBER,
                source_key=path,
                source_range=(0, size - 1),
            )
            appended_etag = self._backend.upload_part(
                object_key=path,
                upload_id=upload.upload_id,
                part_number=APPEND_PART_NUMBER,
                data=stream,
            )
            self._backend.complete_multipart_upload(
                object_key=path,
                upload_id=upload.upload_id,
                parts=[
                    CompletedPart(part_number=COPY_PART_NUMBER, etag=copied_etag),
                    CompletedPart(part_number=APPEND_PART_NUMBER, etag=appended_etag),
                ],
            )
        except Exception:
            self._abort_quietly(path, upload.upload_id)
            raise
        return path

    def _abort_quietly(self, path: str, upload_id: str) -> None:
        # Abort errors are only logged; the caller sees the original failure.
        try:
            self._backend.abort_multipart_upload(object_key=path, upload_id=upload_id)
        except Exception as abort_exc:
            logger.warning(
                "Abort of multipart upload %s for %s failed: %s",
                upload_id,
                path,
                abort_exc,
            )
