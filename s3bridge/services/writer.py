from __future__ import annotations

import logging
import os
import tempfile
from pathlib import PurePosixPath
from typing import IO, TYPE_CHECKING

from s3bridge.infra.storage.client import StorageError

if TYPE_CHECKING:
    from s3bridge.services.storage_service import StorageClient

logger = logging.getLogger("s3bridge.storage")


class RemoteStorageWriter:
    """Text writer that buffers into a local temporary file.

    The buffer is uploaded to ``path`` on :meth:`close` and the temporary
    file is removed on every exit path. Writing an empty string discards the
    buffer, after which :meth:`close` uploads nothing.
    """

    def __init__(self, path: str, buffer_size: int, client: "StorageClient") -> None:
        self._path = path
        self._client = client
        name = PurePosixPath(path)
        try:
            fd, self._tmp = tempfile.mkstemp(prefix=name.stem or "buffer", suffix=name.suffix)
            self._writer: IO[str] = os.fdopen(
                fd, "w", buffering=max(int(buffer_size), 1), encoding="utf-8"
            )
        except (OSError, ValueError) as exc:
            raise StorageError(
                f"Files buffer cannot be created due to error: {exc}",
                operation="writer",
                path=path,
            ) from exc
        self._discarded = False

    @property
    def path(self) -> str:
        return self._path

    def write(self, data: str | None) -> int:
        if not data:
            self._discard()
            return 0
        if self._discarded:
            return 0
        try:
            return self._writer.write(data)
        except OSError:
            logger.warning("Buffer write failed for %s, discarding", self._path)
            self._discard()
            return 0

    def close(self) -> None:
        try:
            if not self._discarded:
                self._writer.close()
                with open(self._tmp, "rb") as handle:
                    self._client.write(self._path, handle)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(
                f"Error while close(): {exc}", operation="writer", path=self._path
            ) from exc
        finally:
            self._discard()

    def _discard(self) -> None:
        self._discarded = True
        try:
            self._writer.close()
            if os.path.exists(self._tmp):
                os.remove(self._tmp)
        except OSError as exc:
            raise StorageError(
                f"Error in deleting file: {exc}", operation="writer", path=self._path
            ) from exc

    def __enter__(self) -> "RemoteStorageWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._discard()
            return
        self.close()
