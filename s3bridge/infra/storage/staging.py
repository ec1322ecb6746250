"""Helpers that turn caller payloads into request bodies with a known length.

A single S3 request needs a Content-Length, so payloads that cannot report
one (pipes, chained streams) are spooled into a temporary file first. The
temporary file lives only for the duration of the ``with`` block.
"""

from __future__ import annotations

import io
import shutil
import tempfile
from contextlib import contextmanager
from typing import BinaryIO, Iterator

from s3bridge.infra.storage.client import Payload

COPY_BUFFER_SIZE = 1024 * 1024


def _is_seekable(stream: BinaryIO) -> bool:
    seekable = getattr(stream, "seekable", None)
    if seekable is None:
        return False
    try:
        return bool(seekable())
    except (OSError, ValueError):
        return False


def remaining_length(data: Payload) -> int | None:
    """Bytes left to read from ``data``, or None when it cannot be measured."""
    if isinstance(data, (bytes, bytearray)):
        return len(data)
    if not _is_seekable(data):
        return None
    position = data.tell()
    end = data.seek(0, io.SEEK_END)
    data.seek(position)
    return end - position


@contextmanager
def sized_body(data: Payload, size: int | None = None) -> Iterator[tuple[BinaryIO, int]]:
    """Yield ``(body, length)`` for ``data``.

    Raises:
        OSError: If the temporary staging file cannot be created or written.
    """
    if isinstance(data, (bytes, bytearray)):
        yield io.BytesIO(bytes(data)), len(data)
        return

    length = remaining_length(data)
    if length is not None:
        yield data, length if size is None else size
        return

    with tempfile.TemporaryFile(prefix="s3bridge-") as staged:
        shutil.copyfileobj(data, staged, COPY_BUFFER_SIZE)
        length = staged.tell()
        staged.seek(0)
        yield staged, length


class ChainedReader(io.RawIOBase):
    """Read-only stream that yields each source stream in order."""

    def __init__(self, *streams: BinaryIO) -> None:
        super().__init__()
        self._streams = list(streams)
        self._index = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        view = memoryview(buffer)
        while self._index < len(self._streams):
            chunk = self._streams[self._index].read(len(view))
            if chunk:
                view[: len(chunk)] = chunk
                return len(chunk)
            self._index += 1
        return 0

    def close(self) -> None:
        try:
            for stream in self._streams:
                stream.close()
        finally:
            super().close()


def as_stream(data: Payload) -> BinaryIO:
    if isinstance(data, (bytes, bytearray)):
        return io.BytesIO(bytes(data))
    return data
