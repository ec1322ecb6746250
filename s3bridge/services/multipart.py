"""Externally driven multipart upload sessions.

A session is addressed by ``(path, upload_id)`` on every call. No local
record is kept between calls: the backend owns the session state and
rejects operations against completed, aborted or unknown upload ids.

State machine::

    Initiated --upload_part--> Initiated
    Initiated --complete-----> Completed   (terminal)
    Initiated --abort--------> Aborted     (terminal)
"""

from __future__ import annotations

import logging
import os
from typing import Sequence

from s3bridge.infra.storage.client import (
    MAX_PART_NUMBER,
    CompletedPart,
    MultipartUpload,
    PutOptions,
    StorageBackend,
    StorageError,
)
from s3bridge.services.presign import PresignedUrlIssuer

logger = logging.getLogger("s3bridge.multipart")


def validate_part_number(
    part_number: int,
    *,
    operation: str,
    path: str | None,
    max_parts: int = MAX_PART_NUMBER,
) -> int:
    number = int(part_number)
    if number < 1 or number > max_parts:
        raise StorageError(
            f"part_number must be between 1 and {max_parts}",
            operation=operation,
            path=path,
        )
    return number


def parts_from_etags(etags: Sequence[str]) -> list[CompletedPart]:
    """Number eTags 1..N by their position."""
    return [
        CompletedPart(part_number=index, etag=etag)
        for index, etag in enumerate(etags, start=1)
    ]


class MultipartSession:
    """Drives the remote multipart state machine for external callers.

    Parts for one upload id may be uploaded from several threads; callers
    collect every eTag before calling :meth:`complete`.
    """

    def __init__(self, backend: StorageBackend, presigner: PresignedUrlIssuer) -> None:
        self._backend = backend
        self._presigner = presigner

    def initiate(self, path: str, *, options: PutOptions | None = None) -> str:
        """Start a multipart upload for ``path`` and return its upload id."""
        upload: MultipartUpload = self._backend.create_multipart_upload(
            object_key=path, options=options
        )
        logger.debug("Initiated multipart upload %s for %s", upload.upload_id, path)
        return upload.upload_id

    def presign_part_url(self, path: str, upload_id: str, part_number: int) -> str:
        """Presign a part PUT; the upload id is not checked until the URL is used."""
        return self._presigner.part_url(path, upload_id, part_number).url

    def upload_part(
        self, path: str, upload_id: str, part_number: int, filename: str
    ) -> str:
        """Upload a local file as one part and return the part eTag.

        Raises:
            StorageError: If the file is missing, the part number is out of
                range, or the backend rejects the upload.
        """
        number = validate_part_number(
            part_number,
            operation="upload_part",
            path=path,
            max_parts=self._backend.capabilities.max_parts,
        )
        if not os.path.isfile(filename):
            raise StorageError(
                f"Cannot upload part, local file not found: {filename}",
                operation="upload_part",
                path=path,
            )
        try:
            handle = open(filename, "rb")
        except OSError as exc:
            raise StorageError(
                f"Cannot open local file: {filename}: {exc}",
                operation="upload_part",
                path=path,
            ) from exc
        with handle:
            etag = self._backend.upload_part(
                object_key=path,
                upload_id=upload_id,
                part_number=number,
                data=handle,
                size=os.fstat(handle.fileno()).st_size,
            )
        logger.debug("Uploaded part %s of %s for %s", number, upload_id, path)
        return etag

    def complete(self, path: str, upload_id: str, etags: Sequence[str]) -> str:
        """Assemble the object from ``etags`` in order and return ``path``."""
        if not etags:
            raise StorageError(
                "Cannot complete multipart upload without parts",
                operation="complete_multipart",
                path=path,
            )
        max_parts = self._backend.capabilities.max_parts
        if len(etags) > max_parts:
            raise StorageError(
                f"Cannot complete multipart upload with more than {max_parts} parts",
                operation="complete_multipart",
                path=path,
            )
        self._backend.complete_multipart_upload(
            object_key=path,
            upload_id=upload_id,
            parts=parts_from_etags(etags),
        )
        logger.debug(
            "Completed multipart upload %s for %s with %s parts",
            upload_id,
            path,
            len(etags),
        )
        return path

    def abort(self, path: str, upload_id: str) -> None:
        """Release the upload.

        Whether a second abort fails depends on the backend
        (``capabilities.idempotent_abort``).
        """
        self._backend.abort_multipart_upload(object_key=path, upload_id=upload_id)
        logger.debug("Aborted multipart upload %s for %s", upload_id, path)
