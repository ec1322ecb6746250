"""Presigned URL issuance for single objects and multipart parts."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from s3bridge.infra.storage.client import StorageBackend, StorageError

SUPPORTED_METHODS: tuple[str, ...] = ("GET", "PUT")


@dataclass(frozen=True, slots=True)
class PresignedUrl:
    """Time-limited URL for one operation on one object."""

    object_key: str
    method: str
    expires_in: int
    url: str
    extra_params: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )


class PresignedUrlIssuer:
    """Builds presigned URLs with a fixed default TTL.

    URLs are generated locally by signing; nothing is sent to the backend,
    so an unknown upload id or object only fails when the URL is used.
    """

    def __init__(self, backend: StorageBackend, *, expires_in: int) -> None:
        self._backend = backend
        self._expires_in = int(expires_in)

    def issue(
        self,
        path: str,
        method: str = "GET",
        *,
        expires_in: int | None = None,
        extra_params: dict[str, Any] | None = None,
    ) -> PresignedUrl:
        normalized = (method or "").strip().upper()
        if normalized not in SUPPORTED_METHODS:
            raise StorageError(
                f"Unsupported presign method: {method}",
                operation="presign",
                path=path,
            )
        ttl = self._expires_in if expires_in is None else int(expires_in)
        if ttl <= 0:
            raise StorageError(
                "expires_in must be positive", operation="presign", path=path
            )
        params = dict(extra_params or {})
        url = self._backend.presign(
            object_key=path,
            method=normalized,
            expires_in=ttl,
            extra_params=dict(params) or None,
        )
        return PresignedUrl(
            object_key=path,
            method=normalized,
            expires_in=ttl,
            url=url,
            extra_params=MappingProxyType(params),
        )

    def part_url(self, path: str, upload_id: str, part_number: int) -> PresignedUrl:
        """Presign a PUT of one multipart part.

        The URL carries ``partNumber`` and ``uploadId`` query parameters.
        """
        return self.issue(
            path,
            "PUT",
            extra_params={"UploadId": upload_id, "PartNumber": int(part_number)},
        )
