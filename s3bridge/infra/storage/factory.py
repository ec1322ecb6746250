from __future__ import annotations

from typing import TYPE_CHECKING, Any

from s3bridge.infra.storage.client import StorageBackend
from s3bridge.infra.storage.compat_client import S3CompatibleBackend
from s3bridge.infra.storage.s3_client import S3TransferBackend

if TYPE_CHECKING:
    from s3bridge.common.config import Settings


def build_backend(settings: "Settings", *, client: Any | None = None) -> StorageBackend:
    """Build the backend selected by ``S3_AWS_SDK``.

    Returns:
        ``S3TransferBackend`` when the AWS SDK flag is set, otherwise
        ``S3CompatibleBackend``.
    """
    if settings.S3_AWS_SDK:
        return S3TransferBackend(settings=settings, client=client)
    return S3CompatibleBackend(settings=settings, client=client)
