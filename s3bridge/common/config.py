from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_PRESIGN_EXPIRES_SECONDS = 600
DEFAULT_MULTIPART_THRESHOLD_BYTES = 8 * 1024 * 1024

SUPPORTED_CHECKSUM_ALGORITHMS: tuple[str, ...] = ("CRC32", "CRC32C", "SHA1", "SHA256")
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _load_env_file(env_file: Path = ENV_FILE) -> None:
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass
class Settings:
    """Connection and behaviour settings for one storage client.

    Passed explicitly to the client at construction; nothing here is cached
    process-wide.
    """

    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_BUCKET: str = ""
    S3_SUB_PATH: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_FORCE_PATH_STYLE: bool = True
    S3_AWS_SDK: bool = False
    S3_PRESIGN_EXPIRES_SECONDS: int = DEFAULT_PRESIGN_EXPIRES_SECONDS
    S3_CHECKSUM_ALGORITHM: str = "CRC32"
    S3_MULTIPART_THRESHOLD_BYTES: int = DEFAULT_MULTIPART_THRESHOLD_BYTES
    S3_MAX_CONCURRENCY: int = 10
    S3_CONNECT_TIMEOUT: int = 60
    S3_READ_TIMEOUT: int = 60
    S3_MAX_ATTEMPTS: int = 1
    ENABLE_METRICS: bool = True
    LOG_LEVEL: str = "INFO"

    def __post_init__(self) -> None:
        if self.S3_PRESIGN_EXPIRES_SECONDS <= 0:
            raise ValueError("S3_PRESIGN_EXPIRES_SECONDS must be positive.")
        # SigV4 presigned URLs are capped at seven days.
        if self.S3_PRESIGN_EXPIRES_SECONDS > 7 * 24 * 3600:
            raise ValueError("S3_PRESIGN_EXPIRES_SECONDS must not exceed 604800.")
        self.S3_CHECKSUM_ALGORITHM = self.S3_CHECKSUM_ALGORITHM.strip().upper()
        if self.S3_CHECKSUM_ALGORITHM not in SUPPORTED_CHECKSUM_ALGORITHMS:
            raise ValueError(
                "S3_CHECKSUM_ALGORITHM must be one of "
                f"{', '.join(SUPPORTED_CHECKSUM_ALGORITHMS)}."
            )
        if self.S3_MAX_CONCURRENCY < 1:
            raise ValueError("S3_MAX_CONCURRENCY must be at least 1.")
        if self.S3_MAX_ATTEMPTS < 1:
            raise ValueError("S3_MAX_ATTEMPTS must be at least 1.")
        self.LOG_LEVEL = self.LOG_LEVEL.strip().upper()
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}.")

    @property
    def has_static_credentials(self) -> bool:
        return bool(
            (self.S3_ACCESS_KEY_ID or "").strip()
            and (self.S3_SECRET_ACCESS_KEY or "").strip()
        )

    @property
    def addressing_style(self) -> str:
        return "path" if self.S3_FORCE_PATH_STYLE else "virtual"

    def describe(self) -> dict[str, str | None]:
        """Connection summary that is safe to log."""
        return {
            "endpoint": self.S3_ENDPOINT_URL,
            "region": self.S3_REGION,
            "bucket": self.S3_BUCKET,
            "sub_path": self.S3_SUB_PATH,
            "access_key": "<set>" if self.S3_ACCESS_KEY_ID else "<not set>",
            "secret_key": "<set>" if self.S3_SECRET_ACCESS_KEY else "<not set>",
            "addressing_style": self.addressing_style,
        }

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_ENDPOINT_URL=_as_optional(os.environ.get("S3_ENDPOINT_URL")),
            S3_REGION=os.environ.get("S3_REGION", cls.S3_REGION),
            S3_BUCKET=os.environ.get("S3_BUCKET", cls.S3_BUCKET),
            S3_SUB_PATH=_as_optional(os.environ.get("S3_SUB_PATH")),
            S3_ACCESS_KEY_ID=_as_optional(os.environ.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(
                os.environ.get("S3_SECRET_ACCESS_KEY")
            ),
            S3_FORCE_PATH_STYLE=_as_bool(
                os.environ.get("S3_FORCE_PATH_STYLE"), cls.S3_FORCE_PATH_STYLE
            ),
            S3_AWS_SDK=_as_bool(os.environ.get("S3_AWS_SDK"), cls.S3_AWS_SDK),
            S3_PRESIGN_EXPIRES_SECONDS=int(
                os.environ.get(
                    "S3_PRESIGN_EXPIRES_SECONDS", cls.S3_PRESIGN_EXPIRES_SECONDS
                )
            ),
            S3_CHECKSUM_ALGORITHM=os.environ.get(
                "S3_CHECKSUM_ALGORITHM", cls.S3_CHECKSUM_ALGORITHM
            ),
            S3_MULTIPART_THRESHOLD_BYTES=int(
                os.environ.get(
                    "S3_MULTIPART_THRESHOLD_BYTES", cls.S3_MULTIPART_THRESHOLD_BYTES
                )
            ),
            S3_MAX_CONCURRENCY=int(
                os.environ.get("S3_MAX_CONCURRENCY", cls.S3_MAX_CONCURRENCY)
            ),
            S3_CONNECT_TIMEOUT=int(
                os.environ.get("S3_CONNECT_TIMEOUT", cls.S3_CONNECT_TIMEOUT)
            ),
            S3_READ_TIMEOUT=int(
                os.environ.get("S3_READ_TIMEOUT", cls.S3_READ_TIMEOUT)
            ),
            S3_MAX_ATTEMPTS=int(
                os.environ.get("S3_MAX_ATTEMPTS", cls.S3_MAX_ATTEMPTS)
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
        )
