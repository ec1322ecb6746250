from __future__ import annotations

from dataclasses import dataclass

from s3bridge.infra.storage.client import StorageError


def normalize_sub_path(sub_path: str | None) -> str:
    """Return the sub-path as ``segment/segment/`` or an empty string."""
    value = (sub_path or "").strip().strip("/")
    return f"{value}/" if value else ""


def normalize_key(key: str) -> str:
    """Canonical logical form of ``key``: no leading ``/``."""
    return key.lstrip("/")


@dataclass(frozen=True, slots=True)
class KeyMapper:
    """Translates logical object keys to backend keys and back.

    Leading slashes are dropped from every outgoing key, so ``/a/b`` and
    ``a/b`` address the same object. The configured sub-path is prepended to
    every outgoing key and stripped from every key the backend returns.
    """

    sub_path: str = ""

    @classmethod
    def from_sub_path(cls, sub_path: str | None) -> "KeyMapper":
        return cls(sub_path=normalize_sub_path(sub_path))

    def to_remote(self, key: str | None, *, operation: str = "resolve") -> str:
        if key is None or not normalize_key(key).strip():
            raise StorageError(
                "Object path must not be empty",
                operation=operation,
                path=key,
            )
        return f"{self.sub_path}{normalize_key(key)}"

    def to_remote_prefix(self, prefix: str | None) -> str:
        # Listing the root is allowed, so a blank prefix maps to the sub-path.
        if not prefix:
            return self.sub_path
        return f"{self.sub_path}{normalize_key(prefix)}"

    def to_logical(self, key: str) -> str:
        if self.sub_path and key.startswith(self.sub_path):
            return key[len(self.sub_path) :]
        return key
