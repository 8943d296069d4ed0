"""Whole-blob durable storage used by the vector index and ingest flags."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Final, Optional, Protocol
from uuid import uuid4

_KEY_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStore(Protocol):
    """Read-whole / write-whole key-value storage."""

    def read(self, key: str) -> Optional[bytes]:
        ...

    def write(self, key: str, data: bytes) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...


def sanitize_key(key: str) -> str:
    """Return a filesystem-safe file name for ``key``."""
    sanitized = _KEY_SAFE_CHARS_RE.sub("_", Path(key or "").name)
    sanitized = sanitized.strip("._")
    if not sanitized:
        raise ValueError(f"Invalid storage key: {key!r}")
    return sanitized


class LocalFileStore:
    """Store each key as one file below ``root``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.root / sanitize_key(key)

    def read(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def write(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()


class InMemoryBlobStore:
    """Process-local store used by tests and throwaway indexes."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def read(self, key: str) -> Optional[bytes]:
        return self._blobs.get(key)

    def write(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)

    def exists(self, key: str) -> bool:
        return key in self._blobs


__all__ = ["BlobStore", "InMemoryBlobStore", "LocalFileStore", "sanitize_key"]
