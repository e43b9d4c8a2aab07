"""Blob store abstraction with pluggable backends.

Responsibilities:
- Define the `put` / `get` / `head` contract used by the cache and render service.
- Provide an in-memory backend for tests and a filesystem backend for local renders.
- Offer JSON helpers for persisted render artifacts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import os
from pathlib import Path
import tempfile
import threading
from typing import Any, Protocol


class StoreError(RuntimeError):
    """Raised when a store backend cannot complete an operation."""


@dataclass(frozen=True, slots=True)
class BlobMetadata:
    """Metadata for one stored blob.

    Attributes:
        key: Store key.
        size: Size in bytes.
        updated_at: ISO-8601 UTC timestamp of the last write.
        ref: Backend-specific reference usable by callers.
    """

    key: str
    size: int
    updated_at: str
    ref: str


class BlobStore(Protocol):
    """Key-value blob store contract."""

    def put(self, key: str, data: bytes) -> str:
        """Store bytes under key and return a reference."""

    def get(self, key: str) -> bytes | None:
        """Return bytes for key, or `None` when absent."""

    def head(self, key: str) -> BlobMetadata | None:
        """Return metadata for key, or `None` when absent."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryBlobStore:
    """Thread-safe in-memory blob store."""

    def __init__(self) -> None:
        """Initialize an empty store."""

        self._blobs: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes) -> str:
        """Store bytes under key and return a `memory://` reference."""

        with self._lock:
            self._blobs[key] = (bytes(data), _utc_now())
        return f"memory://{key}"

    def get(self, key: str) -> bytes | None:
        """Return stored bytes, or `None` when absent."""

        with self._lock:
            entry = self._blobs.get(key)
        return entry[0] if entry is not None else None

    def head(self, key: str) -> BlobMetadata | None:
        """Return metadata for key, or `None` when absent."""

        with self._lock:
            entry = self._blobs.get(key)
        if entry is None:
            return None
        return BlobMetadata(key=key, size=len(entry[0]), updated_at=entry[1], ref=f"memory://{key}")

    def keys(self) -> list[str]:
        """Return stored keys in sorted order."""

        with self._lock:
            return sorted(self._blobs)


class FilesystemBlobStore:
    """Filesystem-backed blob store with atomic writes."""

    def __init__(self, root: Path) -> None:
        """Initialize the store with a root directory."""

        self.root = root

    def _path_for(self, key: str) -> Path:
        relative = Path(key)
        if relative.is_absolute() or ".." in relative.parts:
            raise StoreError(f"Invalid store key: {key!r}")
        return self.root / relative

    def put(self, key: str, data: bytes) -> str:
        """Write bytes atomically and return the absolute file path."""

        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            descriptor, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            with os.fdopen(descriptor, "wb") as handle:
                handle.write(data)
            os.replace(temp_name, path)
        except OSError as exc:
            raise StoreError(f"Failed to write `{key}`: {exc}") from exc
        return str(path.resolve())

    def get(self, key: str) -> bytes | None:
        """Return file bytes, or `None` when the file does not exist."""

        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Failed to read `{key}`: {exc}") from exc

    def head(self, key: str) -> BlobMetadata | None:
        """Return file metadata, or `None` when the file does not exist."""

        path = self._path_for(key)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Failed to stat `{key}`: {exc}") from exc
        updated_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat()
        return BlobMetadata(
            key=key, size=stat.st_size, updated_at=updated_at, ref=str(path.resolve())
        )


def put_json(store: BlobStore, key: str, payload: dict[str, Any]) -> str:
    """Store a JSON payload with stable formatting."""

    data = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True).encode("utf-8")
    return store.put(key, data)


def get_json(store: BlobStore, key: str) -> dict[str, Any] | None:
    """Load a JSON object payload, or `None` when absent."""

    data = store.get(key)
    if data is None:
        return None
    payload = json.loads(data.decode("utf-8"))
    if not isinstance(payload, dict):
        raise StoreError(f"Stored JSON at `{key}` is not an object.")
    return payload
