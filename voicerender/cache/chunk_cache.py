"""Content-addressable cache of rendered chunk audio.

Responsibilities:
- Look up and store chunk audio by content hash in a blob store.
- Degrade store failures to cache misses without failing the render.
- Track hit, miss and error telemetry.
"""

from __future__ import annotations

import threading

from ..io.storage import BlobStore, StoreError
from ..telemetry.logger import RunLogger
from .hashing import chunk_audio_key


class ChunkAudioCache:
    """Blob-store backed chunk audio cache with hit/miss/error counters."""

    def __init__(self, store: BlobStore, logger: RunLogger | None = None) -> None:
        """Initialize cache over a blob store."""

        self._store = store
        self._logger = logger
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def get(self, content_hash: str) -> bytes | None:
        """Return cached audio, or `None` on a miss or store failure."""

        key = chunk_audio_key(content_hash)
        try:
            data = self._store.get(key)
        except (StoreError, OSError) as exc:
            self.record_error(content_hash, "read", type(exc).__name__)
            return None
        with self._lock:
            if data is None:
                self.misses += 1
            else:
                self.hits += 1
        return data

    def put(self, content_hash: str, data: bytes) -> str | None:
        """Store chunk audio and return its reference, or `None` on store failure."""

        key = chunk_audio_key(content_hash)
        try:
            return self._store.put(key, data)
        except (StoreError, OSError) as exc:
            self.record_error(content_hash, "write", type(exc).__name__)
            return None

    def record_error(self, content_hash: str, operation: str, error_type: str) -> None:
        """Count a store failure; failed reads also count as misses."""

        with self._lock:
            self.errors += 1
            if operation == "read":
                self.misses += 1
        if self._logger is not None:
            self._logger.log_event(
                "synthesize",
                "cache_error",
                level="WARNING",
                operation=operation,
                error_type=error_type,
                hash=content_hash[:12],
            )

    def hit_rate(self) -> float:
        """Return cache hit rate for the current cache lifecycle."""

        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / float(total)

    def stats(self) -> dict[str, float]:
        """Return counters and hit rate for diagnostics."""

        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate(), 4),
        }
