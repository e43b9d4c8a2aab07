"""Content hashing and chunk audio cache."""

from .chunk_cache import ChunkAudioCache
from .hashing import chunk_content_hash, script_hash, settings_hash

__all__ = ["ChunkAudioCache", "chunk_content_hash", "script_hash", "settings_hash"]
