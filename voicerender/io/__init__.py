"""Blob store backends for cached audio and render artifacts."""

from .storage import BlobMetadata, BlobStore, FilesystemBlobStore, InMemoryBlobStore, StoreError

__all__ = [
    "BlobMetadata",
    "BlobStore",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
    "StoreError",
]
