"""Dedup-aware blob synchronization between object storage and local disk."""

from .cas import ContentAddressedStore
from .errors import BackendError, ConfigError, NotFoundError, StoreError
from .hashing import digest_file, digest_stream
from .keys import normalize_key
from .local_index import build_local_index
from .storage import AzureBlobStore, BlobStore, FilesystemBlobStore, make_blob_store

__version__ = "0.1.0"

__all__ = [
    "AzureBlobStore",
    "BackendError",
    "BlobStore",
    "ConfigError",
    "ContentAddressedStore",
    "FilesystemBlobStore",
    "NotFoundError",
    "StoreError",
    "build_local_index",
    "digest_file",
    "digest_stream",
    "make_blob_store",
    "normalize_key",
]
