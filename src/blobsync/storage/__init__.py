"""Storage backends: Azure Blob Storage and a local filesystem mirror."""

from .azure import AzureBlobStore
from .base import BlobStore
from .factory import make_blob_store
from .fs import FilesystemBlobStore

__all__ = ["AzureBlobStore", "BlobStore", "FilesystemBlobStore", "make_blob_store"]
