"""Base protocol for blob storage backends."""

from pathlib import Path
from typing import BinaryIO, List, Optional, Protocol


class BlobStore(Protocol):
    """
    Capability set shared by the remote and local backends.

    Backends are selected at construction time and injected; there is no
    shared base class. Keys are normalized by the backend. Dedup decisions
    are not a backend concern: see ``blobsync.cas``.
    """

    name: str

    def list(self, prefix: str = "") -> List[str]:
        """
        List every key starting with prefix.

        No ordering guarantee. Raises BackendError if any page or walk step
        fails; no partial result is returned.
        """
        ...

    def remote_digest(self, key: str) -> str:
        """
        Content digest of the blob at key.

        Raises:
            NotFoundError: If the key does not exist
            BackendError: If the lookup fails
        """
        ...

    def download(self, key: str, dest_dir: Path) -> Path:
        """
        Download key to dest_dir/key atomically, synced to stable storage.

        Returns:
            Path of the downloaded file
        """
        ...

    def upload(self, key: str, content: BinaryIO, digest: Optional[str] = None) -> None:
        """
        Store the stream's bytes under key, replacing existing content.

        Args:
            key: Destination key
            content: Binary stream, read to its end
            digest: Known content digest, recorded where the backend has a
                native integrity tag
        """
        ...

    def upload_from_path(self, key: str, local_path: Path, digest: Optional[str] = None) -> None:
        """Upload a local file under key."""
        ...
