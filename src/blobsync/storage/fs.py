"""Filesystem blob storage implementation."""

import logging
import os
from pathlib import Path
from typing import BinaryIO, List, Optional

from ..atomic import copy_file, is_partial, write_stream
from ..errors import BackendError, NotFoundError
from ..hashing import digest_file
from ..keys import key_to_path, normalize_key, path_to_key

logger = logging.getLogger(__name__)


class FilesystemBlobStore:
    """
    Local directory mirror of a blob namespace.

    Keys map to paths under the root directory: key ``a/b.txt`` is stored
    at ``root/a/b.txt``. There is no native integrity tag, so digests are
    computed by hashing full file contents; this is much more expensive
    than the remote backend's metadata lookup.
    """

    def __init__(self, root: Path):
        """
        Initialize filesystem store.

        Args:
            root: Root directory, created if missing
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.name = f"fs:{self.root}"

    def _path(self, key: str) -> Path:
        try:
            return key_to_path(self.root, key)
        except ValueError as e:
            raise BackendError(self.name, key, str(e)) from e

    def list(self, prefix: str = "") -> List[str]:
        """
        List root-relative keys starting with prefix.

        Walks only the deepest directory the prefix names, then filters by
        string prefix, matching object-store prefix semantics
        (``"a/b"`` matches ``a/b.txt`` and ``a/b/c.txt``).
        """
        prefix = normalize_key(prefix)
        base_dir = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        if ".." in base_dir.split("/"):
            raise BackendError(self.name, prefix, "prefix escapes the store root")
        start = self.root / base_dir if base_dir else self.root
        if not start.is_dir():
            return []

        def _raise(err: OSError) -> None:
            raise err

        keys = []
        try:
            for dirpath, _dirnames, filenames in os.walk(start, onerror=_raise):
                for filename in filenames:
                    if is_partial(filename):
                        continue
                    key = path_to_key(self.root, Path(dirpath) / filename)
                    if key.startswith(prefix):
                        keys.append(key)
        except OSError as e:
            raise BackendError(self.name, prefix, f"listing failed: {e}") from e
        return keys

    def remote_digest(self, key: str) -> str:
        """Hash the stored file's full contents."""
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(self.name, normalize_key(key))
        return digest_file(path)

    def download(self, key: str, dest_dir: Path) -> Path:
        """
        Copy a stored file to dest_dir/key.

        Args:
            key: Blob key
            dest_dir: Local directory the key is laid out under

        Returns:
            Destination path
        """
        key = normalize_key(key)
        src = self._path(key)
        if not src.is_file():
            raise NotFoundError(self.name, key)

        dest = key_to_path(Path(dest_dir), key)
        copy_file(src, dest)
        logger.info("Copied '%s' from %s to '%s'", key, self.name, dest)
        return dest

    def upload(self, key: str, content: BinaryIO, digest: Optional[str] = None) -> None:
        """
        Write a stream to root/key.

        The digest is ignored: the filesystem has nowhere to record it.
        """
        key = normalize_key(key)
        written = write_stream(self._path(key), content)
        logger.info("Stored '%s' in %s (%d bytes)", key, self.name, written)

    def upload_from_path(self, key: str, local_path: Path, digest: Optional[str] = None) -> None:
        """Store a local file under key."""
        with open(local_path, "rb") as f:
            self.upload(normalize_key(key), f, digest=digest)
