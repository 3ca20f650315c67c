"""Content-addressed sync on top of a blob store backend.

``ContentAddressedStore`` compares content digests before moving bytes:

- fetch: if the backend's digest for a key is already present in the
  caller's LocalContentIndex, the local file is copied to the destination
  instead of downloading it.
- publish: unless overwriting, an upload whose digest matches what the key
  already holds is skipped.

The layer is stateless apart from the backend it wraps. It performs no
locking: concurrent calls on different keys are safe, concurrent writers
to the same key are last-write-wins.
"""

import contextlib
import logging
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .atomic import copy_stream, copy_file
from .errors import BackendError, NotFoundError, StoreError
from .hashing import HashingReader
from .ignore import IgnoreSpec
from .keys import key_to_path, normalize_key
from .storage.base import BlobStore
from .storage_models import FetchResult, PublishResult, SyncReport, TransferAction

logger = logging.getLogger(__name__)

LocalIndex = Mapping[str, Union[str, Path]]

# Non-seekable publish streams are buffered in memory up to this size,
# then on disk
SPOOL_MAX_MEMORY = 16 * 1024 * 1024


class ContentAddressedStore:
    """Dedup-aware fetch and publish over one backend."""

    def __init__(self, backend: BlobStore):
        self.backend = backend

    @property
    def name(self) -> str:
        return self.backend.name

    def list(self, prefix: str = "") -> List[str]:
        return self.backend.list(normalize_key(prefix))

    def remote_digest(self, key: str) -> str:
        return self.backend.remote_digest(normalize_key(key))

    # ---- fetch ---------------------------------------------------------

    def fetch(
        self,
        key: str,
        dest_dir: Path,
        local_index: Optional[LocalIndex] = None,
        overwrite: bool = False,
    ) -> FetchResult:
        """Fetch key to dest_dir/key, reusing local content when possible.

        Steps:
        1. Without overwrite, an existing destination file is kept as is.
        2. With a non-empty local_index, the backend digest is resolved. A
           missing key raises NotFoundError; any other lookup failure is
           logged and the fetch continues without dedup. Without an index
           no lookup is made.
        3. If local_index has a file with that digest, it is copied to the
           destination and verified while copying. A stale entry (file gone
           or changed) is logged and ignored.
        4. Otherwise the backend downloads the blob.

        Args:
            key: Blob key
            dest_dir: Directory the key is laid out under
            local_index: Digest -> local file path, read only
            overwrite: Replace an existing destination file

        Returns:
            FetchResult describing what happened

        Raises:
            NotFoundError: If the key does not exist
            BackendError: If the download fails
            OSError: On local filesystem failures
        """
        key = normalize_key(key)
        dest = key_to_path(Path(dest_dir), key)

        if not overwrite and dest.exists():
            logger.info("File '%s' already exists, skipping download", dest)
            return FetchResult(key=key, path=str(dest), action=TransferAction.SKIPPED)

        digest = None
        if local_index:
            try:
                digest = self.backend.remote_digest(key)
            except NotFoundError:
                raise
            except BackendError as e:
                logger.warning("Could not resolve digest for '%s' on %s, downloading without dedup: %s",
                               key, self.name, e)

        if digest is not None:
            source = local_index.get(digest)
            if source is not None:
                try:
                    copy_file(Path(source), dest, expected_digest=digest)
                except (OSError, ValueError) as e:
                    logger.warning("Indexed file '%s' unusable for '%s' (%s), downloading instead",
                                   source, key, e)
                else:
                    logger.info("Copied existing local file '%s' to '%s'", source, dest)
                    return FetchResult(
                        key=key,
                        path=str(dest),
                        action=TransferAction.COPIED,
                        digest=digest,
                        source=str(source),
                    )

        path = self.backend.download(key, Path(dest_dir))
        return FetchResult(key=key, path=str(path), action=TransferAction.DOWNLOADED, digest=digest)

    def fetch_many(
        self,
        keys: Iterable[str],
        dest_dir: Path,
        local_index: Optional[LocalIndex] = None,
        overwrite: bool = False,
    ) -> SyncReport:
        """Fetch several keys; a failing key is recorded and the rest continue."""
        report = SyncReport()
        for key in keys:
            try:
                result = self.fetch(key, dest_dir, local_index=local_index, overwrite=overwrite)
            except (StoreError, OSError, ValueError) as e:
                logger.error("Failed to fetch '%s' from %s: %s", key, self.name, e)
                result = FetchResult(
                    key=normalize_key(key),
                    path=str(Path(dest_dir) / normalize_key(key)),
                    action=TransferAction.FAILED,
                    error=str(e),
                )
            report.fetched.append(result)
        return report

    def fetch_prefix(
        self,
        prefix: str,
        dest_dir: Path,
        local_index: Optional[LocalIndex] = None,
        overwrite: bool = False,
    ) -> SyncReport:
        """Fetch every key under prefix.

        Raises:
            BackendError: If listing fails (nothing is fetched)
        """
        keys = self.list(prefix)
        logger.info("Fetching %d keys under '%s' from %s to '%s'", len(keys), prefix, self.name, dest_dir)
        return self.fetch_many(keys, dest_dir, local_index=local_index, overwrite=overwrite)

    # ---- publish -------------------------------------------------------

    @contextlib.contextmanager
    def _hashed(self, content: BinaryIO) -> Iterator[Tuple[BinaryIO, str, int]]:
        """Digest a stream and hand back a stream positioned to re-read it.

        Seekable streams are hashed in place and rewound. Anything else is
        spooled to a temporary file while hashing.
        """
        seekable = getattr(content, "seekable", None)
        if seekable is not None and seekable():
            start = content.tell()
            reader = HashingReader(content)
            copy_stream(reader, _NullSink())
            content.seek(start)
            yield content, reader.hexdigest(), reader.bytes_read
            return

        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
            reader = HashingReader(content)
            copy_stream(reader, spool)
            spool.seek(0)
            yield spool, reader.hexdigest(), reader.bytes_read

    def publish(self, key: str, content: BinaryIO, overwrite: bool = False) -> PublishResult:
        """Upload content under key unless the key already holds it.

        Without overwrite, the key's current digest is compared with the
        content's: a match makes this a successful no-op. A missing key, a
        different digest, or a failed lookup (logged) means the upload
        happens. With overwrite the upload always happens.

        Only the digest stored at key itself is compared: the same content
        under another key, or in a local index, does not stand in for it.

        Raises:
            BackendError: If the upload fails
            OSError: If the content stream cannot be read
        """
        key = normalize_key(key)
        with self._hashed(content) as (stream, digest, size):
            if not overwrite:
                existing = None
                try:
                    existing = self.backend.remote_digest(key)
                except NotFoundError:
                    pass
                except BackendError as e:
                    logger.warning("Could not resolve digest for '%s' on %s, uploading: %s",
                                   key, self.name, e)
                if existing == digest:
                    logger.info("'%s' on %s already has this content, skipping upload", key, self.name)
                    return PublishResult(key=key, action=TransferAction.SKIPPED, digest=digest, size=size)

            self.backend.upload(key, stream, digest=digest)

        logger.info("Published '%s' to %s (%d bytes)", key, self.name, size)
        return PublishResult(key=key, action=TransferAction.UPLOADED, digest=digest, size=size)

    def publish_from_path(self, key: str, local_path: Path, overwrite: bool = False) -> PublishResult:
        with open(local_path, "rb") as f:
            return self.publish(key, f, overwrite=overwrite)

    def publish_directory(
        self,
        local_dir: Path,
        prefix: str = "",
        overwrite: bool = False,
        ignore: Iterable[str] = (),
    ) -> SyncReport:
        """Publish every non-ignored file under local_dir as prefix/<relative path>.

        Honors ``.blobsyncignore`` in local_dir plus extra patterns. A file
        that fails is recorded and the rest continue.
        """
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            raise NotADirectoryError(f"Not a directory: {local_dir}")

        prefix = normalize_key(prefix).rstrip("/")
        report = SyncReport()
        for path in IgnoreSpec(local_dir, extra=ignore).iter_files():
            rel = path.relative_to(local_dir).as_posix()
            key = f"{prefix}/{rel}" if prefix else rel
            try:
                result = self.publish_from_path(key, path, overwrite=overwrite)
            except (StoreError, OSError) as e:
                logger.error("Failed to publish '%s' to %s: %s", path, self.name, e)
                result = PublishResult(key=key, action=TransferAction.FAILED, error=str(e))
            report.published.append(result)
        return report


class _NullSink:
    """Write target that discards bytes."""

    def write(self, data: bytes) -> int:
        return len(data)
