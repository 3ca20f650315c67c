"""Azure blob storage implementation."""

import logging
from pathlib import Path
from typing import BinaryIO, List, Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import ContentSettings

from ..atomic import atomic_write
from ..errors import BackendError, NotFoundError
from ..hashing import digest_chunks, digest_from_tag, tag_from_digest
from ..keys import key_to_path, normalize_key

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_CONCURRENCY = 10
DEFAULT_BLOCK_SIZE = 64 * 1024 * 1024


class AzureBlobStore:
    """
    Azure Blob Storage implementation.

    Keys are stored as ``<prefix>/<key>`` in one container. The container
    client is created once and shared read-only across calls; the store
    keeps no per-call state.
    """

    def __init__(
        self,
        container_client,
        prefix: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
        max_concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """
        Initialize Azure blob store.

        Args:
            container_client: azure.storage.blob.ContainerClient
            prefix: Optional key prefix
            page_size: Results per listing page
            max_concurrency: Parallel connections per transfer
        """
        self.container_client = container_client
        self.container = container_client.container_name
        self.prefix = normalize_key(prefix).rstrip("/") if prefix else ""
        self.page_size = page_size
        self.max_concurrency = max_concurrency
        self.name = f"azure://{self.container}"

    @classmethod
    def from_connection_string(
        cls,
        connection_string: str,
        container: str,
        prefix: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
        max_concurrency: int = DEFAULT_CONCURRENCY,
        block_size: int = DEFAULT_BLOCK_SIZE,
        create_container: bool = True,
    ) -> "AzureBlobStore":
        """
        Build a store with its own service client.

        The client makes exactly one attempt per request (``retry_total=0``);
        retry policy belongs to the caller.

        Args:
            connection_string: Azure Storage connection string
            container: Container name
            prefix: Optional key prefix
            page_size: Results per listing page
            max_concurrency: Parallel connections per transfer
            block_size: Block size for chunked uploads and downloads
            create_container: Create the container if it does not exist
        """
        from azure.storage.blob import BlobServiceClient

        client = BlobServiceClient.from_connection_string(
            connection_string,
            max_block_size=block_size,
            max_single_put_size=block_size,
            max_chunk_get_size=block_size,
            retry_total=0,
        )
        container_client = client.get_container_client(container)

        if create_container:
            try:
                if not container_client.exists():
                    container_client.create_container()
            except AzureError as e:
                raise BackendError(f"azure://{container}", None, f"container setup failed: {e}") from e

        return cls(container_client, prefix=prefix, page_size=page_size, max_concurrency=max_concurrency)

    def _blob_name(self, key: str) -> str:
        key = normalize_key(key)
        return f"{self.prefix}/{key}" if self.prefix else key

    def _key(self, blob_name: str) -> str:
        if self.prefix and blob_name.startswith(self.prefix + "/"):
            return blob_name[len(self.prefix) + 1:]
        return blob_name

    def _blob(self, key: str):
        return self.container_client.get_blob_client(self._blob_name(key))

    def list(self, prefix: str = "") -> List[str]:
        """
        List keys under prefix, following continuation tokens.

        Raises:
            BackendError: If any page request fails (collected keys are dropped)
        """
        name_prefix = self._blob_name(prefix)

        keys = []
        token = None
        try:
            while True:
                pager = self.container_client.list_blobs(
                    name_starts_with=name_prefix or None,
                    results_per_page=self.page_size,
                ).by_page(continuation_token=token)
                page = next(pager, None)
                if page is not None:
                    keys.extend(self._key(blob.name) for blob in page)
                token = pager.continuation_token
                if not token:
                    break
        except AzureError as e:
            raise BackendError(self.name, prefix, f"listing failed: {e}") from e

        logger.debug("Listed %d keys under '%s' in %s", len(keys), prefix, self.name)
        return keys

    def remote_digest(self, key: str) -> str:
        """
        Derive the content digest from blob metadata.

        Uses Content-MD5, then a hash-shaped ETag. Azure ETags are normally
        opaque and Content-MD5 is absent for block-list uploads made
        without one; in that case the blob is streamed and hashed.

        Raises:
            NotFoundError: If the blob does not exist
            BackendError: On any other failure
        """
        key = normalize_key(key)
        blob = self._blob(key)
        try:
            props = blob.get_blob_properties()
        except ResourceNotFoundError as e:
            raise NotFoundError(self.name, key) from e
        except AzureError as e:
            raise BackendError(self.name, key, f"metadata lookup failed: {e}") from e

        settings = getattr(props, "content_settings", None)
        digest = digest_from_tag(getattr(settings, "content_md5", None))
        if digest is None:
            digest = digest_from_tag(getattr(props, "etag", None))
        if digest is not None:
            return digest

        logger.warning(
            "No usable integrity tag for '%s' in %s, hashing full content", key, self.name
        )
        try:
            downloader = blob.download_blob(max_concurrency=self.max_concurrency)
            return digest_chunks(downloader.chunks())
        except ResourceNotFoundError as e:
            raise NotFoundError(self.name, key) from e
        except AzureError as e:
            raise BackendError(self.name, key, f"content hashing failed: {e}") from e

    def download(self, key: str, dest_dir: Path) -> Path:
        """
        Download a blob to dest_dir/key.

        Streams into a temp file next to the destination and renames it
        into place once synced, so a failed download leaves no partial file.

        Returns:
            Destination path
        """
        key = normalize_key(key)
        dest = key_to_path(Path(dest_dir), key)
        blob = self._blob(key)

        def _write(f: BinaryIO) -> None:
            blob.download_blob(max_concurrency=self.max_concurrency).readinto(f)

        try:
            atomic_write(dest, _write)
        except ResourceNotFoundError as e:
            raise NotFoundError(self.name, key) from e
        except AzureError as e:
            raise BackendError(self.name, key, f"download failed: {e}") from e

        logger.info("Downloaded '%s/%s' to '%s'", self.name, key, dest)
        return dest

    def upload(self, key: str, content: BinaryIO, digest: Optional[str] = None) -> None:
        """
        Upload a stream, replacing any existing blob.

        When the digest is known it is recorded as the blob's Content-MD5,
        so blobs uploaded in blocks still expose a usable integrity tag.
        """
        key = normalize_key(key)
        kwargs = {"overwrite": True, "max_concurrency": self.max_concurrency}
        if digest:
            kwargs["content_settings"] = ContentSettings(content_md5=tag_from_digest(digest))

        logger.info("Uploading '%s' to '%s'", key, self.name)
        try:
            self._blob(key).upload_blob(content, **kwargs)
        except AzureError as e:
            raise BackendError(self.name, key, f"upload failed: {e}") from e

    def upload_from_path(self, key: str, local_path: Path, digest: Optional[str] = None) -> None:
        """Upload a local file under key."""
        key = normalize_key(key)
        with open(local_path, "rb") as f:
            self.upload(key, f, digest=digest)
        logger.info("Successfully uploaded '%s' to '%s/%s'", local_path, self.name, key)
