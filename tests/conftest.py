"""Shared test fixtures and utilities."""

import hashlib
from types import SimpleNamespace
from typing import Dict, Optional, Set

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from blobsync.storage.azure import AzureBlobStore
from blobsync.storage.fs import FilesystemBlobStore


# ========== In-memory Azure fakes ==========

class FakeDownloader:
    """Stands in for azure.storage.blob.StorageStreamDownloader."""

    def __init__(self, data: bytes, fail_midway: bool = False):
        self.data = data
        self.fail_midway = fail_midway

    def readinto(self, stream) -> int:
        if self.fail_midway:
            stream.write(self.data[: len(self.data) // 2])
            raise HttpResponseError("connection reset mid-stream")
        stream.write(self.data)
        return len(self.data)

    def chunks(self):
        for i in range(0, len(self.data), 4):
            yield self.data[i:i + 4]


class FakePager:
    """One page of a by_page() iteration, with its continuation token."""

    def __init__(self, container: "FakeContainerClient", names, start: int, page_size: int):
        self.container = container
        self.names = names
        self.start = start
        self.page_size = page_size
        self.continuation_token = None
        self._done = False

    def __iter__(self):
        return self

    def __next__(self):
        if self._done:
            raise StopIteration
        self._done = True
        page_number = self.container.page_requests
        self.container.page_requests += 1
        if page_number in self.container.fail_pages:
            raise HttpResponseError(f"page {page_number} failed")
        end = self.start + self.page_size
        page = [SimpleNamespace(name=n) for n in self.names[self.start:end]]
        self.continuation_token = str(end) if end < len(self.names) else None
        return iter(page)


class FakeItemPaged:
    def __init__(self, container, names, page_size):
        self.container = container
        self.names = names
        self.page_size = page_size

    def by_page(self, continuation_token=None):
        start = int(continuation_token) if continuation_token else 0
        return FakePager(self.container, self.names, start, self.page_size)


class FakeBlobClient:
    def __init__(self, container: "FakeContainerClient", name: str):
        self.container = container
        self.name = name

    def _entry(self) -> dict:
        if self.name in self.container.fail_names:
            raise HttpResponseError(f"service unavailable for {self.name}")
        if self.name not in self.container.blobs:
            raise ResourceNotFoundError(f"The specified blob does not exist: {self.name}")
        return self.container.blobs[self.name]

    def get_blob_properties(self):
        self.container.property_calls += 1
        entry = self._entry()
        return SimpleNamespace(
            name=self.name,
            size=len(entry["data"]),
            etag=entry["etag"],
            content_settings=SimpleNamespace(content_md5=entry["md5"]),
        )

    def download_blob(self, max_concurrency=1):
        self.container.download_calls += 1
        entry = self._entry()
        return FakeDownloader(entry["data"], fail_midway=self.name in self.container.fail_midway)

    def upload_blob(self, data, overwrite=False, max_concurrency=1, content_settings=None):
        self.container.upload_calls += 1
        if self.name in self.container.fail_names:
            raise HttpResponseError(f"upload rejected for {self.name}")
        if not overwrite and self.name in self.container.blobs:
            raise HttpResponseError("BlobAlreadyExists")
        payload = data if isinstance(data, bytes) else data.read()
        md5 = getattr(content_settings, "content_md5", None)
        if md5 is None and self.container.auto_md5:
            md5 = bytearray(hashlib.md5(payload).digest())
        self.container.put(self.name, payload, md5=md5)


class FakeContainerClient:
    """In-memory stand-in for azure.storage.blob.ContainerClient.

    ``auto_md5`` mimics the service computing Content-MD5 for single-shot
    uploads; turn it off to model block-list uploads without one.
    """

    def __init__(self, name: str = "test-container", auto_md5: bool = True):
        self.container_name = name
        self.auto_md5 = auto_md5
        self.blobs: Dict[str, dict] = {}
        self.fail_names: Set[str] = set()
        self.fail_midway: Set[str] = set()
        self.fail_pages: Set[int] = set()
        self.page_requests = 0
        self.property_calls = 0
        self.download_calls = 0
        self.upload_calls = 0
        self._etag = 0

    def put(self, name: str, data: bytes, md5: Optional[bytearray] = None, etag: Optional[str] = None):
        self._etag += 1
        self.blobs[name] = {
            "data": data,
            "md5": md5,
            "etag": etag or f'"0x8DC{self._etag:013X}"',
        }

    def list_blobs(self, name_starts_with=None, results_per_page=None):
        names = sorted(n for n in self.blobs if n.startswith(name_starts_with or ""))
        return FakeItemPaged(self, names, results_per_page or 5000)

    def get_blob_client(self, blob):
        return FakeBlobClient(self, blob)


class CountingStore:
    """Wraps a backend and counts transfer calls."""

    def __init__(self, backend):
        self.backend = backend
        self.name = backend.name
        self.downloads = 0
        self.uploads = 0
        self.digest_lookups = 0

    def list(self, prefix=""):
        return self.backend.list(prefix)

    def remote_digest(self, key):
        self.digest_lookups += 1
        return self.backend.remote_digest(key)

    def download(self, key, dest_dir):
        self.downloads += 1
        return self.backend.download(key, dest_dir)

    def upload(self, key, content, digest=None):
        self.uploads += 1
        return self.backend.upload(key, content, digest=digest)

    def upload_from_path(self, key, local_path, digest=None):
        with open(local_path, "rb") as f:
            return self.upload(key, f, digest=digest)


# ========== Fixtures ==========

@pytest.fixture
def fake_container():
    """Empty in-memory Azure container."""
    return FakeContainerClient()


@pytest.fixture
def azure_store(fake_container):
    """AzureBlobStore over the in-memory container, small pages."""
    return AzureBlobStore(fake_container, page_size=2)


@pytest.fixture
def fs_store(tmp_path):
    """FilesystemBlobStore rooted in a temp directory."""
    return FilesystemBlobStore(tmp_path / "store")


@pytest.fixture(params=["fs", "azure"])
def any_store(request, tmp_path):
    """Each backend in turn, for behavior both must share."""
    if request.param == "fs":
        return FilesystemBlobStore(tmp_path / "store")
    return AzureBlobStore(FakeContainerClient(), page_size=2)


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: bytes = b"test content"):
        file_path = tmp_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
        return file_path
    return _write


@pytest.fixture
def counting():
    """Wrap a backend to count its transfer calls."""
    return CountingStore


@pytest.fixture
def make_container():
    """Factory for configurable in-memory Azure containers."""
    return FakeContainerClient
