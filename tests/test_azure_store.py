"""Tests for the Azure backend against an in-memory container."""

import hashlib
import io
from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import HttpResponseError

from blobsync.errors import BackendError, NotFoundError
from blobsync.hashing import digest_bytes
from blobsync.storage.azure import AzureBlobStore


class TestListing:
    """Paginated listing."""

    @pytest.mark.parametrize("page_size", [1, 2, 3, 7, 100])
    def test_listing_complete_for_any_page_size(self, make_container, page_size):
        """N keys split across pages come back exactly once each."""
        container = make_container()
        names = [f"runs/{i:03d}.out" for i in range(7)] + ["other/x.txt"]
        for name in names:
            container.put(name, b"data")
        store = AzureBlobStore(container, page_size=page_size)

        keys = store.list("runs/")

        assert sorted(keys) == sorted(names[:7])
        assert len(keys) == len(set(keys))

    def test_follows_continuation_tokens(self, make_container):
        container = make_container()
        for i in range(5):
            container.put(f"k{i}", b"")
        store = AzureBlobStore(container, page_size=2)

        store.list("")

        # 2 + 2 + 1
        assert container.page_requests == 3

    def test_page_failure_discards_partial_results(self, make_container):
        container = make_container()
        for i in range(5):
            container.put(f"k{i}", b"")
        container.fail_pages.add(1)
        store = AzureBlobStore(container, page_size=2)

        with pytest.raises(BackendError, match="listing failed"):
            store.list("")

    def test_store_prefix_is_hidden_from_keys(self, make_container):
        container = make_container()
        store = AzureBlobStore(container, prefix="/team/", page_size=2)
        store.upload("a/b.txt", io.BytesIO(b"x"))

        assert "team/a/b.txt" in container.blobs
        assert store.list("") == ["a/b.txt"]
        assert store.list("a/") == ["a/b.txt"]


class TestRemoteDigest:
    """Digest derivation from blob metadata."""

    def test_digest_from_content_md5(self, fake_container, azure_store):
        fake_container.put("k.txt", b"hello", md5=bytearray(hashlib.md5(b"hello").digest()))

        assert azure_store.remote_digest("k.txt") == digest_bytes(b"hello")
        # Metadata only, no content transfer
        assert fake_container.download_calls == 0

    def test_digest_from_hex_etag(self, fake_container, azure_store):
        fake_container.put("k.txt", b"hello", etag=f'"{digest_bytes(b"hello")}"')

        assert azure_store.remote_digest("k.txt") == digest_bytes(b"hello")
        assert fake_container.download_calls == 0

    def test_opaque_etag_falls_back_to_hashing(self, fake_container, azure_store):
        """No Content-MD5 and an opaque ETag: hash the content instead of trusting the tag."""
        fake_container.put("k.txt", b"hello world", md5=None)

        assert azure_store.remote_digest("k.txt") == digest_bytes(b"hello world")
        assert fake_container.download_calls == 1

    def test_multipart_etag_not_trusted(self, fake_container, azure_store):
        fake_container.put("big.bin", b"0123456789", md5=None, etag=f'"{digest_bytes(b"other")}-4"')

        assert azure_store.remote_digest("big.bin") == digest_bytes(b"0123456789")

    def test_missing_blob(self, azure_store):
        with pytest.raises(NotFoundError, match="nope.txt"):
            azure_store.remote_digest("nope.txt")

    def test_service_failure(self, fake_container, azure_store):
        fake_container.put("k.txt", b"x")
        fake_container.fail_names.add("k.txt")

        with pytest.raises(BackendError) as exc:
            azure_store.remote_digest("k.txt")
        assert exc.value.key == "k.txt"
        assert "azure://test-container" in str(exc.value)


class TestTransfers:

    def test_download_failure_leaves_no_partial_file(self, fake_container, azure_store, tmp_path):
        fake_container.put("a/b.bin", b"0123456789")
        fake_container.fail_midway.add("a/b.bin")

        with pytest.raises(BackendError, match="download failed"):
            azure_store.download("a/b.bin", tmp_path)

        assert not (tmp_path / "a" / "b.bin").exists()
        assert list((tmp_path / "a").iterdir()) == []

    def test_download_failure_keeps_previous_file(self, fake_container, azure_store, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "b.bin").write_bytes(b"previous")
        fake_container.put("a/b.bin", b"0123456789")
        fake_container.fail_midway.add("a/b.bin")

        with pytest.raises(BackendError):
            azure_store.download("a/b.bin", tmp_path)

        assert (tmp_path / "a" / "b.bin").read_bytes() == b"previous"

    def test_upload_stamps_digest(self, make_container):
        """A supplied digest is recorded as Content-MD5 even where the service wouldn't compute one."""
        container = make_container(auto_md5=False)
        store = AzureBlobStore(container)

        store.upload("big.bin", io.BytesIO(b"payload"), digest=digest_bytes(b"payload"))

        assert bytes(container.blobs["big.bin"]["md5"]) == hashlib.md5(b"payload").digest()
        assert store.remote_digest("big.bin") == digest_bytes(b"payload")
        assert container.download_calls == 0

    def test_upload_failure(self, fake_container, azure_store):
        fake_container.fail_names.add("k.txt")
        with pytest.raises(BackendError, match="upload failed"):
            azure_store.upload("k.txt", io.BytesIO(b"x"))

    def test_upload_from_path_normalizes_key(self, fake_container, azure_store, write_file):
        path = write_file("f.txt", b"content")
        azure_store.upload_from_path("\\dir\\f.txt", path)
        assert fake_container.blobs["dir/f.txt"]["data"] == b"content"


class TestConstruction:

    def test_from_connection_string_creates_container(self):
        service = MagicMock()
        container_client = service.get_container_client.return_value
        container_client.container_name = "blobs"
        container_client.exists.return_value = False

        with patch("azure.storage.blob.BlobServiceClient.from_connection_string", return_value=service) as build:
            store = AzureBlobStore.from_connection_string("UseDevelopmentStorage=true", "blobs", block_size=1024)

        container_client.create_container.assert_called_once()
        assert build.call_args.kwargs["retry_total"] == 0
        assert build.call_args.kwargs["max_block_size"] == 1024
        assert store.name == "azure://blobs"

    def test_container_setup_failure(self):
        service = MagicMock()
        service.get_container_client.return_value.exists.side_effect = HttpResponseError("forbidden")

        with patch("azure.storage.blob.BlobServiceClient.from_connection_string", return_value=service):
            with pytest.raises(BackendError, match="container setup failed"):
                AzureBlobStore.from_connection_string("UseDevelopmentStorage=true", "blobs")
