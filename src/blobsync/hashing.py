"""Content digests for dedup comparison.

A ContentDigest is the MD5 of the blob bytes, as 32 lower-case hex chars.
MD5 is used because it is what object stores expose natively (Content-MD5,
single-part ETags); it is a dedup fingerprint, not a security boundary.

The local filesystem has no native tag, so its digests come from hashing
the full stream. Remote digests come from backend metadata via
``digest_from_tag``, which refuses anything that is not a plain MD5.
"""

import base64
import binascii
import hashlib
import re
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Union

CHUNK_SIZE = 1024 * 1024
DIGEST_LENGTH = 32

_HEX32 = re.compile(r"^[0-9a-f]{32}$")


def _new_hash():
    return hashlib.md5(usedforsecurity=False)


def digest_stream(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> str:
    """Hash a binary stream to its end.

    Args:
        stream: Readable binary stream, consumed exactly once
        chunk_size: Read size

    Returns:
        32-char lower-case hex digest

    Raises:
        OSError: If the stream cannot be fully read
    """
    h = _new_hash()
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        h.update(chunk)
    return h.hexdigest()


def digest_file(path: Path) -> str:
    """Hash a file's full contents."""
    with Path(path).open("rb") as f:
        return digest_stream(f)


def digest_bytes(data: bytes) -> str:
    h = _new_hash()
    h.update(data)
    return h.hexdigest()


def digest_chunks(chunks: Iterable[bytes]) -> str:
    """Hash an iterable of byte chunks, e.g. a streaming download."""
    h = _new_hash()
    for chunk in chunks:
        h.update(chunk)
    return h.hexdigest()


def is_digest(value: str) -> bool:
    """True if value is a well-formed ContentDigest."""
    return bool(value) and _HEX32.fullmatch(value) is not None


def digest_from_tag(tag: Union[str, bytes, bytearray, None]) -> Optional[str]:
    """Derive a ContentDigest from a backend-native integrity tag.

    Accepts:
    - raw 16-byte MD5 values (Azure ``content_settings.content_md5``)
    - base64-encoded MD5 strings (``Content-MD5`` header form)
    - hex MD5 ETags, optionally quoted or weak (``W/"..."``)

    Anything else returns None, meaning the digest is unavailable and the
    caller has to hash the content. This includes Azure's opaque
    ``0x8D...`` ETags and multipart ETags of the form ``<hex>-<parts>``,
    which do not describe the content bytes.

    Examples:
        >>> digest_from_tag('"5d41402abc4b2a76b9719d911017c592"')
        '5d41402abc4b2a76b9719d911017c592'
        >>> digest_from_tag('"5d41402abc4b2a76b9719d911017c592-3"') is None
        True
    """
    if tag is None:
        return None

    if isinstance(tag, (bytes, bytearray)):
        if len(tag) == 16:
            return bytes(tag).hex()
        return None

    value = tag.strip()
    if value.startswith("W/"):
        value = value[2:]
    value = value.strip('"').strip()
    if not value:
        return None

    if _HEX32.fullmatch(value.lower()):
        return value.lower()

    # Content-MD5 header form
    if len(value) == 24 and value.endswith("=="):
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            return None
        if len(raw) == 16:
            return raw.hex()

    return None


def tag_from_digest(digest: str) -> bytearray:
    """Raw MD5 bytes for stamping a digest as a backend Content-MD5."""
    if not is_digest(digest):
        raise ValueError(f"Invalid content digest: {digest!r}")
    return bytearray.fromhex(digest)


class HashingReader:
    """Binary reader that hashes everything read through it.

    Lets a copy or upload compute the digest of what it actually moved
    without a second pass over the data.
    """

    def __init__(self, raw: BinaryIO):
        self.raw = raw
        self._hash = _new_hash()
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self.raw.read(size)
        if data:
            self._hash.update(data)
            self.bytes_read += len(data)
        return data

    def hexdigest(self) -> str:
        return self._hash.hexdigest()
