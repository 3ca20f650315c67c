"""Crash-safe local file writes.

Every write that lands a blob on local disk goes through ``atomic_write``:
bytes go to a temp file in the destination directory, are fsynced, and the
temp file is renamed over the destination. A failed transfer therefore
never leaves a truncated file behind, and a previous file at the
destination survives the failure untouched.
"""

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from .hashing import CHUNK_SIZE, HashingReader

logger = logging.getLogger(__name__)

# Temp files are named ".<name>.partial-XXXX" next to their destination
PARTIAL_MARKER = ".partial-"


def is_partial(name: str) -> bool:
    """True for temp files left by an interrupted atomic write."""
    return name.startswith(".") and PARTIAL_MARKER in name


def fsync_dir(path: Path) -> None:
    """Fsync a directory so a rename inside it is durable.

    Best effort: Windows and some filesystems don't support directory fsync.
    """
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        fd = os.open(str(path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path)


def atomic_write(final_path: Path, write_fn: Callable[[BinaryIO], None]) -> Path:
    """Write a file atomically.

    Args:
        final_path: Destination path; parent directories are created
        write_fn: Called with the open temp file (binary, writable)

    Returns:
        final_path

    Raises:
        Exception: Whatever write_fn raises; the temp file is removed first
    """
    final_path = Path(final_path)
    final_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmppath = tempfile.mkstemp(
        prefix=f".{final_path.name}{PARTIAL_MARKER}",
        dir=final_path.parent,
    )
    try:
        with os.fdopen(fd, "wb") as f:
            write_fn(f)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp creates 0o600; published files get regular permissions
        os.chmod(tmppath, 0o644)
        os.replace(tmppath, final_path)
        fsync_dir(final_path.parent)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmppath)
        raise
    return final_path


def copy_stream(src: BinaryIO, dst: BinaryIO, chunk_size: int = CHUNK_SIZE) -> int:
    """Copy src to dst in chunks, returning bytes copied."""
    total = 0
    for chunk in iter(lambda: src.read(chunk_size), b""):
        dst.write(chunk)
        total += len(chunk)
    return total


def write_stream(final_path: Path, content: BinaryIO) -> int:
    """Atomically write a stream's bytes to final_path."""
    written = 0

    def _write(f: BinaryIO) -> None:
        nonlocal written
        written = copy_stream(content, f)

    atomic_write(final_path, _write)
    return written


def copy_file(src: Path, dest: Path, expected_digest: Optional[str] = None) -> str:
    """Atomically copy src to dest, hashing while copying.

    Args:
        src: Source file
        dest: Destination path
        expected_digest: If given, the copy is discarded (dest untouched)
            unless the copied bytes hash to this digest

    Returns:
        Digest of the copied bytes

    Raises:
        ValueError: If expected_digest is given and does not match
        OSError: On filesystem failures
    """
    digest = ""

    def _write(f: BinaryIO) -> None:
        nonlocal digest
        with open(src, "rb") as s:
            reader = HashingReader(s)
            copy_stream(reader, f)
        digest = reader.hexdigest()
        if expected_digest is not None and digest != expected_digest:
            raise ValueError(
                f"Digest mismatch copying {src}: expected {expected_digest}, got {digest}"
            )

    atomic_write(dest, _write)
    return digest
