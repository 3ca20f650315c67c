"""Blob key canonicalization.

Keys are forward-slash separated and never start with a separator, so the
same logical key addresses the same object on every backend and OS.
Nothing else about a key is rewritten: object stores allow names such as
``run//x.bin``, and a key returned by ``list`` must address the same blob
when passed back in. Unsafe segments are rejected only when a key is
mapped to a local path.
"""

import os
from pathlib import Path, PurePosixPath


def normalize_key(key: str) -> str:
    """Canonicalize a blob key.

    - OS-native and backslash separators become ``/``
    - Leading separators are stripped

    Idempotent: ``normalize_key(normalize_key(k)) == normalize_key(k)``.
    """
    key = key.replace("\\", "/")
    if os.sep != "/":
        key = key.replace(os.sep, "/")
    return key.lstrip("/")


def key_to_path(root: Path, key: str) -> Path:
    """Resolve a key to a path under ``root``.

    Empty and ``.`` segments are dropped, so ``a//./b`` lands at ``root/a/b``.

    Args:
        root: Directory the key is relative to
        key: Blob key (normalized here)

    Returns:
        Path inside root

    Raises:
        ValueError: If the key is empty or would escape root
    """
    clean = normalize_key(key)
    parts = PurePosixPath(clean).parts
    if not parts or clean.endswith("/"):
        raise ValueError(f"Invalid blob key (not a file key): {key!r}")
    if any(part in ("..", ".") for part in parts):
        raise ValueError(f"Invalid blob key (path traversal): {key!r}")
    return Path(root).joinpath(*parts)


def relative_key(key: str, prefix: str) -> str:
    """Strip a directory-style prefix from a key.

    ``relative_key("models/a/b.bin", "models/")`` -> ``"a/b.bin"``. Keys
    outside the prefix are returned normalized but otherwise unchanged.
    """
    key = normalize_key(key)
    prefix = normalize_key(prefix)
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    if prefix and key.startswith(prefix):
        return key[len(prefix):]
    return key


def path_to_key(root: Path, path: Path) -> str:
    """Key for a file located under ``root``."""
    return normalize_key(Path(path).relative_to(root).as_posix())
