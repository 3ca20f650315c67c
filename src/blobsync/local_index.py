"""Local content index: digest -> known-good local file.

The index is caller-owned. Build one from the directories you already have
on disk and pass it to ``ContentAddressedStore.fetch``; the store only
reads it. Persisting it between runs is up to the caller.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .hashing import digest_file
from .ignore import IgnoreSpec

logger = logging.getLogger(__name__)

LocalContentIndex = Dict[str, Path]


def index_files(paths: Iterable[Path], max_workers: int = 4) -> LocalContentIndex:
    """Hash files in parallel into a digest -> absolute path mapping.

    Files that vanish or can't be read while indexing are logged and left
    out; an index only needs to be correct for the entries it has. When
    several files share content, the first path in iteration order wins.

    Args:
        paths: Files to hash
        max_workers: Number of parallel workers

    Returns:
        Mapping of digest to absolute path
    """
    paths = [Path(p).resolve() for p in paths]

    def compute_one(path: Path) -> Tuple[Path, Optional[str]]:
        try:
            return path, digest_file(path)
        except OSError as e:
            logger.warning("Skipping %s while indexing: %s", path, e)
            return path, None

    index: LocalContentIndex = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        for path, digest in executor.map(compute_one, paths):
            if digest and digest not in index:
                index[digest] = path
    return index


def build_local_index(roots: Iterable[Path], max_workers: int = 4) -> LocalContentIndex:
    """Index every non-ignored file under the given directories.

    Missing roots are skipped. Honors ``.blobsyncignore`` in each root.
    """
    files: List[Path] = []
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            logger.debug("Index root %s does not exist, skipping", root)
            continue
        files.extend(IgnoreSpec(root).iter_files())

    index = index_files(files, max_workers=max_workers)
    logger.debug("Indexed %d files (%d distinct digests)", len(files), len(index))
    return index
