"""Gitignore-style pattern matching for directory publish and index scans."""

from pathlib import Path
from typing import Iterable, Iterator

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .atomic import is_partial

IGNORE_FILE = ".blobsyncignore"

# Default patterns to always ignore
DEFAULTS = [
    # Version control
    ".git/",

    # Python
    "__pycache__/",
    "*.pyc",

    # Editors and OS files
    "*.swp",
    "*~",
    ".DS_Store",
    "Thumbs.db",

    # Our own ignore file
    IGNORE_FILE,
]


class IgnoreSpec:
    """Gitignore-style patterns for file exclusion under one root."""

    def __init__(self, root: Path, extra: Iterable[str] = ()):
        """
        Args:
            root: Directory the patterns are relative to
            extra: Additional patterns to include
        """
        self.root = Path(root)
        patterns = list(DEFAULTS)

        ignore_file = self.root / IGNORE_FILE
        if ignore_file.exists():
            for line in ignore_file.read_text().splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    patterns.append(line)

        patterns.extend(extra)
        self.spec = PathSpec.from_lines(GitWildMatchPattern, patterns)

    def is_ignored(self, relpath: str) -> bool:
        """Check a root-relative POSIX path."""
        return self.spec.match_file(relpath)

    def should_traverse(self, dirpath: str) -> bool:
        """Check whether a root-relative directory is worth descending into."""
        if not dirpath.endswith("/"):
            dirpath = dirpath + "/"
        return not self.spec.match_file(dirpath)

    def iter_files(self) -> Iterator[Path]:
        """Yield every non-ignored file under root, skipping ignored directories."""
        stack = [self.root]
        while stack:
            current = stack.pop()
            for entry in sorted(current.iterdir()):
                rel = entry.relative_to(self.root).as_posix()
                if entry.is_dir() and not entry.is_symlink():
                    if self.should_traverse(rel):
                        stack.append(entry)
                elif entry.is_file() and not is_partial(entry.name) and not self.is_ignored(rel):
                    yield entry
