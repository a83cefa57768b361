"""Selection of the source directory files that take part in sync."""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

import pathspec

# Credentials, recordings and OS metadata never leave the machine
DEFAULT_EXCLUDE_PATTERNS = [
    "google_accounts.json",
    "oauth_creds.json",
    "**/browser_recordings/**",
    ".DS_Store",
    ".git/",
]


class FileFilter:
    """Source of the relative paths to mirror into the working directory."""

    def list_syncable_relative_paths(self) -> List[str]:
        raise NotImplementedError


class DirectoryFileFilter(FileFilter):
    """
    Walks a source directory and drops paths matching gitignore-style
    exclude patterns.

    Args:
        source_dir: Directory to walk
        exclude_patterns: Extra patterns added to DEFAULT_EXCLUDE_PATTERNS
    """

    def __init__(self, source_dir: Path, exclude_patterns: Optional[Iterable[str]] = None):
        self.source_dir = Path(source_dir)
        self.patterns = DEFAULT_EXCLUDE_PATTERNS + [p for p in (exclude_patterns or []) if p]
        self.exclude_spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)
        self.logger = logging.getLogger('mirrorsync.file_filter')

    def is_excluded(self, relative_path: str, is_dir: bool = False) -> bool:
        rel_posix = Path(relative_path).as_posix()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.exclude_spec.match_file(rel_posix)

    def list_syncable_relative_paths(self) -> List[str]:
        """
        Relative POSIX paths of every regular file that should be synced.

        Excluded directories are pruned without being descended into.
        A missing source directory yields an empty list.
        """
        if not self.source_dir.is_dir():
            self.logger.debug(f"Source directory does not exist: {self.source_dir}")
            return []

        paths = []
        for dirpath, dirnames, filenames in os.walk(self.source_dir):
            rel_dir = Path(dirpath).relative_to(self.source_dir)
            dirnames[:] = [
                d for d in dirnames
                if not self.is_excluded((rel_dir / d).as_posix(), is_dir=True)
            ]
            for name in filenames:
                rel_path = (rel_dir / name).as_posix()
                if self.is_excluded(rel_path):
                    continue
                if not os.path.isfile(os.path.join(dirpath, name)):
                    continue
                paths.append(rel_path)

        paths.sort()
        return paths
