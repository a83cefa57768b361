"""Repository health and file state data structures."""

from dataclasses import dataclass
from enum import Enum


class RepositoryHealth(Enum):
    """Enumeration of working directory health states."""
    CLEAN = "clean"             # Nothing to commit, no operation in progress
    DIRTY = "dirty"             # Uncommitted changes
    CONFLICTED = "conflicted"   # Unmerged paths or an unfinished rebase/merge
    LOCKED = "locked"           # index.lock left behind by a crashed git process


@dataclass(frozen=True)
class FileState:
    """Size and modification time of one path on one side of a conflict."""
    path: str
    size: int
    mtime: float
