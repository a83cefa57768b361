"""Deterministic conflict resolution for files git cannot text-merge."""

from enum import Enum
from pathlib import PurePosixPath

from .repository_info import FileState

# Size delta (relative to the larger side) above which size decides
SIZE_RATIO_THRESHOLD = 0.20

BINARY_EXTENSIONS = frozenset({
    # Images
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".ico", ".tiff",
    # Protobuf and binary config/state
    ".pb", ".binpb", ".bin", ".dat", ".db", ".sqlite",
    # Archives
    ".zip", ".gz", ".tar",
})


class Resolution(Enum):
    """Which side of a conflict survives."""
    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"


def is_binary_path(path: str) -> bool:
    """Check whether a path has one of the recognized binary extensions."""
    return PurePosixPath(path).suffix.lower() in BINARY_EXTENSIONS


def size_ratio(local_size: int, remote_size: int) -> float:
    return abs(local_size - remote_size) / max(local_size, remote_size, 1)


def resolve(local_size: int, local_mtime: float, remote_size: int, remote_mtime: float) -> Resolution:
    """
    Decide which version of a conflicting file survives.

    When the sizes differ by more than SIZE_RATIO_THRESHOLD of the larger
    side, the larger file wins. Otherwise the more recently modified file
    wins. Every tie goes to the local side.

    Args:
        local_size: Size in bytes of the working tree file (0 if absent)
        local_mtime: Modification time of the working tree file (0 if absent)
        remote_size: Size in bytes at the remote tip (0 if absent)
        remote_mtime: Last commit time touching the path at the remote tip

    Returns:
        Resolution.KEEP_LOCAL or Resolution.KEEP_REMOTE
    """
    if size_ratio(local_size, remote_size) > SIZE_RATIO_THRESHOLD:
        return Resolution.KEEP_REMOTE if remote_size > local_size else Resolution.KEEP_LOCAL

    return Resolution.KEEP_REMOTE if remote_mtime > local_mtime else Resolution.KEEP_LOCAL


def resolve_states(local: FileState, remote: FileState) -> Resolution:
    """resolve() over two FileState values for the same path."""
    return resolve(local.size, local.mtime, remote.size, remote.mtime)
