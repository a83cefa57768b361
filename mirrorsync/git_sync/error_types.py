"""Failure kinds for Git synchronization operations."""

from enum import Enum


class FailureKind(Enum):
    """How a failed git command should be treated by the pull protocol."""
    EMPTY_REMOTE = "empty_remote"
    DIVERGENCE = "divergence"
    REMOTE_UNREACHABLE = "remote_unreachable"
    UNCLASSIFIED = "unclassified"
