"""Failure classification for Git synchronization operations.

The only signal git gives about *why* a command failed is its message text,
so classification is a substring lookup over a pattern table. The table is
ordered: the first matching pattern wins.
"""

from typing import Callable, Dict, Optional

from ..errors import RemoteUnreachableError, SyncError, UnclassifiedSyncError
from .error_types import FailureKind

Classifier = Callable[[str], FailureKind]


def build_failure_patterns() -> Dict[str, FailureKind]:
    """Build the ordered mapping of lowercase message patterns to failure kinds."""
    return {
        # Nothing has been pushed to the tracked branch yet
        "couldn't find remote ref": FailureKind.EMPTY_REMOTE,
        "could not find remote ref": FailureKind.EMPTY_REMOTE,

        # Divergent histories and unresolved rebase/merge state
        "divergent": FailureKind.DIVERGENCE,
        "reconcile": FailureKind.DIVERGENCE,
        "conflict": FailureKind.DIVERGENCE,
        "exiting because of an unresolved conflict": FailureKind.DIVERGENCE,
        "exiting because of unfinished merge": FailureKind.DIVERGENCE,
        "unresolved": FailureKind.DIVERGENCE,
        "needs merge": FailureKind.DIVERGENCE,
        "not concluded your merge": FailureKind.DIVERGENCE,
        "rebase-merge": FailureKind.DIVERGENCE,
        "rebase-apply": FailureKind.DIVERGENCE,
        "cannot pull with rebase": FailureKind.DIVERGENCE,

        # Lock contention and index corruption
        "could not write index": FailureKind.DIVERGENCE,
        "index.lock": FailureKind.DIVERGENCE,
        "index file corrupt": FailureKind.DIVERGENCE,

        # Network and authentication
        "could not resolve host": FailureKind.REMOTE_UNREACHABLE,
        "connection refused": FailureKind.REMOTE_UNREACHABLE,
        "connection timed out": FailureKind.REMOTE_UNREACHABLE,
        "network is unreachable": FailureKind.REMOTE_UNREACHABLE,
        "operation timed out": FailureKind.REMOTE_UNREACHABLE,
        "authentication failed": FailureKind.REMOTE_UNREACHABLE,
        "could not read username": FailureKind.REMOTE_UNREACHABLE,
        "could not read from remote repository": FailureKind.REMOTE_UNREACHABLE,
        "repository not found": FailureKind.REMOTE_UNREACHABLE,
        "does not appear to be a git repository": FailureKind.REMOTE_UNREACHABLE,
        "permission denied": FailureKind.REMOTE_UNREACHABLE,
        "the requested url returned error: 401": FailureKind.REMOTE_UNREACHABLE,
        "the requested url returned error: 403": FailureKind.REMOTE_UNREACHABLE,
    }


_DEFAULT_PATTERNS = build_failure_patterns()


def classify_failure(error_message: str, patterns: Optional[Dict[str, FailureKind]] = None) -> FailureKind:
    """
    Classify a git failure message.

    Args:
        error_message: Message carried by a failed GitSyncResult
        patterns: Optional replacement pattern table

    Returns:
        The FailureKind of the first matching pattern, UNCLASSIFIED otherwise
    """
    if not error_message:
        return FailureKind.UNCLASSIFIED

    error_lower = error_message.lower()
    for pattern, kind in (patterns if patterns is not None else _DEFAULT_PATTERNS).items():
        if pattern in error_lower:
            return kind

    return FailureKind.UNCLASSIFIED


def error_for_failure(kind: FailureKind, message: str, operation: Optional[str] = None) -> SyncError:
    """Map a failure that is not absorbed by the protocol to the exception callers see."""
    if kind == FailureKind.REMOTE_UNREACHABLE:
        return RemoteUnreachableError(message, operation)
    return UnclassifiedSyncError(message, operation)
