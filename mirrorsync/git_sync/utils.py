"""Utility classes and functions for Git synchronization."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class GitSyncResult:
    """Result of a single repository primitive."""
    success: bool
    message: str
    operation: str
    output: Optional[str] = None
    error_code: Optional[str] = None


def create_git_sync_result(
    success: bool,
    message: str,
    operation: str,
    output: Optional[str] = None,
    error_code: Optional[str] = None
) -> GitSyncResult:
    """
    Helper function to create GitSyncResult instances.

    Args:
        success: Whether the operation was successful
        message: Tool message on failure, short description on success
        operation: Name of the operation that was performed
        output: Trimmed stdout of the underlying command, if any
        error_code: Optional machine-readable code

    Returns:
        GitSyncResult instance with all fields populated
    """
    return GitSyncResult(
        success=success,
        message=message,
        operation=operation,
        output=output,
        error_code=error_code
    )
