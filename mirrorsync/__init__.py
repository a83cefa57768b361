"""
Mirror Sync - bidirectional mirroring of a local directory through a git remote.

The sync engine lives in mirrorsync.git_sync and mirrorsync.orchestrator; the
MCP server surface in mirrorsync.server.
"""

__version__ = "1.0.0"
__description__ = "Bidirectional directory mirroring through a git remote"

__all__ = ["__version__"]
