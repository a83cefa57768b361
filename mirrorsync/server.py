"""MCP server exposing the sync engine as tools."""

import logging
import sys
from typing import Any, Callable, Dict, Optional

from mcp.server.fastmcp import FastMCP

from . import __version__
from .config import Config, load_configuration, validate_configuration
from .errors import error_handler
from .orchestrator import SyncOrchestrator, get_sync_orchestrator
from .platform import validate_git_availability

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class StructuredFormatter(logging.Formatter):
    """Formatter that prefixes records carrying an `operation` extra."""

    def format(self, record):
        operation = getattr(record, 'operation', None)
        if operation:
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"[{operation}] {record.msg}"
        return super().format(record)


def setup_logging(config: Config) -> None:
    """Configure the mirrorsync loggers with structured output on stderr."""
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    formatter = StructuredFormatter(LOG_FORMAT)
    logger = logging.getLogger('mirrorsync')
    logger.setLevel(getattr(logging, config.log_level))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False


def _call_tool(
    orchestrator: SyncOrchestrator,
    operation: str,
    func: Callable[[], Dict[str, Any]],
    requires_initialization: bool = True
) -> dict:
    """Run one tool body, initializing lazily and turning errors into payloads."""
    try:
        if requires_initialization and not orchestrator.initialized:
            orchestrator.initialize()
        return error_handler.create_success_response(operation, func())
    except Exception as e:
        return error_handler.handle_sync_error(e, {"operation": operation}).to_dict()


def register_tools(server: FastMCP, orchestrator: SyncOrchestrator) -> None:
    """Register MCP tools with the server instance."""

    @server.tool()
    def sync_now() -> dict:
        """
        Pull remote changes, then commit and push local changes.

        Returns immediately without syncing if another sync is already running.

        Returns:
            Dictionary with `ran` and the resulting status
        """
        def run():
            ran = orchestrator.sync()
            return {"ran": ran, "status": orchestrator.status().to_dict()}
        return _call_tool(orchestrator, "sync_now", run)

    @server.tool()
    def push_changes() -> dict:
        """
        Commit and push local changes (pulls first to avoid divergence).

        Returns:
            Dictionary with the pushed commit id, or null if nothing changed
        """
        return _call_tool(orchestrator, "push_changes", lambda: {"commit_id": orchestrator.push()})

    @server.tool()
    def pull_changes() -> dict:
        """Pull remote changes into the source directory."""
        def run():
            orchestrator.pull()
            return {"status": orchestrator.status().to_dict()}
        return _call_tool(orchestrator, "pull_changes", run)

    @server.tool()
    def sync_status() -> dict:
        """
        Current sync state.

        Returns:
            pending_change_count, last_sync_timestamp, repository_identifier and state
        """
        return _call_tool(orchestrator, "sync_status", lambda: orchestrator.status().to_dict())

    @server.tool()
    def detailed_sync_status() -> dict:
        """
        Commits ahead of and behind the remote, and up to 10 changed paths.
        """
        def run():
            details = orchestrator.detailed_status().to_dict()
            details["performance"] = orchestrator.perf_logger.get_performance_summary()
            return details
        return _call_tool(orchestrator, "detailed_sync_status", run)

    @server.tool()
    def start_auto_sync(interval_minutes: Optional[float] = None) -> dict:
        """
        Start syncing periodically.

        Args:
            interval_minutes: Minutes between syncs (defaults to the configured interval)
        """
        def run():
            orchestrator.start_auto_sync(interval_minutes * 60.0 if interval_minutes else None)
            return {"running": True, "seconds_until_next_sync": orchestrator.auto_sync.remaining_seconds()}
        return _call_tool(orchestrator, "start_auto_sync", run)

    @server.tool()
    def stop_auto_sync() -> dict:
        """Stop periodic syncing."""
        def run():
            orchestrator.stop_auto_sync()
            return {"running": False}
        return _call_tool(orchestrator, "stop_auto_sync", run, requires_initialization=False)

    @server.tool()
    def verify_remote_access() -> dict:
        """
        Check that the configured remote is reachable with the configured token.

        Does not touch the working directory.
        """
        def run():
            orchestrator.verify_remote_access()
            return {"remote": orchestrator.settings.get_remote_url(), "reachable": True}
        return _call_tool(orchestrator, "verify_remote_access", run, requires_initialization=False)

    logging.getLogger('mirrorsync.init').info("MCP tools registered successfully")


def initialize_server(config: Optional[Config] = None) -> FastMCP:
    """Load configuration, prepare the orchestrator and build the MCP server."""
    server_config = config or load_configuration()
    validation_issues = validate_configuration(server_config)

    setup_logging(server_config)
    init_logger = logging.getLogger('mirrorsync.init')

    for issue in validation_issues:
        if issue.startswith("ERROR:"):
            init_logger.error(issue[7:])
        elif issue.startswith("WARNING:"):
            init_logger.warning(issue[9:])

    error_count = sum(1 for issue in validation_issues if issue.startswith("ERROR:"))
    if error_count > 0:
        init_logger.critical(f"Server startup failed due to {error_count} configuration error(s)")
        sys.exit(1)

    git_available, git_error = validate_git_availability()
    if not git_available:
        init_logger.critical(f"Git is required: {git_error}")
        sys.exit(1)

    orchestrator = get_sync_orchestrator(server_config)
    try:
        orchestrator.initialize()
        if server_config.auto_sync:
            orchestrator.start_auto_sync()
    except Exception as e:
        # Tools retry initialization on first use
        init_logger.warning(f"Sync initialization failed: {e}")

    server = FastMCP("Mirror Sync", log_level=server_config.log_level)
    register_tools(server, orchestrator)
    init_logger.info("Mirror Sync MCP server initialized successfully")
    return server


def main():
    """Entry point for the mirrorsync console script (stdio transport)."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    startup_logger = logging.getLogger('mirrorsync.startup')

    try:
        startup_logger.info(f"Mirror Sync MCP Server {__version__}")
        server = initialize_server()
        startup_logger.info("Starting server with stdio transport")
        server.run(transport="stdio")
    except KeyboardInterrupt:
        startup_logger.info("Server stopped by user (Ctrl+C)")
    except SystemExit:
        raise
    except Exception as e:
        startup_logger.critical(f"Server failed to start: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
