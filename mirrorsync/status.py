"""Sync status values and the sink that receives them."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class SyncState(Enum):
    """Externally visible state of the sync engine."""
    PENDING = "pending"
    SYNCING = "syncing"
    PUSHING = "pushing"
    PULLING = "pulling"
    SYNCED = "synced"
    ERROR = "error"


class LogLevel(Enum):
    """Severity of a message forwarded to the status sink."""
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SyncStatus:
    """Snapshot returned by SyncOrchestrator.status()."""
    pending_change_count: int
    last_sync_timestamp: Optional[str]
    repository_identifier: str
    state: SyncState = SyncState.PENDING

    def to_dict(self) -> dict:
        return {
            "pending_change_count": self.pending_change_count,
            "last_sync_timestamp": self.last_sync_timestamp,
            "repository_identifier": self.repository_identifier,
            "state": self.state.value,
        }


@dataclass
class DetailedStatus:
    """Snapshot returned by SyncOrchestrator.detailed_status()."""
    commits_ahead: int
    commits_behind: int
    changed_paths: List[str] = field(default_factory=list)
    total_changed_count: int = 0

    def to_dict(self) -> dict:
        return {
            "commits_ahead": self.commits_ahead,
            "commits_behind": self.commits_behind,
            "changed_paths": list(self.changed_paths),
            "total_changed_count": self.total_changed_count,
        }


class StatusSink:
    """Receiver of status transitions, log lines and countdown ticks."""

    def on_status(self, state: SyncState) -> None:
        pass

    def on_log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        pass

    def on_countdown(self, seconds: int) -> None:
        pass


class LoggingStatusSink(StatusSink):
    """Sink that writes everything to the standard logger."""

    _LEVELS = {
        LogLevel.INFO: logging.INFO,
        LogLevel.SUCCESS: logging.INFO,
        LogLevel.ERROR: logging.ERROR,
    }

    def __init__(self, logger_name: str = 'mirrorsync.status'):
        self.logger = logging.getLogger(logger_name)
        self.state = SyncState.PENDING
        self.countdown: Optional[int] = None

    def on_status(self, state: SyncState) -> None:
        self.state = state
        self.logger.debug(f"Status: {state.value}")

    def on_log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        prefix = "✅ " if level == LogLevel.SUCCESS else ""
        self.logger.log(self._LEVELS[level], f"{prefix}{message}")

    def on_countdown(self, seconds: int) -> None:
        self.countdown = seconds
