"""Error taxonomy and structured error responses for mirrorsync."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional


class ErrorCategory(Enum):
    """Categories of errors surfaced by sync operations."""
    NOT_INITIALIZED = "not_initialized"
    CONFIGURATION = "configuration"
    REMOTE_UNREACHABLE = "remote_unreachable"
    RECOVERY_FAILED = "recovery_failed"
    UNCLASSIFIED = "unclassified"


class SyncError(Exception):
    """Base exception for sync operations."""

    category = ErrorCategory.UNCLASSIFIED

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class NotInitializedError(SyncError):
    """An operation was called before initialize()."""
    category = ErrorCategory.NOT_INITIALIZED


class ConfigurationError(SyncError):
    """Required settings (remote URL, directories) are missing or invalid."""
    category = ErrorCategory.CONFIGURATION


class RemoteUnreachableError(SyncError):
    """Network or authentication failure talking to the remote."""
    category = ErrorCategory.REMOTE_UNREACHABLE


class RecoveryFailedError(SyncError):
    """The force-push that ends a reconciliation was rejected."""
    category = ErrorCategory.RECOVERY_FAILED


class UnclassifiedSyncError(SyncError):
    """Git failure that matched no known pattern; message is the tool's own."""
    category = ErrorCategory.UNCLASSIFIED


@dataclass
class ErrorResponse:
    """Standardized error response format for sync operations."""
    error: str
    error_code: str
    message: str
    timestamp: str
    category: str
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert error response to dictionary format."""
        result = {
            "error": self.error,
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp,
            "category": self.category
        }
        if self.context:
            result["context"] = self.context
        return result


class ErrorHandler:
    """Turns exceptions raised by sync operations into ErrorResponse payloads."""

    def __init__(self):
        self.logger = logging.getLogger('mirrorsync.error_handler')

    def handle_sync_error(self, error: Exception, context: Dict[str, Any] = None) -> ErrorResponse:
        """Handle an exception raised by a sync operation."""
        context = context or {}

        if isinstance(error, SyncError):
            category = error.category
            error_code = f"SYNC_{category.value.upper()}"
            message = error.message
            if error.operation:
                context.setdefault("operation", error.operation)
        elif isinstance(error, OSError):
            category = ErrorCategory.UNCLASSIFIED
            error_code = "SYNC_FILE_IO_ERROR"
            message = f"File system error: {error}"
        else:
            category = ErrorCategory.UNCLASSIFIED
            error_code = "SYNC_GENERAL_ERROR"
            message = f"Sync operation failed: {error}"

        error_response = ErrorResponse(
            error="Sync operation failed",
            error_code=error_code,
            message=message,
            timestamp=datetime.now().isoformat(),
            category=category.value,
            context=context
        )

        self.logger.warning(
            f"Sync error: {message}",
            extra={
                'operation': context.get('operation', 'sync_error'),
                'error_code': error_code,
            }
        )

        return error_response

    def create_success_response(self, operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a standardized success response."""
        return {
            "success": True,
            "operation": operation,
            "timestamp": datetime.now().isoformat(),
            "data": data
        }


error_handler = ErrorHandler()
