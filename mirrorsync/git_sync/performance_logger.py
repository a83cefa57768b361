"""Timing of sync operations."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Optional, Any, Generator, List
from pathlib import Path

SLOW_OPERATION_SECONDS = 30.0


@dataclass
class OperationTiming:
    """Duration and outcome of one timed operation."""
    operation: str
    duration: float
    started_at: float
    success: bool = True
    context: Optional[Dict[str, Any]] = None


class PerformanceLogger:
    """
    Times push, pull and sync runs and keeps the most recent timing of each.
    """

    def __init__(self, logger_name: str = 'mirrorsync.performance'):
        self.logger = logging.getLogger(logger_name)
        self._timings: Dict[str, OperationTiming] = {}

    @contextmanager
    def time_operation(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.DEBUG
    ) -> Generator[None, None, None]:
        """
        Context manager timing the enclosed block.

        Exceptions propagate unchanged; the timing is recorded as failed.

        Args:
            operation: Name of the operation being timed
            context: Extra key/value pairs logged on completion
            log_level: Level for start and completion messages
        """
        started_at = time.time()
        self.logger.log(log_level, f"⏱️ Starting {operation}")

        success = True
        try:
            yield
        except Exception as e:
            success = False
            self.logger.warning(f"❌ {operation} failed after {time.time() - started_at:.3f}s: {e}")
            raise
        finally:
            duration = time.time() - started_at
            self._timings[operation] = OperationTiming(
                operation=operation,
                duration=duration,
                started_at=started_at,
                success=success,
                context=context
            )

            if success:
                self.logger.log(log_level, f"✅ {operation} completed in {duration:.3f}s")
                if context:
                    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
                    self.logger.debug(f"📊 {operation} context: {context_str}")

            if duration > SLOW_OPERATION_SECONDS:
                self.logger.warning(f"⚠️ Slow sync operation: '{operation}' took {duration:.3f}s")

    def log_mirror_copy(self, direction: str, root: Path, file_count: int, duration: float) -> None:
        """Log one directory mirror pass."""
        self.logger.debug(
            f"📁 Mirrored {file_count} files {direction} {root.name} in {duration:.3f}s"
        )

    def last_timing(self, operation: str) -> Optional[OperationTiming]:
        return self._timings.get(operation)

    def get_performance_summary(self) -> Dict[str, Any]:
        """
        Summarize recorded timings.

        Returns:
            Dictionary with operation count, average duration and success rate
        """
        timings: List[OperationTiming] = list(self._timings.values())
        if not timings:
            return {"total_operations": 0, "average_duration": 0.0}

        slowest = max(timings, key=lambda t: t.duration)
        return {
            "total_operations": len(timings),
            "average_duration": sum(t.duration for t in timings) / len(timings),
            "success_rate": sum(1 for t in timings if t.success) / len(timings),
            "slowest_operation": {"name": slowest.operation, "duration": slowest.duration},
        }
