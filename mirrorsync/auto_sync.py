"""Periodic sync timer with a per-second countdown."""

import logging
import math
import threading
import time
from typing import Callable, Optional

from .status import StatusSink

COUNTDOWN_TICK_SECONDS = 1.0


class Clock:
    """Source of the current time in seconds."""

    def now(self) -> float:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> float:
        return time.time()


class AutoSyncController:
    """
    Runs a callback every interval and reports the seconds left until the
    next run.

    The next run is scheduled from the completion of the previous one, so a
    slow sync never causes back-to-back runs. Two daemon threads do the
    work: one sleeps until the fire time, the other ticks the countdown
    once a second. With use_threads=False nothing runs in the background
    and the owner drives tick() and run_due() itself.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], object],
        sink: StatusSink,
        clock: Optional[Clock] = None,
        use_threads: bool = True
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.interval_seconds = interval_seconds
        self.callback = callback
        self.sink = sink
        self.clock = clock or SystemClock()
        self.use_threads = use_threads
        self.logger = logging.getLogger('mirrorsync.auto_sync')

        self._lock = threading.Lock()
        self._running = False
        self._next_fire_at: Optional[float] = None
        self._stop_event: Optional[threading.Event] = None
        self._threads = []

    @property
    def running(self) -> bool:
        return self._running

    @property
    def next_fire_at(self) -> Optional[float]:
        return self._next_fire_at

    def remaining_seconds(self) -> int:
        """Whole seconds until the next run, rounded up, never negative."""
        with self._lock:
            return self._remaining()

    def _remaining(self) -> int:
        if self._next_fire_at is None:
            return 0
        return max(0, math.ceil(self._next_fire_at - self.clock.now()))

    def start(self) -> None:
        """Schedule the first run one interval from now. No-op if running."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._next_fire_at = self.clock.now() + self.interval_seconds
            self._stop_event = threading.Event()
            stop_event = self._stop_event

        self.logger.info(f"⏰ Auto-sync started, every {self.interval_seconds:.0f}s")
        self.tick()

        if self.use_threads:
            self._threads = [
                threading.Thread(target=self._sync_loop, args=(stop_event,),
                                 name="mirrorsync-auto-sync", daemon=True),
                threading.Thread(target=self._tick_loop, args=(stop_event,),
                                 name="mirrorsync-countdown", daemon=True),
            ]
            for thread in self._threads:
                thread.start()

    def stop(self) -> None:
        """
        Cancel the timer and report a final countdown of 0.

        The 0 is reported once, on the transition from running to stopped.
        A sync already in progress is not interrupted.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._next_fire_at = None
            if self._stop_event is not None:
                self._stop_event.set()
            self._threads = []
            self.sink.on_countdown(0)

        self.logger.info("⏹️ Auto-sync stopped")

    def tick(self) -> None:
        """Report the current countdown to the sink."""
        with self._lock:
            if self._running:
                self.sink.on_countdown(self._remaining())

    def run_due(self) -> bool:
        """
        Run the callback if the fire time has been reached.

        Returns:
            True if the callback ran
        """
        with self._lock:
            due = self._running and self._next_fire_at is not None and self.clock.now() >= self._next_fire_at
        if not due:
            return False

        try:
            self.callback()
        except Exception as e:
            # The next interval is the retry
            self.logger.error(f"Auto-sync run failed: {e}")

        self.reschedule()
        return True

    def reschedule(self) -> None:
        """Push the next run one full interval past now, e.g. after a manual sync."""
        with self._lock:
            if not self._running:
                return
            self._next_fire_at = self.clock.now() + self.interval_seconds
            self.sink.on_countdown(self._remaining())

    def _sync_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            with self._lock:
                next_fire_at = self._next_fire_at
            if next_fire_at is None:
                return
            if stop_event.wait(max(0.0, next_fire_at - self.clock.now())):
                return
            self.run_due()

    def _tick_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(COUNTDOWN_TICK_SECONDS):
            self.tick()
