"""
Periodic timer running a callback on a daemon thread.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs callback every interval_s seconds until stopped.

    The first run happens one interval after start(). reschedule() takes
    effect immediately: the next run is one new interval from now.
    Exceptions raised by the callback are logged and counted; the timer
    keeps running.

    Usage:
        task = PeriodicTask(5.0, engine.run_fusion_cycle, name='fusion')
        task.start()
        task.reschedule(2.0)
        task.stop()
    """

    def __init__(self, interval_s: float, callback: Callable[[], None], name: str = 'periodic'):
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive: {interval_s}")

        self.name = name
        self._interval_s = interval_s
        self._callback = callback
        self._condition = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._deadline = 0.0
        self.run_count = 0
        self.error_count = 0

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self):
        """Start the timer thread (no-op if already running)."""
        with self._condition:
            if self._running:
                return
            self._running = True
            self._deadline = time.monotonic() + self._interval_s
            self._thread = threading.Thread(
                target=self._run,
                daemon=True,
                name=f"PeriodicTask-{self.name}",
            )
            self._thread.start()
        logger.debug(f"Timer '{self.name}' started ({self._interval_s:.1f}s)")

    def stop(self, timeout: float = 2.0):
        """
        Stop the timer and wait for an in-flight callback to finish.

        Args:
            timeout: Maximum time to wait for the thread (s)
        """
        with self._condition:
            if not self._running:
                return
            self._running = False
            self._condition.notify_all()
            thread = self._thread
            self._thread = None

        # A callback may stop its own timer
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.debug(f"Timer '{self.name}' stopped")

    def reschedule(self, interval_s: float):
        """Change the interval; the next run is interval_s from now."""
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive: {interval_s}")

        with self._condition:
            self._interval_s = interval_s
            self._deadline = time.monotonic() + interval_s
            self._condition.notify_all()
        logger.debug(f"Timer '{self.name}' rescheduled to {interval_s:.1f}s")

    def _run(self):
        while True:
            with self._condition:
                while self._running and time.monotonic() < self._deadline:
                    self._condition.wait(self._deadline - time.monotonic())
                if not self._running:
                    return
                self._deadline = time.monotonic() + self._interval_s

            try:
                self._callback()
                self.run_count += 1
            except Exception:
                self.error_count += 1
                logger.exception(f"Timer '{self.name}' callback failed")
