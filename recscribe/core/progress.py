"""
Progress reporting for a single job attempt.

Progress is a non-decreasing integer 0-100. Sink failures never affect the
pipeline. While waiting on an operation of unknown length, a ticker thread
moves progress asymptotically toward the stage's upper bound.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Optional

from recscribe.core.constants import PROGRESS_TICK_SEC, PROGRESS_TICK_FRACTION

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str, int], None]


def next_asymptotic_value(current: float, cap: float, fraction: float) -> float:
    """One tick: cover ``fraction`` of the remaining distance to ``cap``."""
    return current + (cap - current) * fraction


class ProgressReporter:
    """Monotonic, best-effort progress writer bound to one job attempt."""

    def __init__(self, sink: Optional[ProgressSink], job_id: str,
                 tick_sec: float = PROGRESS_TICK_SEC,
                 tick_fraction: float = PROGRESS_TICK_FRACTION):
        self.sink = sink
        self.job_id = job_id
        self.tick_sec = tick_sec
        self.tick_fraction = tick_fraction
        self._lock = threading.Lock()
        self._current = -1

    @property
    def current(self) -> int:
        return max(self._current, 0)

    def report(self, percent) -> bool:
        """
        Report ``percent`` if it moves progress forward.
        Returns True when the value was accepted.
        """
        value = max(0, min(100, int(percent)))
        with self._lock:
            if value <= self._current:
                return False
            self._current = value
            # Sink is called under the lock so concurrent writers reach it in order
            if self.sink is not None:
                try:
                    self.sink(self.job_id, value)
                except Exception as e:
                    logger.debug("Progress write failed for job %s: %s", self.job_id, e)
        return True

    @contextmanager
    def track(self, low: int, high: int):
        """
        Cover an operation of unknown duration with the band [low, high].
        Progress creeps toward ``high`` while the block runs and jumps to it
        when the block completes; an exception leaves progress where it was.
        """
        self.report(low)
        ticker = ProgressTicker(self, low, high, self.tick_sec, self.tick_fraction)
        ticker.start()
        try:
            yield
        finally:
            ticker.stop()
        self.report(high)


class ProgressTicker:
    """Timer thread owned by one awaited call. Stopped when the call resolves."""

    def __init__(self, reporter: ProgressReporter, low: int, high: int,
                 interval: float, fraction: float):
        self.reporter = reporter
        self.high = high
        self.interval = interval
        self.fraction = fraction
        self._estimate = float(max(low, reporter.current))
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self):
        while not self._stop_event.wait(self.interval):
            self._estimate = next_asymptotic_value(self._estimate, self.high, self.fraction)
            # never reach the cap before the real completion event
            value = min(int(self._estimate), self.high - 1)
            self.reporter.report(value)
