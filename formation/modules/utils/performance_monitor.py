"""
Per-stage latency and per-loop rate tracking with rolling windows.

Detection and rendering run at different cadences, so each loop gets its
own rate counter (``tick("detection")``, ``tick("render")``).
"""

import time
import threading
import logging
from collections import deque
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Tracks loop rates and per-stage latency."""

    def __init__(self, window_size=100, clock=time.perf_counter):
        self._window_size = window_size
        self._clock = clock
        self._lock = threading.Lock()

        self._intervals = {}
        self._last_tick = {}
        self._tick_counts = {}

        self._stage_times = {}
        for name in ("detection", "classification", "state", "motion", "view", "preview"):
            self._stage_times[name] = deque(maxlen=window_size)

        self._errors = 0
        self._start_time = time.time()

    @contextmanager
    def measure(self, stage_name: str):
        """Context manager to measure a stage's duration."""
        start = self._clock()
        try:
            yield
        finally:
            elapsed_ms = (self._clock() - start) * 1000
            with self._lock:
                if stage_name not in self._stage_times:
                    self._stage_times[stage_name] = deque(maxlen=self._window_size)
                self._stage_times[stage_name].append(elapsed_ms)

    def tick(self, loop: str = "render"):
        """Call once per iteration of ``loop`` to track its rate."""
        now = self._clock()
        with self._lock:
            if loop not in self._intervals:
                self._intervals[loop] = deque(maxlen=self._window_size)
                self._tick_counts[loop] = 0
            last = self._last_tick.get(loop)
            if last is not None:
                self._intervals[loop].append(now - last)
            self._last_tick[loop] = now
            self._tick_counts[loop] += 1

    def record_error(self):
        with self._lock:
            self._errors += 1

    def rate(self, loop: str = "render") -> float:
        """Iterations per second of ``loop`` (rolling average)."""
        with self._lock:
            intervals = self._intervals.get(loop)
            if not intervals or len(intervals) < 2:
                return 0.0
            avg = sum(intervals) / len(intervals)
            return 1.0 / avg if avg > 0 else 0.0

    @property
    def fps(self) -> float:
        return self.rate("render")

    def tick_count(self, loop: str = "render") -> int:
        with self._lock:
            return self._tick_counts.get(loop, 0)

    def get_stage_latency(self, stage_name: str) -> float:
        """Average latency for a stage in ms."""
        with self._lock:
            times = self._stage_times.get(stage_name)
            if not times:
                return 0.0
            return sum(times) / len(times)

    def get_all_latencies(self) -> dict:
        with self._lock:
            return {
                name: (sum(times) / len(times) if times else 0.0)
                for name, times in self._stage_times.items()
            }

    def get_report(self) -> dict:
        uptime = time.time() - self._start_time
        with self._lock:
            loops = list(self._tick_counts)
            counts = dict(self._tick_counts)
            errors = self._errors
        return {
            "rates": {loop: round(self.rate(loop), 1) for loop in loops},
            "ticks": counts,
            "errors": errors,
            "uptime_seconds": round(uptime, 1),
            "latencies_ms": {k: round(v, 3) for k, v in self.get_all_latencies().items()},
        }

    def print_report(self):
        report = self.get_report()
        logger.info("=" * 60)
        logger.info("PERFORMANCE REPORT")
        logger.info("=" * 60)
        for loop, rate in report["rates"].items():
            logger.info("%-10s %7.1f Hz  (%d ticks)", loop, rate, report["ticks"][loop])
        logger.info("Errors:    %d", report["errors"])
        logger.info("Uptime:    %.1fs", report["uptime_seconds"])
        logger.info("-" * 40)
        logger.info("Stage Latencies (avg ms):")
        for stage, latency in report["latencies_ms"].items():
            logger.info("  %-18s %8.3f ms", stage, latency)
        logger.info("=" * 60)

    def reset(self):
        with self._lock:
            self._intervals.clear()
            self._last_tick.clear()
            self._tick_counts.clear()
            for times in self._stage_times.values():
                times.clear()
            self._errors = 0
            self._start_time = time.time()
