"""
Logging setup plus a dedicated channel for mode and point events.
"""

import os
import logging
import logging.handlers
import time
from collections import deque
from functools import wraps


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Configure console (and optional rotating file) logging for the application."""
    console_format = "%(asctime)s  %(levelname)-5s  %(message)s"
    file_format = "%(asctime)s [%(levelname)-7s] %(name)-32s | %(message)s"
    date_format = "%H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(console_format, datefmt=date_format))
    root_logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(file_format, datefmt=date_format))
        root_logger.addHandler(file_handler)

    return root_logger


class GestureLogger:
    """Records mode transitions and point events with a bounded history."""

    def __init__(self, max_history=500):
        self.logger = logging.getLogger("formation.events")
        self._history = deque(maxlen=max_history)

    def _record(self, kind, **fields):
        entry = {"timestamp": time.time(), "event": kind}
        entry.update(fields)
        self._history.append(entry)
        return entry

    def log_mode_change(self, mode, source="gesture", version=None):
        mode_name = getattr(mode, "value", mode)
        self._record("mode_changed", mode=mode_name, source=source, version=version)
        self.logger.info("Mode:   %-10s | Source: %-10s | Version: %s",
                         mode_name, source, version if version is not None else "N/A")

    def log_point(self, kind, mode=None):
        """``kind`` is 'edge' or 'released'."""
        mode_name = getattr(mode, "value", mode)
        self._record(f"point_{kind}", mode=mode_name)
        self.logger.info("Point:  %-10s | Mode:   %s", kind, mode_name or "-")

    def log_override(self, population, target=None, cleared=False, reason=""):
        self._record("override_cleared" if cleared else "override_installed",
                     population=population, target=target, reason=reason)
        if cleared:
            self.logger.info("Override cleared   | %-10s | %s", population, reason)
        else:
            self.logger.info("Override installed | %-10s | target=%s", population, target)

    def get_history(self, last_n=None):
        if last_n:
            return list(self._history)[-last_n:]
        return list(self._history)

    @property
    def total_events(self):
        return len(self._history)


def log_timing(func):
    """Decorator to log function execution time."""
    logger = logging.getLogger(func.__module__)

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug("%s took %.2fms", func.__name__, elapsed)
        return result

    return wrapper
