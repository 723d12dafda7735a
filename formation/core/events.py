"""
Lightweight event bus for decoupled communication between the gesture
pipeline and the animation side.

The gesture pipeline publishes mode changes and one-shot point events; the
override controller, the gesture logger and the view mapper subscribe.
Both loops run on one cooperative thread, so dispatch is synchronous.

Usage:
    bus = EventBus()
    bus.subscribe(Events.POINT_EDGE, controller.on_point_edge)
    bus.emit(Events.POINT_EDGE, mode=Mode.CHAOS)
"""

import time
import logging
from collections import defaultdict, deque
from typing import Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Synchronous publish/subscribe bus with priority ordering.

    One instance is created by the application and passed to every
    component that needs it, so tests can build isolated buses.
    """

    def __init__(self, max_history: int = 100):
        self._listeners = defaultdict(list)  # event_name -> [(priority, callback)]
        self._event_history = deque(maxlen=max_history)
        self._enabled = True

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0):
        """Register a listener for an event.

        Args:
            event_name: Event to listen for
            callback: Function to call. Receives **kwargs from emit().
            priority: Higher priority callbacks run first (default 0)
        """
        self._listeners[event_name].append((priority, callback))
        # Stable sort keeps registration order within a priority
        self._listeners[event_name].sort(key=lambda x: -x[0])
        logger.debug("Subscribed to '%s': %s (priority=%d)",
                     event_name, getattr(callback, "__name__", repr(callback)), priority)

    def unsubscribe(self, event_name: str, callback: Callable):
        """Remove a listener for an event."""
        self._listeners[event_name] = [
            (p, cb) for p, cb in self._listeners[event_name] if cb != callback
        ]

    def emit(self, event_name: str, **kwargs) -> int:
        """Emit an event to all registered listeners.

        A failing listener is logged and skipped; it never stops dispatch
        to the remaining listeners or propagates into the caller's loop.

        Returns:
            Number of listeners that handled the event without raising
        """
        if not self._enabled:
            return 0

        listeners = list(self._listeners.get(event_name, []))

        self._event_history.append({
            "event": event_name,
            "time": time.time(),
            "data_keys": list(kwargs.keys()),
        })

        handled = 0
        for _priority, callback in listeners:
            try:
                callback(**kwargs)
                handled += 1
            except Exception as e:
                logger.error("Event handler error [%s -> %s]: %s",
                             event_name, getattr(callback, "__name__", repr(callback)), e)
        return handled

    def clear(self, event_name: str = None):
        """Remove all listeners, optionally for a specific event."""
        if event_name:
            self._listeners.pop(event_name, None)
        else:
            self._listeners.clear()

    def set_enabled(self, enabled: bool):
        self._enabled = enabled

    @property
    def registered_events(self) -> list:
        """List all events with registered listeners."""
        return [name for name, cbs in self._listeners.items() if cbs]

    @property
    def listener_count(self) -> int:
        """Total number of registered listeners."""
        return sum(len(cbs) for cbs in self._listeners.values())

    def get_history(self, last_n: int = 10) -> list:
        """Get recent event history."""
        return list(self._event_history)[-last_n:]


# =============================================================================
# Standard Event Names (constants to avoid typos)
# =============================================================================

class Events:
    """Standard event names used throughout the system."""

    # Gesture pipeline
    HAND_DETECTED = "hand_detected"
    HAND_LOST = "hand_lost"
    GESTURE_CLASSIFIED = "gesture_classified"
    DETECTOR_ERROR = "detector_error"

    # State machine output
    MODE_CHANGED = "mode_changed"
    POINT_EDGE = "point_edge"
    POINT_RELEASED = "point_released"

    # Animation side
    OVERRIDE_INSTALLED = "override_installed"
    OVERRIDE_CLEARED = "override_cleared"

    # Lifecycle
    SYSTEM_STARTED = "system_started"
    SYSTEM_SHUTDOWN = "system_shutdown"
