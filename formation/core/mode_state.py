"""
Explicitly passed, versioned holder for the persistent mode and the hand
position signal.

The gesture pipeline (and UI toggles) write it; the animation loop only
reads it. Readers detect mode changes by comparing ``version`` against the
value they saw last tick instead of subscribing to callbacks.
"""

import logging

from formation.core.types import Mode, HandSignal

logger = logging.getLogger(__name__)


class ModeState:
    """Current mode plus hand signal, with a monotonically increasing version."""

    def __init__(self, mode: Mode = Mode.FORMED):
        self._mode = mode
        self._version = 0
        self._hand = HandSignal.lost()
        self._last_source = "init"

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def version(self) -> int:
        """Incremented on every actual mode change."""
        return self._version

    @property
    def hand(self) -> HandSignal:
        return self._hand

    @property
    def last_source(self) -> str:
        """Who performed the most recent mode change ('gesture', 'ui', ...)."""
        return self._last_source

    def set_mode(self, mode: Mode, source: str = "gesture") -> bool:
        """Set the mode. Returns True only if the value actually changed."""
        if mode is self._mode:
            return False
        old = self._mode
        self._mode = mode
        self._version += 1
        self._last_source = source
        logger.info("Mode %s -> %s (source=%s, v%d)",
                    old.value, mode.value, source, self._version)
        return True

    def toggle(self, source: str = "ui") -> Mode:
        """Flip between CHAOS and FORMED."""
        self.set_mode(self._mode.toggled, source=source)
        return self._mode

    def set_hand(self, signal: HandSignal):
        self._hand = signal

    def clear_hand(self):
        self._hand = HandSignal.lost()

    def __repr__(self):
        return f"ModeState({self._mode.value}, v{self._version}, {self._hand!r})"
