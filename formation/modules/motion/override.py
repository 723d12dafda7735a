"""
One-shot override lifecycle for a population with override targets.

    POINT_EDGE      -> install (next entity in sequence, or the whole population)
    POINT_RELEASED  -> remove
    mode change     -> remove

The single-versus-population choice is an explicit policy rather than a
reserved index value.
"""

import time
import logging
from enum import Enum
from typing import Callable, Optional

from formation.core.types import Mode
from formation.core.events import EventBus, Events
from formation.modules.motion.entity_arena import EntityArena

logger = logging.getLogger(__name__)


class OverridePolicy(Enum):
    SINGLE = "single"          # one entity at a time, cycling through the population
    POPULATION = "population"  # every entity with an override target at once

    @classmethod
    def from_string(cls, name: str) -> "OverridePolicy":
        try:
            return cls(str(name).lower())
        except ValueError:
            logger.warning("Unknown override policy %r, using 'single'", name)
            return cls.SINGLE


class OverrideController:
    """Installs and removes override targets in response to point events."""

    def __init__(self, config: dict = None, event_bus: Optional[EventBus] = None,
                 clock: Callable[[], float] = time.monotonic):
        config = config or {}
        self._policy = OverridePolicy.from_string(config.get("policy", "single"))
        self._require_chaos = config.get("require_chaos", True)
        self._debounce_s = config.get("debounce_ms", 300) / 1000.0
        self._bus = event_bus
        self._clock = clock

        self._arena: Optional[EntityArena] = None
        self._cycle_index = 0
        self._last_install_time = None
        self._installs = 0

    def attach(self, arena: Optional[EntityArena]):
        """Target a (new) population. Any active override on the old one is dropped."""
        if self._arena is not None:
            self._arena.clear_override()
        self._arena = arena
        self._cycle_index = 0
        if arena is not None:
            logger.debug("Override controller attached to '%s' (%d overridable)",
                         arena.name, arena.overridable_count)

    def on_point_edge(self, mode: Mode = None, **_kwargs) -> bool:
        """Handle a point-edge event. Returns True if an override was installed."""
        arena = self._arena
        if arena is None or arena.overridable_count == 0:
            return False
        if self._require_chaos and mode is not Mode.CHAOS:
            logger.debug("Point edge ignored in %s mode", mode.value if mode else "unknown")
            return False

        now = self._clock()
        if self._last_install_time is not None and now - self._last_install_time < self._debounce_s:
            logger.debug("Point edge ignored (debounce %.0fms)", self._debounce_s * 1000)
            return False

        if self._policy is OverridePolicy.POPULATION:
            installed = arena.set_override_all()
            target = "all"
        else:
            installed = self._install_next(arena)
            target = self._cycle_index

        if not installed:
            return False

        self._last_install_time = now
        self._installs += 1
        logger.info("Override installed on '%s' (%s)", arena.name, target)
        if self._bus is not None:
            self._bus.emit(Events.OVERRIDE_INSTALLED, population=arena.name, target=target)
        return True

    def _install_next(self, arena: EntityArena) -> bool:
        # Skip entities without an override target
        for _ in range(arena.count):
            self._cycle_index = (self._cycle_index + 1) % arena.count
            if arena.set_override(self._cycle_index):
                return True
        return False

    def on_point_released(self, **_kwargs) -> bool:
        return self.clear("released")

    def clear(self, reason: str = "mode_changed") -> bool:
        """Remove any active override. Returns True if one was active."""
        if self._arena is None or not self._arena.clear_override():
            return False
        logger.info("Override cleared on '%s' (%s)", self._arena.name, reason)
        if self._bus is not None:
            self._bus.emit(Events.OVERRIDE_CLEARED, population=self._arena.name, reason=reason)
        return True

    @property
    def policy(self) -> OverridePolicy:
        return self._policy

    @property
    def active(self) -> bool:
        return self._arena is not None and self._arena.override_active

    @property
    def current_index(self) -> int:
        """Cycle cursor of the single policy. Starts at 0, so the first edge shows entity 1."""
        return self._cycle_index

    @property
    def install_count(self) -> int:
        return self._installs
