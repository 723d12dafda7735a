"""
Shared domain types for the formation engine.

Centralizes enums and data containers used across the gesture pipeline and
the animation loop so neither side imports the other.
"""

import time
from enum import Enum
from typing import Optional, Dict, Tuple

import numpy as np

NUM_LANDMARKS = 21


# =============================================================================
# Gesture / Mode Enums
# =============================================================================

class GestureCategory(Enum):
    """Per-frame hand shape category. Carries no history."""
    OPEN = "open"
    FIST = "fist"
    POINTING = "pointing"
    AMBIGUOUS = "ambiguous"
    NONE = "none"

    @property
    def is_stable_shape(self) -> bool:
        """Shapes that count as a 'previous stable category' for edge detection."""
        return self in (GestureCategory.OPEN, GestureCategory.FIST, GestureCategory.POINTING)


class Mode(Enum):
    """Persistent layout selector."""
    CHAOS = "chaos"
    FORMED = "formed"

    @classmethod
    def from_string(cls, name: str, default: "Mode" = None) -> "Mode":
        """Convert a config string to a Mode, falling back to ``default``."""
        try:
            return cls(str(name).lower())
        except ValueError:
            return default if default is not None else cls.FORMED

    @property
    def toggled(self) -> "Mode":
        return Mode.CHAOS if self is Mode.FORMED else Mode.FORMED


# =============================================================================
# Data Containers
# =============================================================================

class HandSignal:
    """Normalized hand position exposed to the view mapper and UI."""

    __slots__ = ("x", "y", "detected")

    def __init__(self, x: float = 0.5, y: float = 0.5, detected: bool = False):
        self.x = x
        self.y = y
        self.detected = detected

    def __repr__(self):
        return f"HandSignal(x={self.x:.3f}, y={self.y:.3f}, detected={self.detected})"

    def __eq__(self, other):
        if not isinstance(other, HandSignal):
            return NotImplemented
        return (self.x, self.y, self.detected) == (other.x, other.y, other.detected)

    @classmethod
    def lost(cls) -> "HandSignal":
        return cls(0.5, 0.5, False)


class ClassifierResult:
    """Output of the gesture classifier for a single frame."""

    __slots__ = ("category", "extended_count", "finger_states", "hand_center", "timestamp")

    def __init__(self, category: GestureCategory, extended_count: int = 0,
                 finger_states: Optional[Dict[str, bool]] = None,
                 hand_center: Optional[Tuple[float, float]] = None):
        self.category = category
        self.extended_count = extended_count
        self.finger_states = finger_states or {}
        self.hand_center = hand_center
        self.timestamp = time.time()

    def __repr__(self):
        return f"ClassifierResult({self.category.value}, fingers={self.extended_count})"

    @property
    def has_hand(self) -> bool:
        return self.category is not GestureCategory.NONE

    @classmethod
    def none(cls) -> "ClassifierResult":
        return cls(GestureCategory.NONE)


class StateUpdate:
    """What changed in the mode state machine after one classification."""

    __slots__ = ("category", "mode_changed", "point_edge", "point_released", "hand")

    def __init__(self, category: GestureCategory):
        self.category = category
        self.mode_changed: Optional[Mode] = None
        self.point_edge = False
        self.point_released = False
        self.hand: Optional[HandSignal] = None

    def __repr__(self):
        return (f"StateUpdate({self.category.value}, mode_changed={self.mode_changed}, "
                f"edge={self.point_edge}, released={self.point_released})")

    @property
    def has_events(self) -> bool:
        return self.mode_changed is not None or self.point_edge or self.point_released


class CameraOrbit:
    """Camera orbit read by the renderer once per tick."""

    __slots__ = ("azimuth", "polar", "radius", "target_height")

    def __init__(self, azimuth: float, polar: float, radius: float, target_height: float = 0.0):
        self.azimuth = azimuth
        self.polar = polar
        self.radius = radius
        self.target_height = target_height

    def __repr__(self):
        return (f"CameraOrbit(az={self.azimuth:.3f}, polar={self.polar:.3f}, "
                f"r={self.radius:.1f})")

    def position(self) -> np.ndarray:
        """World-space camera position orbiting the vertical axis at ``target_height``."""
        sin_p = np.sin(self.polar)
        return np.array([
            self.radius * sin_p * np.sin(self.azimuth),
            self.target_height + self.radius * np.cos(self.polar),
            self.radius * sin_p * np.cos(self.azimuth),
        ])


class RenderFrame:
    """Per-entity render output of one population for one tick.

    Arrays are views over buffers owned by the arena; consumers must copy
    them if they keep them past the next tick.
    """

    __slots__ = ("name", "positions", "orientations", "scales", "kinds")

    def __init__(self, name: str, positions: np.ndarray, orientations: np.ndarray,
                 scales: np.ndarray, kinds: np.ndarray):
        self.name = name
        self.positions = positions
        self.orientations = orientations
        self.scales = scales
        self.kinds = kinds

    def __len__(self):
        return len(self.positions)

    def __repr__(self):
        return f"RenderFrame({self.name}, n={len(self)})"
