"""
Maps the hand-position signal (or an idle clock) to camera orbit angles.

Exactly one drive runs per tick:
    hand    - hand x -> azimuth, hand y -> polar, eased toward the targets
    manual  - user is dragging the view; nothing automatic happens
    cooldown- manual drag just ended; wait before auto-rotating again
    idle    - slow constant auto-rotation, polar eased to a resting angle
"""

import math
import logging

from formation.core.types import Mode, HandSignal, CameraOrbit
from formation.modules.motion.blending_engine import convergence_step

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def wrap_angle(angle: float) -> float:
    """Wrap an angle into (-pi, pi]."""
    wrapped = math.fmod(angle + math.pi, TWO_PI)
    if wrapped <= 0.0:
        wrapped += TWO_PI
    return wrapped - math.pi


def shortest_angle_delta(current: float, target: float) -> float:
    """Signed rotation from ``current`` to ``target`` along the shorter direction."""
    return wrap_angle(target - current)


class CameraViewMapper:
    """Orbit camera driven by hand position with idle auto-rotation."""

    def __init__(self, config: dict = None):
        """
        Args:
            config: ``view`` section of config.yaml
        """
        config = config or {}
        self._min_radius = config.get("min_radius", 8.0)
        self._max_radius = config.get("max_radius", 25.0)
        self._radius = self._clamp(config.get("radius", 25.0), self._min_radius, self._max_radius)
        self._target_height = config.get("target_height", 6.0)

        # Hand mapping
        self._azimuth_span = config.get("azimuth_span", 3.0) * math.pi
        self._hand_y_offset = config.get("hand_y_offset", 0.2)
        self._hand_y_gain = config.get("hand_y_gain", 2.0)
        self._hand_polar_min = config.get("hand_polar_min", math.pi / 4)
        self._hand_polar_max = config.get("hand_polar_max", math.pi / 1.8)
        self._follow_rate = config.get("follow_rate", 8.0)

        # Idle / manual orbit
        self._orbit_polar_min = config.get("orbit_polar_min", math.pi / 4)
        self._orbit_polar_max = config.get("orbit_polar_max", math.pi / 2.5)
        # Orbit-control convention: speed 1.0 is one revolution per minute
        self._auto_rotate_rate = config.get("auto_rotate_speed", 0.8) * TWO_PI / 60.0
        self._idle_polar = config.get("idle_polar", math.pi / 2.5)
        self._idle_return_rate = config.get("idle_return_rate", 1.0)
        self._cooldown_s = config.get("interaction_cooldown_s", 1.0)

        self._front_polar = config.get("front_polar", math.pi / 2)
        self._snap_front_on_hand = config.get("snap_front_on_hand", True)
        self._snap_front_on_chaos = config.get("snap_front_on_chaos", True)

        self._azimuth = wrap_angle(config.get("initial_azimuth", 0.0))
        self._polar = config.get("initial_polar", self._idle_polar)

        self._interacting = False
        self._cooldown_remaining = 0.0
        self._hand_was_detected = False
        self._last_drive = "idle"

    @staticmethod
    def _clamp(value, lo, hi):
        return max(lo, min(hi, value))

    # ------------------------------------------------------------------
    # Per-tick update
    # ------------------------------------------------------------------

    def update(self, hand: HandSignal, dt: float) -> CameraOrbit:
        """Advance the camera by one animation tick."""
        dt = max(0.0, dt)
        detected = hand is not None and hand.detected

        if detected:
            if not self._hand_was_detected and self._snap_front_on_hand:
                self.snap_to_front("hand appeared")
            # A hand takes over from any manual drag
            self._interacting = False
            self._cooldown_remaining = 0.0
            self._drive_by_hand(hand, dt)
            self._last_drive = "hand"
        elif self._interacting:
            self._last_drive = "manual"
        elif self._cooldown_remaining > 0.0:
            self._cooldown_remaining = max(0.0, self._cooldown_remaining - dt)
            self._last_drive = "cooldown"
        else:
            self._drive_idle(dt)
            self._last_drive = "idle"

        self._hand_was_detected = detected
        return self.orbit

    def hand_targets(self, hand: HandSignal) -> tuple:
        """Target (azimuth, polar) for a hand position."""
        target_azimuth = (hand.x - 0.5) * self._azimuth_span
        adjusted_y = self._clamp((hand.y - self._hand_y_offset) * self._hand_y_gain, 0.0, 1.0)
        target_polar = self._hand_polar_min + adjusted_y * (self._hand_polar_max - self._hand_polar_min)
        return target_azimuth, target_polar

    def _drive_by_hand(self, hand: HandSignal, dt: float):
        target_azimuth, target_polar = self.hand_targets(hand)
        t = float(convergence_step(dt, self._follow_rate))
        self._azimuth = wrap_angle(
            self._azimuth + shortest_angle_delta(self._azimuth, target_azimuth) * t
        )
        self._polar += (target_polar - self._polar) * t

    def _drive_idle(self, dt: float):
        self._azimuth = wrap_angle(self._azimuth + self._auto_rotate_rate * dt)
        t = float(convergence_step(dt, self._idle_return_rate))
        self._polar += (self._idle_polar - self._polar) * t

    # ------------------------------------------------------------------
    # Manual interaction (mouse drag etc.)
    # ------------------------------------------------------------------

    def begin_interaction(self) -> bool:
        """User started dragging. Ignored while a hand is steering the camera."""
        if self._hand_was_detected:
            return False
        self._interacting = True
        self._cooldown_remaining = 0.0
        return True

    def end_interaction(self):
        """User released the view; auto-rotation resumes after the cooldown."""
        if self._interacting:
            self._interacting = False
            self._cooldown_remaining = self._cooldown_s

    def manual_rotate(self, d_azimuth: float, d_polar: float = 0.0):
        if not self._interacting:
            return
        self._azimuth = wrap_angle(self._azimuth + d_azimuth)
        self._polar = self._clamp(self._polar + d_polar, self._orbit_polar_min, self._orbit_polar_max)

    def zoom(self, factor: float):
        self._radius = self._clamp(self._radius * factor, self._min_radius, self._max_radius)

    # ------------------------------------------------------------------

    def snap_to_front(self, reason: str = ""):
        """Jump straight to the front view (azimuth 0, horizontal)."""
        self._azimuth = 0.0
        self._polar = self._front_polar
        logger.debug("Camera snapped to front view (%s)", reason)

    def on_mode_changed(self, mode: Mode = None, **_kwargs):
        if mode is Mode.CHAOS and self._snap_front_on_chaos:
            self.snap_to_front("mode -> chaos")

    @property
    def orbit(self) -> CameraOrbit:
        return CameraOrbit(self._azimuth, self._polar, self._radius, self._target_height)

    @property
    def position(self):
        return self.orbit.position()

    @property
    def azimuth(self) -> float:
        return self._azimuth

    @property
    def polar(self) -> float:
        return self._polar

    @property
    def radius(self) -> float:
        return self._radius

    @property
    def interacting(self) -> bool:
        return self._interacting

    @property
    def auto_rotating(self) -> bool:
        return self._last_drive == "idle"

    @property
    def last_drive(self) -> str:
        return self._last_drive
