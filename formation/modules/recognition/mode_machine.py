"""
Hysteresis mode state machine with an edge-triggered point event.

Two independent thresholds:
    - Mode changes (OPEN -> CHAOS, FIST -> FORMED) need ``confirm_frames``
      consecutive consistent frames. Stability matters more than latency.
    - The point event fires after only ``point_confirm_frames`` frames, and
      only on the OPEN -> POINTING edge. Responsiveness matters more, and a
      false positive just shows a transient zoom.

Point event lifecycle (Kinect-style fire-once):
    OPEN ... POINTING       -> POINT_EDGE fires once, latch set
    POINTING (held)         -> suppressed
    anything but POINTING   -> POINT_RELEASED (once, if an edge was active)
    OPEN or hand lost       -> latch re-armed

Missing and ambiguous frames decay the streak counters instead of zeroing
them, so one dropped detection does not restart a mode confirmation.
"""

import logging

from formation.core.types import (
    GestureCategory, Mode, HandSignal, ClassifierResult, StateUpdate,
)
from formation.core.mode_state import ModeState
from formation.modules.recognition.streak_counter import StreakCounter

logger = logging.getLogger(__name__)


class ModeStateMachine:
    """Turns per-frame classifications into stable mode changes and point events."""

    def __init__(self, config: dict = None, state: ModeState = None):
        config = config or {}
        self._confirm_frames = config.get("confirm_frames", 5)
        self._point_confirm_frames = config.get("point_confirm_frames", 2)
        limit = max(config.get("streak_limit", 30),
                    self._confirm_frames, self._point_confirm_frames)
        decay_step = config.get("decay_step", 1)

        self._open = StreakCounter("open", limit, decay_step)
        self._fist = StreakCounter("fist", limit, decay_step)
        self._point = StreakCounter("point", limit, decay_step)

        self._state = state if state is not None else ModeState()

        # Edge trigger state
        self._last_stable = None      # last OPEN / FIST / POINTING seen
        self._point_origin = None     # stable category the current pointing run began from
        self._edge_fired = False      # latch: cleared by OPEN or hand loss
        self._point_active = False    # an edge fired and has not been released yet

    def update(self, result: ClassifierResult) -> StateUpdate:
        """Advance the machine by one classified frame."""
        category = result.category if result is not None else GestureCategory.NONE
        update = StateUpdate(category)

        if category is GestureCategory.NONE:
            self._on_hand_lost(update)
            return update

        if result.hand_center is not None:
            x, y = result.hand_center
            update.hand = HandSignal(x, y, True)
            self._state.set_hand(update.hand)

        if category is not GestureCategory.POINTING and self._point_active:
            self._release(update)

        if category is GestureCategory.OPEN:
            self._open.increment()
            self._fist.reset()
            self._point.reset()
            self._edge_fired = False
            if self._open.reached(self._confirm_frames):
                self._confirm(Mode.CHAOS, update)

        elif category is GestureCategory.FIST:
            self._fist.increment()
            self._open.reset()
            self._point.reset()
            if self._fist.reached(self._confirm_frames):
                self._confirm(Mode.FORMED, update)

        elif category is GestureCategory.POINTING:
            self._on_pointing(update)

        else:
            # AMBIGUOUS: no streak advances, none is wiped out
            self._decay_all()

        if category.is_stable_shape:
            self._last_stable = category

        return update

    def _on_pointing(self, update: StateUpdate):
        if self._last_stable is not GestureCategory.POINTING:
            self._point_origin = self._last_stable

        self._point.increment()
        self._open.reset()
        self._fist.reset()

        if (
            self._point_origin is GestureCategory.OPEN
            and not self._edge_fired
            and self._point.reached(self._point_confirm_frames)
        ):
            self._edge_fired = True
            self._point_active = True
            update.point_edge = True
            logger.debug("Point edge fired (streak=%d)", self._point.value)

    def _on_hand_lost(self, update: StateUpdate):
        self._decay_all()
        self._state.clear_hand()
        update.hand = self._state.hand
        if self._point_active:
            self._release(update)
        self._edge_fired = False
        self._last_stable = None
        self._point_origin = None

    def _release(self, update: StateUpdate):
        self._point_active = False
        update.point_released = True
        logger.debug("Point released (%s)", update.category.value)

    def _confirm(self, target: Mode, update: StateUpdate):
        if self._state.mode is target:
            return
        if self._state.set_mode(target, source="gesture"):
            update.mode_changed = target

    def _decay_all(self):
        self._open.decay()
        self._fist.decay()
        self._point.decay()

    def reset(self):
        """Clear counters and edge state. The current mode is kept."""
        self._open.reset()
        self._fist.reset()
        self._point.reset()
        self._last_stable = None
        self._point_origin = None
        self._edge_fired = False
        self._point_active = False

    @property
    def state(self) -> ModeState:
        return self._state

    @property
    def mode(self) -> Mode:
        return self._state.mode

    @property
    def streaks(self) -> dict:
        return {"open": self._open.value, "fist": self._fist.value, "point": self._point.value}

    @property
    def point_active(self) -> bool:
        return self._point_active

    @property
    def edge_latched(self) -> bool:
        return self._edge_fired
