"""
Tests for the hysteresis mode state machine
============================================
"""

import pytest

from formation.core.types import GestureCategory, Mode, ClassifierResult, HandSignal
from formation.core.mode_state import ModeState
from formation.modules.recognition.mode_machine import ModeStateMachine
from formation.modules.recognition.streak_counter import StreakCounter

OPEN = GestureCategory.OPEN
FIST = GestureCategory.FIST
POINT = GestureCategory.POINTING
AMBIG = GestureCategory.AMBIGUOUS
NONE = GestureCategory.NONE


def frame(category, center=(0.5, 0.5)):
    if category is NONE:
        return ClassifierResult.none()
    return ClassifierResult(category, hand_center=center)


def feed(machine, categories):
    return [machine.update(frame(c)) for c in categories]


class TestStreakCounter:

    def test_increment_and_saturate(self):
        counter = StreakCounter("open", limit=3)
        for _ in range(10):
            counter.increment()
        assert counter.value == 3

    def test_decay_floors_at_zero(self):
        counter = StreakCounter("open", limit=5, decay_step=2)
        counter.increment()
        counter.decay()
        assert counter.value == 0

    def test_reached(self):
        counter = StreakCounter("fist")
        for _ in range(4):
            counter.increment()
        assert not counter.reached(5)
        counter.increment()
        assert counter.reached(5)

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            StreakCounter("bad", limit=0)


class TestModeChanges:

    @pytest.fixture
    def machine(self):
        return ModeStateMachine({"confirm_frames": 5, "point_confirm_frames": 2})

    def test_starts_formed(self, machine):
        assert machine.mode is Mode.FORMED

    def test_open_confirms_chaos_on_fifth_frame(self, machine):
        updates = feed(machine, [OPEN] * 4)
        assert all(u.mode_changed is None for u in updates)
        assert machine.mode is Mode.FORMED

        update = machine.update(frame(OPEN))
        assert update.mode_changed is Mode.CHAOS
        assert machine.mode is Mode.CHAOS

    def test_mode_changes_exactly_once(self, machine):
        updates = feed(machine, [OPEN] * 20)
        changes = [u for u in updates if u.mode_changed is not None]
        assert len(changes) == 1
        assert machine.state.version == 1

    def test_fist_confirms_formed(self, machine):
        feed(machine, [OPEN] * 5)
        updates = feed(machine, [FIST] * 5)
        assert updates[-1].mode_changed is Mode.FORMED
        assert all(u.mode_changed is None for u in updates[:-1])

    def test_fist_when_already_formed_is_silent(self, machine):
        updates = feed(machine, [FIST] * 10)
        assert all(u.mode_changed is None for u in updates)
        assert machine.state.version == 0

    def test_isolated_ambiguous_frame_does_not_reset(self, machine):
        feed(machine, [OPEN, OPEN, OPEN, AMBIG])
        assert machine.streaks["open"] == 2
        updates = feed(machine, [OPEN, OPEN, OPEN])
        assert updates[-1].mode_changed is Mode.CHAOS

    def test_isolated_missing_frame_does_not_reset(self, machine):
        feed(machine, [OPEN, OPEN, OPEN, NONE])
        updates = feed(machine, [OPEN, OPEN, OPEN])
        assert updates[-1].mode_changed is Mode.CHAOS

    def test_opposite_gesture_resets_streak(self, machine):
        feed(machine, [OPEN, OPEN, OPEN, OPEN, FIST])
        assert machine.streaks["open"] == 0
        updates = feed(machine, [OPEN] * 4)
        assert all(u.mode_changed is None for u in updates)

    def test_alternating_never_changes(self, machine):
        updates = feed(machine, [OPEN, FIST] * 20)
        assert all(u.mode_changed is None for u in updates)

    def test_streak_saturates(self, machine):
        feed(machine, [OPEN] * 100)
        assert machine.streaks["open"] == 30

    def test_shares_state_object(self):
        state = ModeState(Mode.CHAOS)
        machine = ModeStateMachine({}, state=state)
        feed(machine, [FIST] * 5)
        assert state.mode is Mode.FORMED
        assert state.last_source == "gesture"

    def test_custom_confirm_frames(self):
        machine = ModeStateMachine({"confirm_frames": 2})
        updates = feed(machine, [OPEN, OPEN])
        assert updates[-1].mode_changed is Mode.CHAOS


class TestPointEdge:

    @pytest.fixture
    def machine(self):
        return ModeStateMachine({"confirm_frames": 5, "point_confirm_frames": 2})

    def test_fires_after_two_pointing_frames(self, machine):
        feed(machine, [OPEN])
        first = machine.update(frame(POINT))
        second = machine.update(frame(POINT))
        assert not first.point_edge
        assert second.point_edge
        assert machine.point_active

    def test_fires_once_while_held(self, machine):
        updates = feed(machine, [OPEN] + [POINT] * 30)
        assert sum(u.point_edge for u in updates) == 1

    def test_rearmed_by_open(self, machine):
        updates = feed(machine, [OPEN, POINT, POINT, OPEN, POINT, POINT])
        assert [u.point_edge for u in updates] == [False, False, True, False, False, True]

    def test_released_when_pointing_ends(self, machine):
        feed(machine, [OPEN, POINT, POINT])
        update = machine.update(frame(OPEN))
        assert update.point_released
        assert not machine.point_active

    def test_released_once(self, machine):
        updates = feed(machine, [OPEN, POINT, POINT, AMBIG, AMBIG, FIST])
        assert sum(u.point_released for u in updates) == 1

    def test_released_on_hand_loss(self, machine):
        feed(machine, [OPEN, POINT, POINT])
        update = machine.update(frame(NONE))
        assert update.point_released
        assert not update.hand.detected

    def test_no_release_without_edge(self, machine):
        updates = feed(machine, [OPEN, POINT, OPEN])
        assert not any(u.point_released for u in updates)
        assert not any(u.point_edge for u in updates)

    def test_fist_to_point_never_fires(self, machine):
        updates = feed(machine, [FIST] + [POINT] * 10)
        assert not any(u.point_edge for u in updates)

    def test_point_from_no_hand_never_fires(self, machine):
        updates = feed(machine, [NONE] + [POINT] * 10)
        assert not any(u.point_edge for u in updates)

    def test_ambiguous_between_open_and_point(self, machine):
        updates = feed(machine, [OPEN, AMBIG, POINT, POINT])
        assert updates[-1].point_edge

    def test_hand_loss_between_open_and_point(self, machine):
        updates = feed(machine, [OPEN, NONE, POINT, POINT])
        assert not any(u.point_edge for u in updates)

    def test_interrupted_pointing_does_not_refire(self, machine):
        updates = feed(machine, [OPEN, POINT, POINT, AMBIG, POINT, POINT, POINT])
        assert sum(u.point_edge for u in updates) == 1

    def test_hand_loss_rearms(self, machine):
        updates = feed(machine, [OPEN, POINT, POINT, NONE, OPEN, POINT, POINT])
        assert sum(u.point_edge for u in updates) == 2

    def test_pointing_does_not_change_mode(self, machine):
        updates = feed(machine, [OPEN] * 4 + [POINT] * 10)
        assert all(u.mode_changed is None for u in updates)
        assert machine.mode is Mode.FORMED

    def test_pointing_resets_mode_streaks(self, machine):
        feed(machine, [OPEN, OPEN, OPEN, POINT])
        assert machine.streaks["open"] == 0


class TestHandSignal:

    def test_hand_position_follows_center(self):
        machine = ModeStateMachine({})
        update = machine.update(frame(AMBIG, center=(0.25, 0.75)))
        assert update.hand == HandSignal(0.25, 0.75, True)
        assert machine.state.hand.detected

    def test_hand_lost_resets_signal(self):
        machine = ModeStateMachine({})
        machine.update(frame(OPEN, center=(0.1, 0.2)))
        machine.update(frame(NONE))
        assert machine.state.hand == HandSignal.lost()

    def test_reset_keeps_mode(self):
        machine = ModeStateMachine({})
        feed(machine, [OPEN] * 5 + [POINT, POINT])
        machine.reset()
        assert machine.mode is Mode.CHAOS
        assert machine.streaks == {"open": 0, "fist": 0, "point": 0}
        assert not machine.point_active


class TestModeState:

    def test_set_mode_bumps_version(self):
        state = ModeState()
        assert state.set_mode(Mode.CHAOS)
        assert state.version == 1
        assert not state.set_mode(Mode.CHAOS)
        assert state.version == 1

    def test_toggle(self):
        state = ModeState(Mode.CHAOS)
        assert state.toggle() is Mode.FORMED
        assert state.last_source == "ui"
        assert state.version == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
