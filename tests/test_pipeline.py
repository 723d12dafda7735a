"""
Tests for the detection pipeline and the event bus
===================================================
"""

import pytest
import numpy as np

from formation.core.events import EventBus, Events
from formation.core.pipeline import GesturePipeline
from formation.core.types import GestureCategory, Mode
from formation.modules.capture.synthetic_hand import shape_frame
from formation.modules.recognition.gesture_classifier import GestureClassifier
from formation.modules.recognition.mode_machine import ModeStateMachine
from formation.modules.utils.performance_monitor import PerformanceMonitor

FRAME = np.zeros((4, 4, 3), dtype=np.uint8)


class ScriptedDetector:
    """Returns one synthetic hand per call, following a list of shapes.

    ``None`` means no hand, ``"boom"`` makes the call raise.
    """

    def __init__(self, shapes):
        self._shapes = list(shapes)
        self.calls = 0

    def detect(self, rgb_frame):
        shape = self._shapes[self.calls % len(self._shapes)]
        self.calls += 1
        if shape == "boom":
            raise RuntimeError("inference failed")
        if shape is None:
            return None
        return shape_frame(shape)


class FakeSource:
    def __init__(self, reads):
        self._reads = list(reads)

    def read(self):
        if not self._reads:
            return None, None
        return self._reads.pop(0)


class EventRecorder:
    """Subscribes to every pipeline event and records them in order."""

    NAMES = (
        Events.HAND_DETECTED, Events.HAND_LOST, Events.GESTURE_CLASSIFIED,
        Events.DETECTOR_ERROR, Events.MODE_CHANGED, Events.POINT_EDGE,
        Events.POINT_RELEASED,
    )

    def __init__(self, bus):
        self.events = []
        for name in self.NAMES:
            bus.subscribe(name, self._make_handler(name))

    def _make_handler(self, name):
        def handler(**kwargs):
            self.events.append((name, kwargs))
        return handler

    def names(self, *only):
        return [n for n, _ in self.events if not only or n in only]


def make_pipeline(shapes, bus=None, perf=None, source=None, **machine_config):
    config = {"confirm_frames": 5, "point_confirm_frames": 2}
    config.update(machine_config)
    return GesturePipeline(
        ScriptedDetector(shapes),
        GestureClassifier({}),
        ModeStateMachine(config),
        event_bus=bus,
        performance_monitor=perf,
        source=source,
    )


def run(pipeline, n):
    return [pipeline.process_frame(FRAME) for _ in range(n)]


class TestGesturePipeline:

    @pytest.fixture
    def bus(self):
        return EventBus()

    @pytest.fixture
    def recorder(self, bus):
        return EventRecorder(bus)

    def test_open_hand_switches_to_chaos(self, bus, recorder):
        pipeline = make_pipeline(["open"], bus=bus)
        results = run(pipeline, 5)
        assert results[-1].update.mode_changed is Mode.CHAOS
        assert pipeline.machine.mode is Mode.CHAOS
        changes = [kw for n, kw in recorder.events if n == Events.MODE_CHANGED]
        assert changes == [{"mode": Mode.CHAOS, "version": 1, "source": "gesture"}]

    def test_open_then_point_fires_edge(self, bus, recorder):
        pipeline = make_pipeline(["open", "point", "point"], bus=bus)
        run(pipeline, 3)
        assert recorder.names() == [
            Events.HAND_DETECTED,
            Events.GESTURE_CLASSIFIED,
            Events.GESTURE_CLASSIFIED,
            Events.POINT_EDGE,
        ]
        assert recorder.events[-1][1] == {"mode": Mode.FORMED}

    def test_release_before_mode_change(self, bus, recorder):
        pipeline = make_pipeline(["open", "point", "point", "fist"], bus=bus, confirm_frames=1)
        run(pipeline, 4)
        assert recorder.names(Events.POINT_EDGE, Events.POINT_RELEASED, Events.MODE_CHANGED) == [
            Events.MODE_CHANGED,      # open -> chaos
            Events.POINT_EDGE,
            Events.POINT_RELEASED,
            Events.MODE_CHANGED,      # fist -> formed, same frame as the release
        ]

    def test_hand_lost_event(self, bus, recorder):
        pipeline = make_pipeline(["open", None], bus=bus)
        results = run(pipeline, 2)
        assert recorder.names(Events.HAND_DETECTED, Events.HAND_LOST) == [
            Events.HAND_DETECTED, Events.HAND_LOST,
        ]
        assert results[0].hand_detected
        assert not results[1].hand_detected
        assert results[1].category is GestureCategory.NONE

    def test_classified_only_on_change(self, bus, recorder):
        pipeline = make_pipeline(["fist"], bus=bus)
        run(pipeline, 10)
        classified = [kw for n, kw in recorder.events if n == Events.GESTURE_CLASSIFIED]
        assert len(classified) == 1
        assert classified[0]["category"] is GestureCategory.FIST

    def test_detector_failure_is_treated_as_no_hand(self, bus, recorder, caplog):
        perf = PerformanceMonitor()
        pipeline = make_pipeline(["boom"], bus=bus, perf=perf)
        with caplog.at_level("WARNING"):
            result = pipeline.process_frame(FRAME)
        assert result.category is GestureCategory.NONE
        assert pipeline.detector_errors == 1
        assert perf.get_report()["errors"] == 1
        errors = [kw for n, kw in recorder.events if n == Events.DETECTOR_ERROR]
        assert errors[0]["count"] == 1
        assert isinstance(errors[0]["error"], RuntimeError)
        assert "Hand detector failed" in caplog.text

    def test_detector_failure_decays_instead_of_resetting(self, bus):
        pipeline = make_pipeline(["open", "open", "open", "boom", "open", "open", "open"], bus=bus)
        results = run(pipeline, 7)
        assert results[-1].update.mode_changed is Mode.CHAOS

    def test_loop_survives_repeated_failures(self, bus):
        pipeline = make_pipeline(["boom"], bus=bus)
        run(pipeline, 20)
        assert pipeline.detector_errors == 20
        assert pipeline.frame_count == 20

    def test_process_landmarks_none(self, bus):
        pipeline = make_pipeline(["open"], bus=bus)
        result = pipeline.process_landmarks(None)
        assert result.category is GestureCategory.NONE
        assert not result.hand_detected

    def test_stage_latencies_recorded(self, bus):
        perf = PerformanceMonitor()
        pipeline = make_pipeline(["open"], bus=bus, perf=perf)
        run(pipeline, 3)
        assert perf.tick_count("detection") == 3
        latencies = perf.get_all_latencies()
        assert {"detection", "classification", "state"} <= set(latencies)

    def test_build_state(self, bus):
        pipeline = make_pipeline(["open"], bus=bus)
        run(pipeline, 2)
        state = pipeline.build_state()
        assert state["mode"] == Mode.FORMED.value
        assert state["category"] == GestureCategory.OPEN.value
        assert state["streaks"]["open"] == 2
        assert state["hand"].detected
        assert state["detector_errors"] == 0

    def test_hand_bbox_follows_detection(self, bus):
        pipeline = make_pipeline(["open", None], bus=bus)
        run(pipeline, 1)
        x, y, w, h = pipeline.build_state()["hand_bbox"]
        assert w > 0 and h > 0
        assert x < 0.5 < x + w
        assert y < 0.5 < y + h
        run(pipeline, 1)
        assert pipeline.build_state()["hand_bbox"] is None

    def test_reset_clears_hand_bbox(self, bus):
        pipeline = make_pipeline(["open"], bus=bus)
        run(pipeline, 1)
        pipeline.reset()
        assert pipeline.build_state()["hand_bbox"] is None

    def test_reset_keeps_mode(self, bus):
        pipeline = make_pipeline(["open"], bus=bus)
        run(pipeline, 5)
        pipeline.reset()
        assert pipeline.machine.mode is Mode.CHAOS
        assert pipeline.machine.streaks["open"] == 0


class TestFrameSource:

    def test_tick_requires_source(self):
        pipeline = make_pipeline(["open"])
        with pytest.raises(RuntimeError):
            pipeline.tick()

    def test_same_frame_not_processed_twice(self):
        source = FakeSource([(1, FRAME), (1, FRAME), (2, FRAME)])
        pipeline = make_pipeline(["open"], source=source)
        assert pipeline.tick() is not None
        assert pipeline.tick() is None
        assert pipeline.tick() is not None
        assert pipeline.frame_count == 2

    def test_no_frame_yet(self):
        pipeline = make_pipeline(["open"], source=FakeSource([]))
        assert pipeline.tick() is None
        assert pipeline.frame_count == 0


class TestEventBus:

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_emit_passes_kwargs(self, bus):
        received = []
        bus.subscribe("test", lambda **kw: received.append(kw))
        assert bus.emit("test", value=3) == 1
        assert received == [{"value": 3}]

    def test_priority_order(self, bus):
        order = []
        bus.subscribe("test", lambda **kw: order.append("low"), priority=0)
        bus.subscribe("test", lambda **kw: order.append("high"), priority=10)
        bus.subscribe("test", lambda **kw: order.append("low2"), priority=0)
        bus.emit("test")
        assert order == ["high", "low", "low2"]

    def test_failing_handler_is_isolated(self, bus):
        received = []

        def broken(**kwargs):
            raise ValueError("broken listener")

        bus.subscribe("test", broken, priority=5)
        bus.subscribe("test", lambda **kw: received.append(kw))
        assert bus.emit("test", x=1) == 1
        assert received == [{"x": 1}]

    def test_unsubscribe_bound_method(self, bus):
        class Listener:
            def __init__(self):
                self.calls = 0

            def on_event(self, **kwargs):
                self.calls += 1

        listener = Listener()
        bus.subscribe("test", listener.on_event)
        bus.unsubscribe("test", listener.on_event)
        bus.emit("test")
        assert listener.calls == 0
        assert bus.listener_count == 0

    def test_disabled_bus(self, bus):
        received = []
        bus.subscribe("test", lambda **kw: received.append(kw))
        bus.set_enabled(False)
        assert bus.emit("test") == 0
        assert received == []

    def test_history(self, bus):
        bus.emit("a", x=1)
        bus.emit("b", y=2, z=3)
        history = bus.get_history()
        assert [h["event"] for h in history] == ["a", "b"]
        assert history[-1]["data_keys"] == ["y", "z"]

    def test_clear(self, bus):
        bus.subscribe("a", lambda **kw: None)
        bus.subscribe("b", lambda **kw: None)
        bus.clear("a")
        assert bus.registered_events == ["b"]
        bus.clear()
        assert bus.listener_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
