"""
Detection-rate orchestrator: frame -> landmarks -> category -> mode/events.

Architecture:
    HandSource -> HandDetector -> GestureClassifier -> ModeStateMachine
    -> ModeState (shared with the animation loop) + EventBus events

A failing detector never takes the loop down: the exception is logged,
counted and the frame is treated as "no hand".
"""

import time
import logging
from contextlib import nullcontext
from typing import Optional

from formation.core.types import GestureCategory, ClassifierResult, StateUpdate
from formation.core.events import EventBus, Events
from formation.modules.detection.landmark_extractor import bounding_box, to_landmark_array
from formation.modules.recognition.gesture_classifier import GestureClassifier
from formation.modules.recognition.mode_machine import ModeStateMachine

logger = logging.getLogger(__name__)


class PipelineResult:
    """Result of a single detection tick."""

    __slots__ = ("frame", "landmarks", "classification", "update", "latency_ms", "timestamp")

    def __init__(self):
        self.frame = None
        self.landmarks = None
        self.classification = None
        self.update = None
        self.latency_ms = 0.0
        self.timestamp = 0.0

    @property
    def hand_detected(self) -> bool:
        return self.classification is not None and self.classification.has_hand

    @property
    def category(self) -> GestureCategory:
        if self.classification is None:
            return GestureCategory.NONE
        return self.classification.category


class GesturePipeline:
    """Runs one detection tick end to end and publishes the outcome."""

    def __init__(self, detector, classifier: GestureClassifier,
                 machine: ModeStateMachine, event_bus: EventBus = None,
                 performance_monitor=None, source=None):
        """
        Args:
            detector: object with ``detect(rgb_frame) -> Optional[ndarray (21, 3)]``
            classifier: per-frame gesture classifier
            machine: hysteresis state machine (owns the shared ModeState)
            event_bus: bus for mode and point events
            performance_monitor: optional PerformanceMonitor
            source: optional frame source with ``read() -> (frame_id, rgb_frame)``
        """
        self._detector = detector
        self._classifier = classifier
        self._machine = machine
        self._bus = event_bus or EventBus()
        self._perf = performance_monitor
        self._source = source

        self._frame_count = 0
        self._last_frame_id = None
        self._detector_errors = 0
        self._hand_present = False
        self._last_category = GestureCategory.NONE
        self._last_bbox = None

    def _measure(self, stage):
        if self._perf is None:
            return nullcontext()
        return self._perf.measure(stage)

    def tick(self) -> Optional[PipelineResult]:
        """Read the latest frame from the source and process it.

        Returns None when the source has no new frame since the last tick,
        so a slow camera never feeds the same frame to the state machine twice.
        """
        if self._source is None:
            raise RuntimeError("GesturePipeline.tick() needs a frame source")
        frame_id, frame = self._source.read()
        if frame is None or (frame_id is not None and frame_id == self._last_frame_id):
            return None
        self._last_frame_id = frame_id
        return self.process_frame(frame)

    def process_frame(self, rgb_frame) -> PipelineResult:
        """Detect a hand in ``rgb_frame`` and advance the state machine."""
        start = time.perf_counter()
        landmarks = None
        with self._measure("detection"):
            try:
                landmarks = self._detector.detect(rgb_frame)
            except Exception as e:
                self._detector_errors += 1
                logger.warning("Hand detector failed (%d so far): %s", self._detector_errors, e)
                if self._perf is not None:
                    self._perf.record_error()
                self._bus.emit(Events.DETECTOR_ERROR, error=e, count=self._detector_errors)
                landmarks = None

        result = self.process_landmarks(landmarks)
        result.frame = rgb_frame
        result.latency_ms = (time.perf_counter() - start) * 1000
        return result

    def process_landmarks(self, landmarks) -> PipelineResult:
        """Classify one landmark frame (or None) and publish what changed."""
        result = PipelineResult()
        result.timestamp = time.time()
        result.landmarks = landmarks
        self._frame_count += 1

        with self._measure("classification"):
            classification = (self._classifier.classify(landmarks)
                              if landmarks is not None else ClassifierResult.none())
        with self._measure("state"):
            update = self._machine.update(classification)

        result.classification = classification
        result.update = update
        self._last_bbox = (bounding_box(to_landmark_array(landmarks))
                           if classification.has_hand else None)
        self._publish(classification, update)

        if self._perf is not None:
            self._perf.tick("detection")
        return result

    def _publish(self, classification: ClassifierResult, update: StateUpdate):
        has_hand = classification.has_hand
        if has_hand and not self._hand_present:
            self._bus.emit(Events.HAND_DETECTED, hand=update.hand)
        elif not has_hand and self._hand_present:
            self._bus.emit(Events.HAND_LOST)
        self._hand_present = has_hand

        if classification.category is not self._last_category:
            self._bus.emit(Events.GESTURE_CLASSIFIED,
                           category=classification.category,
                           extended_count=classification.extended_count)
            self._last_category = classification.category

        # Release before edge: a new run can only start after the old one ended
        if update.point_released:
            self._bus.emit(Events.POINT_RELEASED, mode=self._machine.mode)
        if update.mode_changed is not None:
            self._bus.emit(Events.MODE_CHANGED, mode=update.mode_changed,
                           version=self._machine.state.version, source="gesture")
        if update.point_edge:
            self._bus.emit(Events.POINT_EDGE, mode=self._machine.mode)

    def reset(self):
        self._machine.reset()
        self._hand_present = False
        self._last_category = GestureCategory.NONE
        self._last_bbox = None

    def build_state(self) -> dict:
        """State dict for overlays."""
        state = self._machine.state
        return {
            "mode": state.mode.value,
            "hand": state.hand,
            "category": self._last_category.value,
            "hand_bbox": self._last_bbox,
            "streaks": self._machine.streaks,
            "point_active": self._machine.point_active,
            "detector_errors": self._detector_errors,
        }

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def detector_errors(self) -> int:
        return self._detector_errors

    @property
    def machine(self) -> ModeStateMachine:
        return self._machine
