"""
Rule-based hand shape classifier.

Maps one frame of landmarks to a GestureCategory using finger extension
counts. The classifier keeps no history; temporal filtering is the job of
the mode state machine.
"""

import logging

from formation.core.types import GestureCategory, ClassifierResult
from formation.modules.detection.landmark_extractor import (
    to_landmark_array, finger_states, hand_center,
)

logger = logging.getLogger(__name__)


class GestureClassifier:
    """Classifies OPEN / FIST / POINTING / AMBIGUOUS / NONE from landmarks."""

    def __init__(self, config: dict = None):
        """Initialize the classifier.

        Args:
            config: ``recognition`` section of config.yaml
        """
        config = config or {}
        self._finger_ratio = config.get("finger_extension_ratio", 1.5)
        self._thumb_ratio = config.get("thumb_extension_ratio", 1.2)
        self._open_min_fingers = config.get("open_min_fingers", 4)
        self._fist_max_fingers = config.get("fist_max_fingers", 1)

    def classify(self, landmarks) -> ClassifierResult:
        """Classify a single HandFrame.

        Args:
            landmarks: (21, 3) normalized landmarks, or None when no hand

        Returns:
            ClassifierResult; malformed input degrades to NONE
        """
        arr = to_landmark_array(landmarks)
        if arr is None:
            if landmarks is not None:
                logger.debug("Malformed landmark input treated as no hand")
            return ClassifierResult.none()

        states = finger_states(arr, self._finger_ratio, self._thumb_ratio)
        count = sum(1 for extended in states.values() if extended)
        center = hand_center(arr)

        category = self._categorize(states, count)
        return ClassifierResult(category, count, states, center)

    def _categorize(self, states: dict, count: int) -> GestureCategory:
        # Pointing is checked first: an index-only hand would otherwise read as a fist
        if self.is_pointing(states):
            return GestureCategory.POINTING
        if count >= self._open_min_fingers:
            return GestureCategory.OPEN
        if count <= self._fist_max_fingers:
            return GestureCategory.FIST
        return GestureCategory.AMBIGUOUS

    @staticmethod
    def is_pointing(states: dict) -> bool:
        """Index extended, middle/ring/pinky folded. The thumb is ignored."""
        return (
            states.get("index", False)
            and not states.get("middle", False)
            and not states.get("ring", False)
            and not states.get("pinky", False)
        )
