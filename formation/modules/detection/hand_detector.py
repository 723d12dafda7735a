"""
MediaPipe Hands wrapper returning a single hand's landmarks as a numpy array.
"""

import logging
from typing import Optional

import numpy as np
import mediapipe as mp

from formation.modules.detection.landmark_extractor import extract_landmarks

logger = logging.getLogger(__name__)


class HandDetector:
    """Tracks one hand in RGB video frames."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._model_complexity = config.get("model_complexity", 0)
        self._min_detect_conf = config.get("min_detection_confidence", 0.5)
        self._min_track_conf = config.get("min_tracking_confidence", 0.5)

        self._mp_hands = mp.solutions.hands
        self._hands = None
        self._last_results = None

    def initialize(self):
        self._hands = self._mp_hands.Hands(
            static_image_mode=False,
            model_complexity=self._model_complexity,
            max_num_hands=1,
            min_detection_confidence=self._min_detect_conf,
            min_tracking_confidence=self._min_track_conf,
        )
        logger.info(
            "MediaPipe Hands initialized (complexity=%d, detect_conf=%.2f, track_conf=%.2f)",
            self._model_complexity, self._min_detect_conf, self._min_track_conf,
        )

    def detect(self, rgb_frame: np.ndarray) -> Optional[np.ndarray]:
        """Run detection on an RGB frame.

        Returns:
            (21, 3) normalized landmarks of the first hand, or None
        """
        if self._hands is None:
            self.initialize()

        rgb_frame.flags.writeable = False
        results = self._hands.process(rgb_frame)
        rgb_frame.flags.writeable = True
        self._last_results = results

        if not results or not results.multi_hand_landmarks:
            return None
        return extract_landmarks(results.multi_hand_landmarks[0])

    def close(self):
        if self._hands:
            self._hands.close()
            self._hands = None
            logger.info("MediaPipe Hands closed")

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.close()
