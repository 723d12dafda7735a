"""
21-point hand landmark validation and geometric features.

Provides the distance-ratio finger extension test used by the gesture
classifier, and the palm-center hand position used by the view mapper.
"""

import logging
import numpy as np

from formation.core.types import NUM_LANDMARKS

logger = logging.getLogger(__name__)

# MediaPipe hand landmark indices
WRIST = 0
THUMB_CMC = 1
THUMB_MCP = 2
THUMB_IP = 3
THUMB_TIP = 4
INDEX_MCP = 5
INDEX_PIP = 6
INDEX_DIP = 7
INDEX_TIP = 8
MIDDLE_MCP = 9
MIDDLE_PIP = 10
MIDDLE_DIP = 11
MIDDLE_TIP = 12
RING_MCP = 13
RING_PIP = 14
RING_DIP = 15
RING_TIP = 16
PINKY_MCP = 17
PINKY_PIP = 18
PINKY_DIP = 19
PINKY_TIP = 20

LONG_FINGERS = ("index", "middle", "ring", "pinky")

# finger -> (base, tip) used for the extension ratio
FINGER_BASE_TIP = {
    "thumb":  (THUMB_MCP, THUMB_TIP),
    "index":  (INDEX_MCP, INDEX_TIP),
    "middle": (MIDDLE_MCP, MIDDLE_TIP),
    "ring":   (RING_MCP, RING_TIP),
    "pinky":  (PINKY_MCP, PINKY_TIP),
}

# Wrist + the four long-finger MCP joints
PALM_POINTS = (WRIST, INDEX_MCP, MIDDLE_MCP, RING_MCP, PINKY_MCP)


def to_landmark_array(landmarks):
    """Validate raw landmark input and return a float (21, 3) array, or None.

    Accepts anything array-like with at least 21 rows of 2 or 3 coordinates.
    Anything else (None, wrong shape, NaN/inf) yields None, never an exception.
    """
    if landmarks is None:
        return None
    try:
        arr = np.asarray(landmarks, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if arr.ndim != 2 or arr.shape[0] < NUM_LANDMARKS or arr.shape[1] < 2:
        return None
    arr = arr[:NUM_LANDMARKS]
    if arr.shape[1] == 2:
        arr = np.hstack([arr, np.zeros((NUM_LANDMARKS, 1))])
    else:
        arr = arr[:, :3]
    if not np.all(np.isfinite(arr)):
        return None
    return arr


def extract_landmarks(hand_landmarks) -> np.ndarray:
    """Convert a MediaPipe NormalizedLandmarkList to a (21, 3) array."""
    landmarks = np.zeros((NUM_LANDMARKS, 3), dtype=np.float64)
    for i, lm in enumerate(hand_landmarks.landmark[:NUM_LANDMARKS]):
        landmarks[i] = [lm.x, lm.y, lm.z]
    return landmarks


def _planar_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.hypot(a[0] - b[0], a[1] - b[1]))


def extension_ratios(landmarks: np.ndarray) -> dict:
    """Tip-to-wrist distance divided by base-to-wrist distance, per finger.

    Distances are measured in the image plane (x, y). A zero base distance
    gives ``inf`` for a non-zero tip distance and 0.0 otherwise.
    """
    wrist = landmarks[WRIST]
    ratios = {}
    for finger, (base, tip) in FINGER_BASE_TIP.items():
        dist_tip = _planar_distance(landmarks[tip], wrist)
        dist_base = _planar_distance(landmarks[base], wrist)
        if dist_base > 0.0:
            ratios[finger] = dist_tip / dist_base
        else:
            ratios[finger] = float("inf") if dist_tip > 0.0 else 0.0
    return ratios


def finger_states(landmarks: np.ndarray, finger_ratio: float = 1.5,
                  thumb_ratio: float = 1.2) -> dict:
    """Which fingers are extended.

    A long finger is extended if its tip is more than ``finger_ratio`` times
    as far from the wrist as its base. The thumb folds across the palm
    rather than curling toward the wrist, so it uses the looser
    ``thumb_ratio``.

    Returns:
        dict with finger names -> bool (True = extended)
    """
    ratios = extension_ratios(landmarks)
    states = {"thumb": ratios["thumb"] > thumb_ratio}
    for finger in LONG_FINGERS:
        states[finger] = ratios[finger] > finger_ratio
    return states


def hand_center(landmarks: np.ndarray) -> tuple:
    """Average of the wrist and the four finger-base landmarks, (x, y)."""
    pts = landmarks[list(PALM_POINTS), :2]
    cx, cy = pts.mean(axis=0)
    return float(cx), float(cy)


def bounding_box(landmarks: np.ndarray) -> tuple:
    """Normalized (x, y, w, h) bounding box of all landmarks."""
    x_min, y_min = landmarks[:, 0].min(), landmarks[:, 1].min()
    x_max, y_max = landmarks[:, 0].max(), landmarks[:, 1].max()
    return float(x_min), float(y_min), float(x_max - x_min), float(y_max - y_min)
