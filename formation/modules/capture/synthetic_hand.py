"""
Synthetic 21-point hand frames.

Builds landmark arrays with exact per-finger extension ratios, so demo mode
and tests can drive the full gesture pipeline without a camera or MediaPipe.
"""

import math
import logging
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np

from formation.core.types import NUM_LANDMARKS
from formation.modules.detection import landmark_extractor as lm

logger = logging.getLogger(__name__)

# Finger direction, degrees clockwise from "up" in image space
_FINGER_ANGLE = {"thumb": -55.0, "index": -18.0, "middle": -3.0, "ring": 11.0, "pinky": 25.0}
# Wrist -> finger base distance in normalized image units
_BASE_DISTANCE = {"thumb": 0.07, "index": 0.12, "middle": 0.12, "ring": 0.11, "pinky": 0.10}

# Named shapes: (long-finger ratios, thumb ratio)
SHAPES = {
    "open":      ({"index": 2.0, "middle": 2.0, "ring": 2.0, "pinky": 2.0}, 1.3),
    "fist":      ({"index": 1.0, "middle": 1.0, "ring": 1.0, "pinky": 1.0}, 1.0),
    "point":     ({"index": 2.0, "middle": 1.0, "ring": 1.0, "pinky": 1.0}, 1.0),
    "ambiguous": ({"index": 2.0, "middle": 2.0, "ring": 1.0, "pinky": 1.0}, 1.0),
}


def build_hand_frame(finger_ratios: Union[float, dict] = 2.0, thumb_ratio: float = 1.3,
                     center: Tuple[float, float] = (0.5, 0.5), scale: float = 1.0,
                     noise: float = 0.0,
                     rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Build a (21, 3) landmark array.

    Args:
        finger_ratios: tip/base wrist-distance ratio for the long fingers,
            one value for all or a dict per finger name
        thumb_ratio: the same ratio for the thumb
        center: where the palm center (see ``hand_center``) should land
        scale: hand size multiplier
        noise: std-dev of gaussian jitter added to x and y
        rng: generator for the jitter
    """
    if not isinstance(finger_ratios, dict):
        finger_ratios = {finger: float(finger_ratios) for finger in lm.LONG_FINGERS}
    ratios = dict(finger_ratios)
    ratios["thumb"] = thumb_ratio

    landmarks = np.zeros((NUM_LANDMARKS, 3), dtype=np.float64)
    for finger, (base_idx, tip_idx) in lm.FINGER_BASE_TIP.items():
        angle = math.radians(_FINGER_ANGLE[finger])
        direction = np.array([math.sin(angle), -math.cos(angle)])
        base = _BASE_DISTANCE[finger] * scale
        tip = base * ratios.get(finger, 1.0)

        if finger == "thumb":
            # CMC sits halfway to the MCP base
            landmarks[lm.THUMB_CMC, :2] = direction * base * 0.5
        landmarks[base_idx, :2] = direction * base
        landmarks[tip_idx, :2] = direction * tip
        # Interior joints between base and tip
        for k, joint in enumerate(range(base_idx + 1, tip_idx), start=1):
            frac = k / (tip_idx - base_idx)
            landmarks[joint, :2] = direction * (base + (tip - base) * frac)

    palm = landmarks[list(lm.PALM_POINTS), :2].mean(axis=0)
    landmarks[:, :2] += np.asarray(center, dtype=np.float64) - palm

    if noise > 0.0:
        rng = rng or np.random.default_rng()
        landmarks[:, :2] += rng.normal(0.0, noise, size=(NUM_LANDMARKS, 2))
    return landmarks


def shape_frame(shape: str, center: Tuple[float, float] = (0.5, 0.5), **kwargs) -> np.ndarray:
    """Landmarks for one of the named SHAPES."""
    try:
        fingers, thumb = SHAPES[shape]
    except KeyError:
        raise ValueError(f"Unknown hand shape '{shape}' (known: {sorted(SHAPES)})") from None
    return build_hand_frame(fingers, thumb, center=center, **kwargs)


# (shape or None for no hand, frame count, start center, end center)
Segment = Tuple[Optional[str], int, Tuple[float, float], Tuple[float, float]]

DEMO_SCRIPT: Sequence[Segment] = (
    (None,    30, (0.5, 0.5), (0.5, 0.5)),
    ("open",  60, (0.3, 0.5), (0.7, 0.4)),
    ("point", 30, (0.7, 0.4), (0.7, 0.4)),
    ("open",  20, (0.7, 0.4), (0.5, 0.5)),
    ("point", 30, (0.5, 0.5), (0.5, 0.5)),
    ("ambiguous", 5, (0.5, 0.5), (0.5, 0.5)),
    ("fist",  60, (0.5, 0.5), (0.4, 0.6)),
    (None,    60, (0.5, 0.5), (0.5, 0.5)),
)


class SyntheticHandSource:
    """Replays a scripted sequence of hand shapes, one frame per call."""

    def __init__(self, script: Iterable[Segment] = DEMO_SCRIPT, loop: bool = True,
                 noise: float = 0.0, seed: int = 0):
        self._frames = []
        for shape, count, start, end in script:
            for i in range(count):
                t = i / max(count - 1, 1)
                cx = start[0] + (end[0] - start[0]) * t
                cy = start[1] + (end[1] - start[1]) * t
                self._frames.append((shape, (cx, cy)))
        self._loop = loop
        self._noise = noise
        self._rng = np.random.default_rng(seed)
        self._index = 0
        logger.debug("Synthetic hand script: %d frames (loop=%s)", len(self._frames), loop)

    def next_frame(self) -> Optional[np.ndarray]:
        """Landmarks for the next scripted frame, or None for 'no hand' / end of script."""
        if self._index >= len(self._frames):
            if not self._loop or not self._frames:
                return None
            self._index = 0
        shape, center = self._frames[self._index]
        self._index += 1
        if shape is None:
            return None
        return shape_frame(shape, center, noise=self._noise, rng=self._rng)

    @property
    def current_shape(self) -> Optional[str]:
        if not self._frames:
            return None
        return self._frames[(self._index - 1) % len(self._frames)][0]

    @property
    def finished(self) -> bool:
        return not self._loop and self._index >= len(self._frames)

    def __len__(self):
        return len(self._frames)

    def reset(self):
        self._index = 0
