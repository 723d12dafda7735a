"""
OpenCV debug preview: projects entity positions through the camera orbit
and overlays mode, hand signal and loop rates.

It is a consumer of the scene output for development and demos, not a
production renderer.
"""

import math
import logging
import cv2
import numpy as np

from formation.core.types import CameraOrbit, Mode

logger = logging.getLogger(__name__)

WORLD_UP = np.array([0.0, 1.0, 0.0])

# BGR colors per population, indexed by entity kind
_PALETTE = {
    "foliage": [(60, 140, 40)],
    "ornaments": [(40, 60, 200), (60, 200, 230), (200, 240, 255)],
    "photos": [(230, 230, 230)],
}
_DEFAULT_COLOR = (200, 200, 200)


def view_basis(orbit: CameraOrbit):
    """Camera position and (right, up, forward) unit vectors looking at the orbit target."""
    eye = orbit.position()
    target = np.array([0.0, orbit.target_height, 0.0])
    forward = target - eye
    forward /= np.linalg.norm(forward)
    right = np.cross(forward, WORLD_UP)
    norm = np.linalg.norm(right)
    if norm < 1e-9:
        # Looking straight up or down
        right = np.array([1.0, 0.0, 0.0])
    else:
        right /= norm
    up = np.cross(right, forward)
    return eye, right, up, forward


def project_points(points: np.ndarray, orbit: CameraOrbit, width: int, height: int,
                   fov_deg: float = 45.0, near: float = 0.1):
    """Perspective-project world points to pixel coordinates.

    Returns:
        (pixels (n, 2) float, depth (n,), visible (n,) bool)
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    eye, right, up, forward = view_basis(orbit)
    rel = points - eye
    x = rel @ right
    y = rel @ up
    z = rel @ forward

    focal = (height / 2.0) / math.tan(math.radians(fov_deg) / 2.0)
    visible = np.isfinite(z) & (z > near)
    safe_z = np.where(visible, z, 1.0)
    u = width / 2.0 + focal * x / safe_z
    v = height / 2.0 - focal * y / safe_z
    pixels = np.column_stack([u, v])
    visible &= (u >= 0) & (u < width) & (v >= 0) & (v < height)
    return pixels, z, visible


class PreviewRenderer:
    """Draws a SceneFrame into a BGR image."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._width = config.get("width", 960)
        self._height = config.get("height", 540)
        self._fov = config.get("fov", 45.0)
        self._point_scale = config.get("point_scale", 60.0)
        self._show_overlay = config.get("show_overlay", True)
        self._show_bbox = config.get("show_hand_bbox", True)
        self._window_name = config.get("window_name", "Formation Preview")
        self._background = tuple(config.get("background", [12, 8, 4]))

    @property
    def window_name(self) -> str:
        return self._window_name

    @property
    def size(self) -> tuple:
        return (self._width, self._height)

    def render(self, scene_frame, state: dict = None) -> np.ndarray:
        """Render the scene and an optional status overlay into a new image."""
        canvas = np.empty((self._height, self._width, 3), dtype=np.uint8)
        canvas[:] = self._background

        for name, frame in scene_frame.frames.items():
            self._draw_population(canvas, name, frame, scene_frame.orbit)

        if self._show_overlay:
            self._draw_overlay(canvas, scene_frame, state or {})
        return canvas

    def _draw_population(self, canvas, name, frame, orbit):
        if len(frame) == 0:
            return
        pixels, depth, visible = project_points(
            frame.positions, orbit, self._width, self._height, self._fov
        )
        idx = np.flatnonzero(visible)
        if idx.size == 0:
            return
        # Far to near
        idx = idx[np.argsort(-depth[idx])]
        palette = _PALETTE.get(name, [_DEFAULT_COLOR])
        radii = np.clip(self._point_scale * frame.scales[idx] / depth[idx] * 10.0, 1, 40)

        for i, r in zip(idx, radii):
            color = palette[int(frame.kinds[i]) % len(palette)]
            center = (int(pixels[i, 0]), int(pixels[i, 1]))
            if name == "photos":
                half = int(r)
                cv2.rectangle(canvas, (center[0] - half, center[1] - half),
                              (center[0] + half, center[1] + int(half * 1.2)), color, 1)
            else:
                cv2.circle(canvas, center, int(r), color, -1)

    def _draw_overlay(self, canvas, scene_frame, state):
        mode = scene_frame.mode
        mode_color = (60, 200, 255) if mode is Mode.CHAOS else (80, 220, 80)
        cv2.putText(canvas, f"Mode: {mode.value.upper()}", (15, 30),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, mode_color, 2)

        category = state.get("category", "none")
        cv2.putText(canvas, f"Gesture: {category}", (15, 58),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 1)

        rates = state.get("rates", {})
        text = "  ".join(f"{loop}: {rate:.0f}Hz" for loop, rate in rates.items())
        if text:
            cv2.putText(canvas, text, (15, self._height - 15),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, (180, 180, 180), 1)

        if state.get("override_active"):
            cv2.putText(canvas, "ZOOM", (self._width - 100, 30),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 200, 0), 2)

        bbox = state.get("hand_bbox")
        if self._show_bbox and bbox is not None:
            self._draw_bbox(canvas, bbox)

        hand = state.get("hand")
        if hand is not None and hand.detected:
            hx, hy = int(hand.x * self._width), int(hand.y * self._height)
            cv2.circle(canvas, (hx, hy), 10, (0, 255, 255), 2)
        else:
            cv2.putText(canvas, "No hand", (self._width - 120, self._height - 15),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 255), 1)

    def _draw_bbox(self, canvas, bbox):
        x, y, w, h = bbox
        x0, y0 = int(x * self._width), int(y * self._height)
        x1, y1 = int((x + w) * self._width), int((y + h) * self._height)
        cv2.rectangle(canvas, (x0, y0), (x1, y1), (0, 255, 255), 1)

    def show(self, image: np.ndarray):
        cv2.imshow(self._window_name, image)

    def close(self):
        cv2.destroyAllWindows()
