"""
Threaded webcam capture that always holds the latest frame.

The capture thread is the only extra thread in the application; it hands
frames to the detection loop under a lock and never touches shared state.
"""

import time
import threading
import logging
import cv2
import numpy as np

logger = logging.getLogger(__name__)


class CameraManager:
    """Camera capture with optional background acquisition. Frames are returned as RGB."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._device_id = config.get("device_id", 0)
        self._width = config.get("width", 640)
        self._height = config.get("height", 480)
        self._fps = config.get("fps", 30)
        self._backend = config.get("backend", "auto")
        self._buffer_size = config.get("buffer_size", 1)
        # Mirror so moving the hand right moves it right on screen
        self._flip_h = config.get("flip_horizontal", True)
        self._warmup_frames = config.get("warmup_frames", 5)

        self._cap = None
        self._frame = None
        self._frame_id = 0
        self._lock = threading.Lock()
        self._running = False
        self._thread = None
        self._failed_reads = 0

    def open(self) -> bool:
        """Open the device. Returns False (and logs) if it cannot be opened."""
        backend_map = {
            "v4l2": cv2.CAP_V4L2,
            "dshow": cv2.CAP_DSHOW,
            "auto": cv2.CAP_ANY,
        }
        backend = backend_map.get(self._backend, cv2.CAP_ANY)

        self._cap = cv2.VideoCapture(self._device_id, backend)
        if not self._cap.isOpened():
            logger.error("Failed to open camera %d (backend=%s)", self._device_id, self._backend)
            self._cap = None
            return False

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        self._cap.set(cv2.CAP_PROP_FPS, self._fps)
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, self._buffer_size)

        logger.info(
            "Camera opened: %dx%d @ %.0f FPS (requested %dx%d @ %d)",
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            self._cap.get(cv2.CAP_PROP_FPS),
            self._width, self._height, self._fps,
        )

        for _ in range(self._warmup_frames):
            self._cap.read()
        return True

    def _to_rgb(self, frame: np.ndarray) -> np.ndarray:
        if self._flip_h:
            frame = cv2.flip(frame, 1)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def start_async(self):
        """Start threaded frame capture."""
        if self._running or self._cap is None:
            return
        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, name="camera", daemon=True)
        self._thread.start()
        logger.info("Async capture started")

    def _capture_loop(self):
        while self._running:
            ret, frame = self._cap.read()
            if ret and frame is not None:
                rgb = self._to_rgb(frame)
                with self._lock:
                    self._frame = rgb
                    self._frame_id += 1
            else:
                self._failed_reads += 1
                time.sleep(0.005)

    def read(self):
        """Latest frame from the capture thread (non-blocking).

        Returns:
            tuple: (frame_id, RGB array) or (None, None) if no frame yet
        """
        if not self._running:
            return self.read_sync()
        with self._lock:
            if self._frame is not None:
                return self._frame_id, self._frame.copy()
            return None, None

    def read_sync(self):
        """Blocking read on the caller's thread."""
        if self._cap is None:
            return None, None
        ret, frame = self._cap.read()
        if ret and frame is not None:
            self._frame_id += 1
            return self._frame_id, self._to_rgb(frame)
        self._failed_reads += 1
        return None, None

    @property
    def failed_reads(self) -> int:
        return self._failed_reads

    @property
    def resolution(self) -> tuple:
        return (self._width, self._height)

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def stop(self):
        """Stop async capture and release the device."""
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        if self._cap:
            self._cap.release()
            self._cap = None
        logger.info("Camera stopped")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.stop()
