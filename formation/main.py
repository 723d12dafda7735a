"""
Gesture-driven formation engine: application entry point.

Two cooperative callbacks share one thread:
    detection tick  - GesturePipeline: frame -> category -> mode / point events
    animation tick  - Scene: populations + camera advanced by dt

Usage:
    formation                          # live webcam + MediaPipe + preview
    formation --mode demo              # scripted synthetic hand, preview window
    formation --mode benchmark         # headless, fixed tick count, perf report
    formation --policy population      # point edge zooms every photo at once
"""

import time
import signal
import argparse
import logging

import cv2

from formation import __version__
from formation.core.events import EventBus, Events
from formation.core.mode_state import ModeState
from formation.core.pipeline import GesturePipeline
from formation.core.scene import Scene
from formation.core.types import Mode
from formation.modules.capture.synthetic_hand import SyntheticHandSource
from formation.modules.recognition.gesture_classifier import GestureClassifier
from formation.modules.recognition.mode_machine import ModeStateMachine
from formation.modules.utils.config import Config
from formation.modules.utils.logger import setup_logging, GestureLogger
from formation.modules.utils.performance_monitor import PerformanceMonitor
from formation.modules.visualization.preview import PreviewRenderer

logger = logging.getLogger(__name__)

# Radians of camera rotation per pixel of mouse drag
_DRAG_SENSITIVITY = 0.005


class FormationApp:
    """Wires the gesture pipeline, the scene and the preview window together."""

    def __init__(self, config: Config, mode: str = "live"):
        self._config = config
        self._mode = mode
        self._running = False

        self._bus = EventBus()
        self._perf = PerformanceMonitor(
            window_size=config.get("performance.metrics_window", 100)
        )
        self._gesture_logger = GestureLogger()

        # Shared state: written by the gesture side, read by the scene
        initial = Mode.from_string(config.get("pipeline.initial_mode", "formed"), Mode.FORMED)
        self._state = ModeState(initial)

        self._classifier = GestureClassifier(config.recognition)
        self._machine = ModeStateMachine(config.recognition, state=self._state)

        self._camera = None
        self._detector = None
        self._synthetic = None
        if mode == "live":
            # Imported lazily so demo and benchmark run without a webcam stack
            from formation.modules.capture.camera_manager import CameraManager
            from formation.modules.detection.hand_detector import HandDetector
            self._camera = CameraManager(config.camera)
            self._detector = HandDetector(config.mediapipe)
        else:
            self._synthetic = SyntheticHandSource(
                noise=config.get("pipeline.synthetic_noise", 0.002),
                seed=config.get("populations.seed", 42),
            )

        self._pipeline = GesturePipeline(
            detector=self._detector,
            classifier=self._classifier,
            machine=self._machine,
            event_bus=self._bus,
            performance_monitor=self._perf,
            source=self._camera,
        )

        self._scene = Scene(
            self._state,
            config={
                "populations": config.populations,
                "motion": config.motion,
                "view": config.view,
                "override": config.override_settings,
            },
            event_bus=self._bus,
            performance_monitor=self._perf,
        )

        self._preview = None
        if mode != "benchmark" and config.get("visualization.enabled", True):
            self._preview = PreviewRenderer(config.visualization)

        self._detection_interval = 1.0 / config.get("pipeline.detection_hz", 30)
        self._drag_origin = None

        self._bus.subscribe(Events.MODE_CHANGED, self._on_mode_changed)
        self._bus.subscribe(Events.POINT_EDGE, self._on_point_edge)
        self._bus.subscribe(Events.POINT_RELEASED, self._on_point_released)
        self._bus.subscribe(Events.OVERRIDE_INSTALLED, self._on_override_installed)
        self._bus.subscribe(Events.OVERRIDE_CLEARED, self._on_override_cleared)

        logger.info("FormationApp initialized (mode=%s, start=%s)", mode, initial.value)

    # ------------------------------------------------------------------
    # Event callbacks
    # ------------------------------------------------------------------

    def _on_mode_changed(self, mode=None, source="gesture", version=None, **_kwargs):
        self._gesture_logger.log_mode_change(mode, source, version)

    def _on_point_edge(self, mode=None, **_kwargs):
        self._gesture_logger.log_point("edge", mode)

    def _on_point_released(self, mode=None, **_kwargs):
        self._gesture_logger.log_point("released", mode)

    def _on_override_installed(self, population=None, target=None, **_kwargs):
        self._gesture_logger.log_override(population, target=target)

    def _on_override_cleared(self, population=None, reason="", **_kwargs):
        self._gesture_logger.log_override(population, cleared=True, reason=reason)

    def _on_mouse(self, event, x, y, flags, _param):
        camera = self._scene.camera
        if event == cv2.EVENT_LBUTTONDOWN:
            if camera.begin_interaction():
                self._drag_origin = (x, y)
        elif event == cv2.EVENT_MOUSEMOVE and self._drag_origin is not None:
            dx = x - self._drag_origin[0]
            dy = y - self._drag_origin[1]
            camera.manual_rotate(-dx * _DRAG_SENSITIVITY, -dy * _DRAG_SENSITIVITY)
            self._drag_origin = (x, y)
        elif event == cv2.EVENT_LBUTTONUP:
            camera.end_interaction()
            self._drag_origin = None
        elif event == cv2.EVENT_MOUSEWHEEL:
            camera.zoom(0.9 if flags > 0 else 1.1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, frames: int = 600) -> bool:
        if self._camera is not None:
            if not self._camera.open():
                logger.error("Failed to open camera. Check connection and permissions.")
                return False
            if self._config.get("performance.enable_threading", True):
                self._camera.start_async()
            self._detector.initialize()

        if self._preview is not None:
            cv2.namedWindow(self._preview.window_name)
            cv2.setMouseCallback(self._preview.window_name, self._on_mouse)

        self._running = True
        self._bus.emit(Events.SYSTEM_STARTED, mode=self._mode)
        logger.info("Starting main loop (mode=%s)", self._mode)

        try:
            if self._mode == "benchmark":
                self._run_benchmark(frames)
            else:
                self._run_main_loop()
        finally:
            self._shutdown()
        return True

    def _detection_tick(self):
        if self._synthetic is not None:
            self._pipeline.process_landmarks(self._synthetic.next_frame())
        else:
            self._pipeline.tick()

    def _run_main_loop(self):
        last = time.perf_counter()
        since_detection = self._detection_interval

        while self._running:
            now = time.perf_counter()
            dt = now - last
            last = now

            since_detection += dt
            if self._camera is not None or since_detection >= self._detection_interval:
                self._detection_tick()
                since_detection = 0.0

            scene_frame = self._scene.tick(dt)

            if self._preview is not None:
                with self._perf.measure("preview"):
                    state = self._pipeline.build_state()
                    state["rates"] = {
                        "render": self._perf.rate("render"),
                        "detection": self._perf.rate("detection"),
                    }
                    state["override_active"] = self._scene.overrides.active
                    self._preview.show(self._preview.render(scene_frame, state))
            self._handle_key(cv2.waitKey(1) & 0xFF if self._preview is not None else -1)

    def _handle_key(self, key: int):
        if key == ord("q"):
            self._running = False
        elif key == ord("m"):
            self._scene.toggle_mode()
        elif key == ord("p"):
            self._perf.print_report()

    def _run_benchmark(self, frames: int):
        """Fixed-step headless run: one detection tick per two animation ticks."""
        logger.info("=== BENCHMARK MODE === (%d ticks)", frames)
        dt = 1.0 / 60.0
        for i in range(frames):
            if not self._running:
                break
            if i % 2 == 0:
                self._detection_tick()
            self._scene.tick(dt)
            if i % 100 == 0:
                logger.info("Benchmark progress: %d/%d (render %.0f Hz)",
                            i, frames, self._perf.rate("render"))

    def _shutdown(self):
        logger.info("Shutting down...")
        self._running = False
        self._bus.emit(Events.SYSTEM_SHUTDOWN)
        if self._camera is not None:
            self._camera.stop()
        if self._detector is not None:
            self._detector.close()
        if self._preview is not None:
            self._preview.close()

        self._perf.print_report()
        logger.info("Events logged: %d, detector errors: %d",
                    self._gesture_logger.total_events, self._pipeline.detector_errors)
        logger.info("Shutdown complete.")

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, shutting down...", signum)
        self._running = False

    @property
    def scene(self) -> Scene:
        return self._scene

    @property
    def pipeline(self) -> GesturePipeline:
        return self._pipeline


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Gesture-driven formation engine"
    )
    parser.add_argument(
        "--mode", choices=["live", "demo", "benchmark"],
        default="live", help="Operating mode"
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to config.yaml"
    )
    parser.add_argument(
        "--camera", type=int, default=None,
        help="Camera device ID"
    )
    parser.add_argument(
        "--policy", choices=["single", "population"], default=None,
        help="Override policy for the point gesture"
    )
    parser.add_argument(
        "--photos", type=int, default=None,
        help="Number of photo entities"
    )
    parser.add_argument(
        "--frames", type=int, default=600,
        help="Animation ticks to run in benchmark mode"
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        help="Override logging.level from config"
    )
    return parser.parse_args(argv)


def build_overrides(args) -> dict:
    """Turn command-line flags into a config overlay."""
    overrides = {}
    if args.camera is not None:
        overrides.setdefault("camera", {})["device_id"] = args.camera
    if args.policy is not None:
        overrides.setdefault("override", {})["policy"] = args.policy
    if args.photos is not None:
        overrides.setdefault("populations", {}).setdefault("photos", {})["count"] = args.photos
    if args.log_level is not None:
        overrides.setdefault("logging", {})["level"] = args.log_level
    return overrides


def main(argv=None):
    args = parse_args(argv)

    config = Config()
    config.load(config_path=args.config)
    config.override(build_overrides(args))

    log_cfg = config.logging
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    logger.info("=" * 60)
    logger.info("  FORMATION - gesture-driven formation engine")
    logger.info("  Version: %s", __version__)
    logger.info("  Mode: %s", args.mode)
    logger.info("=" * 60)

    app = FormationApp(config, mode=args.mode)

    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    ok = app.start(frames=args.frames)
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
