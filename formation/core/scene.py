"""
Render-rate orchestrator: owns the populations and advances them, the
override lifecycle and the camera once per animation tick.

Reads the shared ModeState; the only things it receives from the gesture
side are the one-shot point events delivered through the EventBus.
"""

import logging
from contextlib import nullcontext
from typing import Dict, Optional

import numpy as np

from formation.core.types import Mode, CameraOrbit, RenderFrame
from formation.core.events import EventBus, Events
from formation.core.mode_state import ModeState
from formation.modules.motion.blending_engine import MotionBlendingEngine
from formation.modules.motion.entity_arena import EntityArena
from formation.modules.motion.layouts import build_population
from formation.modules.motion.override import OverrideController
from formation.modules.view.camera_mapper import CameraViewMapper

logger = logging.getLogger(__name__)

DEFAULT_POPULATIONS = {
    "foliage": {"count": 4000},
    "ornaments": {"count": 300},
    "photos": {"count": 12},
}


class SceneFrame:
    """Everything a renderer needs for one tick."""

    __slots__ = ("mode", "orbit", "frames", "elapsed")

    def __init__(self, mode: Mode, orbit: CameraOrbit, frames: Dict[str, RenderFrame],
                 elapsed: float):
        self.mode = mode
        self.orbit = orbit
        self.frames = frames
        self.elapsed = elapsed

    def __repr__(self):
        sizes = ", ".join(f"{k}={len(v)}" for k, v in self.frames.items())
        return f"SceneFrame({self.mode.value}, {self.orbit!r}, {sizes})"


class Scene:
    """Populations + motion engine + camera, driven by a shared ModeState."""

    def __init__(self, state: ModeState, config: dict = None, event_bus: EventBus = None,
                 performance_monitor=None):
        """
        Args:
            state: mode/hand holder written by the gesture pipeline
            config: dict with optional ``populations``, ``motion``, ``view``
                and ``override`` sections
            event_bus: bus delivering point events; one is created if omitted
            performance_monitor: optional PerformanceMonitor
        """
        config = config or {}
        self._state = state
        self._bus = event_bus or EventBus()
        self._perf = performance_monitor

        pop_config = config.get("populations") or {}
        self._pop_config = pop_config
        self._rng = np.random.default_rng(pop_config.get("seed", 42))
        self._override_target = pop_config.get("override_target", "photos")

        self._engine = MotionBlendingEngine(config.get("motion") or {})
        self._camera = CameraViewMapper(config.get("view") or {})
        self._overrides = OverrideController(config.get("override") or {}, event_bus=self._bus)

        self._arenas: Dict[str, EntityArena] = {}
        for name, defaults in DEFAULT_POPULATIONS.items():
            section = pop_config.get(name)
            if section is None:
                section = dict(defaults)
            if not section.get("enabled", True):
                continue
            self._arenas[name] = build_population(
                name, section.get("count", defaults["count"]), self._rng, section
            )
        self._overrides.attach(self._arenas.get(self._override_target))

        self._bus.subscribe(Events.POINT_EDGE, self._overrides.on_point_edge)
        self._bus.subscribe(Events.POINT_RELEASED, self._overrides.on_point_released)

        self._seen_version = state.version
        self._elapsed = 0.0
        self._tick_count = 0

    def _measure(self, stage):
        if self._perf is None:
            return nullcontext()
        return self._perf.measure(stage)

    # ------------------------------------------------------------------

    def tick(self, dt: float) -> SceneFrame:
        """Advance everything by ``dt`` seconds and return the render output."""
        dt = max(0.0, float(dt))
        self._elapsed += dt
        self._tick_count += 1

        self._sync_mode()
        mode = self._state.mode

        with self._measure("view"):
            orbit = self._camera.update(self._state.hand, dt)
        camera_position = orbit.position()

        frames = {}
        with self._measure("motion"):
            for name, arena in self._arenas.items():
                frames[name] = self._engine.tick(arena, mode, dt, camera_position, self._elapsed)

        if self._perf is not None:
            self._perf.tick("render")
        return SceneFrame(mode, orbit, frames, self._elapsed)

    def _sync_mode(self):
        """Apply the side effects of a mode change seen since the last tick."""
        if self._state.version == self._seen_version:
            return
        self._seen_version = self._state.version
        self._overrides.clear("mode_changed")
        self._camera.on_mode_changed(self._state.mode)

    def toggle_mode(self) -> Mode:
        """UI toggle between CHAOS and FORMED."""
        mode = self._state.toggle(source="ui")
        self._bus.emit(Events.MODE_CHANGED, mode=mode, version=self._state.version, source="ui")
        self._sync_mode()
        return mode

    def resize_population(self, name: str, count: int) -> EntityArena:
        """Rebuild a population with ``count`` entities. Old entity state is discarded."""
        section = dict(self._pop_config.get(name) or DEFAULT_POPULATIONS.get(name, {}))
        arena = build_population(name, count, self._rng, section)
        self._arenas[name] = arena
        if name == self._override_target:
            self._overrides.attach(arena)
        logger.info("Population '%s' resized to %d", name, arena.count)
        return arena

    # ------------------------------------------------------------------

    def arena(self, name: str) -> Optional[EntityArena]:
        return self._arenas.get(name)

    @property
    def arenas(self) -> Dict[str, EntityArena]:
        return dict(self._arenas)

    @property
    def camera(self) -> CameraViewMapper:
        return self._camera

    @property
    def overrides(self) -> OverrideController:
        return self._overrides

    @property
    def engine(self) -> MotionBlendingEngine:
        return self._engine

    @property
    def state(self) -> ModeState:
        return self._state

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def tick_count(self) -> int:
        return self._tick_count
