"""
Contiguous per-entity storage for one animated population.

Every entity is a row index into a set of numpy arrays (arena + index)
rather than an object of its own, so a population update is a handful of
vectorized operations and entity lifetime is independent of any
render-object lifetime.

Targets, speed and the cosmetic parameters are fixed when the arena is
built. Only ``position``, ``orientation`` and ``scale`` change per tick,
and only the blending engine writes them.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from formation.core.types import RenderFrame
from formation.modules.motion import quaternion as quat

logger = logging.getLogger(__name__)


@dataclass
class MotionStyle:
    """Population-wide motion parameters."""

    oriented: bool = True            # maintain and blend an orientation per entity
    chaos_scale: float = 1.0         # scale multipliers per active target
    formed_scale: float = 1.0
    override_scale: float = 1.0
    scale_rate: float = 5.0
    formed_sway: tuple = (0.0, 0.0)  # (x tilt, z swing) amplitude, radians
    chaos_sway: tuple = (0.0, 0.0)
    bob_amplitude: float = 0.0       # vertical bob when resting on the formed target
    bob_radius: float = 0.5


class EntityArena:
    """One population of entities stored as parallel arrays."""

    def __init__(self, name: str, chaos: np.ndarray, formed: np.ndarray,
                 speed: np.ndarray, override: Optional[np.ndarray] = None,
                 base_scale: Optional[np.ndarray] = None,
                 phase: Optional[np.ndarray] = None,
                 pulse: Optional[np.ndarray] = None,
                 spin: Optional[np.ndarray] = None,
                 spin_offset: Optional[np.ndarray] = None,
                 kind: Optional[np.ndarray] = None,
                 kind_labels: Sequence[str] = ("default",),
                 style: Optional[MotionStyle] = None,
                 start: str = "chaos"):
        chaos = np.array(chaos, dtype=np.float64).reshape(-1, 3)
        formed = np.array(formed, dtype=np.float64).reshape(-1, 3)
        n = chaos.shape[0]
        if formed.shape[0] != n:
            raise ValueError(f"{name}: chaos/formed length mismatch ({n} vs {formed.shape[0]})")

        self.name = name
        self.style = style or MotionStyle()
        self.kind_labels = tuple(kind_labels)

        # Immutable after creation
        self.chaos = chaos
        self.formed = formed
        self.override = self._column(override, n, 3, np.nan)
        self.speed = self._column(speed, n, None, 1.0)
        self.base_scale = self._column(base_scale, n, None, 1.0)
        self.phase = self._column(phase, n, None, 0.0)
        self.pulse = self._column(pulse, n, None, 0.0)
        self.spin = self._column(spin, n, 2, 0.0)
        self.spin_offset = self._column(spin_offset, n, 2, 0.0)
        self.kind = (np.zeros(n, dtype=np.int8) if kind is None
                     else np.asarray(kind, dtype=np.int8).reshape(n))
        for arr in (self.chaos, self.formed, self.override, self.speed,
                    self.base_scale, self.phase, self.pulse, self.spin, self.spin_offset):
            arr.setflags(write=False)

        self.has_override = np.all(np.isfinite(self.override), axis=1)
        self.spinning = np.any(self.spin != 0.0, axis=1)

        # Mutable per-tick state
        initial = self.formed if start == "formed" else self.chaos
        self.position = initial.copy()
        self.orientation = quat.identity(n)
        self.scale = self.base_scale.copy()
        self.override_mask = np.zeros(n, dtype=bool)

        # Render buffers (state + cosmetic layers), reused every tick
        self.render_position = self.position.copy()
        self.render_orientation = self.orientation.copy()
        self.render_scale = self.scale.copy()

    @staticmethod
    def _column(values, n, width, fill) -> np.ndarray:
        shape = (n,) if width is None else (n, width)
        if values is None:
            return np.full(shape, fill, dtype=np.float64)
        return np.asarray(values, dtype=np.float64).reshape(shape).copy()

    @property
    def count(self) -> int:
        return self.chaos.shape[0]

    def __len__(self):
        return self.count

    def __repr__(self):
        return (f"EntityArena({self.name}, n={self.count}, "
                f"overrides={int(self.override_mask.sum())})")

    # ------------------------------------------------------------------
    # Override target management (driven by the OverrideController)
    # ------------------------------------------------------------------

    @property
    def overridable_count(self) -> int:
        return int(self.has_override.sum())

    @property
    def override_active(self) -> bool:
        return bool(self.override_mask.any())

    @property
    def overridden_indices(self) -> np.ndarray:
        return np.flatnonzero(self.override_mask)

    def set_override(self, index: int) -> bool:
        """Make ``index`` the only overridden entity. False if it has no override target."""
        if not 0 <= index < self.count or not self.has_override[index]:
            return False
        self.override_mask[:] = False
        self.override_mask[index] = True
        return True

    def set_override_all(self) -> int:
        """Override every entity that has an override target."""
        self.override_mask[:] = self.has_override
        return int(self.override_mask.sum())

    def clear_override(self) -> bool:
        """Remove all overrides. Returns True if any was active."""
        was_active = self.override_active
        self.override_mask[:] = False
        return was_active

    # ------------------------------------------------------------------

    def render_frame(self) -> RenderFrame:
        return RenderFrame(self.name, self.render_position, self.render_orientation,
                           self.render_scale, self.kind)
