"""
Dual-coordinate motion blending shared by every population.

Each tick, per entity:
    1. Active target: override if installed, else formed/chaos by mode.
    2. Exponential approach: ``position += (target - position) * min(1, dt * speed)``.
       Entities decelerate near the target and never overshoot.
    3. Orientation: face outward from the formation axis when FORMED,
       face the camera when CHAOS or overridden. Slerp toward the look
       rotation at a fixed turn rate, independent of the position speed.
    4. Cosmetic sway, bob and pulse are written to the render buffers only,
       so they never feed back into convergence.
"""

import logging
import numpy as np

from formation.core.types import Mode, RenderFrame
from formation.modules.motion import quaternion as quat
from formation.modules.motion.entity_arena import EntityArena

logger = logging.getLogger(__name__)

# Sway/bob/pulse angular frequencies (rad/s)
_FORMED_SWAY_FREQ = (1.5, 2.0)
_CHAOS_SWAY_FREQ = (1.5, 1.2)
_BOB_FREQ = 2.0
_PULSE_FREQ = 5.0


def convergence_step(dt: float, rate) -> np.ndarray:
    """Fraction of the remaining distance to cover this tick, clamped to [0, 1]."""
    return np.clip(np.asarray(rate, dtype=np.float64) * dt, 0.0, 1.0)


class MotionBlendingEngine:
    """Advances EntityArena populations toward their active targets."""

    def __init__(self, config: dict = None):
        """
        Args:
            config: ``motion`` section of config.yaml
        """
        config = config or {}
        self._turn_rate = config.get("turn_rate", 3.0)
        axis = config.get("formed_axis", [0.0, 0.0])
        self._axis_x = float(axis[0])
        self._axis_z = float(axis[1])
        self._cosmetics = config.get("cosmetics", True)
        self._skipped_total = 0

    def tick(self, arena: EntityArena, mode: Mode, dt: float,
             camera_position=None, elapsed: float = 0.0) -> RenderFrame:
        """Advance one population by ``dt`` seconds.

        Args:
            arena: population to update in place
            mode: current persistent mode
            dt: seconds since the previous animation tick
            camera_position: world position of the viewer, (3,)
            elapsed: animation clock in seconds, drives the cosmetic layers

        Returns:
            RenderFrame over the arena's render buffers
        """
        if arena.count == 0 or dt < 0:
            return arena.render_frame()

        formed = mode is Mode.FORMED
        overridden = arena.override_mask

        # 1. Active target selection
        mode_target = arena.formed if formed else arena.chaos
        target = np.where(overridden[:, None], arena.override, mode_target)

        valid = np.all(np.isfinite(target), axis=1) & np.all(np.isfinite(arena.position), axis=1)
        skipped = arena.count - int(valid.sum())
        if skipped:
            self._skipped_total += skipped
            logger.debug("%s: skipping %d entities with corrupt targets", arena.name, skipped)

        # 2. Exponential approach
        step = convergence_step(dt, arena.speed)
        moved = arena.position + (target - arena.position) * step[:, None]
        arena.position[valid] = moved[valid]

        # 3. Orientation
        if arena.style.oriented:
            self._blend_orientation(arena, formed, dt, elapsed, valid, camera_position)

        self._blend_scale(arena, formed, dt)
        self._write_render_buffers(arena, formed, elapsed)
        return arena.render_frame()

    def _blend_orientation(self, arena, formed, dt, elapsed, valid, camera_position):
        pos = arena.position
        facing_camera = arena.override_mask if formed else np.ones(arena.count, dtype=bool)

        forward = np.empty_like(pos)
        # Outward from the vertical formation axis, at the entity's own height
        forward[:, 0] = pos[:, 0] - self._axis_x
        forward[:, 1] = 0.0
        forward[:, 2] = pos[:, 2] - self._axis_z
        if camera_position is not None:
            cam = np.asarray(camera_position, dtype=np.float64)
            forward[facing_camera] = cam - pos[facing_camera]

        target_q, has_dir = quat.look_rotation(forward)
        turning = valid & has_dir & ~arena.spinning
        if turning.any():
            t = float(convergence_step(dt, self._turn_rate))
            arena.orientation[turning] = quat.slerp(
                arena.orientation[turning], target_q[turning], t
            )

        if arena.spinning.any():
            spin = arena.spinning
            arena.orientation[spin] = quat.from_euler(
                elapsed * arena.spin[spin, 0] + arena.spin_offset[spin, 0],
                elapsed * arena.spin[spin, 1] + arena.spin_offset[spin, 1],
                np.zeros(int(spin.sum())),
            )

    def _blend_scale(self, arena, formed, dt):
        style = arena.style
        if style.chaos_scale == style.formed_scale == style.override_scale == 1.0:
            np.copyto(arena.scale, arena.base_scale)
            return
        mode_scale = style.formed_scale if formed else style.chaos_scale
        multiplier = np.where(arena.override_mask, style.override_scale, mode_scale)
        target = arena.base_scale * multiplier
        arena.scale += (target - arena.scale) * float(convergence_step(dt, style.scale_rate))

    def _write_render_buffers(self, arena, formed, elapsed):
        np.copyto(arena.render_position, arena.position)
        np.copyto(arena.render_orientation, arena.orientation)
        np.copyto(arena.render_scale, arena.scale)
        if not self._cosmetics:
            return

        style = arena.style
        phase = arena.phase

        if formed and style.bob_amplitude:
            near = np.linalg.norm(arena.position - arena.formed, axis=1) < style.bob_radius
            bob = style.bob_amplitude * np.sin(_BOB_FREQ * elapsed + phase)
            arena.render_position[:, 1] += np.where(near & ~arena.override_mask, bob, 0.0)

        if style.oriented:
            amp_x, amp_z = style.formed_sway if formed else style.chaos_sway
            if amp_x or amp_z:
                freq_x, freq_z = _FORMED_SWAY_FREQ if formed else _CHAOS_SWAY_FREQ
                swaying = ~arena.override_mask & ~arena.spinning
                sway_x = np.where(swaying, amp_x * np.sin(freq_x * elapsed + phase), 0.0)
                sway_z = np.where(swaying, amp_z * np.cos(freq_z * elapsed + phase), 0.0)
                sway_q = quat.from_euler(sway_x, np.zeros_like(sway_x), sway_z)
                arena.render_orientation[:] = quat.multiply(arena.orientation, sway_q)

        if np.any(arena.pulse):
            arena.render_scale *= 1.0 + arena.pulse * np.sin(_PULSE_FREQ * elapsed + phase)

    @property
    def skipped_total(self) -> int:
        """Entity-ticks skipped because of corrupt data since start."""
        return self._skipped_total
