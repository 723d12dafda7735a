"""
Population construction: chaos/formed/override targets, speeds and
cosmetic parameters for each entity type.

All randomness comes from a seeded ``numpy.random.Generator`` so a given
seed always produces the same installation. Coordinates are in the
formation's local frame: the formed tree stands on y = 0 around the
vertical axis through the origin.
"""

import math
import logging
import numpy as np

from formation.modules.motion.entity_arena import EntityArena, MotionStyle
from formation.modules.utils.logger import log_timing

logger = logging.getLogger(__name__)

GOLDEN_ANGLE = 2.39996  # radians

FOLIAGE_KINDS = ("needle",)
ORNAMENT_KINDS = ("ball", "gift", "light")
PHOTO_KINDS = ("photo",)

BALL, GIFT, LIGHT = 0, 1, 2


def _sphere_shell(rng: np.random.Generator, n: int, r_min: float, r_max: float,
                  lift: float) -> np.ndarray:
    """Uniform directions on a sphere at random radii in [r_min, r_max)."""
    r = r_min + rng.random(n) * (r_max - r_min)
    theta = rng.random(n) * 2.0 * np.pi
    phi = np.arccos(2.0 * rng.random(n) - 1.0)
    return np.column_stack([
        r * np.sin(phi) * np.cos(theta),
        r * np.sin(phi) * np.sin(theta) + lift,
        r * np.cos(phi),
    ])


def _chaos_shell(rng, n, config) -> np.ndarray:
    return _sphere_shell(
        rng, n,
        config.get("chaos_min_radius", 15.0),
        config.get("chaos_max_radius", 30.0),
        config.get("chaos_lift", 5.0),
    )


@log_timing
def build_foliage(count: int, rng: np.random.Generator, config: dict = None) -> EntityArena:
    """Needle particles filling a cone. Positions only, no orientation."""
    config = config or {}
    height = config.get("height", 12.0)
    radius = config.get("radius", 5.0)

    # Cone cross-section shrinks with height, so bias samples toward the base
    y_norm = 1.0 - np.cbrt(rng.random(count))
    r = radius * (1.0 - y_norm) * np.sqrt(rng.random(count))
    theta = rng.random(count) * 2.0 * np.pi
    formed = np.column_stack([r * np.cos(theta), y_norm * height, r * np.sin(theta)])

    return EntityArena(
        "foliage",
        chaos=_chaos_shell(rng, count, config),
        formed=formed,
        speed=0.5 + rng.random(count) * 1.5,
        base_scale=config.get("particle_size", 0.05) * (0.6 + rng.random(count) * 0.8),
        phase=rng.random(count) * 100.0,
        kind_labels=FOLIAGE_KINDS,
        style=MotionStyle(oriented=False),
        start=config.get("start", "chaos"),
    )


@log_timing
def build_ornaments(count: int, rng: np.random.Generator, config: dict = None) -> EntityArena:
    """Balls, gift boxes and lights on a bottom-heavy spiral around the tree."""
    config = config or {}
    height = config.get("height", 11.0)
    max_radius = config.get("radius", 4.5)
    gift_share = config.get("gift_share", 0.1)
    light_share = config.get("light_share", 0.1)

    roll = rng.random(count)
    kind = np.full(count, BALL, dtype=np.int8)
    kind[roll > 1.0 - gift_share - light_share] = GIFT
    kind[roll > 1.0 - light_share] = LIGHT

    # Heavy concentration at the bottom
    y_norm = rng.random(count) ** 2.5
    y = y_norm * height + 0.5
    theta = y * 10.0 + rng.random(count) * 2.0 * np.pi
    # Slightly outside the foliage radius
    r = max_radius * (1.0 - y_norm) + rng.random(count) * 0.5
    formed = np.column_stack([r * np.cos(theta), y, r * np.sin(theta)])

    base_scale = np.where(kind == LIGHT, 0.15, 0.2 + rng.random(count) * 0.25)
    gifts = kind == GIFT
    spin = np.zeros((count, 2))
    spin[gifts] = (0.5, 0.2)
    spin_offset = rng.random((count, 2)) * np.pi
    pulse = np.where(kind == LIGHT, config.get("light_pulse", 0.3), 0.0)

    return EntityArena(
        "ornaments",
        chaos=_chaos_shell(rng, count, config),
        formed=formed,
        speed=0.5 + rng.random(count) * 1.5,
        base_scale=base_scale,
        phase=rng.random(count) * 100.0,
        pulse=pulse,
        spin=spin,
        spin_offset=spin_offset,
        kind=kind,
        kind_labels=ORNAMENT_KINDS,
        style=MotionStyle(
            oriented=True,
            bob_amplitude=config.get("bob_amplitude", 0.05),
            bob_radius=0.5,
        ),
        start=config.get("start", "chaos"),
    )


def heart_outline(count: int, rng: np.random.Generator, config: dict = None) -> np.ndarray:
    """Positions on a heart outline sized to fill the view at the chaos plane."""
    config = config or {}
    aspect = config.get("aspect", 16.0 / 9.0)
    fov = math.radians(config.get("fov", 45.0))
    plane_distance = config.get("chaos_plane_distance", 8.0)
    lift = config.get("chaos_lift", 5.0)

    plane_height = 2.0 * math.tan(fov / 2.0) * plane_distance
    plane_width = plane_height * aspect
    size = min(plane_width, plane_height) * 0.6
    # Grow the heart with the photo count, within limits
    size *= min(1.8, max(1.2, math.sqrt(count / 8.0)))

    t = np.arange(count) / count * 2.0 * np.pi
    heart_x = 16.0 * np.sin(t) ** 3
    heart_y = 13.0 * np.cos(t) - 5.0 * np.cos(2 * t) - 2.0 * np.cos(3 * t) - np.cos(4 * t)

    spread = 0.95 + rng.random(count) * 0.1
    x = heart_x / 16.0 * size * spread + (rng.random(count) - 0.5) * 0.1
    y = heart_y / 16.0 * size * 1.15 * spread + (rng.random(count) - 0.5) * 0.05 + lift
    return np.column_stack([x, y, np.zeros(count)])


@log_timing
def build_photos(count: int, rng: np.random.Generator, config: dict = None) -> EntityArena:
    """Photo frames: golden-angle spiral when formed, heart when chaos, zoom spot on override."""
    config = config or {}
    height = config.get("height", 9.0)
    max_radius = config.get("radius", 5.0)
    float_out = config.get("float_out", 0.8)

    i = np.arange(count)
    y_norm = 0.2 + (i / max(count, 1)) * 0.6
    y = y_norm * height
    r = max_radius * (1.0 - y_norm) + float_out
    theta = i * GOLDEN_ANGLE
    formed = np.column_stack([r * np.cos(theta), y, r * np.sin(theta)])

    chaos = heart_outline(count, rng, config) if count else np.zeros((0, 3))

    zoom_center = config.get("zoom_position", [0.0, 7.0, 14.0])
    jitter = config.get("zoom_jitter", 0.2)
    zoom = np.tile(np.asarray(zoom_center, dtype=np.float64), (count, 1))
    zoom[:, :2] += (rng.random((count, 2)) - 0.5) * jitter

    return EntityArena(
        "photos",
        chaos=chaos,
        formed=formed,
        speed=0.8 + rng.random(count) * 1.5,
        override=zoom,
        phase=rng.random(count) * 100.0,
        kind_labels=PHOTO_KINDS,
        style=MotionStyle(
            oriented=True,
            chaos_scale=1.0,
            formed_scale=config.get("formed_scale", 0.6),
            override_scale=config.get("zoom_scale", 1.5),
            scale_rate=config.get("scale_rate", 5.0),
            formed_sway=(0.0025, 0.004),
            chaos_sway=(0.03, 0.03),
        ),
        start=config.get("start", "chaos"),
    )


BUILDERS = {
    "foliage": build_foliage,
    "ornaments": build_ornaments,
    "photos": build_photos,
}


def build_population(name: str, count: int, rng: np.random.Generator,
                     config: dict = None) -> EntityArena:
    """Build the named population with ``count`` entities."""
    try:
        builder = BUILDERS[name]
    except KeyError:
        raise ValueError(f"Unknown population '{name}' (known: {sorted(BUILDERS)})") from None
    arena = builder(max(0, int(count)), rng, config or {})
    logger.info("Built population '%s': %d entities", name, arena.count)
    return arena
