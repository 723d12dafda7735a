"""
Vectorized quaternion helpers.

Quaternions are stored as ``[x, y, z, w]`` rows so a population's
orientations live in one contiguous (n, 4) array. Every function accepts
either a single quaternion (4,) or a batch (n, 4).
"""

import numpy as np

IDENTITY = np.array([0.0, 0.0, 0.0, 1.0])
WORLD_UP = np.array([0.0, 1.0, 0.0])

_EPS = 1e-9
_NLERP_THRESHOLD = 0.9995


def identity(n: int) -> np.ndarray:
    q = np.zeros((n, 4))
    q[:, 3] = 1.0
    return q


def normalize(q: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(q, axis=-1, keepdims=True)
    return q / np.maximum(norm, _EPS)


def multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product ``a * b`` (apply ``b`` first, then ``a``)."""
    ax, ay, az, aw = np.moveaxis(np.asarray(a, dtype=np.float64), -1, 0)
    bx, by, bz, bw = np.moveaxis(np.asarray(b, dtype=np.float64), -1, 0)
    return np.stack([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ], axis=-1)


def rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate vector(s) ``v`` by quaternion(s) ``q``."""
    q = np.asarray(q, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    u = q[..., :3]
    w = q[..., 3:4]
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def from_euler(x, y, z) -> np.ndarray:
    """Quaternion from intrinsic XYZ Euler angles (radians)."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    z = np.asarray(z, dtype=np.float64)
    c1, s1 = np.cos(x / 2), np.sin(x / 2)
    c2, s2 = np.cos(y / 2), np.sin(y / 2)
    c3, s3 = np.cos(z / 2), np.sin(z / 2)
    return np.stack([
        s1 * c2 * c3 + c1 * s2 * s3,
        c1 * s2 * c3 - s1 * c2 * s3,
        c1 * c2 * s3 + s1 * s2 * c3,
        c1 * c2 * c3 - s1 * s2 * s3,
    ], axis=-1)


def from_matrix(m: np.ndarray) -> np.ndarray:
    """Quaternions from a batch of (n, 3, 3) rotation matrices."""
    m = np.asarray(m, dtype=np.float64)
    n = m.shape[0]
    q = np.empty((n, 4))
    m00, m01, m02 = m[:, 0, 0], m[:, 0, 1], m[:, 0, 2]
    m10, m11, m12 = m[:, 1, 0], m[:, 1, 1], m[:, 1, 2]
    m20, m21, m22 = m[:, 2, 0], m[:, 2, 1], m[:, 2, 2]
    trace = m00 + m11 + m22

    # Pick the numerically largest component per row
    c0 = trace > 0
    c1 = ~c0 & (m00 > m11) & (m00 > m22)
    c2 = ~c0 & ~c1 & (m11 > m22)
    c3 = ~c0 & ~c1 & ~c2

    if c0.any():
        s = np.sqrt(trace[c0] + 1.0) * 2.0
        q[c0, 3] = 0.25 * s
        q[c0, 0] = (m21[c0] - m12[c0]) / s
        q[c0, 1] = (m02[c0] - m20[c0]) / s
        q[c0, 2] = (m10[c0] - m01[c0]) / s
    if c1.any():
        s = np.sqrt(1.0 + m00[c1] - m11[c1] - m22[c1]) * 2.0
        q[c1, 3] = (m21[c1] - m12[c1]) / s
        q[c1, 0] = 0.25 * s
        q[c1, 1] = (m01[c1] + m10[c1]) / s
        q[c1, 2] = (m02[c1] + m20[c1]) / s
    if c2.any():
        s = np.sqrt(1.0 + m11[c2] - m00[c2] - m22[c2]) * 2.0
        q[c2, 3] = (m02[c2] - m20[c2]) / s
        q[c2, 0] = (m01[c2] + m10[c2]) / s
        q[c2, 1] = 0.25 * s
        q[c2, 2] = (m12[c2] + m21[c2]) / s
    if c3.any():
        s = np.sqrt(1.0 + m22[c3] - m00[c3] - m11[c3]) * 2.0
        q[c3, 3] = (m10[c3] - m01[c3]) / s
        q[c3, 0] = (m02[c3] + m20[c3]) / s
        q[c3, 1] = (m12[c3] + m21[c3]) / s
        q[c3, 2] = 0.25 * s
    return normalize(q)


def look_rotation(forward: np.ndarray, up: np.ndarray = WORLD_UP):
    """Rotations turning local +Z toward ``forward`` with +Y as close to ``up`` as possible.

    Args:
        forward: (n, 3) facing directions, not necessarily normalized

    Returns:
        (quaternions (n, 4), valid (n,) bool). Rows with a zero-length
        direction are invalid and hold the identity.
    """
    forward = np.atleast_2d(np.asarray(forward, dtype=np.float64))
    n = forward.shape[0]
    length = np.linalg.norm(forward, axis=1)
    valid = length > _EPS

    z = np.zeros_like(forward)
    z[valid] = forward[valid] / length[valid, None]

    x = np.cross(np.broadcast_to(up, z.shape), z)
    x_len = np.linalg.norm(x, axis=1)
    # Looking straight up/down: any horizontal x axis will do
    parallel = valid & (x_len <= 1e-6)
    x[parallel] = np.cross(np.array([0.0, 0.0, 1.0]), z[parallel])
    x_len = np.linalg.norm(x, axis=1)
    x = x / np.maximum(x_len, _EPS)[:, None]
    y = np.cross(z, x)

    m = np.stack([x, y, z], axis=2)  # columns are the local axes
    q = identity(n)
    if valid.any():
        q[valid] = from_matrix(m[valid])
    return q, valid


def slerp(q0: np.ndarray, q1: np.ndarray, t) -> np.ndarray:
    """Spherical interpolation along the shorter arc, row-wise."""
    q0 = np.atleast_2d(np.asarray(q0, dtype=np.float64))
    q1 = np.atleast_2d(np.asarray(q1, dtype=np.float64)).copy()
    t = np.broadcast_to(np.asarray(t, dtype=np.float64), (q0.shape[0],))

    dot = np.sum(q0 * q1, axis=1)
    flip = dot < 0.0
    q1[flip] = -q1[flip]
    dot = np.abs(dot)

    out = np.empty_like(q0)
    near = dot > _NLERP_THRESHOLD
    if near.any():
        out[near] = q0[near] + t[near, None] * (q1[near] - q0[near])
    far = ~near
    if far.any():
        theta0 = np.arccos(np.clip(dot[far], -1.0, 1.0))
        sin0 = np.sin(theta0)
        theta = theta0 * t[far]
        s0 = np.sin(theta0 - theta) / sin0
        s1 = np.sin(theta) / sin0
        out[far] = s0[:, None] * q0[far] + s1[:, None] * q1[far]
    return normalize(out)
