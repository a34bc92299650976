"""Quaternion and rotation operators.

Quaternions are stored as numpy arrays in (x, y, z, w) order and follow the
Hamilton convention, so that for unit quaternions q_AB * q_BC = q_AC and the
rotation matrix of q_AB maps vectors expressed in B into A.

The 4x4 multiplication matrices make quaternion products linear:

    p * q = quat_plus(p) @ q = quat_oplus(q) @ p
"""

from __future__ import annotations

import numpy as np


def normalize_quat(q: np.ndarray) -> np.ndarray:
    """Return q scaled to unit norm.

    Raises:
        ValueError: If q has zero or non-finite norm
    """
    q = np.asarray(q, dtype=np.float64).flatten()
    if q.shape != (4,):
        raise ValueError(f"Quaternion must have 4 components, got {q.shape}")
    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm < 1e-12:
        raise ValueError(f"Cannot normalize quaternion {q}")
    return q / norm


def canonical_quat(q: np.ndarray) -> np.ndarray:
    """Return the representative of q with non-negative w."""
    return -q if q[3] < 0.0 else q


def quat_multiply(p: np.ndarray, q: np.ndarray) -> np.ndarray:
    """Hamilton product p * q."""
    px, py, pz, pw = p
    qx, qy, qz, qw = q
    return np.array(
        [
            pw * qx + px * qw + py * qz - pz * qy,
            pw * qy - px * qz + py * qw + pz * qx,
            pw * qz + px * qy - py * qx + pz * qw,
            pw * qw - px * qx - py * qy - pz * qz,
        ],
        dtype=np.float64,
    )


def quat_inverse(q: np.ndarray) -> np.ndarray:
    """Conjugate of a unit quaternion."""
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.float64)


def quat_plus(q: np.ndarray) -> np.ndarray:
    """Left-multiplication matrix: q * p = quat_plus(q) @ p."""
    x, y, z, w = q
    return np.array(
        [
            [w, -z, y, x],
            [z, w, -x, y],
            [-y, x, w, z],
            [-x, -y, -z, w],
        ],
        dtype=np.float64,
    )


def quat_oplus(q: np.ndarray) -> np.ndarray:
    """Right-multiplication matrix: p * q = quat_oplus(q) @ p."""
    x, y, z, w = q
    return np.array(
        [
            [w, z, -y, x],
            [-z, w, x, y],
            [y, -x, w, z],
            [-x, -y, -z, w],
        ],
        dtype=np.float64,
    )


def cross_mx(v: np.ndarray) -> np.ndarray:
    """Skew-symmetric matrix such that cross_mx(a) @ b = a x b."""
    x, y, z = np.asarray(v, dtype=np.float64).flatten()
    return np.array(
        [
            [0.0, -z, y],
            [z, 0.0, -x],
            [-y, x, 0.0],
        ],
        dtype=np.float64,
    )


def delta_q(dalpha: np.ndarray) -> np.ndarray:
    """Exponential map from a rotation vector to a unit quaternion.

    Uses the half-angle form with a sinc so that small angles stay exact:
        dq = [sinc(|a|/2) * a/2, cos(|a|/2)]

    Args:
        dalpha: (3,) rotation vector (axis * angle)

    Returns:
        (4,) unit quaternion in (x, y, z, w) order
    """
    dalpha = np.asarray(dalpha, dtype=np.float64).flatten()
    half_norm = 0.5 * np.linalg.norm(dalpha)
    # np.sinc is the normalized sinc sin(pi x) / (pi x)
    sinc = np.sinc(half_norm / np.pi)
    dq = np.empty(4, dtype=np.float64)
    dq[:3] = sinc * 0.5 * dalpha
    dq[3] = np.cos(half_norm)
    return dq / np.linalg.norm(dq)


def quat_to_rotation(q: np.ndarray) -> np.ndarray:
    """Convert a unit quaternion (x, y, z, w) to a 3x3 rotation matrix."""
    qx, qy, qz, qw = q
    # https://www.euclideanspace.com/maths/geometry/rotations/conversions/quaternionToMatrix/
    return np.array(
        [
            [
                1 - 2 * qy * qy - 2 * qz * qz,
                2 * qx * qy - 2 * qz * qw,
                2 * qx * qz + 2 * qy * qw,
            ],
            [
                2 * qx * qy + 2 * qz * qw,
                1 - 2 * qx * qx - 2 * qz * qz,
                2 * qy * qz - 2 * qx * qw,
            ],
            [
                2 * qx * qz - 2 * qy * qw,
                2 * qy * qz + 2 * qx * qw,
                1 - 2 * qx * qx - 2 * qy * qy,
            ],
        ],
        dtype=np.float64,
    )


def rotation_to_quat(C: np.ndarray) -> np.ndarray:
    """Convert a 3x3 rotation matrix to a unit quaternion (x, y, z, w).

    Picks the numerically largest diagonal branch (Shepperd's method) and
    returns the representative with w >= 0.
    """
    C = np.asarray(C, dtype=np.float64)
    if C.shape != (3, 3):
        raise ValueError(f"Rotation must be 3x3, got {C.shape}")

    trace = C[0, 0] + C[1, 1] + C[2, 2]
    if trace > 0.0:
        s = 2.0 * np.sqrt(trace + 1.0)
        q = np.array(
            [
                (C[2, 1] - C[1, 2]) / s,
                (C[0, 2] - C[2, 0]) / s,
                (C[1, 0] - C[0, 1]) / s,
                0.25 * s,
            ]
        )
    elif C[0, 0] > C[1, 1] and C[0, 0] > C[2, 2]:
        s = 2.0 * np.sqrt(1.0 + C[0, 0] - C[1, 1] - C[2, 2])
        q = np.array(
            [
                0.25 * s,
                (C[0, 1] + C[1, 0]) / s,
                (C[0, 2] + C[2, 0]) / s,
                (C[2, 1] - C[1, 2]) / s,
            ]
        )
    elif C[1, 1] > C[2, 2]:
        s = 2.0 * np.sqrt(1.0 + C[1, 1] - C[0, 0] - C[2, 2])
        q = np.array(
            [
                (C[0, 1] + C[1, 0]) / s,
                0.25 * s,
                (C[1, 2] + C[2, 1]) / s,
                (C[0, 2] - C[2, 0]) / s,
            ]
        )
    else:
        s = 2.0 * np.sqrt(1.0 + C[2, 2] - C[0, 0] - C[1, 1])
        q = np.array(
            [
                (C[0, 2] + C[2, 0]) / s,
                (C[1, 2] + C[2, 1]) / s,
                0.25 * s,
                (C[1, 0] - C[0, 1]) / s,
            ]
        )

    return canonical_quat(normalize_quat(q))
