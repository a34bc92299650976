"""Chart and lift maps for the 7-parameter pose representation.

A pose parameter block is x = [r (3), q (4)] with q in (x, y, z, w) order.
Its minimal tangent perturbation is delta = [dr (3), dalpha (3)], applied as

    r' = r + dr
    q' = delta_q(dalpha) * q

plus_jacobian(x) is d(plus(x, delta))/d(delta) at delta = 0 (7x6), and
minus_jacobian(x) is d(minus(x', x))/d(x') at x' = x (6x7). The latter is
the pseudo-inverse used to lift minimal Jacobians to the full parameter
block: minus_jacobian(x) @ plus_jacobian(x) = I.
"""

from __future__ import annotations

import numpy as np

from .operators import (
    canonical_quat,
    delta_q,
    normalize_quat,
    quat_inverse,
    quat_multiply,
    quat_oplus,
)

PARAMETER_SIZE = 7
MINIMAL_SIZE = 6


def _as_block(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64).flatten()
    if x.shape != (PARAMETER_SIZE,):
        raise ValueError(f"Pose parameter block must have 7 elements, got {x.shape}")
    return x


def plus(x: np.ndarray, delta: np.ndarray) -> np.ndarray:
    """Apply a minimal perturbation to a parameter block.

    Args:
        x: (7,) pose parameter block
        delta: (6,) minimal perturbation [dr, dalpha]

    Returns:
        (7,) perturbed parameter block with unit quaternion
    """
    x = _as_block(x)
    delta = np.asarray(delta, dtype=np.float64).flatten()
    x_plus = np.empty(PARAMETER_SIZE, dtype=np.float64)
    x_plus[:3] = x[:3] + delta[:3]
    x_plus[3:] = normalize_quat(
        quat_multiply(delta_q(delta[3:]), normalize_quat(x[3:]))
    )
    return x_plus


def minus(x_plus_delta: np.ndarray, x: np.ndarray) -> np.ndarray:
    """Minimal difference between two parameter blocks (inverse of plus).

    The rotational difference uses the sign-fixed quaternion product so that
    q and -q give the same result.

    Args:
        x_plus_delta: (7,) perturbed parameter block
        x: (7,) reference parameter block

    Returns:
        (6,) minimal difference
    """
    x_plus_delta = _as_block(x_plus_delta)
    x = _as_block(x)
    dq = canonical_quat(
        quat_multiply(
            normalize_quat(x_plus_delta[3:]), quat_inverse(normalize_quat(x[3:]))
        )
    )
    delta = np.empty(MINIMAL_SIZE, dtype=np.float64)
    delta[:3] = x_plus_delta[:3] - x[:3]
    delta[3:] = 2.0 * dq[:3]
    return delta


def plus_jacobian(x: np.ndarray) -> np.ndarray:
    """Jacobian of plus(x, delta) w.r.t. delta at delta = 0.

    Returns:
        (7, 6) matrix
    """
    x = _as_block(x)
    J = np.zeros((PARAMETER_SIZE, MINIMAL_SIZE), dtype=np.float64)
    J[:3, :3] = np.eye(3)
    # d(delta_q)/d(dalpha) at 0 is [0.5 * I; 0]
    J[3:, 3:] = 0.5 * quat_oplus(x[3:])[:, :3]
    return J


def minus_jacobian(x: np.ndarray) -> np.ndarray:
    """Jacobian of minus(x', x) w.r.t. x' at x' = x (the lift).

    Evaluated at the parameter block exactly as supplied, so a negated
    quaternion yields negated quaternion columns.

    Returns:
        (6, 7) matrix
    """
    x = _as_block(x)
    J = np.zeros((MINIMAL_SIZE, PARAMETER_SIZE), dtype=np.float64)
    J[:3, :3] = np.eye(3)
    J[3:, 3:] = 2.0 * quat_oplus(quat_inverse(x[3:]))[:3, :]
    return J
