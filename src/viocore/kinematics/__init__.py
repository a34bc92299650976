"""Pose representation and manifold operations."""

from .operators import (
    canonical_quat,
    cross_mx,
    delta_q,
    normalize_quat,
    quat_inverse,
    quat_multiply,
    quat_oplus,
    quat_plus,
    quat_to_rotation,
    rotation_to_quat,
)
from .pose_manifold import minus, minus_jacobian, plus, plus_jacobian
from .transformation import Transformation

__all__ = [
    # Pose
    "Transformation",
    # Manifold
    "plus",
    "minus",
    "plus_jacobian",
    "minus_jacobian",
    # Quaternion operators
    "canonical_quat",
    "cross_mx",
    "delta_q",
    "normalize_quat",
    "quat_inverse",
    "quat_multiply",
    "quat_oplus",
    "quat_plus",
    "quat_to_rotation",
    "rotation_to_quat",
]
