"""Rigid body transformation with a quaternion rotation."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

from .operators import (
    canonical_quat,
    delta_q,
    normalize_quat,
    quat_inverse,
    quat_multiply,
    quat_to_rotation,
    rotation_to_quat,
)


@dataclass(eq=False)
class Transformation:
    """Rigid body transformation T_AB = (r_AB, q_AB).

    Transforms points from frame B into frame A:

        p_A = C(q_AB) @ p_B + r_AB

    The rotation is kept as a unit quaternion in (x, y, z, w) order, which
    over-parameterizes the 3 rotational degrees of freedom. The quaternion
    is re-normalized on construction, and comparisons treat q and -q as the
    same rotation.

    Attributes:
        translation: (3,) translation r_AB
        quaternion: (4,) unit quaternion q_AB as (x, y, z, w)
    """

    translation: np.ndarray  # (3,) r_AB
    quaternion: np.ndarray  # (4,) q_AB as (x, y, z, w)

    def __post_init__(self) -> None:
        """Validate and normalize inputs."""
        self.translation = np.asarray(self.translation, dtype=np.float64).flatten()
        if self.translation.shape != (3,):
            raise ValueError(
                f"Translation must be (3,), got {self.translation.shape}"
            )
        self.quaternion = normalize_quat(self.quaternion)

    @classmethod
    def identity(cls) -> Transformation:
        """Create identity transformation (no rotation, no translation)."""
        return cls(
            translation=np.zeros(3),
            quaternion=np.array([0.0, 0.0, 0.0, 1.0]),
        )

    @classmethod
    def from_parameters(cls, parameters: np.ndarray) -> Transformation:
        """Create from a 7-element parameter block [tx, ty, tz, qx, qy, qz, qw].

        Args:
            parameters: Parameter block as stored by the optimizer

        Returns:
            Transformation with normalized quaternion
        """
        parameters = np.asarray(parameters, dtype=np.float64).flatten()
        if parameters.shape != (7,):
            raise ValueError(
                f"Pose parameter block must have 7 elements, got {parameters.shape}"
            )
        return cls(translation=parameters[:3], quaternion=parameters[3:])

    @classmethod
    def from_rotation_translation(cls, C: np.ndarray, r: np.ndarray) -> Transformation:
        """Create from a 3x3 rotation matrix and translation vector."""
        return cls(translation=r, quaternion=rotation_to_quat(C))

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> Transformation:
        """Create from a 4x4 homogeneous transformation matrix.

        Args:
            T: 4x4 transformation matrix of the form:
               [[C  r]
                [0  1]]
        """
        T = np.asarray(T, dtype=np.float64)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {T.shape}")
        return cls.from_rotation_translation(T[:3, :3], T[:3, 3])

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> Transformation:
        """Create from an OpenCV Rodrigues vector and translation.

        Useful for cv2.solvePnP output, which is T_camera_world.
        """
        C, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).flatten())
        return cls.from_rotation_translation(C, np.asarray(tvec).flatten())

    def parameters(self) -> np.ndarray:
        """Return the 7-element parameter block [tx, ty, tz, qx, qy, qz, qw]."""
        return np.concatenate([self.translation, self.quaternion])

    @property
    def r(self) -> np.ndarray:
        """Translation vector."""
        return self.translation

    @property
    def q(self) -> np.ndarray:
        """Unit quaternion (x, y, z, w)."""
        return self.quaternion

    @property
    def C(self) -> np.ndarray:
        """3x3 rotation matrix."""
        return quat_to_rotation(self.quaternion)

    @property
    def T(self) -> np.ndarray:
        """4x4 homogeneous transformation matrix."""
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.C
        T[:3, 3] = self.translation
        return T

    def to_rvec_tvec(self) -> tuple[np.ndarray, np.ndarray]:
        """Convert to OpenCV Rodrigues vector and translation."""
        rvec, _ = cv2.Rodrigues(self.C)
        return rvec.flatten(), self.translation.copy()

    def canonical(self) -> Transformation:
        """Same transformation with the quaternion's w component non-negative."""
        return Transformation(
            translation=self.translation.copy(),
            quaternion=canonical_quat(self.quaternion),
        )

    def inverse(self) -> Transformation:
        """Compute T_BA from T_AB: (-C^T r, q^-1)."""
        q_inv = quat_inverse(self.quaternion)
        return Transformation(
            translation=-(quat_to_rotation(q_inv) @ self.translation),
            quaternion=q_inv,
        )

    def compose(self, other: Transformation) -> Transformation:
        """Compose with another transformation: T_AC = T_AB.compose(T_BC)."""
        return Transformation(
            translation=self.C @ other.translation + self.translation,
            quaternion=quat_multiply(self.quaternion, other.quaternion),
        )

    def oplus(self, delta: np.ndarray) -> Transformation:
        """Apply a minimal perturbation [dr, dalpha] on the manifold.

        r' = r + dr,  q' = delta_q(dalpha) * q
        """
        delta = np.asarray(delta, dtype=np.float64).flatten()
        return Transformation(
            translation=self.translation + delta[:3],
            quaternion=quat_multiply(delta_q(delta[3:]), self.quaternion),
        )

    def ominus(self, other: Transformation) -> np.ndarray:
        """Minimal difference such that other.oplus(self.ominus(other)) ~ self."""
        dq = canonical_quat(
            quat_multiply(self.quaternion, quat_inverse(other.quaternion))
        )
        return np.concatenate(
            [self.translation - other.translation, 2.0 * dq[:3]]
        )

    def is_close(self, other: Transformation, atol: float = 1e-9) -> bool:
        """Compare two transformations, treating q and -q as equal."""
        if not np.allclose(self.translation, other.translation, atol=atol):
            return False
        return np.allclose(
            canonical_quat(self.quaternion),
            canonical_quat(other.quaternion),
            atol=atol,
        )

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Transform Nx3 points from frame B into frame A."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points.reshape(1, 3)

        if points.shape[1] != 3:
            raise ValueError(f"Points must be Nx3, got {points.shape}")

        return (self.C @ points.T).T + self.translation

    def transform_point(self, point: np.ndarray) -> np.ndarray:
        """Transform a single point from frame B into frame A."""
        point = np.asarray(point, dtype=np.float64).flatten()
        return self.C @ point + self.translation

    def copy(self) -> Transformation:
        """Return a deep copy."""
        return Transformation(
            translation=self.translation.copy(),
            quaternion=self.quaternion.copy(),
        )

    def __repr__(self) -> str:
        """Return string representation."""
        r, q = self.translation, self.quaternion
        return (
            f"Transformation(r=[{r[0]:.3f}, {r[1]:.3f}, {r[2]:.3f}], "
            f"q=[{q[0]:.3f}, {q[1]:.3f}, {q[2]:.3f}, {q[3]:.3f}])"
        )

    def __matmul__(self, other: Transformation) -> Transformation:
        """Composition operator: T_AC = T_AB @ T_BC."""
        return self.compose(other)
