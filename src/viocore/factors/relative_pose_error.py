"""Relative pose error between two poses.

Ties two poses T_WA and T_WB to a measured relative transform T_AB with a
6x6 information matrix over the error [translation (3), rotation (3)].

The error is

    e_r = r_AB_meas - r_AB
    e_q = 2 * vec(q_AB_meas * q_AB^-1)

where T_AB = T_WA^-1 * T_WB is the prediction. The rotational part is the
small-angle approximation of the rotation error. It is weighted with the
upper triangular square root U of the information matrix (information =
U^T U), so that the squared norm of the residual is the Mahalanobis
distance of the error.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import linalg

from ..exceptions import InformationMatrixError
from ..kinematics import (
    Transformation,
    cross_mx,
    minus_jacobian,
    quat_inverse,
    quat_multiply,
    quat_oplus,
    quat_plus,
)

RESIDUAL_DIM = 6


def _lift(J_minimal: np.ndarray, parameters: np.ndarray) -> np.ndarray:
    """Lift a 6x6 minimal Jacobian to the raw 7-element parameter block.

    The error only sees the normalized quaternion q / |q|, so the
    quaternion columns carry the chain rule through the normalization.
    At |q| = 1 this is the plain lift J_minimal @ minus_jacobian(x).
    """
    q = parameters[3:]
    norm = np.linalg.norm(q)
    q_hat = q / norm
    J = J_minimal @ minus_jacobian(np.concatenate([parameters[:3], q_hat]))
    J[:, 3:] = J[:, 3:] @ ((np.eye(4) - np.outer(q_hat, q_hat)) / norm)
    return J


@dataclass
class RelativePoseEvaluation:
    """Result of evaluating a RelativePoseError.

    Attributes:
        residual: (6,) weighted residual
        jacobians: (J_A, J_B), each 6x7 w.r.t. the full parameter block,
            or None if not requested
        minimal_jacobians: (J_A, J_B), each 6x6 w.r.t. the minimal
            perturbation, or None if not requested
    """

    residual: np.ndarray
    jacobians: tuple[np.ndarray, np.ndarray] | None = None
    minimal_jacobians: tuple[np.ndarray, np.ndarray] | None = None

    @property
    def cost(self) -> float:
        """Half squared norm of the weighted residual."""
        return 0.5 * float(self.residual @ self.residual)


class RelativePoseError:
    """Relative pose error term with analytic Jacobians.

    Example:
        >>> error = RelativePoseError.from_variances(1e-2, 1e-3, T_AB)
        >>> evaluation = error.evaluate(T_WA, T_WB, compute_jacobians=True)
        >>> J_A_minimal, J_B_minimal = evaluation.minimal_jacobians
    """

    residual_dimension = RESIDUAL_DIM
    parameter_block_sizes = (7, 7)
    minimal_block_sizes = (6, 6)

    def __init__(self, information: np.ndarray, T_AB: Transformation) -> None:
        """Construct with a measurement and its information matrix.

        Args:
            information: 6x6 symmetric positive definite information matrix
            T_AB: Measured relative transform from A to B

        Raises:
            InformationMatrixError: If the information matrix is invalid
        """
        self._T_AB = T_AB.copy()
        self.set_information(information)

    @classmethod
    def from_variances(
        cls,
        translation_variance: float,
        rotation_variance: float,
        T_AB: Transformation,
    ) -> RelativePoseError:
        """Construct with a block-diagonal information from two variances.

        Args:
            translation_variance: Variance of each translation component
            rotation_variance: Variance of each rotation component [rad^2]
            T_AB: Measured relative transform from A to B

        Raises:
            InformationMatrixError: If a variance is not strictly positive
        """
        for name, value in (
            ("translation", translation_variance),
            ("rotation", rotation_variance),
        ):
            if not np.isfinite(value) or value <= 0.0:
                raise InformationMatrixError(
                    f"{name} variance must be positive and finite, got {value}"
                )

        information = np.zeros((RESIDUAL_DIM, RESIDUAL_DIM), dtype=np.float64)
        information[:3, :3] = np.eye(3) / translation_variance
        information[3:, 3:] = np.eye(3) / rotation_variance
        return cls(information, T_AB)

    def set_information(self, information: np.ndarray) -> None:
        """Set the information matrix and derive covariance and square root.

        Raises:
            InformationMatrixError: If the matrix is not 6x6, not finite,
                not symmetric, or not positive definite
        """
        information = np.array(information, dtype=np.float64)
        if information.shape != (RESIDUAL_DIM, RESIDUAL_DIM):
            raise InformationMatrixError(
                f"Information matrix must be 6x6, got {information.shape}"
            )
        if not np.all(np.isfinite(information)):
            raise InformationMatrixError("Information matrix has non-finite entries")
        if not np.allclose(information, information.T, rtol=1e-9, atol=1e-12):
            raise InformationMatrixError("Information matrix is not symmetric")

        try:
            sqrt_information = linalg.cholesky(information, lower=False)
        except linalg.LinAlgError as e:
            raise InformationMatrixError(
                f"Information matrix is not positive definite: {e}"
            ) from e

        self._information = information
        self._sqrt_information = sqrt_information
        self._covariance = linalg.cho_solve(
            (sqrt_information, False), np.eye(RESIDUAL_DIM)
        )

    @property
    def measurement(self) -> Transformation:
        """Measured relative transform T_AB."""
        return self._T_AB.copy()

    @property
    def information(self) -> np.ndarray:
        """6x6 information matrix."""
        return self._information.copy()

    @property
    def covariance(self) -> np.ndarray:
        """6x6 covariance (inverse of the information matrix)."""
        return self._covariance.copy()

    @property
    def sqrt_information(self) -> np.ndarray:
        """Upper triangular U with information = U^T U."""
        return self._sqrt_information.copy()

    def evaluate_parameters(
        self,
        parameters_a: np.ndarray,
        parameters_b: np.ndarray,
        compute_jacobians: bool = False,
    ) -> RelativePoseEvaluation:
        """Evaluate from raw 7-element parameter blocks [r, qx, qy, qz, qw].

        Quaternions need not have unit norm. The full Jacobians are the
        derivatives with respect to the blocks as supplied, including the
        normalization of the quaternion and its sign.
        """
        parameters_a = np.asarray(parameters_a, dtype=np.float64).flatten()
        parameters_b = np.asarray(parameters_b, dtype=np.float64).flatten()
        return self._evaluate(
            Transformation.from_parameters(parameters_a),
            Transformation.from_parameters(parameters_b),
            parameters_a,
            parameters_b,
            compute_jacobians,
        )

    def evaluate(
        self,
        T_WA: Transformation,
        T_WB: Transformation,
        compute_jacobians: bool = False,
    ) -> RelativePoseEvaluation:
        """Evaluate the weighted residual and optionally its Jacobians.

        Args:
            T_WA: Pose of frame A in world
            T_WB: Pose of frame B in world
            compute_jacobians: Also compute full and minimal Jacobians

        Returns:
            RelativePoseEvaluation
        """
        return self._evaluate(
            T_WA, T_WB, T_WA.parameters(), T_WB.parameters(), compute_jacobians
        )

    def _evaluate(
        self,
        T_WA: Transformation,
        T_WB: Transformation,
        parameters_a: np.ndarray,
        parameters_b: np.ndarray,
        compute_jacobians: bool,
    ) -> RelativePoseEvaluation:
        T_AB = T_WA.inverse().compose(T_WB)

        # q_AB_meas * q_AB^-1, sign-fixed so q and -q give the same error
        dq = quat_multiply(self._T_AB.q, quat_inverse(T_AB.q))
        sign = -1.0 if dq[3] < 0.0 else 1.0

        error = np.empty(RESIDUAL_DIM, dtype=np.float64)
        error[:3] = self._T_AB.r - T_AB.r
        error[3:] = sign * 2.0 * dq[:3]
        residual = self._sqrt_information @ error

        if not compute_jacobians:
            return RelativePoseEvaluation(residual=residual)

        C_AW = T_WA.C.T
        q_BW = quat_inverse(T_WB.q)
        rot_block = (
            quat_plus(quat_multiply(self._T_AB.q, q_BW)) @ quat_oplus(T_WA.q)
        )[:3, :3]
        rot_block = sign * rot_block

        J_A_minimal = np.eye(RESIDUAL_DIM, dtype=np.float64)
        J_A_minimal[:3, :3] = C_AW
        J_A_minimal[:3, 3:] = -C_AW @ cross_mx(T_WB.r - T_WA.r)
        J_A_minimal[3:, 3:] = rot_block
        J_A_minimal = self._sqrt_information @ J_A_minimal

        J_B_minimal = np.eye(RESIDUAL_DIM, dtype=np.float64)
        J_B_minimal[:3, :3] = -C_AW
        J_B_minimal[3:, 3:] = -rot_block
        J_B_minimal = self._sqrt_information @ J_B_minimal

        # lift into the over-parameterized blocks
        J_A = _lift(J_A_minimal, parameters_a)
        J_B = _lift(J_B_minimal, parameters_b)

        return RelativePoseEvaluation(
            residual=residual,
            jacobians=(J_A, J_B),
            minimal_jacobians=(J_A_minimal, J_B_minimal),
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"RelativePoseError(T_AB={self._T_AB!r})"
