"""Pose graph optimization over relative pose errors.

When a loop closure is detected, we have a constraint between two
non-adjacent states. Pose graph optimization distributes the accumulated
drift across the trajectory by minimizing all relative pose errors.

The graph only translates RelativePoseError terms into the calling
convention of scipy.optimize.least_squares: every pose is a 7-element
parameter block [r, q], residuals are stacked per edge and the analytic
6x7 Jacobians are assembled into a sparse matrix.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import coo_matrix, csr_matrix

from ..factors import RelativePoseError
from ..kinematics import Transformation

logger = logging.getLogger(__name__)

POSE_SIZE = 7
RESIDUAL_SIZE = RelativePoseError.residual_dimension


@dataclass
class PoseGraphConfig:
    """Configuration for pose graph optimization."""

    ftol: float = 1e-10
    xtol: float = 1e-10
    gtol: float = 1e-10
    loss: str = "linear"  # or "huber", "soft_l1", "cauchy"
    loop_information_scale: float = 10.0  # Default loop edge weight


@dataclass
class PoseEdge:
    """An edge in the pose graph.

    Attributes:
        from_id: State ID of frame A
        to_id: State ID of frame B
        error: Relative pose error holding the measurement T_AB
        is_loop: Whether this is a loop closure edge
    """

    from_id: int
    to_id: int
    error: RelativePoseError
    is_loop: bool = False


@dataclass
class PoseGraphResult:
    """Result of pose graph optimization."""

    success: bool
    initial_cost: float = 0.0
    final_cost: float = 0.0
    nfev: int = 0
    message: str = ""


@dataclass
class _Layout:
    """Placement of the free pose blocks in the stacked parameter vector."""

    free_ids: list[int]
    offsets: dict[int, int]
    fixed_blocks: dict[int, np.ndarray]


class PoseGraph:
    """Pose graph of state poses T_WS and relative pose edges.

    Stores state poses and relative constraints (odometry and loop edges)
    and optimizes all poses jointly on request.
    """

    def __init__(self, config: PoseGraphConfig | None = None) -> None:
        """Initialize empty pose graph."""
        self._config = config or PoseGraphConfig()
        self._poses: dict[int, Transformation] = {}
        self._edges: list[PoseEdge] = []

    @property
    def config(self) -> PoseGraphConfig:
        """Optimization configuration."""
        return self._config

    def add_pose(self, state_id: int, T_WS: Transformation) -> None:
        """Add or replace a state pose.

        Args:
            state_id: Unique state ID
            T_WS: Pose in world frame
        """
        self._poses[state_id] = T_WS.copy()

    def add_relative_pose_error(
        self,
        from_id: int,
        to_id: int,
        error: RelativePoseError,
        is_loop: bool = False,
    ) -> PoseEdge:
        """Add an edge with a prepared error term.

        Raises:
            KeyError: If either state is not in the graph
        """
        for state_id in (from_id, to_id):
            if state_id not in self._poses:
                raise KeyError(f"State {state_id} not in pose graph")

        edge = PoseEdge(from_id=from_id, to_id=to_id, error=error, is_loop=is_loop)
        self._edges.append(edge)
        return edge

    def add_odometry_edge(
        self,
        from_id: int,
        to_id: int,
        T_AB: Transformation,
        information: np.ndarray | None = None,
    ) -> PoseEdge:
        """Add an odometry edge between consecutive states.

        Args:
            from_id: State ID of frame A
            to_id: State ID of frame B
            T_AB: Measured relative transform
            information: 6x6 information matrix (default: identity)
        """
        if information is None:
            information = np.eye(6, dtype=np.float64)
        return self.add_relative_pose_error(
            from_id, to_id, RelativePoseError(information, T_AB), is_loop=False
        )

    def add_loop_edge(
        self,
        from_id: int,
        to_id: int,
        T_AB: Transformation,
        information: np.ndarray | None = None,
    ) -> PoseEdge:
        """Add a loop closure edge.

        Args:
            from_id: Query state ID
            to_id: Match state ID
            T_AB: Measured relative transform from loop closure pose recovery
            information: 6x6 information matrix (default: scaled identity)
        """
        if information is None:
            information = self._config.loop_information_scale * np.eye(
                6, dtype=np.float64
            )
        return self.add_relative_pose_error(
            from_id, to_id, RelativePoseError(information, T_AB), is_loop=True
        )

    def _layout(self, fix_first: bool) -> _Layout:
        pose_ids = sorted(self._poses.keys())
        free_ids = pose_ids[1:] if fix_first else pose_ids
        offsets = {pid: i * POSE_SIZE for i, pid in enumerate(free_ids)}
        fixed_blocks = {
            pid: self._poses[pid].parameters()
            for pid in pose_ids
            if pid not in offsets
        }
        return _Layout(free_ids=free_ids, offsets=offsets, fixed_blocks=fixed_blocks)

    @staticmethod
    def _block(layout: _Layout, x: np.ndarray, pid: int) -> np.ndarray:
        if pid in layout.offsets:
            offset = layout.offsets[pid]
            return x[offset : offset + POSE_SIZE]
        return layout.fixed_blocks[pid]

    def _residuals(self, layout: _Layout, x: np.ndarray) -> np.ndarray:
        out = np.empty(RESIDUAL_SIZE * len(self._edges), dtype=np.float64)
        for e_idx, edge in enumerate(self._edges):
            evaluation = edge.error.evaluate_parameters(
                self._block(layout, x, edge.from_id),
                self._block(layout, x, edge.to_id),
            )
            out[e_idx * RESIDUAL_SIZE : (e_idx + 1) * RESIDUAL_SIZE] = evaluation.residual
        return out

    def _jacobian(self, layout: _Layout, x: np.ndarray) -> csr_matrix:
        n_residuals = RESIDUAL_SIZE * len(self._edges)
        # Row/column pattern of one 6x7 block
        block_rows, block_cols = np.meshgrid(
            np.arange(RESIDUAL_SIZE), np.arange(POSE_SIZE), indexing="ij"
        )
        rows, cols, values = [], [], []
        for e_idx, edge in enumerate(self._edges):
            evaluation = edge.error.evaluate_parameters(
                self._block(layout, x, edge.from_id),
                self._block(layout, x, edge.to_id),
                compute_jacobians=True,
            )
            for pid, J in zip((edge.from_id, edge.to_id), evaluation.jacobians):
                if pid not in layout.offsets:
                    continue
                rows.append((block_rows + e_idx * RESIDUAL_SIZE).ravel())
                cols.append((block_cols + layout.offsets[pid]).ravel())
                values.append(J.ravel())
        if not values:
            return csr_matrix((n_residuals, len(x)), dtype=np.float64)
        # duplicate entries (self-edges) are summed
        return coo_matrix(
            (
                np.concatenate(values),
                (np.concatenate(rows), np.concatenate(cols)),
            ),
            shape=(n_residuals, len(x)),
        ).tocsr()

    def parameters(self, fix_first: bool = True) -> np.ndarray:
        """Stacked 7-element blocks of the free poses, sorted by state ID."""
        layout = self._layout(fix_first)
        if not layout.free_ids:
            return np.empty(0, dtype=np.float64)
        return np.concatenate([self._poses[pid].parameters() for pid in layout.free_ids])

    def residuals(self, x: np.ndarray, fix_first: bool = True) -> np.ndarray:
        """Stacked weighted residuals of all edges for free blocks x."""
        return self._residuals(self._layout(fix_first), np.asarray(x, dtype=np.float64))

    def jacobian(self, x: np.ndarray, fix_first: bool = True) -> csr_matrix:
        """Sparse Jacobian of residuals() with respect to the free blocks x.

        Quaternion blocks need not have unit norm; the Jacobian is the
        derivative with respect to x as supplied.
        """
        return self._jacobian(self._layout(fix_first), np.asarray(x, dtype=np.float64))

    def optimize(
        self, fix_first: bool = True, max_iterations: int = 50
    ) -> PoseGraphResult:
        """Optimize all poses in the graph.

        Args:
            fix_first: If True, hold the pose with the smallest ID constant
                (gauge freedom)
            max_iterations: Maximum number of solver function evaluations

        Returns:
            PoseGraphResult; free poses are updated in place
        """
        if len(self._edges) == 0:
            return PoseGraphResult(success=False, message="No edges")

        layout = self._layout(fix_first)
        if len(layout.free_ids) == 0:
            return PoseGraphResult(success=False, message="No free poses")

        x0 = np.concatenate([self._poses[pid].parameters() for pid in layout.free_ids])
        initial_cost = 0.5 * float(np.sum(self._residuals(layout, x0) ** 2))

        # Trust Region Reflective (supports sparse Jacobians)
        result = least_squares(
            lambda x: self._residuals(layout, x),
            x0,
            jac=lambda x: self._jacobian(layout, x),
            method="trf",
            loss=self._config.loss,
            ftol=self._config.ftol,
            xtol=self._config.xtol,
            gtol=self._config.gtol,
            max_nfev=max_iterations,
        )

        final_cost = 0.5 * float(np.sum(self._residuals(layout, result.x) ** 2))

        for pid in layout.free_ids:
            offset = layout.offsets[pid]
            # from_parameters re-normalizes the quaternion
            self._poses[pid] = Transformation.from_parameters(
                result.x[offset : offset + POSE_SIZE]
            )

        logger.debug(
            "Pose graph: %d poses, %d edges, cost %.6g -> %.6g (%d evaluations, %s)",
            len(self._poses),
            len(self._edges),
            initial_cost,
            final_cost,
            result.nfev,
            result.message,
        )

        return PoseGraphResult(
            success=bool(result.success),
            initial_cost=initial_cost,
            final_cost=final_cost,
            nfev=int(result.nfev),
            message=str(result.message),
        )

    def pose(self, state_id: int) -> Transformation | None:
        """Get pose of a state.

        Args:
            state_id: State ID

        Returns:
            Pose if found, None otherwise
        """
        pose = self._poses.get(state_id)
        return pose.copy() if pose is not None else None

    @property
    def num_poses(self) -> int:
        """Number of poses in graph."""
        return len(self._poses)

    @property
    def num_edges(self) -> int:
        """Total number of edges in graph."""
        return len(self._edges)

    @property
    def num_loop_edges(self) -> int:
        """Number of loop closure edges."""
        return sum(1 for edge in self._edges if edge.is_loop)

    @property
    def poses(self) -> dict[int, Transformation]:
        """Get all poses (copies)."""
        return {k: v.copy() for k, v in self._poses.items()}

    @property
    def edges(self) -> list[PoseEdge]:
        """Get all edges (shallow copy of the list)."""
        return list(self._edges)

    def clear(self) -> None:
        """Remove all poses and edges."""
        self._poses.clear()
        self._edges.clear()
