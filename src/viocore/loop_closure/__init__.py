"""Loop closure support: correspondence building and pose graph optimization.

Key components:
- LoopClosureNoncentralAbsoluteAdapter: 2D-3D correspondences of a
  multi-camera frame for non-central absolute pose solvers
- PoseGraph: Relative pose error graph optimized with scipy
"""

from .noncentral_absolute_adapter import (
    FALLBACK_BEARING,
    INFINITY_THRESHOLD,
    KEYPOINT_SIZE_TO_STD,
    NULL_LANDMARK_ID,
    LoopClosureNoncentralAbsoluteAdapter,
)
from .pose_graph import PoseEdge, PoseGraph, PoseGraphConfig, PoseGraphResult

__all__ = [
    # Correspondences
    "LoopClosureNoncentralAbsoluteAdapter",
    "NULL_LANDMARK_ID",
    "INFINITY_THRESHOLD",
    "KEYPOINT_SIZE_TO_STD",
    "FALLBACK_BEARING",
    # Pose Graph
    "PoseGraph",
    "PoseGraphConfig",
    "PoseGraphResult",
    "PoseEdge",
]
