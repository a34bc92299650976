"""Error terms for the factor graph."""

from .relative_pose_error import RelativePoseError, RelativePoseEvaluation

__all__ = [
    "RelativePoseError",
    "RelativePoseEvaluation",
]
