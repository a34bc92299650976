"""viocore - Residuals and loop closure correspondences for visual-inertial SLAM."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .cameras import (
    DistortionType,
    EquidistantDistortion,
    NCameraSystem,
    NoDistortion,
    PinholeCamera,
    RadialTangentialDistortion,
    RadialTangentialDistortion8,
)
from .component import Component, ImuParameters
from .exceptions import (
    ConfigurationError,
    InformationMatrixError,
    MixedDistortionError,
    UnsupportedDistortionError,
)
from .factors import RelativePoseError, RelativePoseEvaluation
from .kinematics import Transformation
from .loop_closure import (
    LoopClosureNoncentralAbsoluteAdapter,
    PoseEdge,
    PoseGraph,
    PoseGraphConfig,
    PoseGraphResult,
)
from .multiframe import KeypointIdentifier, MultiFrame

__all__ = [
    "__version__",
    # Pose
    "Transformation",
    # Cameras
    "DistortionType",
    "RadialTangentialDistortion",
    "RadialTangentialDistortion8",
    "EquidistantDistortion",
    "NoDistortion",
    "PinholeCamera",
    "NCameraSystem",
    # Frames
    "MultiFrame",
    "KeypointIdentifier",
    # Factors
    "RelativePoseError",
    "RelativePoseEvaluation",
    # Loop Closure
    "LoopClosureNoncentralAbsoluteAdapter",
    "PoseGraph",
    "PoseGraphConfig",
    "PoseGraphResult",
    "PoseEdge",
    # Component
    "Component",
    "ImuParameters",
    # Errors
    "ConfigurationError",
    "InformationMatrixError",
    "MixedDistortionError",
    "UnsupportedDistortionError",
]
