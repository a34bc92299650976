"""Camera models and multi-camera rig calibration."""

from .distortion import (
    DistortionType,
    EquidistantDistortion,
    NoDistortion,
    RadialTangentialDistortion,
    RadialTangentialDistortion8,
    make_distortion,
)
from .ncamera_system import NCameraSystem, load_camera_calibration
from .pinhole_camera import PinholeCamera

__all__ = [
    # Distortion
    "DistortionType",
    "RadialTangentialDistortion",
    "RadialTangentialDistortion8",
    "EquidistantDistortion",
    "NoDistortion",
    "make_distortion",
    # Geometry
    "PinholeCamera",
    # Rig
    "NCameraSystem",
    "load_camera_calibration",
]
