"""Lens distortion models supported by the pinhole camera."""

from __future__ import annotations

from dataclasses import astuple, dataclass
from enum import Enum

import numpy as np


class DistortionType(Enum):
    """Distortion model tag shared by all cameras of a rig."""

    RADIAL_TANGENTIAL = "radialtangential"
    RADIAL_TANGENTIAL8 = "radialtangential8"
    EQUIDISTANT = "equidistant"
    NONE = "none"

    @classmethod
    def from_name(cls, name: str) -> DistortionType:
        """Parse a calibration file model name.

        Accepts the EuRoC/Kalibr spellings, e.g. "radial-tangential",
        "radtan", "equidistant", "radialtangential8".

        Raises:
            ValueError: If the name is unknown
        """
        key = name.strip().lower().replace("-", "").replace("_", "")
        aliases = {
            "radtan": cls.RADIAL_TANGENTIAL,
            "radialtangential": cls.RADIAL_TANGENTIAL,
            "radtan8": cls.RADIAL_TANGENTIAL8,
            "radialtangential8": cls.RADIAL_TANGENTIAL8,
            "equi": cls.EQUIDISTANT,
            "equidistant": cls.EQUIDISTANT,
            "none": cls.NONE,
        }
        if key not in aliases:
            raise ValueError(f"Unknown distortion model: {name}")
        return aliases[key]


@dataclass(frozen=True)
class RadialTangentialDistortion:
    """Radial-tangential (plumb bob) distortion coefficients."""

    k1: float  # Radial distortion coefficient 1
    k2: float  # Radial distortion coefficient 2
    p1: float  # Tangential distortion coefficient 1
    p2: float  # Tangential distortion coefficient 2

    distortion_type = DistortionType.RADIAL_TANGENTIAL
    num_coefficients = 4

    def to_array(self) -> np.ndarray:
        """Return coefficients as (4,) array in OpenCV order."""
        return np.array(astuple(self), dtype=np.float64)


@dataclass(frozen=True)
class RadialTangentialDistortion8:
    """Rational radial-tangential distortion with 8 coefficients.

    Radial factor (1 + k1 r^2 + k2 r^4 + k3 r^6) / (1 + k4 r^2 + k5 r^4 + k6 r^6),
    matching OpenCV's CALIB_RATIONAL_MODEL.
    """

    k1: float
    k2: float
    p1: float
    p2: float
    k3: float
    k4: float
    k5: float
    k6: float

    distortion_type = DistortionType.RADIAL_TANGENTIAL8
    num_coefficients = 8

    def to_array(self) -> np.ndarray:
        """Return coefficients as (8,) array in OpenCV order."""
        return np.array(astuple(self), dtype=np.float64)


@dataclass(frozen=True)
class EquidistantDistortion:
    """Equidistant (Kannala-Brandt / OpenCV fisheye) distortion."""

    k1: float
    k2: float
    k3: float
    k4: float

    distortion_type = DistortionType.EQUIDISTANT
    num_coefficients = 4

    def to_array(self) -> np.ndarray:
        """Return coefficients as (4,) array for cv2.fisheye."""
        return np.array(astuple(self), dtype=np.float64)


@dataclass(frozen=True)
class NoDistortion:
    """Ideal pinhole without distortion."""

    distortion_type = DistortionType.NONE
    num_coefficients = 0

    def to_array(self) -> np.ndarray:
        return np.zeros(0, dtype=np.float64)


Distortion = (
    RadialTangentialDistortion
    | RadialTangentialDistortion8
    | EquidistantDistortion
    | NoDistortion
)

_DISTORTION_CLASSES = {
    DistortionType.RADIAL_TANGENTIAL: RadialTangentialDistortion,
    DistortionType.RADIAL_TANGENTIAL8: RadialTangentialDistortion8,
    DistortionType.EQUIDISTANT: EquidistantDistortion,
    DistortionType.NONE: NoDistortion,
}


def make_distortion(
    distortion_type: DistortionType, coefficients: list[float] | np.ndarray
) -> Distortion:
    """Build a distortion model from its tag and coefficient list.

    Raises:
        ValueError: If the number of coefficients does not match the model
    """
    cls = _DISTORTION_CLASSES[distortion_type]
    coefficients = [float(c) for c in np.asarray(coefficients).flatten()]
    if len(coefficients) != cls.num_coefficients:
        raise ValueError(
            f"{distortion_type.value} distortion needs {cls.num_coefficients} "
            f"coefficients, got {len(coefficients)}"
        )
    return cls(*coefficients)
