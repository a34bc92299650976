"""Shared fixtures."""

import numpy as np
import pytest

from viocore.cameras import (
    EquidistantDistortion,
    NCameraSystem,
    PinholeCamera,
    RadialTangentialDistortion,
)
from viocore.kinematics import Transformation, rotation_to_quat


def random_transformation(rng: np.random.Generator, scale: float = 1.0) -> Transformation:
    """Random pose with translation of the given scale and any rotation."""
    q = rng.normal(size=4)
    return Transformation(translation=scale * rng.normal(size=3), quaternion=q)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def radtan_camera() -> PinholeCamera:
    """752x480 camera with zero radial-tangential distortion."""
    return PinholeCamera(
        width=752,
        height=480,
        fu=458.654,
        fv=457.296,
        cu=367.215,
        cv=248.375,
        distortion=RadialTangentialDistortion(0.0, 0.0, 0.0, 0.0),
    )


@pytest.fixture
def equidistant_camera() -> PinholeCamera:
    return PinholeCamera(
        width=640,
        height=480,
        fu=300.0,
        fv=300.0,
        cu=320.0,
        cv=240.0,
        distortion=EquidistantDistortion(0.01, -0.002, 0.0, 0.0),
    )


@pytest.fixture
def stereo_rig(radtan_camera: PinholeCamera) -> NCameraSystem:
    """Two forward-looking cameras, the second 11cm to the right and slightly yawed."""
    C_SC1 = np.array(
        [
            [np.cos(0.1), 0.0, np.sin(0.1)],
            [0.0, 1.0, 0.0],
            [-np.sin(0.1), 0.0, np.cos(0.1)],
        ]
    )
    T_SC0 = Transformation.identity()
    T_SC1 = Transformation(
        translation=np.array([0.11, 0.0, 0.0]),
        quaternion=rotation_to_quat(C_SC1),
    )
    return NCameraSystem([T_SC0, T_SC1], [radtan_camera, radtan_camera])
