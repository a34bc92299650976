"""Multi-camera rig calibration."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import yaml

from ..kinematics import Transformation
from .distortion import DistortionType, make_distortion
from .pinhole_camera import PinholeCamera


class NCameraSystem:
    """Calibration of a rig of cameras rigidly attached to a body frame S.

    Each camera i has an extrinsic T_SC (camera to body) and a geometry.
    """

    def __init__(
        self,
        T_SC: list[Transformation],
        geometries: list[PinholeCamera],
    ) -> None:
        """Initialize camera system.

        Args:
            T_SC: Per-camera extrinsics (camera frame to body frame)
            geometries: Per-camera geometry, same length as T_SC

        Raises:
            ValueError: If the lists differ in length
        """
        if len(T_SC) != len(geometries):
            raise ValueError(
                f"Got {len(T_SC)} extrinsics but {len(geometries)} geometries"
            )
        self._T_SC = [T.copy() for T in T_SC]
        self._geometries = list(geometries)

    @classmethod
    def from_yaml(cls, yaml_paths: list[str | Path]) -> NCameraSystem:
        """Load a camera system from one EuRoC sensor.yaml per camera.

        Args:
            yaml_paths: Calibration file per camera, in camera index order

        Returns:
            NCameraSystem

        Raises:
            FileNotFoundError: If a calibration file doesn't exist
            ValueError: If calibration data is invalid
        """
        extrinsics = []
        geometries = []
        for yaml_path in yaml_paths:
            T_SC, geometry = load_camera_calibration(yaml_path)
            extrinsics.append(T_SC)
            geometries.append(geometry)
        return cls(extrinsics, geometries)

    @property
    def num_cameras(self) -> int:
        """Number of cameras in the rig."""
        return len(self._geometries)

    def T_SC(self, camera_index: int) -> Transformation:
        """Extrinsics of camera camera_index (camera to body)."""
        return self._T_SC[camera_index].copy()

    def geometry(self, camera_index: int) -> PinholeCamera:
        """Geometry of camera camera_index."""
        return self._geometries[camera_index]

    def distortion_type(self, camera_index: int) -> DistortionType:
        """Distortion model tag of camera camera_index."""
        return self._geometries[camera_index].distortion_type

    def to_dict(self) -> dict:
        """Serialize to plain Python types (YAML friendly)."""
        cameras = []
        for T_SC, geometry in zip(self._T_SC, self._geometries):
            cameras.append(
                {
                    "T_SC": T_SC.parameters().tolist(),
                    "resolution": [int(geometry.width), int(geometry.height)],
                    "intrinsics": [
                        float(geometry.fu),
                        float(geometry.fv),
                        float(geometry.cu),
                        float(geometry.cv),
                    ],
                    "distortion_model": geometry.distortion_type.value,
                    "distortion_coefficients": geometry.distortion.to_array().tolist(),
                }
            )
        return {"cameras": cameras}

    @classmethod
    def from_dict(cls, data: dict) -> NCameraSystem:
        """Inverse of to_dict."""
        extrinsics = []
        geometries = []
        for camera in data["cameras"]:
            extrinsics.append(Transformation.from_parameters(camera["T_SC"]))
            width, height = camera["resolution"]
            fu, fv, cu, cv = camera["intrinsics"]
            distortion = make_distortion(
                DistortionType.from_name(camera["distortion_model"]),
                camera["distortion_coefficients"],
            )
            geometries.append(
                PinholeCamera(
                    width=int(width),
                    height=int(height),
                    fu=float(fu),
                    fv=float(fv),
                    cu=float(cu),
                    cv=float(cv),
                    distortion=distortion,
                )
            )
        return cls(extrinsics, geometries)

    def __len__(self) -> int:
        return self.num_cameras


def load_camera_calibration(
    yaml_path: str | Path,
) -> tuple[Transformation, PinholeCamera]:
    """Parse a EuRoC sensor.yaml camera calibration file.

    Args:
        yaml_path: Path to sensor.yaml file

    Returns:
        Tuple of (T_SC, geometry)

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is invalid
    """
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"Calibration file not found: {yaml_path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Invalid calibration file {yaml_path}")

    # Parse intrinsics [fu, fv, cu, cv]
    intrinsics_list = data.get("intrinsics")
    if intrinsics_list is None or len(intrinsics_list) != 4:
        raise ValueError(f"Invalid intrinsics in {yaml_path}")

    resolution = data.get("resolution")
    if resolution is None or len(resolution) != 2:
        raise ValueError(f"Invalid resolution in {yaml_path}")

    distortion_type = DistortionType.from_name(
        data.get("distortion_model", "radial-tangential")
    )
    distortion_list = data.get("distortion_coefficients")
    if distortion_list is None:
        distortion_list = []
    try:
        distortion = make_distortion(distortion_type, distortion_list)
    except ValueError as e:
        raise ValueError(f"Invalid distortion coefficients in {yaml_path}: {e}") from e

    # Parse T_BS (camera-to-body transform)
    T_BS_data = (data.get("T_BS") or {}).get("data")
    if T_BS_data is None or len(T_BS_data) != 16:
        raise ValueError(f"Invalid T_BS transform in {yaml_path}")
    T_SC = Transformation.from_matrix(
        np.array(T_BS_data, dtype=np.float64).reshape(4, 4)
    )

    geometry = PinholeCamera(
        width=int(resolution[0]),
        height=int(resolution[1]),
        fu=float(intrinsics_list[0]),
        fv=float(intrinsics_list[1]),
        cu=float(intrinsics_list[2]),
        cv=float(intrinsics_list[3]),
        distortion=distortion,
    )
    return T_SC, geometry
