"""Pinhole camera geometry with pluggable distortion."""

from __future__ import annotations

from dataclasses import dataclass, field

import cv2
import numpy as np

from .distortion import (
    Distortion,
    DistortionType,
    EquidistantDistortion,
    NoDistortion,
)


@dataclass(frozen=True)
class PinholeCamera:
    """Pinhole camera with a distortion model.

    Back-projection maps a pixel to a unit bearing vector in the camera
    frame (X-right, Y-down, Z-forward); projection maps a point in the
    camera frame to a distorted pixel.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        fu: Focal length u (pixels)
        fv: Focal length v (pixels)
        cu: Principal point u (pixels)
        cv: Principal point v (pixels)
        distortion: Distortion model
    """

    width: int
    height: int
    fu: float
    fv: float
    cu: float
    cv: float
    distortion: Distortion = field(default_factory=NoDistortion)

    @property
    def distortion_type(self) -> DistortionType:
        """Tag of the distortion model."""
        return self.distortion.distortion_type

    def focal_length_u(self) -> float:
        """Focal length in u direction (pixels)."""
        return float(self.fu)

    def focal_length_v(self) -> float:
        """Focal length in v direction (pixels)."""
        return float(self.fv)

    def camera_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fu, 0.0, self.cu], [0.0, self.fv, self.cv], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def back_project(self, keypoint: np.ndarray) -> np.ndarray | None:
        """Back-project a pixel to a unit bearing vector.

        Pixels slightly outside the image (sub-pixel refinement at the
        border) are back-projected like any other.

        Args:
            keypoint: (2,) pixel coordinates (u, v)

        Returns:
            (3,) unit bearing vector, or None if the pixel is not finite or
            cannot be undistorted
        """
        keypoint = np.asarray(keypoint, dtype=np.float64).flatten()
        if keypoint.shape != (2,) or not np.all(np.isfinite(keypoint)):
            return None

        if isinstance(self.distortion, NoDistortion):
            xy = np.array(
                [(keypoint[0] - self.cu) / self.fu, (keypoint[1] - self.cv) / self.fv]
            )
        else:
            pixel = keypoint.reshape(1, 1, 2)
            K = self.camera_matrix()
            D = self.distortion.to_array()
            if isinstance(self.distortion, EquidistantDistortion):
                undistorted = cv2.fisheye.undistortPoints(pixel, K, D)
            else:
                undistorted = cv2.undistortPoints(pixel, K, D)
            xy = undistorted.reshape(2)

        if not np.all(np.isfinite(xy)):
            return None

        bearing = np.array([xy[0], xy[1], 1.0], dtype=np.float64)
        return bearing / np.linalg.norm(bearing)

    def project(self, point_c: np.ndarray) -> np.ndarray | None:
        """Project a point in the camera frame to a distorted pixel.

        Args:
            point_c: (3,) point in camera frame

        Returns:
            (2,) pixel coordinates, or None if the point is behind the camera
        """
        point_c = np.asarray(point_c, dtype=np.float64).flatten()
        if point_c[2] <= 1e-9:
            return None

        if isinstance(self.distortion, NoDistortion):
            return np.array(
                [
                    self.fu * point_c[0] / point_c[2] + self.cu,
                    self.fv * point_c[1] / point_c[2] + self.cv,
                ]
            )

        object_points = point_c.reshape(1, 1, 3)
        rvec = np.zeros(3, dtype=np.float64)
        tvec = np.zeros(3, dtype=np.float64)
        K = self.camera_matrix()
        D = self.distortion.to_array()
        if isinstance(self.distortion, EquidistantDistortion):
            pixels, _ = cv2.fisheye.projectPoints(object_points, rvec, tvec, K, D)
        else:
            pixels, _ = cv2.projectPoints(object_points, rvec, tvec, K, D)
        return pixels.reshape(2)
