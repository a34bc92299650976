"""Correspondences for non-central absolute pose estimation at loop closure.

Given a multi-camera frame, the association of its keypoints to landmarks
and the landmark positions, this builds the 2D-3D correspondences consumed
by a generalized (non-central) absolute pose solver such as GP3P inside
RANSAC: per correspondence a bearing vector in the observing camera, the
landmark in world coordinates, the observing camera's extrinsics in the
rig and the angular uncertainty of the bearing.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

import numpy as np

from ..cameras import DistortionType, NCameraSystem
from ..exceptions import (
    ConfigurationError,
    MixedDistortionError,
    UnsupportedDistortionError,
)
from ..multiframe import KeypointIdentifier, MultiFrame

logger = logging.getLogger(__name__)

# Landmark ID reserved for "not a landmark"
NULL_LANDMARK_ID = 0

# Homogeneous coordinate below which a landmark is considered at infinity
INFINITY_THRESHOLD = 1.0e-8

# Keypoint size (pixels) to keypoint standard deviation (pixels)
KEYPOINT_SIZE_TO_STD = 0.8 / 12.0

# Used when a keypoint cannot be back-projected
FALLBACK_BEARING = np.array([1.0, 0.0, 0.0])
FALLBACK_BEARING.flags.writeable = False

SUPPORTED_DISTORTIONS = (
    DistortionType.RADIAL_TANGENTIAL,
    DistortionType.RADIAL_TANGENTIAL8,
    DistortionType.EQUIDISTANT,
)


def _check_distortion(camera_system: NCameraSystem) -> DistortionType:
    """Return the rig's shared distortion type.

    Raises:
        MixedDistortionError: If cameras use different distortion models
        UnsupportedDistortionError: If the shared model is not supported
    """
    if camera_system.num_cameras == 0:
        raise ConfigurationError("Camera system has no cameras")
    distortion_type = camera_system.distortion_type(0)
    for i in range(1, camera_system.num_cameras):
        if camera_system.distortion_type(i) != distortion_type:
            raise MixedDistortionError(
                "Mixed distortion types are not supported: camera 0 uses "
                f"{distortion_type.value}, camera {i} uses "
                f"{camera_system.distortion_type(i).value}"
            )
    if distortion_type not in SUPPORTED_DISTORTIONS:
        raise UnsupportedDistortionError(
            f"Unsupported distortion type: {distortion_type.value}"
        )
    return distortion_type


class LoopClosureNoncentralAbsoluteAdapter:
    """2D-3D correspondences of a multi-camera frame against a landmark map.

    All correspondences are built at construction and never change
    afterwards. The camera extrinsics are captured from the frame at
    construction time; later changes to the frame's estimates are not seen.

    Example:
        >>> adapter = LoopClosureNoncentralAbsoluteAdapter(
        ...     points, matches, camera_system, frame
        ... )
        >>> for i in range(len(adapter)):
        ...     f = adapter.bearing_vector(i)
        ...     p = adapter.point(i)
    """

    def __init__(
        self,
        points: Mapping[int, np.ndarray],
        matches: Mapping[KeypointIdentifier, int],
        camera_system: NCameraSystem,
        frame: MultiFrame,
    ) -> None:
        """Build correspondences.

        Args:
            points: Landmark store, landmark ID -> (4,) homogeneous point in
                world frame. Only read.
            matches: Keypoint identifier -> landmark ID
            camera_system: Rig calibration; all cameras must share one of
                the supported distortion models
            frame: Frame whose keypoints are matched

        Raises:
            MixedDistortionError: If the rig mixes distortion models
            UnsupportedDistortionError: If the distortion model is not supported
            KeyError: If a matched landmark ID is missing from the store
        """
        _check_distortion(camera_system)

        cam_offsets: list[np.ndarray] = []
        cam_rotations: list[np.ndarray] = []
        world_points: list[np.ndarray] = []
        bearing_vectors: list[np.ndarray] = []
        sigma_angles: list[float] = []
        cam_indices: list[int] = []
        keypoint_indices: list[int] = []

        num_unmatched = 0
        num_at_infinity = 0
        num_fallback = 0

        for im in range(camera_system.num_cameras):
            # The frame's T_SC estimate may differ slightly from the
            # calibration; it is captured once here.
            T_SC = frame.T_SC(im)
            cam_offsets.append(T_SC.r.copy())
            cam_rotations.append(T_SC.C)

            fu = frame.geometry(im).focal_length_u()

            for k in range(frame.num_keypoints(im)):
                landmark_id = matches.get(KeypointIdentifier(frame.id, im, k))
                if landmark_id is None or landmark_id == NULL_LANDMARK_ID:
                    num_unmatched += 1
                    continue

                if landmark_id not in points:
                    raise KeyError(f"Landmark {landmark_id} not in landmark store")
                hp = np.asarray(points[landmark_id], dtype=np.float64).flatten()

                if abs(hp[3]) < INFINITY_THRESHOLD:
                    num_at_infinity += 1
                    continue

                world_points.append(hp[:3] / hp[3])

                bearing = frame.back_projection(im, k)
                if bearing is None:
                    # TODO: decide whether failed back-projections should be
                    # dropped instead of using the forward fallback
                    bearing = FALLBACK_BEARING.copy()
                    num_fallback += 1
                bearing_vectors.append(bearing / np.linalg.norm(bearing))

                keypoint_std = KEYPOINT_SIZE_TO_STD * frame.keypoint_size(im, k)
                sigma_angles.append(np.sqrt(2.0) * keypoint_std**2 / (fu * fu))

                cam_indices.append(im)
                keypoint_indices.append(k)

        self._cam_offsets = np.array(cam_offsets, dtype=np.float64).reshape(-1, 3)
        self._cam_rotations = np.array(cam_rotations, dtype=np.float64).reshape(
            -1, 3, 3
        )
        self._points = np.array(world_points, dtype=np.float64).reshape(-1, 3)
        self._bearing_vectors = np.array(bearing_vectors, dtype=np.float64).reshape(
            -1, 3
        )
        self._sigma_angles = np.array(sigma_angles, dtype=np.float64)
        self._cam_indices = np.array(cam_indices, dtype=np.int64)
        self._keypoint_indices = np.array(keypoint_indices, dtype=np.int64)

        for array in (
            self._cam_offsets,
            self._cam_rotations,
            self._points,
            self._bearing_vectors,
            self._sigma_angles,
            self._cam_indices,
            self._keypoint_indices,
        ):
            array.flags.writeable = False

        logger.debug(
            "Frame %d: %d correspondences (%d unmatched, %d at infinity, "
            "%d fallback bearings)",
            frame.id,
            len(self._points),
            num_unmatched,
            num_at_infinity,
            num_fallback,
        )

    def _check_index(self, index: int) -> int:
        if not 0 <= index < len(self._points):
            raise IndexError(
                f"Correspondence index {index} out of range [0, {len(self._points)})"
            )
        return index

    def bearing_vector(self, index: int) -> np.ndarray:
        """Unit bearing vector of a correspondence in its camera frame."""
        return self._bearing_vectors[self._check_index(index)].copy()

    def point(self, index: int) -> np.ndarray:
        """World point of a correspondence."""
        return self._points[self._check_index(index)].copy()

    def cam_offset(self, index: int) -> np.ndarray:
        """Position of the observing camera in the rig frame (r_SC)."""
        return self._cam_offsets[self._cam_indices[self._check_index(index)]].copy()

    def cam_rotation(self, index: int) -> np.ndarray:
        """Rotation from the observing camera to the rig frame (C_SC)."""
        return self._cam_rotations[self._cam_indices[self._check_index(index)]].copy()

    def sigma_angle(self, index: int) -> float:
        """Angular standard deviation of a correspondence [rad]."""
        return float(self._sigma_angles[self._check_index(index)])

    def camera_index(self, index: int) -> int:
        """Index of the camera that observed a correspondence."""
        return int(self._cam_indices[self._check_index(index)])

    def keypoint_index(self, index: int) -> int:
        """Index of the keypoint of a correspondence within its camera."""
        return int(self._keypoint_indices[self._check_index(index)])

    def num_correspondences(self) -> int:
        """Number of correspondences.

        Keypoints with a non-null landmark that is not at infinity.
        """
        return len(self._points)

    @property
    def bearing_vectors(self) -> np.ndarray:
        """(N, 3) bearing vectors (read-only)."""
        return self._bearing_vectors

    @property
    def points(self) -> np.ndarray:
        """(N, 3) world points (read-only)."""
        return self._points

    @property
    def sigma_angles(self) -> np.ndarray:
        """(N,) angular standard deviations (read-only)."""
        return self._sigma_angles

    @property
    def camera_indices(self) -> np.ndarray:
        """(N,) observing camera indices (read-only)."""
        return self._cam_indices

    @property
    def keypoint_indices(self) -> np.ndarray:
        """(N,) keypoint indices (read-only)."""
        return self._keypoint_indices

    def __len__(self) -> int:
        return self.num_correspondences()
