"""Multi-camera frame: the keypoints observed by every camera of a rig at one instant."""

from __future__ import annotations

from typing import NamedTuple

import numpy as np

from .cameras import NCameraSystem, PinholeCamera
from .kinematics import Transformation


class KeypointIdentifier(NamedTuple):
    """Identifies a keypoint by frame, camera and keypoint index."""

    frame_id: int
    camera_index: int
    keypoint_index: int


class MultiFrame:
    """Keypoints of all cameras of a rig for one frame.

    Keypoint sizes are the detector's scale estimate in pixels; they are
    used to derive the keypoint's measurement uncertainty.

    The per-camera extrinsics start out as the camera system's calibration
    and can be replaced by online estimates through set_T_SC().
    """

    def __init__(
        self,
        frame_id: int,
        camera_system: NCameraSystem,
        keypoints: list[np.ndarray] | None = None,
        keypoint_sizes: list[np.ndarray] | None = None,
        timestamp_ns: int = 0,
    ) -> None:
        """Initialize multi-frame.

        Args:
            frame_id: Unique frame ID
            camera_system: Rig calibration
            keypoints: Per camera (N_i, 2) keypoint pixel coordinates
            keypoint_sizes: Per camera (N_i,) keypoint sizes in pixels
            timestamp_ns: Frame timestamp in nanoseconds

        Raises:
            ValueError: If per-camera lists or arrays have inconsistent shapes
        """
        num_cameras = camera_system.num_cameras
        if keypoints is None:
            keypoints = [np.empty((0, 2)) for _ in range(num_cameras)]
        if keypoint_sizes is None:
            keypoint_sizes = [np.ones(len(kps)) for kps in keypoints]

        if len(keypoints) != num_cameras or len(keypoint_sizes) != num_cameras:
            raise ValueError(
                f"Expected keypoints for {num_cameras} cameras, got "
                f"{len(keypoints)} keypoint arrays and {len(keypoint_sizes)} size arrays"
            )

        self.id = frame_id
        self.timestamp_ns = timestamp_ns
        self._camera_system = camera_system
        self._T_SC = [camera_system.T_SC(i) for i in range(num_cameras)]
        self._keypoints: list[np.ndarray] = []
        self._keypoint_sizes: list[np.ndarray] = []

        for im, (kps, sizes) in enumerate(zip(keypoints, keypoint_sizes)):
            kps = np.asarray(kps, dtype=np.float64).reshape(-1, 2)
            sizes = np.asarray(sizes, dtype=np.float64).flatten()
            if len(sizes) != len(kps):
                raise ValueError(
                    f"Camera {im}: {len(kps)} keypoints but {len(sizes)} sizes"
                )
            self._keypoints.append(kps)
            self._keypoint_sizes.append(sizes)

    @property
    def camera_system(self) -> NCameraSystem:
        """Rig calibration this frame was observed with."""
        return self._camera_system

    @property
    def num_cameras(self) -> int:
        """Number of cameras."""
        return len(self._keypoints)

    def num_keypoints(self, camera_index: int) -> int:
        """Number of keypoints in camera camera_index."""
        return len(self._keypoints[camera_index])

    def keypoints(self, camera_index: int) -> np.ndarray:
        """(N, 2) keypoints of camera camera_index (read-only view)."""
        view = self._keypoints[camera_index].view()
        view.flags.writeable = False
        return view

    def keypoint_sizes(self, camera_index: int) -> np.ndarray:
        """(N,) keypoint sizes of camera camera_index (read-only view)."""
        view = self._keypoint_sizes[camera_index].view()
        view.flags.writeable = False
        return view

    def keypoint(self, camera_index: int, keypoint_index: int) -> np.ndarray:
        """Pixel coordinates of one keypoint."""
        return self._keypoints[camera_index][keypoint_index].copy()

    def keypoint_size(self, camera_index: int, keypoint_index: int) -> float:
        """Size (pixels) of one keypoint."""
        return float(self._keypoint_sizes[camera_index][keypoint_index])

    def back_projection(
        self, camera_index: int, keypoint_index: int
    ) -> np.ndarray | None:
        """Unit bearing vector of one keypoint, or None if back-projection fails."""
        return self.geometry(camera_index).back_project(
            self._keypoints[camera_index][keypoint_index]
        )

    def geometry(self, camera_index: int) -> PinholeCamera:
        """Geometry of camera camera_index."""
        return self._camera_system.geometry(camera_index)

    def T_SC(self, camera_index: int) -> Transformation:
        """Current extrinsics estimate of camera camera_index."""
        return self._T_SC[camera_index].copy()

    def set_T_SC(self, camera_index: int, T_SC: Transformation) -> None:
        """Replace the extrinsics estimate of camera camera_index."""
        self._T_SC[camera_index] = T_SC.copy()

    def keypoint_identifiers(self, camera_index: int) -> list[KeypointIdentifier]:
        """Identifiers of all keypoints of camera camera_index."""
        return [
            KeypointIdentifier(self.id, camera_index, k)
            for k in range(self.num_keypoints(camera_index))
        ]

    def __repr__(self) -> str:
        """Return string representation."""
        counts = [self.num_keypoints(i) for i in range(self.num_cameras)]
        return f"MultiFrame(id={self.id}, keypoints={counts})"
