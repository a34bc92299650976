"""Tests for LoopClosureNoncentralAbsoluteAdapter."""

import numpy as np
import pytest

from viocore.cameras import (
    EquidistantDistortion,
    NCameraSystem,
    PinholeCamera,
    RadialTangentialDistortion8,
)
from viocore.exceptions import (
    ConfigurationError,
    MixedDistortionError,
    UnsupportedDistortionError,
)
from viocore.kinematics import Transformation
from viocore.loop_closure import (
    FALLBACK_BEARING,
    KEYPOINT_SIZE_TO_STD,
    LoopClosureNoncentralAbsoluteAdapter,
    NULL_LANDMARK_ID,
)
from viocore.multiframe import KeypointIdentifier, MultiFrame

FRAME_ID = 3


def _homogeneous(point: np.ndarray, w: float = 1.0) -> np.ndarray:
    return np.append(w * np.asarray(point, dtype=np.float64), w)


def _observe(rig: NCameraSystem, camera_index: int, point_s: np.ndarray) -> np.ndarray:
    """Pixel of a body-frame point in one camera."""
    point_c = rig.T_SC(camera_index).inverse().transform_point(point_s)
    return rig.geometry(camera_index).project(point_c)


@pytest.fixture
def scene(stereo_rig: NCameraSystem):
    """Two-camera frame at the world origin with a mix of keypoint cases.

    Camera 0: matched finite landmark, unmatched keypoint, null landmark.
    Camera 1: landmark at infinity, finite landmark behind a keypoint that
    cannot be back-projected, finite landmark with homogeneous scale 2.
    """
    landmark_1 = np.array([0.3, -0.2, 4.0])
    landmark_3 = np.array([-0.5, 0.1, 3.0])
    landmark_4 = np.array([0.4, 0.3, 5.0])

    points = {
        1: _homogeneous(landmark_1),
        2: np.array([0.1, 0.2, 1.0, 1e-10]),
        3: _homogeneous(landmark_3),
        4: _homogeneous(landmark_4, w=2.0),
    }

    keypoints_0 = np.array(
        [
            _observe(stereo_rig, 0, landmark_1),
            [100.0, 100.0],
            [200.0, 200.0],
        ]
    )
    keypoints_1 = np.array(
        [
            [300.0, 300.0],
            [np.nan, 50.0],
            _observe(stereo_rig, 1, landmark_4),
        ]
    )
    frame = MultiFrame(
        frame_id=FRAME_ID,
        camera_system=stereo_rig,
        keypoints=[keypoints_0, keypoints_1],
        keypoint_sizes=[np.array([12.0, 8.0, 8.0]), np.array([8.0, 24.0, 6.0])],
    )
    matches = {
        KeypointIdentifier(FRAME_ID, 0, 0): 1,
        KeypointIdentifier(FRAME_ID, 0, 2): NULL_LANDMARK_ID,
        KeypointIdentifier(FRAME_ID, 1, 0): 2,
        KeypointIdentifier(FRAME_ID, 1, 1): 3,
        KeypointIdentifier(FRAME_ID, 1, 2): 4,
    }
    return points, matches, frame, (landmark_1, landmark_3, landmark_4)


def _single_camera_rig(camera: PinholeCamera) -> NCameraSystem:
    return NCameraSystem([Transformation.identity()], [camera])


class TestCorrespondences:
    """Test suite for correspondence construction."""

    def test_count(self, stereo_rig: NCameraSystem, scene):
        """Test that only matched, non-null, finite landmarks are kept."""
        points, matches, frame, _ = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        # landmark 1, landmark 3 (fallback bearing) and landmark 4
        assert adapter.num_correspondences() == 3
        assert len(adapter) == 3
        np.testing.assert_array_equal(adapter.camera_indices, [0, 1, 1])
        np.testing.assert_array_equal(adapter.keypoint_indices, [0, 1, 2])

    def test_points_are_dehomogenized(self, stereo_rig: NCameraSystem, scene):
        """Test world points of the correspondences."""
        points, matches, frame, (landmark_1, landmark_3, landmark_4) = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        np.testing.assert_allclose(adapter.point(0), landmark_1)
        np.testing.assert_allclose(adapter.point(1), landmark_3)
        np.testing.assert_allclose(adapter.point(2), landmark_4)

    def test_bearing_vectors(self, stereo_rig: NCameraSystem, scene):
        """Test that bearings point at the landmark in the observing camera."""
        points, matches, frame, (landmark_1, _, landmark_4) = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        expected_0 = landmark_1 / np.linalg.norm(landmark_1)
        point_c1 = stereo_rig.T_SC(1).inverse().transform_point(landmark_4)
        expected_2 = point_c1 / np.linalg.norm(point_c1)

        np.testing.assert_allclose(adapter.bearing_vector(0), expected_0, atol=1e-7)
        np.testing.assert_allclose(adapter.bearing_vector(2), expected_2, atol=1e-7)
        np.testing.assert_allclose(
            np.linalg.norm(adapter.bearing_vectors, axis=1), np.ones(3)
        )

    def test_failed_back_projection_uses_fallback(self, stereo_rig: NCameraSystem, scene):
        """Test that a keypoint without bearing keeps its correspondence."""
        points, matches, frame, _ = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        np.testing.assert_array_equal(adapter.bearing_vector(1), FALLBACK_BEARING)
        assert adapter.camera_index(1) == 1
        assert adapter.keypoint_index(1) == 1

    def test_camera_extrinsics(self, stereo_rig: NCameraSystem, scene):
        """Test camera offset and rotation lookup via the camera index."""
        points, matches, frame, _ = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        np.testing.assert_allclose(adapter.cam_offset(0), np.zeros(3))
        np.testing.assert_allclose(adapter.cam_rotation(0), np.eye(3), atol=1e-12)
        np.testing.assert_allclose(adapter.cam_offset(2), stereo_rig.T_SC(1).r)
        np.testing.assert_allclose(adapter.cam_rotation(2), stereo_rig.T_SC(1).C)

    def test_sigma_angle(self, stereo_rig: NCameraSystem, scene):
        """Test angular uncertainty from keypoint size and focal length."""
        points, matches, frame, _ = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        fu = stereo_rig.geometry(0).focal_length_u()
        keypoint_std = KEYPOINT_SIZE_TO_STD * 12.0
        expected = np.sqrt(2.0) * keypoint_std**2 / fu**2
        assert adapter.sigma_angle(0) == pytest.approx(expected)

        keypoint_std = KEYPOINT_SIZE_TO_STD * 24.0
        assert adapter.sigma_angle(1) == pytest.approx(
            np.sqrt(2.0) * keypoint_std**2 / fu**2
        )

    def test_extrinsics_captured_at_construction(self, stereo_rig: NCameraSystem, scene):
        """Test that later extrinsics updates of the frame are not seen."""
        points, matches, frame, _ = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)
        offset_before = adapter.cam_offset(2)

        frame.set_T_SC(
            1, Transformation(translation=[1.0, 2.0, 3.0], quaternion=[0, 0, 0, 1])
        )
        np.testing.assert_allclose(adapter.cam_offset(2), offset_before)

    def test_uses_frame_extrinsics_estimate(self, stereo_rig: NCameraSystem, scene):
        """Test that the frame's extrinsics estimate is used, not the calibration."""
        points, matches, frame, _ = scene
        T_SC1 = Transformation(translation=[0.12, 0.0, 0.0], quaternion=[0, 0, 0, 1])
        frame.set_T_SC(1, T_SC1)
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        np.testing.assert_allclose(adapter.cam_offset(2), [0.12, 0.0, 0.0])

    def test_matches_of_other_frames_are_ignored(self, stereo_rig: NCameraSystem, scene):
        """Test that keypoint identifiers must name this frame."""
        points, _, frame, _ = scene
        matches = {KeypointIdentifier(FRAME_ID + 1, 0, 0): 1}
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)
        assert adapter.num_correspondences() == 0

    def test_missing_landmark_raises(self, stereo_rig: NCameraSystem, scene):
        """Test that a dangling landmark ID is reported."""
        points, matches, frame, _ = scene
        del points[4]
        with pytest.raises(KeyError, match="Landmark 4"):
            LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

    def test_arrays_are_read_only(self, stereo_rig: NCameraSystem, scene):
        """Test that bulk views cannot be modified."""
        points, matches, frame, _ = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)
        with pytest.raises(ValueError):
            adapter.points[0, 0] = 1.0

    def test_queries_return_copies(self, stereo_rig: NCameraSystem, scene):
        """Test that modifying a query result does not change the adapter."""
        points, matches, frame, (landmark_1, _, _) = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)
        point = adapter.point(0)
        point[:] = 0.0
        np.testing.assert_allclose(adapter.point(0), landmark_1)


class TestIndexing:
    """Test suite for query bounds."""

    @pytest.mark.parametrize("index", [3, 100, -1])
    def test_out_of_range_raises(self, stereo_rig: NCameraSystem, scene, index):
        """Test that every query checks its index."""
        points, matches, frame, _ = scene
        adapter = LoopClosureNoncentralAbsoluteAdapter(points, matches, stereo_rig, frame)

        for query in (
            adapter.bearing_vector,
            adapter.point,
            adapter.cam_offset,
            adapter.cam_rotation,
            adapter.sigma_angle,
            adapter.camera_index,
            adapter.keypoint_index,
        ):
            with pytest.raises(IndexError, match="out of range"):
                query(index)


class TestSingleKeypoint:
    """End-to-end scenarios with one camera and one keypoint."""

    def _frame(self, rig: NCameraSystem) -> MultiFrame:
        return MultiFrame(
            frame_id=FRAME_ID,
            camera_system=rig,
            keypoints=[np.array([[367.215, 248.375]])],
            keypoint_sizes=[np.array([10.0])],
        )

    def test_null_landmark(self, radtan_camera: PinholeCamera):
        """Test that a null landmark association yields no correspondence."""
        rig = _single_camera_rig(radtan_camera)
        matches = {KeypointIdentifier(FRAME_ID, 0, 0): NULL_LANDMARK_ID}
        adapter = LoopClosureNoncentralAbsoluteAdapter(
            {1: np.array([0.0, 0.0, 1.0, 1.0])}, matches, rig, self._frame(rig)
        )
        assert adapter.num_correspondences() == 0

    def test_landmark_at_infinity(self, radtan_camera: PinholeCamera):
        """Test that a landmark with w = 1e-10 is excluded from all outputs."""
        rig = _single_camera_rig(radtan_camera)
        matches = {KeypointIdentifier(FRAME_ID, 0, 0): 5}
        adapter = LoopClosureNoncentralAbsoluteAdapter(
            {5: np.array([0.0, 0.0, 1.0, 1e-10])}, matches, rig, self._frame(rig)
        )

        assert adapter.num_correspondences() == 0
        assert adapter.points.shape == (0, 3)
        assert adapter.bearing_vectors.shape == (0, 3)
        assert adapter.sigma_angles.shape == (0,)
        assert adapter.camera_indices.shape == (0,)

    def test_no_association(self, radtan_camera: PinholeCamera):
        """Test that an unmatched keypoint yields no correspondence."""
        rig = _single_camera_rig(radtan_camera)
        adapter = LoopClosureNoncentralAbsoluteAdapter({}, {}, rig, self._frame(rig))
        assert adapter.num_correspondences() == 0

    def test_finite_landmark(self, radtan_camera: PinholeCamera):
        """Test the principal point keypoint looking at a landmark ahead."""
        rig = _single_camera_rig(radtan_camera)
        matches = {KeypointIdentifier(FRAME_ID, 0, 0): 5}
        adapter = LoopClosureNoncentralAbsoluteAdapter(
            {5: np.array([0.0, 0.0, 3.0, 1.0])}, matches, rig, self._frame(rig)
        )

        assert adapter.num_correspondences() == 1
        np.testing.assert_allclose(adapter.bearing_vector(0), [0, 0, 1], atol=1e-7)
        np.testing.assert_allclose(adapter.point(0), [0.0, 0.0, 3.0])

    def test_keypoint_just_outside_image(self, radtan_camera: PinholeCamera):
        """Test that a sub-pixel keypoint left of the image gets its true bearing."""
        rig = _single_camera_rig(radtan_camera)
        frame = MultiFrame(
            frame_id=FRAME_ID,
            camera_system=rig,
            keypoints=[np.array([[-0.3, 248.375]])],
        )
        matches = {KeypointIdentifier(FRAME_ID, 0, 0): 5}
        adapter = LoopClosureNoncentralAbsoluteAdapter(
            {5: np.array([0.0, 0.0, 3.0, 1.0])}, matches, rig, frame
        )

        ray = np.array([(-0.3 - radtan_camera.cu) / radtan_camera.fu, 0.0, 1.0])
        np.testing.assert_allclose(
            adapter.bearing_vector(0), ray / np.linalg.norm(ray), atol=1e-7
        )
        assert not np.allclose(adapter.bearing_vector(0), FALLBACK_BEARING)

    def test_fallback_bearing_is_read_only(self):
        """Test that the shared fallback bearing cannot be modified."""
        with pytest.raises(ValueError):
            FALLBACK_BEARING[0] = 0.0


class TestDistortionChecks:
    """Test suite for rig distortion validation."""

    def test_mixed_distortion_raises(
        self, radtan_camera: PinholeCamera, equidistant_camera: PinholeCamera
    ):
        """Test that a rig mixing distortion models is rejected."""
        rig = NCameraSystem(
            [Transformation.identity(), Transformation.identity()],
            [radtan_camera, equidistant_camera],
        )
        frame = MultiFrame(frame_id=FRAME_ID, camera_system=rig)
        with pytest.raises(MixedDistortionError, match="Mixed distortion"):
            LoopClosureNoncentralAbsoluteAdapter({}, {}, rig, frame)

    def test_unsupported_distortion_raises(self):
        """Test that cameras without distortion model are rejected."""
        camera = PinholeCamera(
            width=640, height=480, fu=500.0, fv=500.0, cu=320.0, cv=240.0
        )
        rig = _single_camera_rig(camera)
        frame = MultiFrame(frame_id=FRAME_ID, camera_system=rig)
        with pytest.raises(UnsupportedDistortionError, match="Unsupported"):
            LoopClosureNoncentralAbsoluteAdapter({}, {}, rig, frame)

    def test_empty_rig_raises(self):
        """Test that a rig needs at least one camera."""
        rig = NCameraSystem([], [])
        frame = MultiFrame(frame_id=FRAME_ID, camera_system=rig)
        with pytest.raises(ConfigurationError, match="no cameras"):
            LoopClosureNoncentralAbsoluteAdapter({}, {}, rig, frame)

    @pytest.mark.parametrize(
        "distortion",
        [
            EquidistantDistortion(0.01, 0.0, 0.0, 0.0),
            RadialTangentialDistortion8(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
        ],
    )
    def test_uniform_supported_distortion(self, distortion):
        """Test that a rig sharing one supported model is accepted."""
        camera = PinholeCamera(
            width=640,
            height=480,
            fu=400.0,
            fv=400.0,
            cu=320.0,
            cv=240.0,
            distortion=distortion,
        )
        rig = NCameraSystem(
            [Transformation.identity(), Transformation.identity()], [camera, camera]
        )
        frame = MultiFrame(
            frame_id=FRAME_ID,
            camera_system=rig,
            keypoints=[np.array([[320.0, 240.0]]), np.array([[320.0, 240.0]])],
        )
        matches = {KeypointIdentifier(FRAME_ID, 1, 0): 9}
        adapter = LoopClosureNoncentralAbsoluteAdapter(
            {9: np.array([0.0, 0.0, 2.0, 1.0])}, matches, rig, frame
        )

        assert adapter.num_correspondences() == 1
        assert adapter.camera_index(0) == 1
        np.testing.assert_allclose(adapter.bearing_vector(0), [0, 0, 1], atol=1e-7)
