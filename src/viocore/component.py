"""A SLAM run: calibration, pose graph and multi-frames, with load/save.

On disk a component is a directory holding

    component.yaml   IMU parameters, camera system, graph and frame index
    frames.npz       keypoints and keypoint sizes of every frame
"""

from __future__ import annotations

import logging
import pickle
import zipfile
from dataclasses import asdict, dataclass, field
from pathlib import Path

import numpy as np
import yaml

from .cameras import NCameraSystem
from .factors import RelativePoseError
from .kinematics import Transformation
from .loop_closure import PoseGraph
from .multiframe import MultiFrame

logger = logging.getLogger(__name__)

COMPONENT_FILE = "component.yaml"
FRAMES_FILE = "frames.npz"
FORMAT_VERSION = 1


@dataclass
class ImuParameters:
    """IMU noise parameters from sensor calibration.

    Attributes:
        gyro_noise_density: Gyroscope white noise (rad/s/√Hz)
        gyro_random_walk: Gyroscope bias random walk (rad/s²/√Hz)
        accel_noise_density: Accelerometer white noise (m/s²/√Hz)
        accel_random_walk: Accelerometer bias random walk (m/s³/√Hz)
        T_BS: 4x4 transform from IMU frame to body frame
        rate_hz: IMU sampling rate in Hz
        gravity_magnitude: Gravity magnitude in m/s²
    """

    gyro_noise_density: float = 1.6968e-04
    gyro_random_walk: float = 1.9393e-05
    accel_noise_density: float = 2.0000e-3
    accel_random_walk: float = 3.0000e-3
    T_BS: np.ndarray = field(default_factory=lambda: np.eye(4))
    rate_hz: float = 200.0
    gravity_magnitude: float = 9.81

    def __post_init__(self) -> None:
        """Ensure T_BS is a 4x4 float array."""
        self.T_BS = np.asarray(self.T_BS, dtype=np.float64).reshape(4, 4)

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> ImuParameters:
        """Load from a EuRoC imu0/sensor.yaml.

        Missing noise entries keep their defaults.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If T_BS is malformed
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"IMU calibration not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        defaults = cls()
        T_BS = defaults.T_BS
        T_BS_data = (data.get("T_BS") or {}).get("data")
        if T_BS_data is not None:
            if len(T_BS_data) != 16:
                raise ValueError(
                    f"Expected 16 values for T_BS in {yaml_path}, got {len(T_BS_data)}"
                )
            T_BS = np.array(T_BS_data, dtype=np.float64).reshape(4, 4)

        return cls(
            gyro_noise_density=float(
                data.get("gyroscope_noise_density", defaults.gyro_noise_density)
            ),
            gyro_random_walk=float(
                data.get("gyroscope_random_walk", defaults.gyro_random_walk)
            ),
            accel_noise_density=float(
                data.get("accelerometer_noise_density", defaults.accel_noise_density)
            ),
            accel_random_walk=float(
                data.get("accelerometer_random_walk", defaults.accel_random_walk)
            ),
            T_BS=T_BS,
            rate_hz=float(data.get("rate_hz", defaults.rate_hz)),
            gravity_magnitude=float(
                data.get("gravity_magnitude", defaults.gravity_magnitude)
            ),
        )

    def to_dict(self) -> dict:
        """Serialize to plain Python types (YAML friendly)."""
        data = asdict(self)
        data["T_BS"] = self.T_BS.flatten().tolist()
        return {k: (float(v) if k != "T_BS" else v) for k, v in data.items()}

    @classmethod
    def from_dict(cls, data: dict) -> ImuParameters:
        """Inverse of to_dict."""
        return cls(**data)


class Component:
    """Container of a SLAM run.

    Groups the IMU parameters, the multi-camera calibration, the full pose
    graph and all multi-frames keyed by state ID. The graph is either owned
    by the component (created when none is given) or a reference to a graph
    owned elsewhere. Frames are always owned.
    """

    def __init__(
        self,
        imu_parameters: ImuParameters,
        camera_system: NCameraSystem,
        graph: PoseGraph | None = None,
        multi_frames: dict[int, MultiFrame] | None = None,
    ) -> None:
        """Initialize component.

        Args:
            imu_parameters: IMU parameters of this run
            camera_system: Multi-camera configuration of this run
            graph: Full graph to reference; a new owned graph if None
            multi_frames: State ID -> multi-frame, copied into the component
        """
        self.imu_parameters = imu_parameters
        self.camera_system = camera_system
        self._owns_graph = graph is None
        self._graph = graph if graph is not None else PoseGraph()
        self.multi_frames: dict[int, MultiFrame] = dict(multi_frames or {})

    @property
    def graph(self) -> PoseGraph:
        """The full pose graph."""
        return self._graph

    @property
    def owns_graph(self) -> bool:
        """Whether the graph was created by (and belongs to) this component."""
        return self._owns_graph

    def save(self, path: str | Path) -> bool:
        """Save this component into a directory.

        Args:
            path: Output directory, created if missing

        Returns:
            True on success
        """
        directory = Path(path)
        try:
            directory.mkdir(parents=True, exist_ok=True)

            arrays: dict[str, np.ndarray] = {}
            frames = []
            for state_id, frame in sorted(self.multi_frames.items()):
                for im in range(frame.num_cameras):
                    key = f"{state_id}_{im}"
                    arrays[f"keypoints_{key}"] = np.asarray(frame.keypoints(im))
                    arrays[f"sizes_{key}"] = np.asarray(frame.keypoint_sizes(im))
                frames.append(
                    {
                        "state_id": int(state_id),
                        "frame_id": int(frame.id),
                        "timestamp_ns": int(frame.timestamp_ns),
                        "num_cameras": frame.num_cameras,
                        "T_SC": [
                            frame.T_SC(im).parameters().tolist()
                            for im in range(frame.num_cameras)
                        ],
                    }
                )

            content = {
                "version": FORMAT_VERSION,
                "imu_parameters": self.imu_parameters.to_dict(),
                "camera_system": self.camera_system.to_dict(),
                "graph": self._graph_to_dict(),
                "frames": frames,
            }

            with open(directory / COMPONENT_FILE, "w") as f:
                yaml.safe_dump(content, f, sort_keys=False)
            np.savez(directory / FRAMES_FILE, **arrays)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to save component to %s: %s", directory, e)
            return False

        logger.debug(
            "Saved component to %s (%d poses, %d frames)",
            directory,
            self._graph.num_poses,
            len(self.multi_frames),
        )
        return True

    def load(self, path: str | Path) -> bool:
        """Load a component saved with save(), replacing the current content.

        The graph is refilled in place, so a referenced graph sees the
        loaded poses and edges.

        Args:
            path: Directory written by save()

        Returns:
            True on success; on failure the component is left unchanged
        """
        directory = Path(path)
        try:
            with open(directory / COMPONENT_FILE, "r") as f:
                content = yaml.safe_load(f)
            if not isinstance(content, dict):
                raise ValueError(f"Invalid component file in {directory}")
            if content.get("version") != FORMAT_VERSION:
                raise ValueError(
                    f"Unsupported component version {content.get('version')}"
                )

            imu_parameters = ImuParameters.from_dict(content["imu_parameters"])
            camera_system = NCameraSystem.from_dict(content["camera_system"])
            poses, edges = self._graph_from_dict(content["graph"])

            multi_frames: dict[int, MultiFrame] = {}
            with np.load(directory / FRAMES_FILE) as arrays:
                for entry in content["frames"]:
                    state_id = int(entry["state_id"])
                    num_cameras = int(entry["num_cameras"])
                    keys = [f"{state_id}_{im}" for im in range(num_cameras)]
                    frame = MultiFrame(
                        frame_id=int(entry["frame_id"]),
                        camera_system=camera_system,
                        keypoints=[arrays[f"keypoints_{k}"] for k in keys],
                        keypoint_sizes=[arrays[f"sizes_{k}"] for k in keys],
                        timestamp_ns=int(entry["timestamp_ns"]),
                    )
                    for im, params in enumerate(entry["T_SC"]):
                        frame.set_T_SC(im, Transformation.from_parameters(params))
                    multi_frames[state_id] = frame
        except (
            OSError,
            EOFError,
            KeyError,
            TypeError,
            ValueError,
            pickle.UnpicklingError,
            zipfile.BadZipFile,
            yaml.YAMLError,
        ) as e:
            logger.warning("Failed to load component from %s: %s", directory, e)
            return False

        self.imu_parameters = imu_parameters
        self.camera_system = camera_system
        self._graph.clear()
        for state_id, pose in poses.items():
            self._graph.add_pose(state_id, pose)
        for from_id, to_id, error, is_loop in edges:
            self._graph.add_relative_pose_error(from_id, to_id, error, is_loop)
        self.multi_frames = multi_frames

        logger.debug(
            "Loaded component from %s (%d poses, %d frames)",
            directory,
            len(poses),
            len(multi_frames),
        )
        return True

    def _graph_to_dict(self) -> dict:
        return {
            "poses": {
                int(state_id): pose.parameters().tolist()
                for state_id, pose in sorted(self._graph.poses.items())
            },
            "edges": [
                {
                    "from_id": int(edge.from_id),
                    "to_id": int(edge.to_id),
                    "is_loop": bool(edge.is_loop),
                    "T_AB": edge.error.measurement.parameters().tolist(),
                    "information": edge.error.information.tolist(),
                }
                for edge in self._graph.edges
            ],
        }

    @staticmethod
    def _graph_from_dict(
        data: dict,
    ) -> tuple[dict[int, Transformation], list[tuple[int, int, RelativePoseError, bool]]]:
        poses = {
            int(state_id): Transformation.from_parameters(params)
            for state_id, params in (data.get("poses") or {}).items()
        }
        edges = []
        for entry in data.get("edges") or []:
            from_id, to_id = int(entry["from_id"]), int(entry["to_id"])
            for state_id in (from_id, to_id):
                if state_id not in poses:
                    raise ValueError(f"Edge references unknown state {state_id}")
            error = RelativePoseError(
                np.array(entry["information"], dtype=np.float64),
                Transformation.from_parameters(entry["T_AB"]),
            )
            edges.append((from_id, to_id, error, bool(entry["is_loop"])))
        return poses, edges
