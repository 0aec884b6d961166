"""Value types shared by the pose producer and every measurement consumer."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Translation:
    x: float  # mm
    y: float  # mm
    z: float  # mm


@dataclass(frozen=True)
class Rotation:
    roll: float  # degrees
    pitch: float  # degrees
    yaw: float  # degrees


@dataclass(frozen=True)
class Displacement:
    """Difference between two poses.

    Only the yaw difference is reported; roll and pitch are not part of the
    summary.
    """

    dx: float
    dy: float
    dz: float
    dyaw: float
    distance_2d: float
    distance_3d: float


@dataclass(frozen=True)
class PoseRecord:
    """Board pose in the camera frame for a single processed frame."""

    translation: Translation
    rotation: Rotation
    quality: float
    num_corners: int
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not 0.0 <= self.quality <= 1.0:
            raise ValueError(f"quality must be in [0, 1], got {self.quality}")
        if self.num_corners < 0:
            raise ValueError(f"num_corners must be >= 0, got {self.num_corners}")

    def displacement_from(self, other: "PoseRecord") -> Displacement:
        dx = self.translation.x - other.translation.x
        dy = self.translation.y - other.translation.y
        dz = self.translation.z - other.translation.z
        dyaw = self.rotation.yaw - other.rotation.yaw
        return Displacement(
            dx=dx,
            dy=dy,
            dz=dz,
            dyaw=dyaw,
            distance_2d=math.sqrt(dx * dx + dy * dy),
            distance_3d=math.sqrt(dx * dx + dy * dy + dz * dz),
        )


@dataclass(frozen=True)
class StdDev:
    x_mm: float = 0.0
    y_mm: float = 0.0
    z_mm: float = 0.0


@dataclass(frozen=True)
class SpotMeasurement:
    pose: PoseRecord
    num_samples: int
    std_dev: StdDev


@dataclass(frozen=True)
class TrajectoryData:
    poses: Tuple[PoseRecord, ...]
    start_time: float
    end_time: float
    total_displacement: Displacement

    def __post_init__(self) -> None:
        object.__setattr__(self, "poses", tuple(self.poses))
        if not self.poses:
            raise ValueError("trajectory must contain at least one pose")
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time {self.end_time} is before start_time {self.start_time}"
            )

    @property
    def num_poses(self) -> int:
        return len(self.poses)

    @property
    def duration_sec(self) -> float:
        return self.end_time - self.start_time


def _readonly(a, dtype=np.float64) -> np.ndarray:
    arr = np.array(a, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class CalibrationResult:
    """Camera intrinsics produced by one calibration pass.

    The matrices are private read-only copies, so a result can be handed to
    several consumers without any of them affecting the others.
    """

    camera_matrix: np.ndarray
    dist_coeffs: np.ndarray
    reprojection_error: float
    num_frames: int
    image_size: Optional[Tuple[int, int]] = None

    def __post_init__(self) -> None:
        K = _readonly(self.camera_matrix)
        if K.shape != (3, 3):
            raise ValueError(f"camera_matrix must be 3x3, got {K.shape}")
        dist = _readonly(np.asarray(self.dist_coeffs, dtype=np.float64).reshape(1, -1))
        object.__setattr__(self, "camera_matrix", K)
        object.__setattr__(self, "dist_coeffs", dist)
        object.__setattr__(self, "reprojection_error", float(self.reprojection_error))
        object.__setattr__(self, "num_frames", int(self.num_frames))
        if self.image_size is not None:
            w, h = self.image_size
            object.__setattr__(self, "image_size", (int(w), int(h)))


def mean_pose(poses: Sequence[PoseRecord], timestamp: Optional[float] = None) -> PoseRecord:
    """Per-axis arithmetic mean of ``poses`` (num_corners rounded)."""
    data = np.array(
        [
            (
                p.translation.x,
                p.translation.y,
                p.translation.z,
                p.rotation.roll,
                p.rotation.pitch,
                p.rotation.yaw,
                p.quality,
                p.num_corners,
            )
            for p in poses
        ],
        dtype=np.float64,
    )
    m = data.mean(axis=0)
    kwargs = {} if timestamp is None else {"timestamp": timestamp}
    return PoseRecord(
        translation=Translation(float(m[0]), float(m[1]), float(m[2])),
        rotation=Rotation(float(m[3]), float(m[4]), float(m[5])),
        quality=min(max(float(m[6]), 0.0), 1.0),
        num_corners=int(round(m[7])),
        **kwargs,
    )
