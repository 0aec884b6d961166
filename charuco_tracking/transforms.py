"""SE(3) and Euler-angle utilities for board pose handling.

Rotations use the ZYX convention: R = Rz(yaw) @ Ry(pitch) @ Rx(roll).
Poses carry millimeters and degrees; 4x4 transforms carry meters and the
rotation block.
"""

import math
from typing import Optional, Tuple

import cv2
import numpy as np

from .pose_types import PoseRecord, Rotation, Translation

GIMBAL_LOCK_EPS = 1e-6
MM_PER_M = 1000.0


def _require_shape(M: np.ndarray, shape: Tuple[int, int], name: str) -> np.ndarray:
    M = np.asarray(M, dtype=np.float64)
    if M.shape != shape:
        raise ValueError(f"{name} must be {shape[0]}x{shape[1]}, got {M.shape}")
    return M


def euler_to_rotation_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """
    Build a rotation matrix from ZYX Euler angles.

    Args:
        roll: Rotation about X in radians
        pitch: Rotation about Y in radians
        yaw: Rotation about Z in radians

    Returns:
        3x3 rotation matrix
    """
    cr, sr = math.cos(roll), math.sin(roll)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)

    return np.array(
        [
            [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
            [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
            [-sp, cp * sr, cp * cr],
        ]
    )


def rotation_matrix_to_euler(R: np.ndarray) -> Tuple[float, float, float]:
    """
    Decompose a rotation matrix into ZYX Euler angles.

    Near pitch = +/-90 deg roll and yaw are not separable; in that case yaw
    is reported as 0 and the whole in-plane rotation ends up in roll.

    Args:
        R: 3x3 rotation matrix

    Returns:
        (roll, pitch, yaw) in radians
    """
    R = _require_shape(R, (3, 3), "rotation matrix")
    sy = math.sqrt(R[0, 0] * R[0, 0] + R[1, 0] * R[1, 0])

    if sy >= GIMBAL_LOCK_EPS:
        roll = math.atan2(R[2, 1], R[2, 2])
        pitch = math.atan2(-R[2, 0], sy)
        yaw = math.atan2(R[1, 0], R[0, 0])
    else:
        roll = math.atan2(-R[1, 2], R[1, 1])
        pitch = math.atan2(-R[2, 0], sy)
        yaw = 0.0

    return roll, pitch, yaw


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """
    Convert rotation vector and translation vector to 4x4 transformation matrix.

    Args:
        rvec: Rotation vector (3,) or (3,1)
        tvec: Translation vector (3,) or (3,1)

    Returns:
        4x4 homogeneous transformation matrix
    """
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
    tvec = np.asarray(tvec, dtype=np.float64).reshape(3)

    R, _ = cv2.Rodrigues(rvec)

    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = tvec

    return T


def pose_to_transform(pose: PoseRecord) -> np.ndarray:
    """Pose (mm, degrees) -> 4x4 homogeneous transform (meters)."""
    T = np.eye(4)
    T[:3, :3] = euler_to_rotation_matrix(
        math.radians(pose.rotation.roll),
        math.radians(pose.rotation.pitch),
        math.radians(pose.rotation.yaw),
    )
    T[:3, 3] = [
        pose.translation.x / MM_PER_M,
        pose.translation.y / MM_PER_M,
        pose.translation.z / MM_PER_M,
    ]
    return T


def transform_to_pose(
    T: np.ndarray,
    quality: float,
    num_corners: int,
    timestamp: Optional[float] = None,
) -> PoseRecord:
    """4x4 homogeneous transform (meters) -> pose (mm, degrees)."""
    T = _require_shape(T, (4, 4), "transform")
    roll, pitch, yaw = rotation_matrix_to_euler(T[:3, :3])
    t = T[:3, 3] * MM_PER_M

    kwargs = {} if timestamp is None else {"timestamp": float(timestamp)}
    return PoseRecord(
        translation=Translation(float(t[0]), float(t[1]), float(t[2])),
        rotation=Rotation(math.degrees(roll), math.degrees(pitch), math.degrees(yaw)),
        quality=quality,
        num_corners=num_corners,
        **kwargs,
    )


def compose_pose_with_offset(pose: PoseRecord, offset: np.ndarray) -> PoseRecord:
    """
    Re-base a board pose onto a rigidly mounted target.

    Computes T_cam_target = T_cam_board @ T_board_target.

    Args:
        pose: Board pose in the camera frame
        offset: 4x4 board -> target transform (meters)

    Returns:
        Target pose, carrying over quality, corner count and timestamp
    """
    offset = _require_shape(offset, (4, 4), "offset")
    T = pose_to_transform(pose) @ offset
    return transform_to_pose(T, pose.quality, pose.num_corners, pose.timestamp)


def is_identity(T: np.ndarray, atol: float = 1e-12) -> bool:
    T = _require_shape(T, (4, 4), "transform")
    return bool(np.allclose(T, np.eye(4), atol=atol))
