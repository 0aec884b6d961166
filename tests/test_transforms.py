import math

import numpy as np
import pytest

from charuco_tracking.transforms import (
    compose_pose_with_offset,
    euler_to_rotation_matrix,
    pose_to_transform,
    rotation_matrix_to_euler,
    rvec_tvec_to_matrix,
    transform_to_pose,
)
from conftest import make_pose


def _rx(a):
    c, s = math.cos(a), math.sin(a)
    return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])


def _ry(a):
    c, s = math.cos(a), math.sin(a)
    return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])


def _rz(a):
    c, s = math.cos(a), math.sin(a)
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])


def test_euler_matches_zyx_product():
    roll, pitch, yaw = 0.3, -0.4, 1.1
    R = euler_to_rotation_matrix(roll, pitch, yaw)
    assert np.allclose(R, _rz(yaw) @ _ry(pitch) @ _rx(roll))
    assert np.allclose(R @ R.T, np.eye(3))
    assert np.isclose(np.linalg.det(R), 1.0)


@pytest.mark.parametrize(
    "angles_deg",
    [
        (0.0, 0.0, 0.0),
        (10.0, 20.0, 30.0),
        (-170.0, 45.0, 120.0),
        (5.0, -89.8, -60.0),
        (179.0, 89.8, 179.0),
    ],
)
def test_euler_roundtrip(angles_deg):
    roll, pitch, yaw = (math.radians(a) for a in angles_deg)
    back = rotation_matrix_to_euler(euler_to_rotation_matrix(roll, pitch, yaw))
    assert np.allclose(back, (roll, pitch, yaw), atol=1e-6)


def test_gimbal_lock_reports_zero_yaw():
    R = euler_to_rotation_matrix(0.2, math.pi / 2, 0.7)
    roll, pitch, yaw = rotation_matrix_to_euler(R)
    assert yaw == 0.0
    assert math.isclose(pitch, math.pi / 2, abs_tol=1e-6)
    # The decomposition still describes the same rotation.
    assert np.allclose(euler_to_rotation_matrix(roll, pitch, yaw), R, atol=1e-6)


def test_pose_to_transform_units():
    pose = make_pose(x=100.0, y=-20.0, z=500.0, yaw=90.0)
    T = pose_to_transform(pose)
    assert T.shape == (4, 4)
    assert np.allclose(T[3, :], [0, 0, 0, 1])
    assert np.allclose(T[:3, 3], [0.1, -0.02, 0.5])
    assert np.allclose(T[:3, :3], _rz(math.pi / 2))


def test_transform_to_pose_inverts_pose_to_transform():
    pose = make_pose(x=12.5, y=-3.0, z=410.0, roll=5.0, pitch=-12.0, yaw=33.0,
                     quality=0.75, num_corners=27, timestamp=123.0)
    back = transform_to_pose(pose_to_transform(pose), 0.75, 27, 123.0)
    assert back.translation.x == pytest.approx(12.5)
    assert back.translation.y == pytest.approx(-3.0)
    assert back.translation.z == pytest.approx(410.0)
    assert back.rotation.roll == pytest.approx(5.0)
    assert back.rotation.pitch == pytest.approx(-12.0)
    assert back.rotation.yaw == pytest.approx(33.0)
    assert back.timestamp == 123.0


def test_compose_with_identity_returns_same_pose():
    pose = make_pose(x=1.0, y=2.0, z=300.0, roll=10.0, pitch=-5.0, yaw=40.0,
                     quality=0.5, num_corners=18, timestamp=42.0)
    out = compose_pose_with_offset(pose, np.eye(4))
    assert out.translation.x == pytest.approx(1.0)
    assert out.translation.y == pytest.approx(2.0)
    assert out.translation.z == pytest.approx(300.0)
    assert out.rotation.roll == pytest.approx(10.0)
    assert out.rotation.pitch == pytest.approx(-5.0)
    assert out.rotation.yaw == pytest.approx(40.0)
    assert (out.quality, out.num_corners, out.timestamp) == (0.5, 18, 42.0)


def test_compose_applies_offset_in_board_frame():
    # Board rotated 90 deg about Z; a 10 cm offset along board X lands on camera Y.
    pose = make_pose(z=500.0, yaw=90.0)
    offset = np.eye(4)
    offset[0, 3] = 0.1
    out = compose_pose_with_offset(pose, offset)
    assert out.translation.x == pytest.approx(0.0, abs=1e-9)
    assert out.translation.y == pytest.approx(100.0)
    assert out.translation.z == pytest.approx(500.0)
    assert out.rotation.yaw == pytest.approx(90.0)


def test_compose_rejects_non_4x4_offset():
    with pytest.raises(ValueError):
        compose_pose_with_offset(make_pose(), np.eye(3))


def test_rvec_tvec_to_matrix():
    rvec = np.array([0.0, 0.0, np.pi / 2])
    tvec = np.array([1.0, 2.0, 3.0])
    T = rvec_tvec_to_matrix(rvec, tvec)
    assert np.allclose(T[:3, :3], _rz(np.pi / 2), atol=1e-9)
    assert np.allclose(T[:3, 3], tvec)
