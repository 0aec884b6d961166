import pytest

from charuco_tracking.trajectory import TrajectoryRecorder
from conftest import make_pose


class FakeClock:
    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0)


def test_add_pose_ignored_when_idle():
    r = TrajectoryRecorder()
    r.add_pose(make_pose())
    assert r.num_poses == 0
    assert r.last_pose is None
    assert r.stop() is None


def test_stop_without_poses_returns_none():
    r = TrajectoryRecorder()
    r.start()
    assert r.stop() is None
    assert not r.is_tracking


def test_total_displacement_first_to_last():
    r = TrajectoryRecorder(clock=FakeClock(100.0, 104.5))
    r.start()
    assert r.is_tracking
    first = make_pose(x=0.0, yaw=0.0, timestamp=0.0)
    last = make_pose(x=100.0, yaw=10.0, timestamp=1.0)
    r.add_pose(first)
    r.add_pose(last)
    assert r.last_pose is last

    data = r.stop()
    assert not r.is_tracking
    assert data.poses == (first, last)
    assert (data.start_time, data.end_time) == (100.0, 104.5)
    assert data.duration_sec == pytest.approx(4.5)
    d = data.total_displacement
    assert (d.dx, d.dy, d.dz, d.dyaw) == (100.0, 0.0, 0.0, 10.0)
    assert d.distance_2d == 100.0
    assert d.distance_3d == 100.0


def test_result_is_detached_from_buffer():
    r = TrajectoryRecorder()
    r.start()
    r.add_pose(make_pose(x=1.0))
    data = r.stop()
    r.start()
    r.add_pose(make_pose(x=2.0))
    assert data.num_poses == 1
    assert r.num_poses == 1


def test_clear_drops_poses():
    r = TrajectoryRecorder()
    r.start()
    r.add_pose(make_pose())
    r.clear()
    assert r.num_poses == 0
    assert r.is_tracking
