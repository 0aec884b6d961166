import threading

import pytest

from charuco_tracking.spot import SpotMeasurer
from conftest import make_pose


def test_target_samples_must_be_positive():
    with pytest.raises(ValueError):
        SpotMeasurer(0)


def test_add_sample_is_noop_when_idle():
    m = SpotMeasurer(3)
    assert m.add_sample(make_pose()) is False
    assert m.num_samples == 0
    assert m.stop() is None


def test_stop_without_samples_returns_none():
    m = SpotMeasurer()
    m.start()
    assert m.is_measuring
    assert m.stop() is None
    assert not m.is_measuring


def test_mean_and_population_stddev():
    m = SpotMeasurer(3)
    m.start()
    assert m.add_sample(make_pose(x=10.0, yaw=1.0, quality=0.5, num_corners=10)) is False
    assert m.add_sample(make_pose(x=12.0, yaw=2.0, quality=0.7, num_corners=11)) is False
    assert m.progress == pytest.approx(200.0 / 3)
    assert m.add_sample(make_pose(x=11.0, yaw=3.0, quality=0.9, num_corners=13)) is True
    # Reaching the target does not stop the measurement by itself.
    assert m.is_measuring
    assert m.is_complete

    result = m.stop()
    assert not m.is_measuring
    assert result.num_samples == 3
    assert result.pose.translation.x == pytest.approx(11.0)
    assert result.pose.rotation.yaw == pytest.approx(2.0)
    assert result.pose.quality == pytest.approx(0.7)
    assert result.pose.num_corners == 11
    assert result.std_dev.x_mm == pytest.approx(0.8165, abs=1e-4)
    assert result.std_dev.y_mm == 0.0
    assert result.std_dev.z_mm == 0.0


def test_single_sample_has_zero_stddev():
    m = SpotMeasurer(5)
    m.start()
    m.add_sample(make_pose(x=3.0, y=4.0))
    result = m.stop()
    assert result.num_samples == 1
    assert result.std_dev.x_mm == 0.0
    assert result.pose.translation.y == 4.0


def test_start_clears_previous_samples():
    m = SpotMeasurer(5)
    m.start()
    m.add_sample(make_pose())
    m.start()
    assert m.num_samples == 0
    assert m.target_samples == 5


def test_clear_keeps_measuring_state():
    m = SpotMeasurer(5)
    m.start()
    m.add_sample(make_pose())
    m.clear()
    assert m.is_measuring
    assert m.num_samples == 0


def test_status_snapshot():
    m = SpotMeasurer(4)
    m.start()
    m.add_sample(make_pose())
    assert m.status() == {
        "is_measuring": True,
        "num_samples": 1,
        "target_samples": 4,
        "progress": 25.0,
    }


def test_concurrent_add_and_stop():
    m = SpotMeasurer(10_000)
    m.start()
    stop_now = threading.Event()

    def producer():
        while not stop_now.is_set():
            m.add_sample(make_pose(x=1.0))

    t = threading.Thread(target=producer)
    t.start()
    while m.num_samples < 50:
        pass
    result = m.stop()
    stop_now.set()
    t.join()

    assert result.num_samples >= 50
    assert result.pose.translation.x == pytest.approx(1.0)
    # After stop the producer's samples are ignored.
    assert not m.is_measuring
