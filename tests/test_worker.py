import numpy as np
import pytest

from charuco_tracking.calibration import CalibrationAccumulator
from charuco_tracking.estimator import PoseEstimator
from charuco_tracking.worker import PoseWorker
from conftest import FakeCapture, FakeProvider


class FlakyProvider(FakeProvider):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def detect_and_interpolate(self, image):
        self.calls += 1
        if self.calls == 2:
            raise ValueError("bad frame")
        return super().detect_and_interpolate(image)


def test_listeners_receive_every_detection(layout, calibration, provider):
    cap = FakeCapture(5)
    worker = PoseWorker(cap, PoseEstimator(provider, layout, calibration), max_read_failures=3)
    seen = []
    worker.add_listener(seen.append)

    summary = worker.run()

    assert summary.frames == 5
    assert summary.detections == 5
    assert summary.errors == 3
    assert [p.timestamp for p in seen] == [1000.0 + i * 0.1 for i in range(1, 6)]
    assert cap.started and cap.stopped


def test_max_frames(layout, calibration, provider):
    worker = PoseWorker(FakeCapture(10), PoseEstimator(provider, layout, calibration), max_frames=2)
    assert worker.run().frames == 2


def test_calibration_capture_every_nth_frame(layout, provider):
    acc = CalibrationAccumulator(provider, layout, min_frames=2)
    worker = PoseWorker(FakeCapture(5), calibration=acc, capture_every=2, max_read_failures=1)

    summary = worker.run()

    assert summary.calibration_frames == 3
    assert summary.detections == 0
    assert acc.num_frames == 3
    assert acc.image_size == (640, 480)


def test_processing_errors_are_counted(layout, calibration):
    worker = PoseWorker(
        FakeCapture(3), PoseEstimator(FlakyProvider(), layout, calibration), max_read_failures=1
    )
    summary = worker.run()
    assert summary.frames == 3
    assert summary.detections == 2
    assert summary.errors == 2  # one bad frame, one empty read


def test_threaded_start_stop(layout, calibration, provider):
    cap = FakeCapture(10_000)
    worker = PoseWorker(cap, PoseEstimator(provider, layout, calibration))
    worker.add_listener(lambda pose: worker.stop() if cap.idx >= 20 else None)

    worker.start()
    summary = worker.join(timeout=10)

    assert not worker.running
    assert worker.stopped
    assert summary.frames == 20
    assert cap.stopped


def test_missing_detection_is_skipped(layout, calibration):
    provider = FakeProvider(ids=np.arange(2))
    worker = PoseWorker(FakeCapture(4), PoseEstimator(provider, layout, calibration), max_read_failures=1)
    seen = []
    worker.add_listener(seen.append)
    summary = worker.run()
    assert summary.frames == 4
    assert summary.detections == 0
    assert seen == []


def test_listener_failure_surfaces_on_join(layout, calibration, provider, caplog):
    worker = PoseWorker(FakeCapture(10), PoseEstimator(provider, layout, calibration))

    def _broken(pose):
        raise RuntimeError("listener broke")

    worker.add_listener(_broken)
    worker.start()

    with pytest.raises(RuntimeError, match="listener broke"):
        worker.join(timeout=10)
    assert "unexpected error" in caplog.text
    assert not worker.running
