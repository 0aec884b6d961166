import numpy as np
import pytest

from charuco_tracking.board import BoardLayout
from charuco_tracking.capture import Frame
from charuco_tracking.config import BoardConfig
from charuco_tracking.pose_types import CalibrationResult, PoseRecord, Rotation, Translation
from charuco_tracking.vision import VisionProvider


def make_pose(x=0.0, y=0.0, z=0.0, roll=0.0, pitch=0.0, yaw=0.0,
              quality=1.0, num_corners=36, timestamp=0.0) -> PoseRecord:
    return PoseRecord(
        translation=Translation(x, y, z),
        rotation=Rotation(roll, pitch, yaw),
        quality=quality,
        num_corners=num_corners,
        timestamp=timestamp,
    )


class FakeProvider(VisionProvider):
    """Returns a fixed detection and pose; records calibration calls."""

    def __init__(self, ids=None, pixels=None, rvec=None, tvec=None, ok=True):
        self.ids = np.arange(8) if ids is None else np.asarray(ids)
        self.pixels = (
            np.random.default_rng(0).uniform(0, 640, (len(self.ids), 2))
            if pixels is None
            else np.asarray(pixels)
        )
        self.rvec = np.zeros(3) if rvec is None else np.asarray(rvec, dtype=float)
        self.tvec = np.array([0.0, 0.0, 0.5]) if tvec is None else np.asarray(tvec, dtype=float)
        self.ok = ok
        self.calibrate_calls = []

    def detect_and_interpolate(self, image):
        return self.ids, self.pixels

    def solve_pose(self, object_points, image_points, camera_matrix, dist_coeffs):
        return self.rvec, self.tvec, self.ok

    def calibrate(self, object_point_sets, image_point_sets, image_size,
                  camera_matrix, dist_coeffs, flags):
        self.calibrate_calls.append(
            dict(
                object_point_sets=object_point_sets,
                image_point_sets=image_point_sets,
                image_size=image_size,
                camera_matrix=camera_matrix,
                dist_coeffs=dist_coeffs,
                flags=flags,
            )
        )
        K = np.array([[800.0, 0, 320], [0, 800.0, 240], [0, 0, 1]])
        return K, np.zeros((1, 8)), 0.25


class FakeCapture:
    """Serves a fixed number of black frames, then reports no frame."""

    def __init__(self, count, width=640, height=480):
        self.count = count
        self.width = width
        self.height = height
        self.idx = 0
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def next_frame(self):
        if self.idx >= self.count:
            return None
        self.idx += 1
        img = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        return Frame(self.idx, 1000.0 + self.idx * 0.1, img)

    def stop(self):
        self.stopped = True


@pytest.fixture
def board_config():
    return BoardConfig()


@pytest.fixture
def layout(board_config):
    return BoardLayout.from_config(board_config)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def calibration():
    return CalibrationResult(
        camera_matrix=[[800.0, 0, 320], [0, 800.0, 240], [0, 0, 1]],
        dist_coeffs=np.zeros(5),
        reprojection_error=0.3,
        num_frames=30,
        image_size=(640, 480),
    )
