"""Accumulates ChArUco corner observations and turns them into intrinsics."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from .board import MIN_CORNERS, BoardLayout
from .pose_types import CalibrationResult
from .vision import VisionProvider

logger = logging.getLogger(__name__)

DEFAULT_MIN_FRAMES = 30


class AccumulatorState(enum.Enum):
    EMPTY = "empty"
    COLLECTING = "collecting"
    READY = "ready"


class CalibrationAccumulator:
    """
    Collects per-frame corner correspondences until enough frames exist for
    a calibration.

    ``capture_frame`` is called from the frame-producer thread while
    ``calibrate``/``clear`` come from the control thread; all buffer access
    goes through one lock.
    """

    def __init__(
        self,
        provider: VisionProvider,
        layout: BoardLayout,
        min_frames: int = DEFAULT_MIN_FRAMES,
    ):
        if min_frames < 1:
            raise ValueError("min_frames must be >= 1")
        self.provider = provider
        self.layout = layout
        self.min_frames = int(min_frames)
        self._lock = threading.Lock()
        self._ids: list[np.ndarray] = []
        self._corners: list[np.ndarray] = []
        self._image_size: Optional[Tuple[int, int]] = None

    @property
    def num_frames(self) -> int:
        with self._lock:
            return len(self._ids)

    @property
    def image_size(self) -> Optional[Tuple[int, int]]:
        with self._lock:
            return self._image_size

    @property
    def state(self) -> AccumulatorState:
        n = self.num_frames
        if n == 0:
            return AccumulatorState.EMPTY
        if n < self.min_frames:
            return AccumulatorState.COLLECTING
        return AccumulatorState.READY

    @property
    def is_ready(self) -> bool:
        return self.state is AccumulatorState.READY

    def capture_frame(
        self,
        corner_ids: Sequence[int],
        corner_points: Sequence[Sequence[float]],
        image_size: Tuple[int, int],
    ) -> bool:
        """
        Store one frame's interpolated corners.

        Args:
            corner_ids: ChArUco inner-corner ids (N,)
            corner_points: Pixel positions (N, 2)
            image_size: (width, height) of the frame

        Returns:
            False (state unchanged) when fewer than 4 corners were found
        """
        ids = np.asarray(corner_ids, dtype=np.int32).reshape(-1)
        pts = np.asarray(corner_points, dtype=np.float32).reshape(-1, 2)
        if len(ids) < MIN_CORNERS or len(ids) != len(pts):
            return False

        with self._lock:
            if self._image_size is None:
                self._image_size = (int(image_size[0]), int(image_size[1]))
            self._ids.append(ids.copy())
            self._corners.append(pts.copy())
            n = len(self._ids)

        logger.debug("calibration frame captured corners=%d frames=%d", len(ids), n)
        return True

    def capture_image(self, image: np.ndarray) -> bool:
        ids, pts = self.provider.detect_and_interpolate(image)
        h, w = image.shape[:2]
        return self.capture_frame(ids, pts, (w, h))

    def calibrate(self) -> Optional[CalibrationResult]:
        with self._lock:
            ids_sets = list(self._ids)
            corner_sets = list(self._corners)
            image_size = self._image_size

        num_frames = len(ids_sets)
        if num_frames < self.min_frames or image_size is None:
            logger.info(
                "not enough calibration frames: %d/%d", num_frames, self.min_frames
            )
            return None

        object_sets = [self.layout.object_points(ids) for ids in ids_sets]

        K0 = np.eye(3)
        dist0 = np.zeros((1, 5))
        K, dist, rms = self.provider.calibrate(
            object_sets,
            corner_sets,
            image_size,
            K0,
            dist0,
            cv2.CALIB_RATIONAL_MODEL,
        )

        logger.info("calibration done frames=%d rms=%.4f px", num_frames, rms)
        return CalibrationResult(
            camera_matrix=K,
            dist_coeffs=dist,
            reprojection_error=rms,
            num_frames=num_frames,
            image_size=image_size,
        )

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()
            self._corners.clear()
            self._image_size = None
