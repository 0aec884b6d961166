from __future__ import annotations

import logging
import time
from typing import Optional

import numpy as np

from .board import MIN_CORNERS, BoardLayout
from .pose_types import CalibrationResult, PoseRecord
from .transforms import (
    compose_pose_with_offset,
    is_identity,
    rvec_tvec_to_matrix,
    transform_to_pose,
)
from .vision import VisionProvider

logger = logging.getLogger(__name__)


class PoseEstimator:
    """
    Per-frame board pose: detect corners, solve PnP, decode to a PoseRecord.

    An optional board -> target offset re-bases every pose; identity (the
    default) leaves poses untouched.
    """

    def __init__(
        self,
        provider: VisionProvider,
        layout: BoardLayout,
        calibration: CalibrationResult,
        offset: Optional[np.ndarray] = None,
    ):
        self.provider = provider
        self.layout = layout
        self.K = calibration.camera_matrix
        self.dist = calibration.dist_coeffs
        self.offset = None
        if offset is not None and not is_identity(offset):
            self.offset = np.array(offset, dtype=np.float64)

    def estimate(self, image: np.ndarray, timestamp: Optional[float] = None) -> Optional[PoseRecord]:
        ids, pixels = self.provider.detect_and_interpolate(image)
        n = len(ids)
        if n < MIN_CORNERS:
            return None

        obj = self.layout.object_points(ids)
        rvec, tvec, ok = self.provider.solve_pose(obj, pixels, self.K, self.dist)
        if not ok:
            logger.debug("solvePnP failed corners=%d", n)
            return None

        T = rvec_tvec_to_matrix(rvec, tvec)
        pose = transform_to_pose(
            T,
            quality=self.layout.quality_score(n),
            num_corners=n,
            timestamp=time.time() if timestamp is None else timestamp,
        )
        if self.offset is not None:
            pose = compose_pose_with_offset(pose, self.offset)
        return pose
