import logging
import time
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from ..pose_types import CalibrationResult

logger = logging.getLogger(__name__)


def save_calibration(result: CalibrationResult, path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("camera_matrix", np.asarray(result.camera_matrix, dtype=np.float64))
    fs.write("dist_coeffs", np.asarray(result.dist_coeffs, dtype=np.float64))
    fs.write("reprojection_error", float(result.reprojection_error))
    fs.write("num_frames", int(result.num_frames))
    if result.image_size is not None:
        fs.write("image_width", int(result.image_size[0]))
        fs.write("image_height", int(result.image_size[1]))
    fs.write("timestamp", time.time())
    fs.release()
    logger.info("calibration saved: %s", path)


def load_calibration(path: str) -> Optional[CalibrationResult]:
    if not Path(path).exists():
        logger.warning("calibration file not found: %s", path)
        return None

    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    except cv2.error as e:
        logger.warning("failed to open calibration %s: %s", path, e)
        return None

    try:
        K = fs.getNode("camera_matrix").mat()
        dist = fs.getNode("dist_coeffs").mat()
        if K is None or dist is None:
            logger.warning("calibration file is missing matrices: %s", path)
            return None

        def _real(key: str, default: float = 0.0) -> float:
            node = fs.getNode(key)
            return default if node.empty() else node.real()

        image_size = None
        if not fs.getNode("image_width").empty():
            image_size = (int(_real("image_width")), int(_real("image_height")))

        return CalibrationResult(
            camera_matrix=K,
            dist_coeffs=dist,
            reprojection_error=_real("reprojection_error"),
            num_frames=int(_real("num_frames")),
            image_size=image_size,
        )
    except (cv2.error, ValueError) as e:
        logger.warning("failed to load calibration %s: %s", path, e)
        return None
    finally:
        fs.release()
