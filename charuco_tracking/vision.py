"""Vision primitives: ChArUco corner detection, PnP solve and calibration.

Everything above this module only sees corner ids, pixel positions and
numpy matrices; the OpenCV specifics stay here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence, Tuple

import cv2
import numpy as np

from .config import BoardConfig

Correspondences = Tuple[np.ndarray, np.ndarray]  # (ids (N,), pixels (N, 2))


def get_dict(name: str):
    """
    Resolve a ChArUco dictionary by name.
    Falls back to DICT_5X5_100 if the name is not recognized.
    """
    key = (name or "").strip().upper()
    if not key.startswith("DICT_"):
        key = f"DICT_{key}"
    table = {
        "DICT_4X4_50": cv2.aruco.DICT_4X4_50,
        "DICT_5X5_100": cv2.aruco.DICT_5X5_100,
        "DICT_6X6_250": cv2.aruco.DICT_6X6_250,
        "DICT_7X7_1000": cv2.aruco.DICT_7X7_1000,
    }
    code = table.get(key, cv2.aruco.DICT_5X5_100)
    return cv2.aruco.getPredefinedDictionary(code)


def _empty() -> Correspondences:
    return np.zeros((0,), dtype=np.int32), np.zeros((0, 2), dtype=np.float32)


class VisionProvider(ABC):
    @abstractmethod
    def detect_and_interpolate(self, image: np.ndarray) -> Correspondences: ...

    @abstractmethod
    def solve_pose(
        self,
        object_points: np.ndarray,
        image_points: np.ndarray,
        camera_matrix: np.ndarray,
        dist_coeffs: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, bool]: ...

    @abstractmethod
    def calibrate(
        self,
        object_point_sets: Sequence[np.ndarray],
        image_point_sets: Sequence[np.ndarray],
        image_size: Tuple[int, int],
        camera_matrix: np.ndarray,
        dist_coeffs: np.ndarray,
        flags: int,
    ) -> Tuple[np.ndarray, np.ndarray, float]: ...


class OpenCVCharucoProvider(VisionProvider):
    """
    ChArUco primitives backed by cv2.aruco (OpenCV >= 4.7 objdetect API).
    """

    def __init__(self, board: BoardConfig):
        self.config = board
        self.dictionary = get_dict(board.dictionary)
        self.board = cv2.aruco.CharucoBoard(
            (board.squares_x, board.squares_y),
            board.square_length_m,
            board.marker_length_m,
            self.dictionary,
        )
        params = cv2.aruco.DetectorParameters()
        params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
        self.detector = cv2.aruco.CharucoDetector(
            self.board, cv2.aruco.CharucoParameters(), params
        )

    def detect_and_interpolate(self, image: np.ndarray) -> Correspondences:
        gray = image
        if image.ndim == 3:
            code = cv2.COLOR_BGRA2GRAY if image.shape[2] == 4 else cv2.COLOR_BGR2GRAY
            gray = cv2.cvtColor(image, code)

        charuco_corners, charuco_ids, _marker_corners, _marker_ids = (
            self.detector.detectBoard(gray)
        )
        if charuco_ids is None or len(charuco_ids) == 0:
            return _empty()
        return (
            np.asarray(charuco_ids, dtype=np.int32).reshape(-1),
            np.asarray(charuco_corners, dtype=np.float32).reshape(-1, 2),
        )

    def solve_pose(self, object_points, image_points, camera_matrix, dist_coeffs):
        ok, rvec, tvec = cv2.solvePnP(
            np.asarray(object_points, dtype=np.float32).reshape(-1, 3),
            np.asarray(image_points, dtype=np.float32).reshape(-1, 2),
            np.asarray(camera_matrix, dtype=np.float64),
            np.asarray(dist_coeffs, dtype=np.float64),
        )
        return rvec, tvec, bool(ok)

    def calibrate(
        self,
        object_point_sets,
        image_point_sets,
        image_size,
        camera_matrix,
        dist_coeffs,
        flags,
    ):
        rms, K, dist, _rvecs, _tvecs = cv2.calibrateCamera(
            [np.asarray(o, dtype=np.float32).reshape(-1, 1, 3) for o in object_point_sets],
            [np.asarray(i, dtype=np.float32).reshape(-1, 1, 2) for i in image_point_sets],
            tuple(int(v) for v in image_size),
            np.array(camera_matrix, dtype=np.float64),
            np.array(dist_coeffs, dtype=np.float64),
            flags=flags,
        )
        return K, dist, float(rms)

    def generate_board_image(self, size_px: int, margin_px: int = 10) -> np.ndarray:
        return self.board.generateImage((size_px, size_px), marginSize=margin_px, borderBits=1)
