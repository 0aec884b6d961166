"""ChArUco board geometry: inner-corner id -> 3D position lookup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .config import BoardConfig

MIN_CORNERS = 4


@dataclass(frozen=True, eq=False)
class BoardLayout:
    squares_x: int
    squares_y: int
    square_length_m: float
    corners: np.ndarray  # (N, 3) float32, read-only, indexed by corner id

    @classmethod
    def from_config(cls, board: BoardConfig) -> "BoardLayout":
        nx = board.squares_x - 1
        ny = board.squares_y - 1
        L = board.square_length_m
        # Same ordering as cv2.aruco.CharucoBoard.getChessboardCorners().
        corners = np.zeros((nx * ny, 3), np.float32)
        corners[:, :2] = (np.mgrid[1 : nx + 1, 1 : ny + 1].T.reshape(-1, 2) * L)
        corners.setflags(write=False)
        return cls(board.squares_x, board.squares_y, L, corners)

    @property
    def total_corners(self) -> int:
        return len(self.corners)

    def object_points(self, corner_ids: Sequence[int]) -> np.ndarray:
        ids = np.asarray(corner_ids, dtype=np.int64).reshape(-1)
        if ids.size and (ids.min() < 0 or ids.max() >= self.total_corners):
            raise ValueError(
                f"corner id out of range 0..{self.total_corners - 1}: {ids.tolist()}"
            )
        return self.corners[ids].copy()

    def quality_score(self, detected_corners: int) -> float:
        return min(detected_corners / float(self.total_corners), 1.0)
