from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .pose_types import PoseRecord, TrajectoryData


class TrajectoryRecorder:
    """Records an open-ended, time-ordered sequence of poses."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._poses: list[PoseRecord] = []
        self._start_time = 0.0
        self._tracking = False
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            self._poses.clear()
            self._start_time = self._clock()
            self._tracking = True

    def add_pose(self, pose: PoseRecord) -> None:
        with self._lock:
            if self._tracking:
                self._poses.append(pose)

    def stop(self) -> Optional[TrajectoryData]:
        with self._lock:
            if not self._tracking or not self._poses:
                self._tracking = False
                return None
            self._tracking = False
            poses = tuple(self._poses)
            start_time = self._start_time
        end_time = self._clock()

        return TrajectoryData(
            poses=poses,
            start_time=start_time,
            end_time=end_time,
            total_displacement=poses[-1].displacement_from(poses[0]),
        )

    @property
    def num_poses(self) -> int:
        with self._lock:
            return len(self._poses)

    @property
    def is_tracking(self) -> bool:
        with self._lock:
            return self._tracking

    @property
    def last_pose(self) -> Optional[PoseRecord]:
        with self._lock:
            return self._poses[-1] if self._poses else None

    def clear(self) -> None:
        with self._lock:
            self._poses.clear()
            self._start_time = 0.0
