from __future__ import annotations

import threading
from typing import Any, Optional

import numpy as np

from .pose_types import PoseRecord, SpotMeasurement, StdDev, mean_pose

DEFAULT_TARGET_SAMPLES = 30


class SpotMeasurer:
    """Averages a burst of poses into a single measurement."""

    def __init__(self, target_samples: int = DEFAULT_TARGET_SAMPLES):
        if target_samples < 1:
            raise ValueError("target_samples must be >= 1")
        self._target = int(target_samples)
        self._samples: list[PoseRecord] = []
        self._measuring = False
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            self._samples.clear()
            self._measuring = True

    def add_sample(self, pose: PoseRecord) -> bool:
        """Returns True once the target count is reached; does not stop."""
        with self._lock:
            if not self._measuring:
                return False
            self._samples.append(pose)
            return len(self._samples) >= self._target

    def stop(self) -> Optional[SpotMeasurement]:
        with self._lock:
            if not self._measuring or not self._samples:
                self._measuring = False
                return None
            self._measuring = False
            samples = list(self._samples)
        return _summarize(samples)

    @property
    def num_samples(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def target_samples(self) -> int:
        return self._target

    @property
    def progress(self) -> float:
        return 100.0 * self.num_samples / self._target

    @property
    def is_measuring(self) -> bool:
        with self._lock:
            return self._measuring

    @property
    def is_complete(self) -> bool:
        return self.num_samples >= self._target

    def status(self) -> dict[str, Any]:
        with self._lock:
            n = len(self._samples)
            measuring = self._measuring
        return {
            "is_measuring": measuring,
            "num_samples": n,
            "target_samples": self._target,
            "progress": 100.0 * n / self._target,
        }

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()


def _summarize(samples: list[PoseRecord]) -> SpotMeasurement:
    xyz = np.array(
        [(p.translation.x, p.translation.y, p.translation.z) for p in samples],
        dtype=np.float64,
    )
    if len(samples) <= 1:
        std = StdDev()
    else:
        sx, sy, sz = xyz.std(axis=0, ddof=0)
        std = StdDev(float(sx), float(sy), float(sz))
    return SpotMeasurement(pose=mean_pose(samples), num_samples=len(samples), std_dev=std)
