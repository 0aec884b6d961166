from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import cv2

from .calibration import CalibrationAccumulator
from .capture import BaseCapture, Frame
from .estimator import PoseEstimator
from .pose_types import PoseRecord

PoseListener = Callable[[PoseRecord], Any]


@dataclass
class WorkerSummary:
    frames: int
    detections: int
    calibration_frames: int
    errors: int
    avg_fps: float


class PoseWorker:
    """
    Frame producer: reads the newest frame, estimates the board pose and
    hands it to the registered listeners, one frame at a time.

    Listeners run on the worker thread. Frames arriving faster than
    ``tracking_fps`` are dropped rather than queued.
    """

    def __init__(
        self,
        capture: BaseCapture,
        estimator: Optional[PoseEstimator] = None,
        calibration: Optional[CalibrationAccumulator] = None,
        capture_every: int = 1,
        tracking_fps: Optional[float] = None,
        max_frames: Optional[int] = None,
        duration_sec: Optional[float] = None,
        max_read_failures: int = 30,
        logger: Optional[logging.Logger] = None,
    ):
        self.capture = capture
        self.estimator = estimator
        self.calibration = calibration
        self.capture_every = max(1, int(capture_every))
        self.min_interval = 1.0 / tracking_fps if tracking_fps else 0.0
        self.max_frames = max_frames
        self.duration_sec = duration_sec
        self.max_read_failures = max_read_failures
        self.logger = logger or logging.getLogger(__name__)

        self._listeners: list[PoseListener] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._summary: Optional[WorkerSummary] = None
        self._error: Optional[BaseException] = None

        self.frames = 0
        self.detections = 0
        self.calibration_frames = 0
        self.errors = 0

    def add_listener(self, listener: PoseListener) -> None:
        self._listeners.append(listener)

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("worker already running")
        self._stop_event.clear()
        self._error = None
        self._thread = threading.Thread(target=self._run_thread, name="pose-worker", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> Optional[WorkerSummary]:
        """Wait for the thread; re-raises an exception that ended it."""
        if self._thread is not None:
            self._thread.join(timeout)
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        return self._summary

    def _run_thread(self) -> None:
        try:
            self._summary = self.run()
        except Exception as e:
            self.logger.exception("worker stopped by unexpected error")
            self._error = e

    def process_frame(self, f: Frame) -> Optional[PoseRecord]:
        if self.calibration is not None and self.frames % self.capture_every == 0:
            if self.calibration.capture_image(f.image):
                self.calibration_frames += 1
                self.logger.info(
                    "calibration frame %d/%d",
                    self.calibration.num_frames,
                    self.calibration.min_frames,
                )

        if self.estimator is None:
            return None

        pose = self.estimator.estimate(f.image, f.timestamp)
        if pose is None:
            return None

        self.detections += 1
        for listener in self._listeners:
            listener(pose)
        return pose

    def run(self) -> WorkerSummary:
        self.capture.start()
        t0 = time.time()
        last = 0.0
        read_failures = 0

        try:
            while not self._stop_event.is_set():
                if self.duration_sec and (time.time() - t0) >= self.duration_sec:
                    break
                if self.max_frames and self.frames >= self.max_frames:
                    break

                f = self.capture.next_frame()
                if f is None:
                    self.errors += 1
                    read_failures += 1
                    if read_failures >= self.max_read_failures:
                        self.logger.error("capture returned no frame %d times, stopping", read_failures)
                        break
                    continue
                read_failures = 0

                now = time.time()
                if self.min_interval and (now - last) < self.min_interval:
                    continue
                last = now

                try:
                    self.process_frame(f)
                except (cv2.error, ValueError) as e:
                    self.errors += 1
                    self.logger.warning("frame=%d processing failed: %s", f.idx, e)
                self.frames += 1

        finally:
            try:
                self.capture.stop()
            except Exception as e:
                self.logger.warning("capture stop failed: %s", e)

        avg = self.frames / max(1e-6, (time.time() - t0))
        self.logger.info(
            "summary frames=%d detections=%d avg_fps=%.2f errors=%d",
            self.frames,
            self.detections,
            avg,
            self.errors,
        )
        return WorkerSummary(
            frames=self.frames,
            detections=self.detections,
            calibration_frames=self.calibration_frames,
            errors=self.errors,
            avg_fps=avg,
        )
