import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

_V4L_DEVICE = re.compile(r"^(?:/dev/video)?(\d+)$")


@dataclass
class Frame:
    idx: int
    timestamp: float  # unix seconds
    image: np.ndarray


class BaseCapture(ABC):
    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Optional[Frame]: ...

    @abstractmethod
    def stop(self) -> None: ...


def resolve_device(device: int | str) -> int | str:
    """Camera index for ``3``/``"3"``/``"/dev/video3"``; anything else is a URL or file."""
    if isinstance(device, int):
        return device
    match = _V4L_DEVICE.match(str(device).strip())
    return int(match.group(1)) if match else str(device)


class OpenCVCapture(BaseCapture):
    """
    cv2.VideoCapture source for a camera index, a V4L device path, a video
    file or a stream URL.
    """

    def __init__(self, device: int | str, fps: int, width: int, height: int):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.cap: Any = None
        self.idx = 0

    def start(self) -> None:
        self.cap = cv2.VideoCapture(resolve_device(self.device))
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera: {self.device}")

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.fps)
        # Latest frame only; stale buffered frames would lag the pose.
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        got = (
            int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
        if got != (self.width, self.height):
            logger.warning(
                "camera %s delivers %dx%d, requested %dx%d",
                self.device, got[0], got[1], self.width, self.height,
            )

    def next_frame(self) -> Optional[Frame]:
        ok, img = self.cap.read()
        if not ok:
            return None
        self.idx += 1
        return Frame(self.idx, time.time(), img)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None
