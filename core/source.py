"""
Jungian Mirror — Frame Sources
Adapters that hand the compositor its latest camera frame.

A source returns an RGB or RGBA uint8 array from current_frame(), or
raises SourceNotReady while nothing is available yet.
"""

import logging

import cv2
import numpy as np

from core.buffer import to_rgba

logger = logging.getLogger(__name__)


class SourceNotReady(Exception):
    """The source has no frame to give yet (transient)."""
    pass


class FrameSource:
    """Base class. width/height are None until the native size is known."""

    width = None
    height = None

    def current_frame(self) -> np.ndarray:
        raise NotImplementedError

    def close(self):
        pass


class ArraySource(FrameSource):
    """In-memory source: a single still or a list of frames played in order.

    With loop=True the frames repeat; otherwise the last frame holds.
    Starts not-ready when constructed with no frames.
    """

    def __init__(self, frames=None, loop: bool = True):
        if frames is None:
            frames = []
        elif isinstance(frames, np.ndarray) and frames.ndim in (2, 3):
            frames = [frames]
        self._frames = [to_rgba(f) for f in frames]
        self._index = 0
        self.loop = loop
        if self._frames:
            self.height, self.width = self._frames[0].shape[:2]

    def push(self, frame: np.ndarray):
        frame = to_rgba(frame)
        if self.width is None:
            self.height, self.width = frame.shape[:2]
        self._frames.append(frame)

    def current_frame(self) -> np.ndarray:
        if not self._frames:
            raise SourceNotReady("No frames loaded")
        frame = self._frames[self._index]
        if self._index + 1 < len(self._frames):
            self._index += 1
        elif self.loop:
            self._index = 0
        return frame


class CaptureDeviceSource(FrameSource):
    """OpenCV VideoCapture wrapper (webcam index or video file path)."""

    def __init__(self, device=0, width: int = 1280, height: int = 720):
        self._cap = cv2.VideoCapture(device)
        if not self._cap.isOpened():
            raise RuntimeError(f"Could not open capture device: {device}")
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        self._last = None

    def current_frame(self) -> np.ndarray:
        ok, frame = self._cap.read()
        if not ok or frame is None:
            if self._last is None:
                raise SourceNotReady("Capture device has not produced a frame")
            # Dropped read mid-session: hold the previous frame
            return self._last
        if self.width is None:
            self.height, self.width = frame.shape[:2]
            logger.info("Capture native size %dx%d", self.width, self.height)
        self._last = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        return self._last

    def close(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None
