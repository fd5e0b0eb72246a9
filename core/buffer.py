"""
Jungian Mirror — Pixel Buffer
Rectangular RGBA raster shared by the compositor, effects and capture.
"""

from dataclasses import dataclass

import numpy as np


@dataclass
class PixelBuffer:
    """RGBA uint8 raster.

    pixels is always shaped (height, width, 4), so its flat length is
    width * height * 4. Effects write into pixels in place.
    """
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Invalid buffer size {self.width}x{self.height}")
        expected = (self.height, self.width, 4)
        if self.pixels.shape != expected or self.pixels.dtype != np.uint8:
            raise ValueError(
                f"Pixel array must be uint8 {expected}, got "
                f"{self.pixels.dtype} {self.pixels.shape}"
            )

    @classmethod
    def blank(cls, width: int, height: int) -> "PixelBuffer":
        """Fully transparent buffer."""
        return cls(width, height, np.zeros((height, width, 4), dtype=np.uint8))

    @classmethod
    def from_array(cls, frame: np.ndarray) -> "PixelBuffer":
        """Wrap an (H, W, 3) RGB or (H, W, 4) RGBA array (copied)."""
        frame = to_rgba(frame)
        h, w = frame.shape[:2]
        return cls(w, h, frame.copy())

    @property
    def size(self) -> tuple:
        return self.width, self.height

    @property
    def data(self) -> np.ndarray:
        """Flat RGBA view (length width * height * 4)."""
        return self.pixels.reshape(-1)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, self.pixels.copy())

    def clear(self):
        self.pixels.fill(0)


def to_rgba(frame: np.ndarray) -> np.ndarray:
    """Normalize grayscale/RGB/RGBA input to an RGBA uint8 array."""
    frame = np.asarray(frame)
    if frame.dtype != np.uint8:
        frame = np.clip(frame, 0, 255).astype(np.uint8)
    if frame.ndim == 2:
        frame = np.stack([frame] * 3, axis=2)
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise ValueError(f"Unsupported frame shape: {frame.shape}")
    if frame.shape[2] == 3:
        alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
        frame = np.concatenate([frame, alpha], axis=2)
    return frame
