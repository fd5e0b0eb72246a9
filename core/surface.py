"""
Jungian Mirror — Render Surface
Canvas-like drawing target: a PixelBuffer plus compositing state
(composite mode, filter, horizontal mirror) with a save/restore stack.

Pixel reads and in-place effect kernels always work in device space.
Only drawing calls (draw_frame, draw_self, radial fills) honour the
mirror transform.
"""

from contextlib import contextmanager

import cv2
import numpy as np

from core.buffer import PixelBuffer, to_rgba

COMPOSITE_MODES = ("source-over", "lighter")


def radial_ramp(height: int, width: int, r0: float, r1: float,
                center: tuple | None = None) -> np.ndarray:
    """Gradient position t in [0, 1] for concentric circles r0 -> r1.

    t is 0 inside r0, 1 beyond r1 and linear in between. Works for
    r1 < r0 too (t then grows inward).
    """
    if center is None:
        cx, cy = width / 2.0, height / 2.0
    else:
        cx, cy = center
    ys, xs = np.ogrid[0:height, 0:width]
    # Sample at pixel centres
    dist = np.sqrt((xs + 0.5 - cx) ** 2 + (ys + 0.5 - cy) ** 2).astype(np.float32)
    if r1 == r0:
        return (dist >= r0).astype(np.float32)
    return np.clip((dist - r0) / (r1 - r0), 0.0, 1.0)


class RenderSurface:
    """Drawing target wrapping one PixelBuffer."""

    def __init__(self, width: int, height: int):
        self.buffer = PixelBuffer.blank(width, height)
        self.composite = "source-over"
        self.filter = "none"
        self.mirrored = False
        self._stack = []

    @property
    def width(self) -> int:
        return self.buffer.width

    @property
    def height(self) -> int:
        return self.buffer.height

    @property
    def pixels(self) -> np.ndarray:
        return self.buffer.pixels

    # --- State stack ---

    def save(self):
        self._stack.append((self.composite, self.filter, self.mirrored))

    def restore(self):
        if self._stack:
            self.composite, self.filter, self.mirrored = self._stack.pop()

    @contextmanager
    def saved_state(self):
        """Scoped save/restore; state is restored even if drawing raises."""
        self.save()
        try:
            yield self
        finally:
            self.restore()

    def set_mirror(self, mirrored: bool = True):
        self.mirrored = bool(mirrored)

    def set_composite(self, mode: str):
        if mode not in COMPOSITE_MODES:
            raise ValueError(f"Unknown composite mode: {mode}")
        self.composite = mode

    def reset_compositing(self):
        self.composite = "source-over"
        self.filter = "none"

    # --- Drawing ---

    def clear(self):
        self.buffer.clear()

    def snapshot(self) -> PixelBuffer:
        return self.buffer.copy()

    def draw_frame(self, frame: np.ndarray):
        """Composite a source frame stretched to surface size."""
        frame = to_rgba(frame)
        h, w = frame.shape[:2]
        if (w, h) != (self.width, self.height):
            frame = cv2.resize(frame, (self.width, self.height), interpolation=cv2.INTER_LINEAR)
        if self.mirrored:
            frame = frame[:, ::-1]
        self._composite(frame.astype(np.float32))

    def draw_self(self, dx: int):
        """Redraw the current buffer onto itself shifted dx pixels horizontally."""
        dx = -int(dx) if self.mirrored else int(dx)
        if abs(dx) >= self.width:
            return
        src = self.pixels.astype(np.float32)
        layer = np.zeros_like(src)
        if dx >= 0:
            layer[:, dx:] = src[:, :self.width - dx]
        else:
            layer[:, :dx] = src[:, -dx:]
        self._composite(layer)

    def copy_strip(self, y: int, strip_height: int, x_offset: int):
        """Copy rows [y, y+strip_height) onto themselves, read from x + x_offset.

        Source pixels that fall outside the buffer leave the destination
        untouched.
        """
        y0 = max(0, int(y))
        y1 = min(self.height, y0 + int(strip_height))
        off = int(x_offset)
        if y1 <= y0 or abs(off) >= self.width:
            return
        strip = self.pixels[y0:y1].copy()
        if off >= 0:
            self.pixels[y0:y1, :self.width - off] = strip[:, off:]
        else:
            self.pixels[y0:y1, -off:] = strip[:, :self.width + off]

    def fill_radial_gradient(self, r0: float, r1: float, color0: tuple, color1: tuple,
                             center: tuple | None = None):
        """Fill the whole surface with a concentric radial gradient.

        Colors are (r, g, b, alpha) with alpha in 0.0-1.0. Center is given
        in un-mirrored coordinates.
        """
        if center is not None and self.mirrored:
            center = (self.width - center[0], center[1])
        t = radial_ramp(self.height, self.width, r0, r1, center)[:, :, np.newaxis]
        c0 = np.array(color0, dtype=np.float32)
        c1 = np.array(color1, dtype=np.float32)
        c0[3] *= 255.0
        c1[3] *= 255.0
        layer = c0 + (c1 - c0) * t
        self._composite(layer)

    def _composite(self, src: np.ndarray):
        """Blend a float32 RGBA layer (0-255) into the buffer."""
        dst = self.pixels.astype(np.float32)
        a_s = src[:, :, 3:4] / 255.0
        a_d = dst[:, :, 3:4] / 255.0
        if self.composite == "lighter":
            color = src[:, :, :3] * a_s + dst[:, :, :3] * a_d
            alpha = np.minimum(1.0, a_s + a_d)
        else:
            color = src[:, :, :3] * a_s + dst[:, :, :3] * a_d * (1.0 - a_s)
            alpha = a_s + a_d * (1.0 - a_s)
        rgb = np.where(alpha > 0, color / np.maximum(alpha, 1e-6), 0.0)
        out = np.concatenate([rgb, alpha * 255.0], axis=2)
        self.pixels[...] = np.clip(np.rint(out), 0, 255).astype(np.uint8)
