"""
Jungian Mirror — Color Effects
Luma, channel inversion (Persona) and red/black duotone (Trickster).
"""

import numpy as np

# ITU-R BT.601 weights, scaled by 1000 so luma is evaluated exactly
LUMA_WEIGHTS = (299, 587, 114)
LUMA_SCALE = 1000


def luma_x1000(pixels: np.ndarray) -> np.ndarray:
    """Luma * 1000 as int32 (exact integer arithmetic)."""
    rgb = pixels[:, :, :3].astype(np.int32)
    wr, wg, wb = LUMA_WEIGHTS
    return rgb[:, :, 0] * wr + rgb[:, :, 1] * wg + rgb[:, :, 2] * wb


def luma(pixels: np.ndarray) -> np.ndarray:
    """Perceptual brightness 0.299R + 0.587G + 0.114B as float64."""
    return luma_x1000(pixels) / LUMA_SCALE


def luma_u8(pixels: np.ndarray) -> np.ndarray:
    """Luma quantised to uint8, rounding half to even."""
    return np.clip(np.rint(luma(pixels)), 0, 255).astype(np.uint8)


def invert_rgb(pixels: np.ndarray) -> np.ndarray:
    """Invert R, G, B in place (out = 255 - in). Alpha untouched."""
    np.subtract(255, pixels[:, :, :3], out=pixels[:, :, :3])
    return pixels


def persona(surface, inner: float = 0.4, outer: float = 0.6,
            center_color: tuple = (255, 255, 255, 0.05),
            edge_color: tuple = (0, 0, 0, 0.15)):
    """Persona: negative image under a soft mask-like vignette.

    Args:
        surface: RenderSurface holding the composited frame.
        inner: Gradient start radius as a fraction of width.
        outer: Gradient end radius as a fraction of width.
        center_color: RGBA (alpha 0-1) at the inner radius.
        edge_color: RGBA (alpha 0-1) at the outer radius.
    """
    invert_rgb(surface.pixels)
    w = surface.width
    surface.fill_radial_gradient(w * inner, w * outer, center_color, edge_color)


def redscale(pixels: np.ndarray, shadow_threshold: float = 55,
             passion_factor: float = 1.8) -> np.ndarray:
    """Red/black duotone in place.

    Pixels with luma <= shadow_threshold are crushed to black; the rest
    map to pure red with R = luma * passion_factor (clamped). Alpha is
    left unchanged.
    """
    lx = luma_x1000(pixels)
    red = np.clip(np.rint(lx * passion_factor / LUMA_SCALE), 0, 255).astype(np.uint8)
    crushed = lx <= shadow_threshold * LUMA_SCALE
    pixels[:, :, 0] = np.where(crushed, 0, red)
    pixels[:, :, 1] = 0
    pixels[:, :, 2] = 0
    return pixels


def trickster(surface, shadow_threshold: float = 55, passion_factor: float = 1.8):
    """Trickster: high-contrast red/black cinematic duotone."""
    redscale(surface.pixels, shadow_threshold, passion_factor)
