"""
Jungian Mirror — Texture Effects
Laplacian edge outline (Anima): white contours on a dark-grey field.
"""

import numpy as np

from effects.color import luma_u8

EDGE_COLOR = (255, 255, 255, 255)
FIELD_COLOR = (20, 20, 20, 255)


def edge_mask(gray: np.ndarray, threshold: float = 20) -> np.ndarray:
    """Boolean edge map for the interior of a luma grid.

    Applies the 4-neighbour Laplacian (4c - l - r - t - b) to every pixel
    that has all four neighbours and marks |value| > threshold.

    Returns:
        (H-2, W-2) bool array, or None if the grid has no interior.
    """
    h, w = gray.shape
    if h < 3 or w < 3:
        return None
    g = gray.astype(np.int32)
    lap = (4 * g[1:-1, 1:-1]
           - g[1:-1, :-2]   # left
           - g[1:-1, 2:]    # right
           - g[:-2, 1:-1]   # top
           - g[2:, 1:-1])   # bottom
    return np.abs(lap) > threshold


def edge_outline(pixels: np.ndarray, threshold: float = 20,
                 edge_color: tuple = EDGE_COLOR,
                 field_color: tuple = FIELD_COLOR) -> np.ndarray:
    """Replace the frame with its Laplacian outline, in place.

    Border pixels copy the nearest interior result. A buffer too small to
    have an interior resolves entirely to field_color.
    """
    mask = edge_mask(luma_u8(pixels), threshold)
    if mask is None:
        pixels[...] = np.array(field_color, dtype=np.uint8)
        return pixels
    mask = np.pad(mask, 1, mode="edge")
    pixels[...] = np.where(
        mask[:, :, np.newaxis],
        np.array(edge_color, dtype=np.uint8),
        np.array(field_color, dtype=np.uint8),
    )
    return pixels


def anima(surface, threshold: float = 20):
    """Anima/Animus: white outline on a dark field."""
    edge_outline(surface.pixels, threshold)
