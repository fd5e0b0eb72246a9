"""
Jungian Mirror — Destruction Effects
The Shadow: heavy vignette plus intermittent slice tearing and an
additive channel-split flicker.
"""

import math

import numpy as np

_rng = np.random.RandomState()


def shadow_vignette(surface, max_alpha: float = 0.85):
    """Black vignette, transparent at the centre to max_alpha at the corners.

    Alpha grows linearly with distance from the centre, so it is strictly
    increasing along any ray out of the centre.
    """
    far = math.hypot(surface.width, surface.height) / 2.0
    surface.fill_radial_gradient(0.0, far, (0, 0, 0, 0.0), (0, 0, 0, max_alpha))


def slice_glitch(surface, rng, passes: int = 2, min_height: int = 10,
                 max_height: int = 40, max_shift: int = 20):
    """Tear thin horizontal strips sideways (signal tearing)."""
    h = surface.height
    for _ in range(max(0, int(passes))):
        y = int(rng.random_sample() * h)
        strip_h = int(min_height + rng.random_sample() * (max_height - min_height))
        x_offset = int(round((rng.random_sample() - 0.5) * 2 * max_shift))
        surface.copy_strip(y, strip_h, x_offset)


def channel_split(surface, rng, max_offset: int = 5):
    """Additively redraw the frame onto itself at opposing offsets.

    Approximates chromatic aberration; compositing returns to
    source-over afterwards.
    """
    offset = int(round((rng.random_sample() - 0.5) * 2 * max_offset))
    surface.set_composite("lighter")
    try:
        surface.draw_self(offset)
        surface.draw_self(-offset)
    finally:
        surface.set_composite("source-over")


def shadow(surface, rng=None, vignette_alpha: float = 0.85,
           slice_probability: float = 0.15, slice_passes: int = 2,
           slice_max_shift: int = 20, split_probability: float = 0.05,
           split_max_offset: int = 5):
    """The Shadow: vignette first, then the glitches on the dimmed image.

    Args:
        surface: RenderSurface holding the composited frame.
        rng: np.random.RandomState (module default if None).
        vignette_alpha: Peak vignette darkness at the far corner (0.0-1.0).
        slice_probability: Per-frame chance of slice tearing.
        slice_passes: Strips torn when slicing triggers.
        slice_max_shift: Maximum horizontal tear offset in pixels.
        split_probability: Per-frame chance of the channel-split flicker.
        split_max_offset: Maximum split offset in pixels.
    """
    if rng is None:
        rng = _rng
    shadow_vignette(surface, vignette_alpha)
    if rng.random_sample() < slice_probability:
        slice_glitch(surface, rng, passes=slice_passes, max_shift=slice_max_shift)
    if rng.random_sample() < split_probability:
        channel_split(surface, rng, max_offset=split_max_offset)
