"""
Jungian Mirror — Whimsy Effects
Warm centring glow (The Self).
"""

GLOW_COLOR = (255, 220, 150)


def self_glow(surface, radius: float = 0.3, intensity: float = 0.15,
              color: tuple = GLOW_COLOR):
    """Additive golden glow: transparent at the centre, full at radius.

    Args:
        surface: RenderSurface holding the composited frame.
        radius: Radius where the glow peaks, as a fraction of min(width, height).
        intensity: Peak alpha (0.0-1.0), held beyond the radius.
        color: RGB tint of the glow.
    """
    r1 = radius * min(surface.width, surface.height)
    with surface.saved_state():
        surface.set_composite("lighter")
        surface.fill_radial_gradient(0.0, r1, (*color, 0.0), (*color, intensity))
