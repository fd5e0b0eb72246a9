"""
Jungian Mirror — Effects Registry
Fixed, ordered catalog of archetype effects and their dispatch.
Every effect pairs a pre-draw step (run before the camera frame is
composited) with an overlay (run after), both (surface, **params) -> None.
"""

import inspect
from dataclasses import dataclass, field
from types import MappingProxyType

from effects.color import persona, trickster
from effects.destruction import shadow
from effects.texture import anima
from effects.whimsy import self_glow


class UnknownEffect(ValueError):
    """Raised when an effect id is not in the catalog."""
    pass


def reset_filters(surface):
    """Pre-draw: drop any compositing mode or filter left by the last overlay."""
    surface.reset_compositing()


@dataclass(frozen=True)
class EffectDefinition:
    id: str
    name: str
    description: str
    overlay: object
    pre_draw: object = reset_filters
    params: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))


def _define(id, name, description, overlay, **params):
    return EffectDefinition(
        id=id,
        name=name,
        description=description,
        overlay=overlay,
        params=MappingProxyType(params),
    )


# Master registry: id -> definition. Insertion order is display order.
EFFECTS = MappingProxyType({e.id: e for e in (
    _define(
        "self", "The Self",
        "The unified whole of the conscious and unconscious. Wholeness, "
        "integration, and the center of the total personality.",
        self_glow, radius=0.3, intensity=0.15,
    ),
    _define(
        "persona", "The Persona",
        "The social mask or facade you present to the world. It conceals your true self.",
        persona, inner=0.4, outer=0.6,
    ),
    _define(
        "shadow", "The Shadow",
        "The unknown, dark side of the personality. The repressed, instinctive, "
        "and inferior parts of the psyche.",
        shadow, vignette_alpha=0.85, slice_probability=0.15, slice_passes=2,
        slice_max_shift=20, split_probability=0.05, split_max_offset=5,
    ),
    _define(
        "anima", "The Anima/Animus",
        "The inner, unconscious feminine side in men (Anima) or masculine side in "
        "women (Animus). Represents intuition and soul.",
        anima, threshold=20,
    ),
    _define(
        "trickster", "The Trickster",
        "The archetype of chaos, disruption, and challenging norms. It exposes "
        "hypocrisy and creates new possibilities.",
        trickster, shadow_threshold=55, passion_factor=1.8,
    ),
)})

EFFECT_IDS = tuple(EFFECTS.keys())


def get_effect(effect_id: str) -> EffectDefinition:
    """Look up an effect by id.

    Raises UnknownEffect if the id isn't in the catalog; there is no
    fallback effect.
    """
    try:
        return EFFECTS[effect_id]
    except KeyError:
        available = ", ".join(EFFECT_IDS)
        raise UnknownEffect(f"Unknown effect: {effect_id}. Available: {available}") from None


def list_effects() -> list[dict]:
    """List effects in display order."""
    return [
        {"id": e.id, "name": e.name, "description": e.description, "params": dict(e.params)}
        for e in EFFECTS.values()
    ]


def validate_params(effect_id: str, params: dict) -> dict:
    """Check override keys against the effect's parameters."""
    effect = get_effect(effect_id)
    unknown = set(params) - set(effect.params)
    if unknown:
        raise ValueError(
            f"Unknown params for '{effect_id}': {', '.join(sorted(unknown))}. "
            f"Accepted: {', '.join(effect.params) or 'none'}"
        )
    return params


def apply_pre_draw(surface, effect_id: str):
    get_effect(effect_id).pre_draw(surface)


def apply_overlay(surface, effect_id: str, rng=None, **params):
    """Run an effect's overlay with catalog defaults merged under params.

    rng is forwarded only to overlays that take one (random glitches).
    """
    effect = get_effect(effect_id)
    merged = {**effect.params, **params}
    if rng is not None and "rng" in inspect.signature(effect.overlay).parameters:
        merged["rng"] = rng
    effect.overlay(surface, **merged)
