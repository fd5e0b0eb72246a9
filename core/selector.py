"""
Jungian Mirror — Effect Selector
Owns the current effect id and the randomized "spin" transition.

current_id is the settled choice. display_id is what the render loop
shows; it only differs from current_id while a spin is flicking through
effects.
"""

import asyncio
import logging
import random

from core.events import EventHub
from effects import EFFECT_IDS, get_effect

logger = logging.getLogger(__name__)


class EffectSelector:
    def __init__(self, initial: str = "self", events: EventHub | None = None, rng=None):
        get_effect(initial)
        self.current_id = initial
        self.display_id = initial
        self.events = events if events is not None else EventHub()
        self.rng = rng if rng is not None else random.Random()
        self._spin = None

    @property
    def spinning(self) -> bool:
        return self._spin is not None

    @property
    def current(self):
        return get_effect(self.current_id)

    def select(self, effect_id: str):
        """Settle on effect_id and notify observers.

        Raises UnknownEffect for ids outside the catalog.
        """
        effect = get_effect(effect_id)
        self.current_id = effect.id
        self.display_id = effect.id
        self.events.emit("effect_changed", effect.id, effect.name, effect.description)
        return effect

    def preview(self, effect_id: str):
        """Show effect_id without settling on it (spin ticks)."""
        effect = get_effect(effect_id)
        self.display_id = effect.id
        self.events.emit("effect_previewed", effect.id)

    def spin(self, ticks: int = 15) -> "SpinTransition | None":
        """Begin a spin. Returns None if one is already running."""
        if self.spinning:
            logger.debug("Spin already in progress, ignoring trigger")
            return None
        transition = SpinTransition(self, ticks)
        transition.start()
        return transition


class SpinTransition:
    """Slot-machine transition: Idle -> Spinning -> Idle.

    Every tick but the last flicks display_id to a uniformly random
    effect (repeats allowed). The last tick settles on a uniform draw
    from every effect except the one that was current when the spin began.
    That exclusion needs at least two catalog entries.
    """

    def __init__(self, selector: EffectSelector, ticks: int = 15):
        if len(EFFECT_IDS) < 2:
            raise ValueError("Spin needs at least two effects in the catalog")
        self.selector = selector
        self.ticks = max(1, int(ticks))
        self.remaining = self.ticks
        self.start_id = selector.current_id
        self.candidates = tuple(e for e in EFFECT_IDS if e != self.start_id)
        self.final_id = None
        self.active = False

    def start(self):
        self.active = True
        self.selector._spin = self
        self.selector.events.emit("spin_started")

    def step(self) -> bool:
        """Advance one tick. Returns True once the spin has settled."""
        if not self.active:
            return True
        self.remaining -= 1
        rng = self.selector.rng
        if self.remaining > 0:
            self.selector.preview(rng.choice(EFFECT_IDS))
            return False

        self.final_id = rng.choice(self.candidates)
        self._finish()
        self.selector.select(self.final_id)
        self.selector.events.emit("spin_ended")
        return True

    def abandon(self):
        """Drop pending ticks; display falls back to the settled effect."""
        if not self.active:
            return
        self._finish()
        self.selector.display_id = self.selector.current_id
        self.selector.events.emit("spin_ended")

    def _finish(self):
        self.active = False
        if self.selector._spin is self:
            self.selector._spin = None

    async def run(self, interval: float = 0.08) -> str | None:
        """Drive the ticks on the event loop. Cancelling abandons the spin."""
        try:
            while True:
                await asyncio.sleep(interval)
                if self.step():
                    return self.final_id
        except asyncio.CancelledError:
            self.abandon()
            raise
