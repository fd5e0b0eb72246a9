"""
Jungian Mirror — Render Loop
Composites one frame per display tick: mirror, clear, pre-draw,
camera frame, overlay, restore. The finished frame is published as an
immutable copy for display and capture.
"""

import asyncio
import logging

import numpy as np

from core.buffer import PixelBuffer
from core.source import SourceNotReady
from core.surface import RenderSurface
from effects import apply_overlay, apply_pre_draw

logger = logging.getLogger(__name__)


def compose_frame(surface: RenderSurface, frame: np.ndarray, effect_id: str,
                  mirrored: bool = True, rng=None, params: dict | None = None):
    """Run the full per-frame pipeline on surface.

    The mirror transform is scoped to this call and undone on every exit
    path, so the surface leaves in the state it came in.
    """
    with surface.saved_state():
        surface.set_mirror(mirrored)
        surface.clear()
        apply_pre_draw(surface, effect_id)
        surface.draw_frame(frame)
        apply_overlay(surface, effect_id, rng=rng, **(params or {}))


class RenderLoop:
    """Per-tick compositor bound to one frame source and effect selector.

    The surface is sized from the source's native resolution on the first
    frame and keeps that size for the rest of the session; later frames of
    another size are resampled.
    """

    def __init__(self, source, selector, config=None, rng=None, mirrored: bool = True):
        self.source = source
        self.selector = selector
        self.config = config
        self.rng = rng
        self.mirrored = mirrored
        self.surface = None
        self.frame_count = 0
        self._latest = None
        self._running = False

    @property
    def ready(self) -> bool:
        return self.surface is not None

    @property
    def size(self):
        if self.surface is None:
            return None
        return self.surface.width, self.surface.height

    @property
    def latest_frame(self) -> PixelBuffer | None:
        """Last fully composed frame (a copy; never half-drawn)."""
        return self._latest

    def current_source_frame(self) -> np.ndarray:
        """Latest camera frame; raises SourceNotReady."""
        frame = self.source.current_frame()
        if frame is None:
            raise SourceNotReady("Source returned no frame")
        return frame

    def _ensure_surface(self, frame: np.ndarray) -> RenderSurface:
        if self.surface is None:
            width = self.source.width or frame.shape[1]
            height = self.source.height or frame.shape[0]
            self.surface = RenderSurface(width, height)
            logger.info("Render surface %dx%d", width, height)
        return self.surface

    def params_for(self, effect_id: str) -> dict:
        return self.config.params_for(effect_id) if self.config is not None else {}

    def tick(self) -> bool:
        """Compose one frame. Returns False when the source isn't ready."""
        try:
            frame = self.current_source_frame()
        except SourceNotReady:
            return False

        surface = self._ensure_surface(frame)
        effect_id = self.selector.display_id
        compose_frame(surface, frame, effect_id, mirrored=self.mirrored,
                      rng=self.rng, params=self.params_for(effect_id))
        self._latest = surface.snapshot()
        self.frame_count += 1
        return True

    async def run(self, interval: float | None = None):
        """Tick until stop() or cancellation."""
        if interval is None:
            interval = self.config.render_interval if self.config is not None else 1 / 60
        self._running = True
        try:
            while self._running:
                self.tick()
                await asyncio.sleep(interval)
        finally:
            self._running = False

    def stop(self):
        self._running = False
