"""
Jungian Mirror — Mirror Session
Owns one frame source, effect selector, render loop and recorder on a
single asyncio timeline. This is the entry point the control surface
talks to; nothing here is global, so sessions run side by side.

Usage:
    async with MirrorSession(CaptureDeviceSource(0)) as session:
        session.events.on("effect_changed", print)
        session.start()
        session.trigger_spin()
        await session.start_recording()
        await session.recorder.wait()
"""

import asyncio
import logging

from core.capture import DirectorySink, take_snapshot
from core.config import MirrorConfig
from core.events import EventHub
from core.recorder import Recorder
from core.render import RenderLoop
from core.selector import EffectSelector
from core.video_io import FFmpegEncoder

logger = logging.getLogger(__name__)


class MirrorSession:
    def __init__(self, source, config: MirrorConfig | None = None, sink=None,
                 supports=None, encoder_factory=FFmpegEncoder, rng=None, spin_rng=None):
        self.config = config if config is not None else MirrorConfig()
        self.source = source
        self.events = EventHub()
        self.selector = EffectSelector(self.config.default_effect, self.events, rng=spin_rng)
        self.render_loop = RenderLoop(source, self.selector, self.config, rng=rng)
        self.sink = sink if sink is not None else DirectorySink(self.config.output_dir)
        self.recorder = Recorder(
            self.render_loop,
            self.sink,
            self.events,
            supports=supports,
            encoder_factory=encoder_factory,
            duration=self.config.record_duration,
            tap_fps=self.config.tap_fps,
            prefix=self.config.filename_prefix,
        )
        self.closed = False
        self._render_task = None
        self._spin_task = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def controls_locked(self) -> bool:
        """True while a spin or a recording owns the effect controls."""
        return self.selector.spinning or self.recorder.busy

    def start(self) -> asyncio.Task:
        """Start the render loop on the running event loop."""
        if self._render_task is None or self._render_task.done():
            self._render_task = asyncio.get_running_loop().create_task(
                self.render_loop.run(self.config.render_interval)
            )
        return self._render_task

    def tick(self) -> bool:
        return self.render_loop.tick()

    def select(self, effect_id: str) -> bool:
        """Direct selection from the control surface.

        Ignored (returns False) while controls are locked. Unknown ids
        raise UnknownEffect.
        """
        if self.controls_locked:
            logger.debug("Controls locked, ignoring select(%s)", effect_id)
            return False
        self.selector.select(effect_id)
        return True

    def trigger_spin(self) -> asyncio.Task | None:
        """Start the randomized spin. Returns its task, or None if locked."""
        if self.closed or self.controls_locked:
            return None
        transition = self.selector.spin(self.config.spin_ticks)
        if transition is None:
            return None
        self._spin_task = asyncio.get_running_loop().create_task(
            transition.run(self.config.spin_interval)
        )
        return self._spin_task

    def snapshot(self):
        """Compose an un-mirrored still of the current effect and deliver it.

        Raises SourceNotReady if the camera has no frame yet.
        """
        frame = self.render_loop.current_source_frame()
        size = self.render_loop.size or (frame.shape[1], frame.shape[0])
        effect_id = self.selector.current_id
        deliverable = take_snapshot(
            frame, effect_id, size,
            prefix=self.config.filename_prefix,
            rng=self.render_loop.rng,
            params=self.config.params_for(effect_id),
        )
        logger.info("Snapshot %s", deliverable.filename)
        return self.sink.deliver(deliverable)

    async def start_recording(self):
        return await self.recorder.start()

    async def close(self):
        """Tear down: abandon spin and recording, stop rendering."""
        if self.closed:
            return
        self.closed = True
        for task in (self._spin_task, self._render_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        await self.recorder.cancel()
        self.render_loop.stop()
        self.source.close()
        logger.info("Session closed after %d frames", self.render_loop.frame_count)
