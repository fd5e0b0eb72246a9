"""
Jungian Mirror — Clip Recorder
Fixed-duration capture of the composited stream.

State machine: IDLE -> RECORDING -> FINALIZING -> IDLE.
    start()   negotiates a profile, opens the encoder, starts the frame
              tap, the segment reader and the stop timer.
    stop()    asks the encoder to flush (timer expiry or explicit).
    finalize  joins segments in order, delivers one file, unlocks.
Any failure aborts the encoder and discards the segments; a truncated
clip is never delivered.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from core.capture import (
    AlreadyRecording,
    Deliverable,
    EncodingFailure,
    NoSupportedProfile,
)
from core.events import EventHub
from core.export_models import PROFILE_PREFERENCES, EncodingProfile
from core.source import SourceNotReady
from core.video_io import FFmpegCapabilities, FFmpegEncoder

logger = logging.getLogger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


@dataclass
class RecordingSession:
    """One in-flight recording. Discarded once finalized or aborted."""
    profile: EncodingProfile
    state: RecordingState = RecordingState.RECORDING
    started_at: float = field(default_factory=time.time)
    chunks: list = field(default_factory=list)

    @property
    def size(self) -> int:
        return sum(len(c) for c in self.chunks)


def negotiate_profile(supports, profiles=PROFILE_PREFERENCES) -> EncodingProfile:
    """First profile in preference order that supports() accepts.

    Raises:
        NoSupportedProfile: If none is accepted.
    """
    for profile in profiles:
        if supports(profile):
            return profile
    tried = ", ".join(p.mime_type for p in profiles)
    raise NoSupportedProfile(f"No supported encoding profile (tried: {tried})")


def clip_filename(prefix: str, effect_id: str, profile: EncodingProfile) -> str:
    return f"{prefix}_{effect_id}_{int(time.time() * 1000)}.{profile.extension}"


class Recorder:
    """Records the render loop's output for a fixed duration.

    Args:
        render_loop: RenderLoop whose latest_frame is tapped.
        sink: Delivery sink with deliver(Deliverable).
        events: EventHub for recording_* signals.
        supports: Capability predicate; defaults to FFmpegCapabilities().supports.
        encoder_factory: (profile, width, height, fps) -> encoder.
        profiles: Ordered preference list.
        duration: Clip length in seconds.
        tap_fps: Frames per second fed to the encoder.
        prefix: Filename prefix.
    """

    def __init__(self, render_loop, sink, events: EventHub | None = None, supports=None,
                 encoder_factory=FFmpegEncoder, profiles=PROFILE_PREFERENCES,
                 duration: float = 5.0, tap_fps: float = 30.0,
                 prefix: str = "jungian_mirror"):
        self.render_loop = render_loop
        self.sink = sink
        self.events = events if events is not None else EventHub()
        self.supports = supports if supports is not None else FFmpegCapabilities().supports
        self.encoder_factory = encoder_factory
        self.profiles = tuple(profiles)
        self.duration = duration
        self.tap_fps = tap_fps
        self.prefix = prefix

        self.session = None
        self._encoder = None
        self._tap_task = None
        self._reader_task = None
        self._finalize_task = None
        self._timer = None
        self._done = None

    @property
    def state(self) -> RecordingState:
        return self.session.state if self.session is not None else RecordingState.IDLE

    @property
    def busy(self) -> bool:
        return self.session is not None

    async def start(self) -> RecordingSession:
        """Begin a recording.

        Raises:
            AlreadyRecording: If a recording is recording or finalizing.
            SourceNotReady: If no frame has been composed yet.
            NoSupportedProfile: If no profile is usable.
            EncodingFailure: If the encoder cannot be opened, or the
                recording was cancelled while it was opening.
        """
        if self.session is not None:
            raise AlreadyRecording(f"Recorder is {self.session.state.value}")
        size = self.render_loop.size
        if size is None:
            raise SourceNotReady("Nothing rendered yet")

        self.events.emit("recording_started")
        try:
            profile = negotiate_profile(self.supports, self.profiles)
        except NoSupportedProfile:
            logger.error("Recording unavailable: no supported encoding profile")
            self.events.emit("recording_ended")
            raise

        logger.info("Recording %.1fs using %s", self.duration, profile.mime_type)
        session = RecordingSession(profile=profile)
        loop = asyncio.get_running_loop()
        self.session = session
        self._done = loop.create_future()
        width, height = size
        encoder = self._encoder = self.encoder_factory(profile, width, height, self.tap_fps)
        try:
            await encoder.open()
        except Exception as e:
            await self._fail(session, e)
            raise

        if self.session is not session:
            # cancel() ran while the encoder was starting
            try:
                await encoder.abort()
            except Exception:
                logger.exception("Encoder abort failed")
            raise EncodingFailure("Recording cancelled while the encoder was starting")

        self._reader_task = loop.create_task(self._read_segments(session))
        self._tap_task = loop.create_task(self._tap(session))
        self._timer = loop.call_later(self.duration, self.stop)
        return session

    def stop(self):
        """Request finalization. No-op unless currently recording."""
        session = self.session
        if session is None or session.state is not RecordingState.RECORDING:
            return
        session.state = RecordingState.FINALIZING
        self._cancel_timer()
        self._finalize_task = asyncio.get_running_loop().create_task(self._finalize(session))

    async def wait(self):
        """Wait for the current recording to finish.

        Returns the sink's result (e.g. the saved path), or None if idle.
        Re-raises the failure if the recording was aborted.
        """
        if self._done is None:
            return None
        return await self._done

    async def cancel(self):
        """Abandon the current recording without delivering anything."""
        session = self.session
        if session is None:
            return
        logger.info("Recording cancelled")
        self._cancel_timer()
        await self._cancel_tasks()
        await self._abort_encoder()
        session.chunks.clear()
        done = self._done
        self._reset()
        self.events.emit("recording_ended")
        if done is not None and not done.done():
            done.cancel()

    # --- Internals ---

    async def _tap(self, session: RecordingSession):
        interval = 1.0 / self.tap_fps
        try:
            while session.state is RecordingState.RECORDING:
                frame = self.render_loop.latest_frame
                if frame is not None:
                    await self._encoder.write(frame.pixels)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(session, e)

    async def _read_segments(self, session: RecordingSession):
        try:
            while True:
                segment = await self._encoder.read_segment()
                if not segment:
                    return
                session.chunks.append(segment)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(session, e)

    async def _finalize(self, session: RecordingSession):
        try:
            await self._stop_task(self._tap_task)
            await self._encoder.finalize()
            # asyncio.wait: cancelling finalize must not cancel the reader
            await asyncio.wait({self._reader_task})
            if session is not self.session:
                return
            if not session.chunks:
                raise EncodingFailure("Encoder produced no output")
            deliverable = Deliverable(
                data=b"".join(session.chunks),
                filename=clip_filename(self.prefix, self.render_loop.selector.current_id,
                                       session.profile),
                mime_type=session.profile.mime_type,
            )
            result = self.sink.deliver(deliverable)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(session, e)
            return

        logger.info("Recording delivered: %s (%d segments, %d bytes)",
                    deliverable.filename, len(session.chunks), len(deliverable.data))
        done = self._done
        self._reset()
        self.events.emit("recording_ended")
        if done is not None and not done.done():
            done.set_result(result)

    async def _fail(self, session: RecordingSession, error: Exception):
        if session is not self.session:
            return
        logger.error("Recording failed: %s", error)
        self._cancel_timer()
        await self._cancel_tasks()
        await self._abort_encoder()
        session.chunks.clear()
        done = self._done
        self._reset()
        self.events.emit("recording_failed", error)
        self.events.emit("recording_ended")
        if done is not None and not done.done():
            done.set_exception(error)
            done.exception()  # Mark retrieved; wait() still re-raises

    async def _cancel_tasks(self):
        for task in (self._tap_task, self._reader_task, self._finalize_task):
            await self._stop_task(task)

    @staticmethod
    async def _stop_task(task):
        if task is None or task is asyncio.current_task() or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _abort_encoder(self):
        if self._encoder is None:
            return
        try:
            await self._encoder.abort()
        except Exception:
            logger.exception("Encoder abort failed")

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _reset(self):
        self.session = None
        self._encoder = None
        self._tap_task = None
        self._reader_task = None
        self._finalize_task = None
        self._done = None
