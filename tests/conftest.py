"""
Conftest: shared fixtures for all Jungian Mirror test modules.

1. Synthetic frames (gradient, uniform, split) — no camera needed
2. Fake encoder — stands in for the FFmpeg subprocess during recording tests
3. Session factory — MirrorSession wired to in-memory source and sink
"""

import asyncio
import os
import random
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.capture import EncodingFailure, MemorySink
from core.config import MirrorConfig
from core.session import MirrorSession
from core.source import ArraySource


def _make_test_frame(width=64, height=48):
    """Generate a synthetic RGBA test frame (gradient, not blank)."""
    frame = np.zeros((height, width, 4), dtype=np.uint8)
    frame[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)  # R gradient
    frame[:, :, 1] = 128  # constant G
    frame[:, :, 2] = np.linspace(255, 0, width, dtype=np.uint8)  # B inverse
    frame[:, :, 3] = 255
    return frame


def _make_uniform_frame(value, width=64, height=48):
    frame = np.full((height, width, 4), value, dtype=np.uint8)
    frame[:, :, 3] = 255
    return frame


def _make_split_frame(width=64, height=48):
    """Left half white, right half black."""
    frame = _make_uniform_frame(0, width, height)
    frame[:, : width // 2, :3] = 255
    return frame


# ---------------------------------------------------------------------------
# Fake encoder: one segment per written frame, a trailer on finalize
# ---------------------------------------------------------------------------

class FakeEncoder:
    def __init__(self, profile, width, height, fps, fail_after=None,
                 fail_on_open=False, fail_on_finalize=False, open_delay=0.0):
        self.profile = profile
        self.width = width
        self.height = height
        self.fps = fps
        self.fail_after = fail_after
        self.fail_on_open = fail_on_open
        self.fail_on_finalize = fail_on_finalize
        self.open_delay = open_delay
        self.frames = []
        self.opened = False
        self.finalized = False
        self.aborted = False
        self._queue = None

    async def open(self):
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_on_open:
            raise EncodingFailure("open failed")
        self._queue = asyncio.Queue()
        self.opened = True

    async def write(self, frame):
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise EncodingFailure("write failed")
        assert frame.shape == (self.height, self.width, 4)
        self.frames.append(frame.copy())
        await self._queue.put(f"seg{len(self.frames) - 1};".encode())

    async def read_segment(self):
        return await self._queue.get()

    async def finalize(self):
        if self.fail_on_finalize:
            raise EncodingFailure("finalize failed")
        self.finalized = True
        await self._queue.put(b"trailer")
        await self._queue.put(b"")

    async def abort(self):
        # Like a real encoder, nothing to kill before open() completes
        if not self.opened:
            return
        self.aborted = True
        await self._queue.put(b"")

    def expected_payload(self):
        return b"".join(f"seg{i};".encode() for i in range(len(self.frames))) + b"trailer"


class FakeEncoderFactory:
    """Callable encoder factory that remembers what it built."""

    def __init__(self, **options):
        self.options = options
        self.instances = []

    def __call__(self, profile, width, height, fps):
        encoder = FakeEncoder(profile, width, height, fps, **self.options)
        self.instances.append(encoder)
        return encoder

    @property
    def last(self):
        return self.instances[-1]


def supports_all(profile):
    return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def frame():
    return _make_test_frame()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def fast_config():
    """Millisecond timings so async tests finish quickly."""
    return MirrorConfig(
        render_fps=200,
        tap_fps=120,
        spin_ticks=15,
        spin_interval_ms=1,
        record_duration_ms=60,
    )


@pytest.fixture
def make_session(sink, fast_config):
    """Factory: MirrorSession over an in-memory source, fake encoder, memory sink."""

    def _make(frames=None, config=None, supports=supports_all, encoder_factory=None, seed=0):
        source = ArraySource(frames if frames is not None else _make_test_frame())
        return MirrorSession(
            source,
            config or fast_config,
            sink=sink,
            supports=supports,
            encoder_factory=encoder_factory or FakeEncoderFactory(),
            rng=np.random.RandomState(seed),
            spin_rng=random.Random(seed),
        )

    return _make
