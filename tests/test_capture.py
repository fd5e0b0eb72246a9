"""
Jungian Mirror — Snapshot & Recording Tests
Still capture, delivery sinks and the clip recorder state machine,
driven by a fake encoder (no FFmpeg needed).

Run with: pytest tests/test_capture.py -v
"""

import asyncio
import os
import sys
from io import BytesIO
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.capture import (
    AlreadyRecording,
    Deliverable,
    DirectorySink,
    EncodingFailure,
    NoSupportedProfile,
    encode_png,
    take_snapshot,
)
from core.export_models import Container
from core.recorder import RecordingState
from core.safety import SafetyError
from core.source import SourceNotReady
from conftest import FakeEncoderFactory, _make_split_frame, _make_test_frame


def _decode_png(data):
    return np.array(Image.open(BytesIO(data)))


def _signal_log(session):
    log = []
    for name in ("recording_started", "recording_ended", "recording_failed"):
        session.events.on(name, lambda *args, _name=name: log.append(_name))
    return log


# ---------------------------------------------------------------------------
# SNAPSHOT
# ---------------------------------------------------------------------------

class TestSnapshot:

    def test_png_roundtrip(self, frame):
        decoded = _decode_png(encode_png(frame))
        np.testing.assert_array_equal(decoded, frame)

    def test_snapshot_matches_live_size(self, make_session, sink):
        session = make_session(frames=[_make_test_frame(64, 48), _make_test_frame(32, 24)])
        session.tick()
        name = session.snapshot()
        assert name == "jungian_mirror_self.png"
        item = sink.items[0]
        assert item.mime_type == "image/png"
        assert _decode_png(item.data).shape == (48, 64, 4)

    def test_snapshot_is_unmirrored(self, make_session, sink):
        session = make_session(frames=_make_split_frame())
        session.select("trickster")
        session.tick()
        session.snapshot()
        still = _decode_png(sink.items[0].data)
        assert sink.items[0].filename == "jungian_mirror_trickster.png"
        assert (still[:, :32, 0] == 255).all()
        assert (still[:, 32:, 0] == 0).all()

    def test_snapshot_leaves_live_buffer(self, make_session):
        session = make_session(frames=_make_split_frame())
        session.select("persona")
        session.tick()
        before = session.render_loop.surface.pixels.copy()
        latest = session.render_loop.latest_frame
        session.snapshot()
        np.testing.assert_array_equal(session.render_loop.surface.pixels, before)
        assert session.render_loop.latest_frame is latest

    def test_snapshot_before_first_frame(self, make_session, sink):
        session = make_session(frames=[])
        with pytest.raises(SourceNotReady):
            session.snapshot()
        assert sink.items == []

    def test_snapshot_uses_settled_effect(self, make_session, sink):
        session = make_session()
        session.tick()
        session.selector.preview("shadow")
        session.snapshot()
        assert sink.items[0].filename == "jungian_mirror_self.png"

    def test_take_snapshot_custom_prefix(self, frame):
        d = take_snapshot(frame, "anima", (64, 48), prefix="shadow_work")
        assert d.filename == "shadow_work_anima.png"


# ---------------------------------------------------------------------------
# DIRECTORY SINK
# ---------------------------------------------------------------------------

class TestDirectorySink:

    def test_writes_file(self, tmp_path):
        path = DirectorySink(tmp_path / "out").deliver(
            Deliverable(b"png-bytes", "jungian_mirror_self.png", "image/png"))
        assert path == tmp_path / "out" / "jungian_mirror_self.png"
        assert path.read_bytes() == b"png-bytes"

    def test_traversal_stripped(self, tmp_path):
        path = DirectorySink(tmp_path).deliver(
            Deliverable(b"x", "../../evil name.png", "image/png"))
        assert path.parent == tmp_path
        assert path.name == "evil_name.png"

    def test_rejects_extension(self, tmp_path):
        with pytest.raises(SafetyError, match="not allowed"):
            DirectorySink(tmp_path).deliver(Deliverable(b"x", "clip.exe", "video/mp4"))

    def test_rejects_empty_payload(self, tmp_path):
        with pytest.raises(SafetyError, match="empty"):
            DirectorySink(tmp_path).deliver(Deliverable(b"", "clip.webm", "video/webm"))
        assert list(tmp_path.iterdir()) == []

    def test_failed_write_leaves_no_partial_file(self, tmp_path):
        (tmp_path / "clip.webm").write_bytes(b"previous clip")

        def disk_full(fd, mode):
            os.close(fd)
            raise OSError("No space left on device")

        with patch("core.capture.os.fdopen", side_effect=disk_full):
            with pytest.raises(OSError, match="No space"):
                DirectorySink(tmp_path).deliver(
                    Deliverable(b"new clip", "clip.webm", "video/webm"))
        assert [p.name for p in tmp_path.iterdir()] == ["clip.webm"]
        assert (tmp_path / "clip.webm").read_bytes() == b"previous clip"

    def test_failed_rename_cleans_up(self, tmp_path):
        with patch("core.capture.os.replace", side_effect=OSError("rename failed")):
            with pytest.raises(OSError):
                DirectorySink(tmp_path).deliver(
                    Deliverable(b"x" * 64, "still.png", "image/png"))
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# RECORDER
# ---------------------------------------------------------------------------

class TestRecording:

    def test_delivers_ordered_segments(self, make_session, sink):
        factory = FakeEncoderFactory()
        session = make_session(encoder_factory=factory)
        log = _signal_log(session)

        async def drive():
            session.tick()
            session.start()
            await session.start_recording()
            assert session.controls_locked
            assert session.select("anima") is False
            result = await session.recorder.wait()
            await session.close()
            return result

        result = asyncio.run(drive())
        encoder = factory.last
        assert len(sink.items) == 1
        clip = sink.items[0]
        assert result == clip.filename
        assert clip.data == encoder.expected_payload()
        assert clip.filename.startswith("jungian_mirror_self_")
        assert clip.filename.endswith(".mp4")
        assert clip.mime_type == 'video/mp4; codecs="avc1.42E01E"'
        assert encoder.frames
        assert all(f.shape == (48, 64, 4) for f in encoder.frames)
        assert encoder.finalized and not encoder.aborted
        assert session.recorder.state is RecordingState.IDLE
        assert log == ["recording_started", "recording_ended"]

    def test_webm_fallback(self, make_session, sink):
        factory = FakeEncoderFactory()
        session = make_session(
            encoder_factory=factory,
            supports=lambda p: p.container is Container.WEBM,
        )

        async def drive():
            session.tick()
            await session.start_recording()
            await session.recorder.wait()

        asyncio.run(drive())
        assert factory.last.profile.codec == "libvpx-vp9"
        assert sink.items[0].filename.endswith(".webm")
        assert sink.items[0].mime_type == "video/webm; codecs=vp9"

    def test_second_start_rejected(self, make_session, sink):
        factory = FakeEncoderFactory()
        session = make_session(encoder_factory=factory)

        async def drive():
            session.tick()
            first = await session.start_recording()
            await asyncio.sleep(0.01)
            with pytest.raises(AlreadyRecording):
                await session.start_recording()
            assert session.recorder.session is first
            await session.recorder.wait()

        asyncio.run(drive())
        assert len(factory.instances) == 1
        assert sink.items[0].data == factory.last.expected_payload()

    def test_no_supported_profile(self, make_session, sink):
        factory = FakeEncoderFactory()
        session = make_session(encoder_factory=factory, supports=lambda p: False)
        log = _signal_log(session)

        async def drive():
            session.tick()
            with pytest.raises(NoSupportedProfile):
                await session.start_recording()

        asyncio.run(drive())
        assert log == ["recording_started", "recording_ended"]
        assert session.recorder.state is RecordingState.IDLE
        assert not session.controls_locked
        assert factory.instances == []
        assert sink.items == []

    def test_before_first_frame(self, make_session):
        session = make_session()

        async def drive():
            with pytest.raises(SourceNotReady):
                await session.start_recording()

        asyncio.run(drive())
        assert not session.recorder.busy

    def test_encoder_failure_delivers_nothing(self, make_session, sink):
        factory = FakeEncoderFactory(fail_after=2)
        session = make_session(encoder_factory=factory)
        log = _signal_log(session)
        errors = []
        session.events.on("recording_failed", errors.append)

        async def drive():
            session.tick()
            await session.start_recording()
            with pytest.raises(EncodingFailure):
                await session.recorder.wait()

        asyncio.run(drive())
        assert sink.items == []
        assert factory.last.aborted
        assert session.recorder.state is RecordingState.IDLE
        assert log == ["recording_started", "recording_failed", "recording_ended"]
        assert isinstance(errors[0], EncodingFailure)

    def test_open_failure(self, make_session, sink):
        session = make_session(encoder_factory=FakeEncoderFactory(fail_on_open=True))
        log = _signal_log(session)

        async def drive():
            session.tick()
            with pytest.raises(EncodingFailure, match="open failed"):
                await session.start_recording()

        asyncio.run(drive())
        assert log == ["recording_started", "recording_failed", "recording_ended"]
        assert not session.recorder.busy

    def test_finalize_failure(self, make_session, sink):
        session = make_session(encoder_factory=FakeEncoderFactory(fail_on_finalize=True))

        async def drive():
            session.tick()
            await session.start_recording()
            with pytest.raises(EncodingFailure, match="finalize failed"):
                await session.recorder.wait()

        asyncio.run(drive())
        assert sink.items == []
        assert not session.recorder.busy

    def test_sink_failure_aborts(self, make_session):
        class FullDisk:
            def deliver(self, deliverable):
                raise SafetyError("Only 0.1GB free disk space")

        session = make_session()
        session.sink = session.recorder.sink = FullDisk()

        async def drive():
            session.tick()
            await session.start_recording()
            with pytest.raises(SafetyError):
                await session.recorder.wait()

        asyncio.run(drive())
        assert session.recorder.state is RecordingState.IDLE

    def test_close_mid_recording(self, make_session, sink):
        factory = FakeEncoderFactory()
        session = make_session(encoder_factory=factory)
        log = _signal_log(session)

        async def drive():
            session.tick()
            session.start()
            await session.start_recording()
            await asyncio.sleep(0.01)
            await session.close()
            await asyncio.sleep(0.1)

        asyncio.run(drive())
        assert sink.items == []
        assert factory.last.aborted
        assert not factory.last.finalized
        assert log == ["recording_started", "recording_ended"]
        assert session.recorder.state is RecordingState.IDLE

    def test_close_while_encoder_opening(self, make_session, sink):
        factory = FakeEncoderFactory(open_delay=0.05)
        session = make_session(encoder_factory=factory)
        log = _signal_log(session)

        async def drive():
            session.tick()
            start = asyncio.create_task(session.start_recording())
            await asyncio.sleep(0.01)
            await session.close()
            with pytest.raises(EncodingFailure, match="cancelled"):
                await start
            recorder = session.recorder
            assert recorder._timer is None
            assert recorder._tap_task is None
            assert recorder._reader_task is None
            await asyncio.sleep(0.1)

        asyncio.run(drive())
        encoder = factory.last
        assert encoder.opened
        assert encoder.aborted
        assert encoder.frames == []
        assert sink.items == []
        assert session.recorder.state is RecordingState.IDLE
        assert log == ["recording_started", "recording_ended"]

    def test_explicit_stop_finalizes_early(self, make_session, sink, fast_config):
        config = fast_config.model_copy(update={"record_duration_ms": 60_000})
        session = make_session(config=config)

        async def drive():
            session.tick()
            await session.start_recording()
            await asyncio.sleep(0.02)
            session.recorder.stop()
            assert session.recorder.state is RecordingState.FINALIZING
            session.recorder.stop()
            await session.recorder.wait()

        asyncio.run(drive())
        assert len(sink.items) == 1
