"""
Jungian Mirror — Video I/O
FFmpeg capability probing and a streaming encoder that turns raw RGBA
frames into encoded segments. The encoder runs as an asyncio subprocess
so feeding it never blocks the render tick.
"""

import asyncio
import logging
import re
import shutil
import subprocess

import numpy as np
from PIL import Image

from core.capture import EncodingFailure

logger = logging.getLogger(__name__)

SEGMENT_BYTES = 64 * 1024

# Encoders that can feed the WebM muxer when a profile names no codec
WEBM_ENCODERS = frozenset({"libvpx-vp9", "libvpx", "libaom-av1", "libsvtav1"})


def get_ffmpeg():
    """Find FFmpeg binary."""
    path = shutil.which("ffmpeg")
    if not path:
        raise RuntimeError("FFmpeg not found. Install with: brew install ffmpeg")
    return path


def list_encoders(ffmpeg: str | None = None) -> set[str]:
    """Names of the video encoders this FFmpeg build provides."""
    cmd = [ffmpeg or get_ffmpeg(), "-hide_banner", "-encoders"]
    result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=30)
    encoders = set()
    in_table = False
    for line in result.stdout.splitlines():
        # Legend first, then " ------", then rows like
        # " V....D libx264              libx264 H.264 / AVC ..."
        if line.strip().startswith("---"):
            in_table = True
            continue
        m = re.match(r"^\s*V[\w.]{5}\s+(\S+)", line)
        if in_table and m:
            encoders.add(m.group(1))
    return encoders


class FFmpegCapabilities:
    """supports(profile) predicate backed by `ffmpeg -encoders`.

    The encoder list is probed once, on first use. Without FFmpeg no
    profile is supported.
    """

    def __init__(self, ffmpeg: str | None = None):
        self._ffmpeg = ffmpeg
        self._encoders = None

    @property
    def encoders(self) -> set[str]:
        if self._encoders is None:
            try:
                self._encoders = list_encoders(self._ffmpeg or get_ffmpeg())
            except (RuntimeError, OSError, subprocess.SubprocessError) as e:
                logger.warning("FFmpeg capability probe failed: %s", e)
                self._encoders = set()
        return self._encoders

    def supports(self, profile) -> bool:
        encoders = self.encoders
        if not encoders:
            return False
        if profile.codec is None:
            return bool(WEBM_ENCODERS & encoders)
        return profile.codec in encoders


class FFmpegEncoder:
    """Raw RGBA frames in, encoded container segments out.

    Lifecycle: open() -> write()* -> finalize(), with read_segment()
    drained concurrently until it returns b"". abort() kills the process.
    """

    def __init__(self, profile, width: int, height: int, fps: float = 30.0,
                 ffmpeg: str | None = None):
        self.profile = profile
        self.width = width
        self.height = height
        self.fps = fps
        self._ffmpeg = ffmpeg
        self._proc = None

    def command(self) -> list[str]:
        return [
            self._ffmpeg or get_ffmpeg(),
            "-hide_banner", "-loglevel", "error",
            "-f", "rawvideo", "-pix_fmt", "rgba",
            "-s", f"{self.width}x{self.height}",
            "-r", str(self.fps),
            "-i", "-",
            "-an",
            # yuv420p needs even dimensions
            "-vf", "crop=trunc(iw/2)*2:trunc(ih/2)*2",
            *self.profile.output_args(),
            "pipe:1",
        ]

    async def open(self):
        cmd = self.command()
        logger.debug("Encoder: %s", " ".join(cmd))
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodingFailure(f"Could not start encoder: {e}") from e

    async def write(self, frame: np.ndarray):
        if self._proc is None or self._proc.stdin is None:
            raise EncodingFailure("Encoder is not open")
        if frame.shape != (self.height, self.width, 4):
            raise EncodingFailure(
                f"Frame shape {frame.shape} does not match encoder {self.width}x{self.height}"
            )
        try:
            self._proc.stdin.write(np.ascontiguousarray(frame).tobytes())
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EncodingFailure(f"Encoder pipe closed: {e}") from e

    async def read_segment(self) -> bytes:
        """Next encoded segment, or b"" once the encoder has finished."""
        if self._proc is None or self._proc.stdout is None:
            return b""
        return await self._proc.stdout.read(SEGMENT_BYTES)

    async def finalize(self):
        """Close input and wait for FFmpeg to flush trailing output."""
        if self._proc is None:
            return
        if self._proc.stdin is not None and not self._proc.stdin.is_closing():
            self._proc.stdin.close()
        returncode = await self._proc.wait()
        if returncode != 0:
            err = b""
            if self._proc.stderr is not None:
                err = await self._proc.stderr.read()
            raise EncodingFailure(
                f"Encoder exited with {returncode}: {err.decode(errors='replace')[-500:]}"
            )

    async def abort(self):
        if self._proc is None or self._proc.returncode is not None:
            return
        try:
            self._proc.kill()
        except ProcessLookupError:
            pass
        await self._proc.wait()


def load_image(path) -> np.ndarray:
    """Load an image file as an (H, W, 4) uint8 RGBA array."""
    img = Image.open(str(path)).convert("RGBA")
    return np.array(img)
