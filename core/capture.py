"""
Jungian Mirror — Capture & Delivery
Still snapshots, deliverable packaging, delivery sinks, and the
capture error taxonomy shared with the recorder.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

import numpy as np
from PIL import Image

from core.render import compose_frame
from core.safety import check_output_dir, check_payload_size, sanitize_filename
from core.surface import RenderSurface

logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Base for recoverable snapshot/recording failures."""
    pass


class NoSupportedProfile(CaptureError):
    """No encoding profile in the preference list is supported here."""
    pass


class AlreadyRecording(CaptureError):
    """A recording is already in progress."""
    pass


class EncodingFailure(CaptureError):
    """The encoder failed mid-recording; nothing was delivered."""
    pass


@dataclass(frozen=True)
class Deliverable:
    data: bytes
    filename: str
    mime_type: str


class MemorySink:
    """Keeps deliverables in a list."""

    def __init__(self):
        self.items = []

    def deliver(self, deliverable: Deliverable):
        self.items.append(deliverable)
        return deliverable.filename


class DirectorySink:
    """Writes deliverables into a directory."""

    def __init__(self, output_dir):
        self.output_dir = Path(output_dir).expanduser()

    def deliver(self, deliverable: Deliverable) -> Path:
        out_dir = check_output_dir(self.output_dir)
        size_mb = check_payload_size(deliverable.data)
        path = out_dir / sanitize_filename(deliverable.filename)
        # Temp file + rename: the final name only ever holds a complete file
        fd, tmp = tempfile.mkstemp(dir=out_dir, prefix=".partial_", suffix=path.suffix)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(deliverable.data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("Saved %s (%.2f MB)", path, size_mb)
        return path


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode an (H, W, 4) RGBA array as PNG bytes."""
    img = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    out = BytesIO()
    img.save(out, format="PNG")
    return out.getvalue()


def snapshot_filename(prefix: str, effect_id: str) -> str:
    return f"{prefix}_{effect_id}.png"


def take_snapshot(frame: np.ndarray, effect_id: str, size: tuple,
                  prefix: str = "jungian_mirror", rng=None,
                  params: dict | None = None) -> Deliverable:
    """Compose one un-mirrored frame on a scratch surface and encode it.

    Args:
        frame: Camera frame (RGB or RGBA uint8).
        effect_id: Effect to apply.
        size: (width, height) of the output, normally the live surface size.
        prefix: Filename prefix.

    Returns:
        PNG Deliverable. The live surface is never touched.
    """
    width, height = size
    scratch = RenderSurface(width, height)
    compose_frame(scratch, frame, effect_id, mirrored=False, rng=rng, params=params)
    return Deliverable(
        data=encode_png(scratch.pixels),
        filename=snapshot_filename(prefix, effect_id),
        mime_type="image/png",
    )
