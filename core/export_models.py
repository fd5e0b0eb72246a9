"""
Jungian Mirror -- Encoding Profile Models

Pydantic models for clip capture profiles. Each profile pairs a MIME
descriptor (container + codec) with the FFmpeg flags that produce it.
Profiles are probed in preference order; the first one the host
supports is used for the recording.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class Container(str, Enum):
    """Output container."""
    MP4 = "mp4"    # Single-file muxed, plays almost everywhere
    WEBM = "webm"  # Streaming container (VP8/VP9)


class EncodingProfile(BaseModel):
    """A concrete (container, codec) pairing for stream capture.

    codec is the FFmpeg encoder name, or None for "container default".
    """

    mime_type: str = Field(description="MIME descriptor, e.g. 'video/webm; codecs=vp9'.")
    container: Container
    codec: str | None = Field(default=None, description="FFmpeg encoder name.")
    muxed: bool = Field(
        default=False,
        description="True for single-file muxed formats (fragmented MP4).",
    )
    ffmpeg_args: list[str] = Field(
        default_factory=list,
        description="Encoder flags placed between the input and the output pipe.",
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_mime(self) -> "EncodingProfile":
        if not self.mime_type.startswith(f"video/{self.container.value}"):
            raise ValueError(
                f"MIME type '{self.mime_type}' does not match container '{self.container.value}'"
            )
        return self

    @property
    def extension(self) -> str:
        """File extension (no dot): mp4 for the muxed profile, webm otherwise."""
        return "mp4" if self.muxed else "webm"

    def output_args(self) -> list[str]:
        """FFmpeg flags for this profile, codec and muxer included."""
        args = []
        if self.codec:
            args += ["-c:v", self.codec]
        args += list(self.ffmpeg_args)
        args += ["-f", self.container.value]
        return args


# Most-compatible first: muxed H.264, then two VP streaming formats,
# then whatever WebM encoder the host defaults to.
PROFILE_PREFERENCES: tuple[EncodingProfile, ...] = (
    EncodingProfile(
        mime_type='video/mp4; codecs="avc1.42E01E"',
        container=Container.MP4,
        codec="libx264",
        muxed=True,
        ffmpeg_args=[
            "-profile:v", "baseline", "-level", "3.0",
            "-preset", "veryfast", "-pix_fmt", "yuv420p",
            # Fragmented MP4 so the muxer can write to a pipe
            "-movflags", "frag_keyframe+empty_moov+default_base_moof",
        ],
    ),
    EncodingProfile(
        mime_type="video/webm; codecs=vp9",
        container=Container.WEBM,
        codec="libvpx-vp9",
        ffmpeg_args=[
            "-deadline", "realtime", "-cpu-used", "8",
            "-b:v", "2M", "-pix_fmt", "yuv420p",
        ],
    ),
    EncodingProfile(
        mime_type="video/webm; codecs=vp8",
        container=Container.WEBM,
        codec="libvpx",
        ffmpeg_args=["-deadline", "realtime", "-cpu-used", "8", "-b:v", "2M"],
    ),
    EncodingProfile(
        mime_type="video/webm",
        container=Container.WEBM,
    ),
)


def find_profile(mime_type: str) -> EncodingProfile:
    """Look up a built-in profile by MIME descriptor.

    Raises:
        KeyError: If no built-in profile has that descriptor.
    """
    for profile in PROFILE_PREFERENCES:
        if profile.mime_type == mime_type:
            return profile
    available = ", ".join(p.mime_type for p in PROFILE_PREFERENCES)
    raise KeyError(f"Unknown profile '{mime_type}'. Available: {available}")
