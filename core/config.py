"""
Jungian Mirror -- Session Configuration

Timing policy, capture naming and per-effect parameter overrides.
Defaults: 60 Hz render, 30 Hz record tap, 15-tick spin at 80 ms,
5 second clips.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from effects import get_effect, validate_params

DEFAULT_OUTPUT_DIR = Path.home() / "Pictures" / "JungianMirror"


class MirrorConfig(BaseModel):
    """Validated settings for one MirrorSession."""

    render_fps: float = Field(default=60.0, gt=0, le=240, description="Display refresh rate.")
    tap_fps: float = Field(default=30.0, gt=0, le=120, description="Recording tap rate.")
    spin_ticks: int = Field(default=15, ge=1, le=500, description="Ticks per spin, final one included.")
    spin_interval_ms: int = Field(default=80, ge=0, le=5000)
    record_duration_ms: int = Field(default=5000, ge=1, le=600_000)
    filename_prefix: str = Field(default="jungian_mirror", min_length=1, max_length=100)
    default_effect: str = "self"
    effect_params: dict[str, dict] = Field(
        default_factory=dict,
        description="Per-effect overrides: {'shadow': {'slice_probability': 1.0}}.",
    )
    output_dir: Path = DEFAULT_OUTPUT_DIR

    @field_validator("default_effect")
    @classmethod
    def validate_default_effect(cls, value: str) -> str:
        get_effect(value)
        return value

    @field_validator("effect_params")
    @classmethod
    def validate_effect_params(cls, value: dict) -> dict:
        for effect_id, params in value.items():
            validate_params(effect_id, params)
        return value

    @property
    def render_interval(self) -> float:
        return 1.0 / self.render_fps

    @property
    def tap_interval(self) -> float:
        return 1.0 / self.tap_fps

    @property
    def spin_interval(self) -> float:
        return self.spin_interval_ms / 1000.0

    @property
    def record_duration(self) -> float:
        return self.record_duration_ms / 1000.0

    def params_for(self, effect_id: str) -> dict:
        return dict(self.effect_params.get(effect_id, {}))

    @classmethod
    def load(cls, path) -> "MirrorConfig":
        """Read a JSON config file. Missing keys take defaults."""
        data = json.loads(Path(path).read_text())
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a JSON object: {path}")
        return cls(**data)
