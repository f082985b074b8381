"""Engine configuration.

EngineSettings collects everything the engine needs that is not part of a
project: where sprites and scratch files live, how many workers to run,
and the encoder settings for full and preview renders. Defaults work out
of the box; a project manifest's `video` section overrides the full
render settings (see project.py).
"""

import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path

from .common import FADE_OUT_DURATION


def default_cache_dir() -> Path:
    """Per-user sprite cache: $XDG_CACHE_HOME/reelcompose/sprites."""
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / "reelcompose" / "sprites"


@dataclass(frozen=True)
class RenderSettings:
    """Encoder settings for one class of export (full or preview)."""
    fps: int = 30
    resolution: tuple[int, int] = (1920, 1080)
    codec: str = "libx264"
    crf: int = 20
    preset: str = "medium"
    audio_sample_rate: int = 48000
    audio_bitrate: str = "192k"
    fade_out: float = FADE_OUT_DURATION


PREVIEW_RENDER = RenderSettings(
    resolution=(640, 360), crf=28, preset="ultrafast", audio_bitrate="128k",
)


@dataclass(frozen=True)
class EngineSettings:
    cache_dir: Path = field(default_factory=default_cache_dir)
    scratch_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    sprite_workers: int = 2
    transcode_workers: int = 2
    render: RenderSettings = field(default_factory=RenderSettings)
    preview: RenderSettings = PREVIEW_RENDER

    def with_video(self, video: dict) -> "EngineSettings":
        """Return a copy whose full render settings take values from a
        manifest `video` dict (fps, resolution, codec, crf, preset)."""
        known = {"fps", "resolution", "codec", "crf", "preset", "fade_out"}
        overrides = {k: v for k, v in video.items() if k in known}
        if "resolution" in overrides:
            overrides["resolution"] = tuple(overrides["resolution"])
        return replace(self, render=replace(self.render, **overrides))
