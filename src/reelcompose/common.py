"""reelcompose.common — shared constants and small utilities.

Contains: supported file types, scrub sprite geometry, numeric clamping,
path variable resolution, and media probing.
"""

import re
from pathlib import Path

import imageio_ffmpeg
from moviepy import AudioFileClip, VideoFileClip


FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


# ── Supported inputs ───────────────────────────────────────────────

SUPPORTED_FILE_TYPES = ("mp4", "mov", "mkv")
SUPPORTED_MUSIC_TYPES = ("mp3", "wav", "flac")


# ── Scrub sprites ──────────────────────────────────────────────────
# Every clip gets one sprite sheet: SCRUB_FRAMES cells of
# SCRUB_WIDTH x SCRUB_HEIGHT, laid out SPRITE_COLUMNS per row.

SCRUB_WIDTH = 320
SCRUB_HEIGHT = 180
SCRUB_FRAMES = 20
SPRITE_COLUMNS = 5


# ── Bounded settings ───────────────────────────────────────────────

MIN_TRANSITION_DURATION = 0.5
MAX_TRANSITION_DURATION = 5.0
MIN_MUSIC_VOLUME = 0
MAX_MUSIC_VOLUME = 100
MIN_TRIM_LENGTH = 0.1
FADE_OUT_DURATION = 1.0


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def has_extension(path: str | Path, extensions: tuple[str, ...]) -> bool:
    """True if path ends in one of extensions (case-insensitive, no dot)."""
    suffix = Path(path).suffix.lower().lstrip(".")
    return suffix in extensions


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Media probing ──────────────────────────────────────────────────

def probe_video(path: str | Path) -> dict:
    """Probe a video file for duration, size and audio presence.

    Uses moviepy's ffmpeg-based reader (imageio_ffmpeg does not bundle
    ffprobe). Raises OSError for files ffmpeg cannot read.

    Returns:
        Dict with 'duration' (seconds), 'size' (w, h), 'fps' and
        'has_audio'.
    """
    with VideoFileClip(str(path)) as clip:
        return {
            "duration": float(clip.duration or 0.0),
            "size": tuple(clip.size),
            "fps": clip.fps,
            "has_audio": clip.audio is not None,
        }


def probe_audio_duration(path: str | Path) -> float:
    """Return the duration of an audio file in seconds."""
    with AudioFileClip(str(path)) as clip:
        return float(clip.duration or 0.0)
