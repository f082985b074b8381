"""Shared test fixtures for reelcompose tests."""

import subprocess

import pytest
import imageio_ffmpeg

from reelcompose.clips import Clip, ClipState
from reelcompose.settings import EngineSettings, RenderSettings

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

# Small, fast render settings for tests that actually encode.
TEST_RENDER = RenderSettings(
    fps=10, resolution=(320, 180), crf=30, preset="ultrafast",
    audio_bitrate="64k", fade_out=1.0,
)


def _make_clip(path, duration=2.0, color="blue", audio=True, size="320x240"):
    """Write a solid-color test clip (10fps), optionally with a sine tone."""
    cmd = [
        _FFMPEG, "-y",
        "-f", "lavfi", "-i", f"color=c={color}:s={size}:d={duration}:r=10",
    ]
    if audio:
        cmd += ["-f", "lavfi", "-i", f"sine=frequency=440:duration={duration}"]
        cmd += ["-shortest", "-c:a", "aac", "-b:a", "32k"]
    cmd += ["-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p", str(path)]
    subprocess.run(cmd, check=True, capture_output=True)
    return path


@pytest.fixture
def make_clip(tmp_path):
    """Factory: make_clip("a.mp4", duration=5, color="red", audio=True)."""
    def _factory(name, **kwargs):
        return _make_clip(tmp_path / name, **kwargs)
    return _factory


@pytest.fixture
def source_video(make_clip):
    """A 5-second 320x240 test video with audio."""
    return make_clip("source.mp4", duration=5.0)


@pytest.fixture
def bad_clip(tmp_path):
    """A file with a video extension that ffmpeg cannot decode."""
    path = tmp_path / "broken.mp4"
    path.write_bytes(b"this is not a video" * 100)
    return path


@pytest.fixture
def music_track(tmp_path):
    """A 10-second sine wave WAV file."""
    path = tmp_path / "music.wav"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "sine=frequency=220:duration=10",
            "-c:a", "pcm_s16le", str(path),
        ],
        check=True,
        capture_output=True,
    )
    return path


@pytest.fixture
def engine_settings(tmp_path):
    """Engine settings with private cache/scratch dirs and tiny renders."""
    return EngineSettings(
        cache_dir=tmp_path / "cache",
        scratch_dir=tmp_path / "scratch",
        sprite_workers=2,
        transcode_workers=2,
        render=TEST_RENDER,
        preview=TEST_RENDER,
    )


@pytest.fixture
def ready_clip():
    """Factory for a Clip as the sprite generator leaves it after loading."""
    def _factory(path, duration, trim=None, has_audio=True):
        start, end = trim if trim else (0.0, duration)
        return Clip(
            path=str(path),
            state=ClipState.READY,
            duration=duration,
            trim_start=start,
            trim_end=end,
            has_audio=has_audio,
        )
    return _factory
