"""Tests for reelcompose.common utilities."""

import pytest

from reelcompose.common import (
    clamp,
    has_extension,
    probe_audio_duration,
    probe_video,
    resolve_path_vars,
)


class TestClamp:
    def test_inside_range_unchanged(self):
        assert clamp(2.5, 0.5, 5.0) == 2.5

    def test_below_range(self):
        assert clamp(0.1, 0.5, 5.0) == 0.5

    def test_above_range(self):
        assert clamp(9, 0, 100) == 9
        assert clamp(120, 0, 100) == 100


class TestHasExtension:
    def test_supported(self):
        assert has_extension("/clips/goal.mp4", ("mp4", "mov", "mkv"))

    def test_case_insensitive(self):
        assert has_extension("GOAL.MOV", ("mp4", "mov", "mkv"))

    def test_unsupported(self):
        assert not has_extension("notes.txt", ("mp4", "mov", "mkv"))

    def test_no_extension(self):
        assert not has_extension("README", ("mp4",))


class TestResolvePathVars:
    def test_single_var(self):
        result = resolve_path_vars("${clips}/a.mp4", {"clips": "/data/clips"})
        assert result == "/data/clips/a.mp4"

    def test_multiple_vars(self):
        paths = {"clips": "/data/clips", "music": "/data/music"}
        result = resolve_path_vars("${clips}/a and ${music}/b", paths)
        assert result == "/data/clips/a and /data/music/b"

    def test_no_vars(self):
        assert resolve_path_vars("/plain/path", {}) == "/plain/path"

    def test_unknown_var_raises(self):
        with pytest.raises(ValueError, match="Unknown path variable"):
            resolve_path_vars("${missing}/x", {})


class TestProbe:
    def test_probe_video(self, source_video):
        info = probe_video(source_video)
        assert abs(info["duration"] - 5.0) < 0.2
        assert info["size"] == (320, 240)
        assert info["has_audio"] is True

    def test_probe_video_without_audio(self, make_clip):
        path = make_clip("silent.mp4", duration=2.0, audio=False)
        assert probe_video(path)["has_audio"] is False

    def test_probe_unreadable_raises(self, bad_clip):
        with pytest.raises(Exception):
            probe_video(bad_clip)

    def test_probe_audio_duration(self, music_track):
        assert abs(probe_audio_duration(music_track) - 10.0) < 0.2
