"""Tests for the audio mixer stage: config, music validation, filter graph."""

import pytest

from reelcompose.audio import (
    DEFAULT_MUSIC_VOLUME,
    AudioConfig,
    MusicTrack,
    build_audio_graph,
    validate_audio,
)
from reelcompose.errors import AudioError
from reelcompose.plan import RenderUnit
from reelcompose.transitions import TransitionConfig, compose_timeline


def _timeline(*lengths, duration=1.0):
    units = [RenderUnit(i, f"/c/{i}.mp4", 0.0, length, True) for i, length in enumerate(lengths)]
    return compose_timeline(units, TransitionConfig(duration=duration))


class TestAudioConfig:
    def test_defaults(self):
        cfg = AudioConfig()
        assert cfg.enabled is False
        assert cfg.path is None
        assert cfg.volume == DEFAULT_MUSIC_VOLUME == 50

    @pytest.mark.parametrize("given,expected", [(-10, 0), (150, 100), (42.4, 42), (0, 0)])
    def test_volume_clamped(self, given, expected):
        assert AudioConfig().updated(volume=given).volume == expected

    def test_path_set_without_check(self):
        cfg = AudioConfig().updated(enabled=True, path="/nowhere/song.mp3")
        assert cfg.enabled and cfg.path == "/nowhere/song.mp3"


class TestValidateAudio:
    def test_disabled_returns_none(self):
        assert validate_audio(AudioConfig(enabled=False, path="/nowhere.mp3")) is None

    def test_enabled_without_path(self):
        with pytest.raises(AudioError, match="no music file"):
            validate_audio(AudioConfig(enabled=True))

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "song.ogg"
        path.write_bytes(b"x")
        with pytest.raises(AudioError, match="Unsupported music file"):
            validate_audio(AudioConfig(enabled=True, path=str(path)))

    def test_missing_file(self, tmp_path):
        with pytest.raises(AudioError, match="not found"):
            validate_audio(AudioConfig(enabled=True, path=str(tmp_path / "gone.mp3")))

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "noise.mp3"
        path.write_bytes(b"definitely not mp3" * 50)
        with pytest.raises(AudioError):
            validate_audio(AudioConfig(enabled=True, path=str(path)))

    def test_valid_track(self, music_track):
        track = validate_audio(AudioConfig(enabled=True, path=str(music_track), volume=30))
        assert track.path == str(music_track)
        assert track.volume == 30
        assert abs(track.duration - 10.0) < 0.2


class TestBuildAudioGraph:
    def test_passthrough_clip_audio(self):
        parts, label = build_audio_graph(_timeline(5.0))
        assert parts == []
        assert label == "[0:a]"

    def test_crossfade_matches_video_overlap(self):
        parts, label = build_audio_graph(_timeline(5.0, 3.0), fade_out=1.0)
        assert parts == [
            "[0:a]asetpts=PTS-STARTPTS[a0]",
            "[1:a]asetpts=PTS-STARTPTS[a1]",
            "[a0][a1]acrossfade=d=1.000[ax1]",
            "[ax1]afade=t=out:st=6.000:d=1.000[aclips]",
        ]
        assert label == "[aclips]"

    def test_music_trimmed_scaled_and_mixed(self):
        parts, label = build_audio_graph(
            _timeline(5.0, 3.0), music_input=2, volume=50, fade_out=1.0,
        )
        assert parts[-2] == (
            "[2:a]atrim=0:7.000,asetpts=PTS-STARTPTS,aresample=48000,"
            "aformat=channel_layouts=stereo,volume=0.50,"
            "afade=t=out:st=6.000:d=1.000[music]"
        )
        assert parts[-1] == (
            "[aclips][music]amix=inputs=2:duration=first"
            ":dropout_transition=0:normalize=0[amixed]"
        )
        assert label == "[amixed]"

    def test_music_over_single_clip(self):
        parts, label = build_audio_graph(_timeline(4.0), music_input=1, volume=100)
        assert parts[0].startswith("[1:a]atrim=0:4.000,")
        assert "volume=1.00" in parts[0]
        assert parts[1].startswith("[0:a][music]amix=")
        assert label == "[amixed]"

    def test_music_track_type(self, music_track):
        track = MusicTrack(path=str(music_track), duration=10.0, volume=50)
        assert track.volume == 50
