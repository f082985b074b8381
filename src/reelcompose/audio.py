"""Audio mixer stage — optional background music over the composed timeline.

With music disabled, per-clip audio passes through (crossfaded at the same
points as the video). With music enabled the track is looped or trimmed to
the composed duration, scaled to the configured volume, and mixed on top
without normalization, so the clips' own audio keeps its level.

Music problems (missing file, unsupported type, undecodable) surface as
AudioError before any encoding starts, and never touch the clip store.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path

from .common import (
    MAX_MUSIC_VOLUME,
    MIN_MUSIC_VOLUME,
    SUPPORTED_MUSIC_TYPES,
    clamp,
    has_extension,
    probe_audio_duration,
)
from .errors import AudioError
from .transitions import Timeline

logger = logging.getLogger(__name__)


DEFAULT_MUSIC_VOLUME = 50


@dataclass(frozen=True)
class AudioConfig:
    enabled: bool = False
    path: str | None = None
    volume: int = DEFAULT_MUSIC_VOLUME

    def updated(
        self,
        enabled: bool | None = None,
        path: str | None = None,
        volume: float | None = None,
    ):
        """Return a copy with the given fields set; volume is clamped to 0-100.

        The path is not checked here: it only has to be valid when music
        is enabled at export time.
        """
        changes = {}
        if enabled is not None:
            changes["enabled"] = bool(enabled)
        if path is not None:
            changes["path"] = str(path)
        if volume is not None:
            clamped = int(round(clamp(float(volume), MIN_MUSIC_VOLUME, MAX_MUSIC_VOLUME)))
            if clamped != volume:
                logger.warning("Clamped music volume %s -> %s", volume, clamped)
            changes["volume"] = clamped
        return replace(self, **changes)


@dataclass(frozen=True)
class MusicTrack:
    path: str
    duration: float
    volume: int


def validate_audio(config: AudioConfig) -> MusicTrack | None:
    """Check the music track of an enabled audio config.

    Returns:
        MusicTrack, or None when music is disabled.

    Raises:
        AudioError: No path, unsupported extension, missing or unreadable file.
    """
    if not config.enabled:
        return None
    if not config.path:
        raise AudioError("Background music is enabled but no music file is set")
    if not has_extension(config.path, SUPPORTED_MUSIC_TYPES):
        raise AudioError(
            f"Unsupported music file '{config.path}'. "
            f"Valid: {list(SUPPORTED_MUSIC_TYPES)}"
        )
    if not Path(config.path).is_file():
        raise AudioError(f"Music file not found: {config.path}")

    try:
        duration = probe_audio_duration(config.path)
    except Exception as e:
        raise AudioError(f"Could not read music file {config.path}: {e}") from e
    if duration <= 0:
        raise AudioError(f"Music file {config.path} has no audio")

    return MusicTrack(path=config.path, duration=duration, volume=config.volume)


def build_audio_graph(
    timeline: Timeline,
    music_input: int | None = None,
    volume: int = DEFAULT_MUSIC_VOLUME,
    fade_out: float = 0.0,
    sample_rate: int = 48000,
) -> tuple[list[str], str]:
    """Build the audio half of the final mux filter graph.

    Clip audio (input i = clip i) is chained with acrossfade using the
    timeline's transition duration, so it stays in sync with xfade. When
    music_input is given, that input (already looped with -stream_loop)
    is trimmed to the total duration, scaled by volume/100 and mixed in.

    Returns:
        (filter_parts, output_label)
    """
    total = timeline.total_duration
    fade = min(fade_out, total / 2)
    parts = []

    label = "[0:a]"
    if not timeline.is_passthrough:
        for i in range(len(timeline.clips)):
            parts.append(f"[{i}:a]asetpts=PTS-STARTPTS[a{i}]")
        label = "[a0]"
    for tr in timeline.transitions:
        out = f"[ax{tr.to_index}]"
        parts.append(f"{label}[a{tr.to_index}]acrossfade=d={tr.duration:.3f}{out}")
        label = out

    if fade > 0:
        parts.append(
            f"{label}afade=t=out:st={total - fade:.3f}:d={fade:.3f}[aclips]"
        )
        label = "[aclips]"

    if music_input is not None:
        music_chain = [
            f"atrim=0:{total:.3f}",
            "asetpts=PTS-STARTPTS",
            f"aresample={sample_rate}",
            "aformat=channel_layouts=stereo",
            f"volume={volume / 100:.2f}",
        ]
        if fade > 0:
            music_chain.append(f"afade=t=out:st={total - fade:.3f}:d={fade:.3f}")
        parts.append(f"[{music_input}:a]{','.join(music_chain)}[music]")
        parts.append(
            f"{label}[music]amix=inputs=2:duration=first"
            f":dropout_transition=0:normalize=0[amixed]"
        )
        label = "[amixed]"

    return parts, label
