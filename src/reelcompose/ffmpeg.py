"""ffmpeg command building and process control.

Two kinds of ffmpeg runs make up an export:
  1. transcode: one per render unit. Cuts the trim range out of the source
     and normalizes it (resolution, fps, pixel format, stereo audio at a
     fixed sample rate) so every intermediate can be fed to xfade.
  2. mux: one per export. Reads the intermediates in timeline order plus
     the optional music track and runs the transition/audio filter graph.

Processes run with `-progress pipe:1`; the runner parses out_time from
stdout and reports a 0-1 fraction of the expected output duration.
Cancellation terminates the process (SIGTERM, then SIGKILL if it does not
exit within a grace period).
"""

import logging
import subprocess
import threading
from pathlib import Path
from typing import Callable

from .audio import MusicTrack, build_audio_graph
from .common import FFMPEG
from .errors import EncodeError
from .plan import RenderUnit
from .settings import RenderSettings
from .transitions import Timeline, build_video_graph

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 5.0


class EncodeCancelled(Exception):
    """Raised by FfmpegProcess.run() when the process was terminated on request."""


def _codec_params(settings: RenderSettings) -> list[str]:
    """Return video codec arguments for the given render settings."""
    if settings.codec == "h264_nvenc":
        return ["-c:v", settings.codec, "-cq", str(settings.crf), "-pix_fmt", "yuv420p"]
    return [
        "-c:v", settings.codec, "-crf", str(settings.crf),
        "-preset", settings.preset, "-pix_fmt", "yuv420p",
    ]


def _audio_params(settings: RenderSettings) -> list[str]:
    return ["-c:a", "aac", "-b:a", settings.audio_bitrate, "-ar", str(settings.audio_sample_rate)]


def _map_label(label: str) -> str:
    """Turn a graph label into a -map argument ('[0:v]' -> '0:v')."""
    inner = label.strip("[]")
    if ":" in inner:
        return inner
    return label


# ── Command builders ──────────────────────────────────────────────


def transcode_command(unit: RenderUnit, output: str | Path, settings: RenderSettings) -> list[str]:
    """ffmpeg command that renders one render unit to a normalized intermediate.

    Clips without an audio stream get a generated silent track so every
    intermediate has exactly one video and one audio stream.
    """
    w, h = settings.resolution
    vf = (
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1,"
        f"fps={settings.fps},format=yuv420p"
    )
    af = f"aresample={settings.audio_sample_rate},aformat=channel_layouts=stereo"

    cmd = [
        FFMPEG, "-y", "-nostdin", "-loglevel", "error",
        "-ss", f"{unit.trim_start:.3f}",
        "-to", f"{unit.trim_end:.3f}",
        "-i", unit.path,
    ]
    if unit.has_audio:
        audio_map = "0:a:0"
    else:
        cmd += [
            "-f", "lavfi", "-i",
            f"anullsrc=r={settings.audio_sample_rate}:cl=stereo",
        ]
        audio_map = "1:a:0"

    cmd += [
        "-map", "0:v:0", "-map", audio_map,
        "-vf", vf, "-af", af,
        *_codec_params(settings),
        *_audio_params(settings),
        "-t", f"{unit.length:.3f}",
        str(output),
    ]
    return cmd


def mux_command(
    timeline: Timeline,
    intermediates: list[str],
    output: str | Path,
    settings: RenderSettings,
    music: MusicTrack | None = None,
) -> list[str]:
    """ffmpeg command for the final pass: transitions, music, fade-out.

    Args:
        timeline: Composed timeline; clip i is read from intermediates[i].
        intermediates: Intermediate file paths in timeline order.
        output: Final output path.
        settings: Render settings (codec, fps, fade-out).
        music: Validated music track, or None for clip audio only.
    """
    if len(intermediates) != len(timeline.clips):
        raise ValueError(
            f"Expected {len(timeline.clips)} intermediates, got {len(intermediates)}"
        )

    inputs = []
    for path in intermediates:
        inputs += ["-i", str(path)]
    music_input = None
    if music is not None:
        music_input = len(intermediates)
        inputs += ["-stream_loop", "-1", "-i", music.path]

    video_parts, video_label = build_video_graph(timeline, settings.fade_out)
    audio_parts, audio_label = build_audio_graph(
        timeline,
        music_input=music_input,
        volume=music.volume if music else 0,
        fade_out=settings.fade_out,
        sample_rate=settings.audio_sample_rate,
    )
    graph = video_parts + audio_parts

    cmd = [FFMPEG, "-y", "-nostdin", "-loglevel", "error", *inputs]
    if graph:
        cmd += ["-filter_complex", ";".join(graph)]
    cmd += [
        "-map", _map_label(video_label),
        "-map", _map_label(audio_label),
        *_codec_params(settings),
        *_audio_params(settings),
        "-r", str(settings.fps),
        "-t", f"{timeline.total_duration:.3f}",
    ]
    # movflags is a mov/mp4 muxer option; matroska rejects it.
    if Path(output).suffix.lower() in (".mp4", ".mov"):
        cmd += ["-movflags", "+faststart"]
    cmd.append(str(output))
    return cmd


# ── Process runner ────────────────────────────────────────────────


def parse_progress_seconds(line: str) -> float | None:
    """Extract output time in seconds from one `-progress` line.

    ffmpeg reports microseconds in both out_time_us and (despite its name)
    out_time_ms. Anything else, including 'N/A', returns None.
    """
    key, _, value = line.strip().partition("=")
    if key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        return int(value) / 1_000_000
    except ValueError:
        return None


class FfmpegProcess:
    """One ffmpeg invocation with progress reporting and termination.

    Usage:
        proc = FfmpegProcess(cmd, stage="mux", duration=12.5, on_progress=cb)
        proc.run()          # blocks; raises EncodeError / EncodeCancelled
        proc.terminate()    # from another thread
    """

    def __init__(
        self,
        cmd: list[str],
        stage: str,
        duration: float,
        on_progress: Callable[[float], None] | None = None,
    ):
        self.cmd = list(cmd)
        self.stage = stage
        self.duration = duration
        self.on_progress = on_progress
        self._process: subprocess.Popen | None = None
        self._terminated = False
        self._lock = threading.Lock()

    def run(self) -> None:
        cmd = [self.cmd[0], "-progress", "pipe:1", "-nostats", *self.cmd[1:]]
        logger.debug("ffmpeg [%s]: %s", self.stage, " ".join(cmd))

        with self._lock:
            if self._terminated:
                raise EncodeCancelled(self.stage)
            self._process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
            )
        proc = self._process

        # Drain stderr on a side thread so a chatty failure cannot block
        # the progress pipe.
        stderr_chunks = []
        drain = threading.Thread(
            target=lambda: stderr_chunks.append(proc.stderr.read()), daemon=True,
        )
        drain.start()

        for line in proc.stdout:
            seconds = parse_progress_seconds(line)
            if seconds is not None and self.on_progress and self.duration > 0:
                self.on_progress(min(1.0, max(0.0, seconds / self.duration)))

        returncode = proc.wait()
        drain.join()
        proc.stdout.close()
        proc.stderr.close()

        if self._terminated:
            raise EncodeCancelled(self.stage)
        if returncode != 0:
            raise EncodeError(self.stage, returncode, "".join(stderr_chunks))
        if self.on_progress:
            self.on_progress(1.0)

    def terminate(self) -> None:
        """Stop the process: SIGTERM, then SIGKILL after a grace period."""
        with self._lock:
            self._terminated = True
            proc = self._process
        if proc is None or proc.poll() is not None:
            return
        logger.info("Terminating ffmpeg [%s] (pid %s)", self.stage, proc.pid)
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("ffmpeg [%s] ignored SIGTERM, killing", self.stage)
            proc.kill()
