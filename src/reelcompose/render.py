"""Render pipeline — export engine and export job lifecycle.

Export job lifecycle:
  idle -> rendering -> complete | failed | cancelled
  idle -> failed                  (validation failed, nothing spawned)

Terminal states are final. At most one job is active per engine; a second
export request while one is active raises ExportBusyError.

An export runs in three steps on a background thread:
  1. Plan: resolve render units, compose the timeline, validate music.
     Runs synchronously in export() so validation errors fail the job
     before any subprocess is spawned.
  2. Transcode: each render unit is cut and normalized into the job's
     scratch directory, up to `transcode_workers` at a time.
  3. Mux: one ffmpeg pass over the intermediates in timeline order applies
     transitions, music and the final fade-out.

The output is rendered inside the scratch directory and moved to the
requested path only after the mux succeeds, so failed or cancelled jobs
never leave a partial file at the output path. The scratch directory is
always removed.
"""

import logging
import shutil
import tempfile
import threading
import uuid
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from enum import Enum
from pathlib import Path
from typing import Sequence

from .audio import AudioConfig, MusicTrack, validate_audio
from .clips import Clip
from .common import SUPPORTED_FILE_TYPES, has_extension
from .errors import (
    AudioError,
    ExportBusyError,
    InvalidStateTransitionError,
    ReelError,
    ValidationError,
)
from .ffmpeg import EncodeCancelled, FfmpegProcess, mux_command, transcode_command
from .plan import RenderUnit, resolve_render_plan
from .settings import EngineSettings, RenderSettings
from .signals import JobUpdate, Signal
from .transitions import Timeline, TransitionConfig, compose_timeline

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATES = frozenset({JobStatus.COMPLETE, JobStatus.FAILED, JobStatus.CANCELLED})

_JOB_TRANSITIONS = {
    (JobStatus.IDLE, JobStatus.RENDERING),
    (JobStatus.IDLE, JobStatus.FAILED),
    (JobStatus.RENDERING, JobStatus.COMPLETE),
    (JobStatus.RENDERING, JobStatus.FAILED),
    (JobStatus.RENDERING, JobStatus.CANCELLED),
}


class ProgressTracker:
    """Weighted progress across stages, never moving backwards.

    Each key (one per transcode, one for the mux) carries a weight; the
    overall value is the weighted mean of per-key fractions.
    """

    def __init__(self, weights: dict[str, float]):
        self._weights = {k: max(w, 0.0) for k, w in weights.items()}
        self._total = sum(self._weights.values()) or 1.0
        self._fractions = {k: 0.0 for k in self._weights}
        self._value = 0.0
        self._lock = threading.Lock()

    def update(self, key: str, fraction: float) -> float:
        with self._lock:
            if fraction > self._fractions[key]:
                self._fractions[key] = min(1.0, fraction)
            value = sum(
                self._weights[k] * f for k, f in self._fractions.items()
            ) / self._total
            self._value = max(self._value, min(1.0, value))
            return self._value

    @property
    def value(self) -> float:
        with self._lock:
            return self._value


class ExportJob:
    """Handle for one export invocation.

    Attributes:
        status: Current JobStatus.
        progress: 0.0-1.0, monotonic while rendering, 1.0 on completion.
        output_path: Requested output path (only exists once complete).
        error: Exception that failed the job, if any.
        timeline: Composed timeline, set once planning succeeds.

    Signals:
        updates: emitted with a JobUpdate on every status or progress change.
    """

    def __init__(self, output_path: str | Path, preview: bool = False):
        self.id = uuid.uuid4().hex[:12]
        self.output_path = str(output_path)
        self.preview = preview
        self.status = JobStatus.IDLE
        self.progress = 0.0
        self.error: Exception | None = None
        self.timeline: Timeline | None = None
        self.updates = Signal(f"export[{self.id}].updates")
        self._lock = threading.RLock()
        self._done = threading.Event()
        self._cancel_requested = False
        self._processes: set[FfmpegProcess] = set()

    def __repr__(self):
        return f"<ExportJob {self.id} {self.status.value} {self.progress:.0%} {self.output_path}>"

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_JOB_STATES

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel_requested

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job reaches a terminal state. True if it did."""
        return self._done.wait(timeout)

    def cancel(self) -> bool:
        """Request cancellation and terminate running ffmpeg processes.

        Idempotent: cancelling a finished job (or cancelling twice) is a
        no-op. Returns True if this call requested the cancellation.
        """
        with self._lock:
            if self.status != JobStatus.RENDERING or self._cancel_requested:
                return False
            self._cancel_requested = True
            processes = list(self._processes)
        logger.info("Cancelling export %s", self.id)
        for proc in processes:
            proc.terminate()
        return True

    # ── Engine-side mutation ───────────────────────────────────────

    def _register(self, proc: FfmpegProcess) -> None:
        with self._lock:
            self._processes.add(proc)
            cancelled = self._cancel_requested
        if cancelled:
            proc.terminate()

    def _unregister(self, proc: FfmpegProcess) -> None:
        with self._lock:
            self._processes.discard(proc)

    def _terminate_all(self) -> None:
        with self._lock:
            processes = list(self._processes)
        for proc in processes:
            proc.terminate()

    def _set_progress(self, value: float) -> None:
        # Emitting under the lock keeps the update stream ordered when
        # several transcodes report at once.
        with self._lock:
            if self.status != JobStatus.RENDERING or value <= self.progress:
                return
            self.progress = value
            self._emit()

    def _transition(self, target: JobStatus, error: Exception | None = None) -> None:
        with self._lock:
            if (self.status, target) not in _JOB_TRANSITIONS:
                raise InvalidStateTransitionError("export job", self.status.value, target.value)
            self.status = target
            if error is not None:
                self.error = error
            if target == JobStatus.COMPLETE:
                self.progress = 1.0
            self._emit()
        if target in TERMINAL_JOB_STATES:
            self._done.set()

    def _emit(self) -> None:
        self.updates.emit(JobUpdate(
            status=self.status.value,
            progress=self.progress,
            error=str(self.error) if self.error else None,
        ))


class ExportEngine:
    """Runs export jobs, one at a time, against ffmpeg."""

    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()
        self._active: ExportJob | None = None
        self._lock = threading.Lock()

    @property
    def active_job(self) -> ExportJob | None:
        with self._lock:
            if self._active is not None and not self._active.done:
                return self._active
            return None

    def export(
        self,
        clips: Sequence[Clip],
        transition: TransitionConfig,
        audio: AudioConfig,
        output_path: str | Path,
        preview: bool = False,
    ) -> ExportJob:
        """Start an export of a clip snapshot.

        Validation failures do not raise: the returned job is already
        `failed` with the originating error.

        Raises:
            ExportBusyError: Another export is still active.
        """
        job = ExportJob(output_path, preview=preview)
        with self._lock:
            if self._active is not None and not self._active.done:
                raise ExportBusyError(
                    f"Export {self._active.id} is still {self._active.status.value}"
                )
            self._active = job

        try:
            if not has_extension(output_path, SUPPORTED_FILE_TYPES):
                raise ValidationError(
                    f"Output must be one of {list(SUPPORTED_FILE_TYPES)}: {output_path}"
                )
            units = resolve_render_plan(clips)
            timeline = compose_timeline(units, transition)
            music = validate_audio(audio)
        except (ValidationError, AudioError) as e:
            logger.warning("Export %s rejected: %s", job.id, e)
            job._transition(JobStatus.FAILED, e)
            return job

        job.timeline = timeline
        render = self.settings.preview if preview else self.settings.render
        job._transition(JobStatus.RENDERING)
        logger.info(
            "Export %s started: %d clip(s), %.2fs -> %s",
            job.id, len(units), timeline.total_duration, job.output_path,
        )
        thread = threading.Thread(
            target=self._run,
            args=(job, timeline, music, render),
            name=f"export-{job.id}",
            daemon=True,
        )
        thread.start()
        return job

    def cancel(self) -> bool:
        job = self.active_job
        return job.cancel() if job is not None else False

    # ── Pipeline ───────────────────────────────────────────────────

    def _run(
        self,
        job: ExportJob,
        timeline: Timeline,
        music: MusicTrack | None,
        render: RenderSettings,
    ) -> None:
        weights = {f"unit{c.unit.index}": c.unit.length for c in timeline.clips}
        weights["mux"] = timeline.total_duration
        tracker = ProgressTracker(weights)

        scratch = None
        try:
            self.settings.scratch_dir.mkdir(parents=True, exist_ok=True)
            scratch = Path(tempfile.mkdtemp(
                prefix=f"reelcompose-{job.id}-", dir=self.settings.scratch_dir,
            ))
            intermediates = self._transcode_all(job, timeline, scratch, render, tracker)

            rendered = scratch / f"output{Path(job.output_path).suffix}"
            cmd = mux_command(timeline, intermediates, rendered, render, music)
            self._run_process(
                job, cmd, "mux", timeline.total_duration,
                lambda f: job._set_progress(tracker.update("mux", f)),
            )

            # cancel() takes the same lock, so it either lands before the
            # move or sees the job already complete.
            with job._lock:
                if job._cancel_requested:
                    raise EncodeCancelled("finalize")
                output = Path(job.output_path)
                output.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(rendered), str(output))
                job._transition(JobStatus.COMPLETE)
            logger.info("Export %s complete: %s", job.id, job.output_path)
        except EncodeCancelled:
            logger.info("Export %s cancelled", job.id)
            job._transition(JobStatus.CANCELLED)
        except ReelError as e:
            logger.error("Export %s failed: %s", job.id, e)
            job._transition(JobStatus.FAILED, e)
        except Exception as e:
            logger.exception("Export %s crashed", job.id)
            job._transition(JobStatus.FAILED, e)
        finally:
            if scratch is not None:
                shutil.rmtree(scratch, ignore_errors=True)

    def _transcode_all(
        self,
        job: ExportJob,
        timeline: Timeline,
        scratch: Path,
        render: RenderSettings,
        tracker: ProgressTracker,
    ) -> list[str]:
        """Transcode every unit; return intermediates in timeline order.

        Units run in parallel, so they may finish in any order; the result
        is indexed by unit position, not completion. The first failure
        terminates the remaining transcodes and is re-raised.
        """
        units = [c.unit for c in timeline.clips]
        outputs = [str(scratch / f"unit-{u.index:03d}.mp4") for u in units]

        with ThreadPoolExecutor(
            max_workers=max(1, self.settings.transcode_workers),
            thread_name_prefix=f"transcode-{job.id}",
        ) as pool:
            futures = [
                pool.submit(self._transcode_unit, job, unit, out, render, tracker)
                for unit, out in zip(units, outputs)
            ]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [f for f in done if f.exception() is not None]
            if failed:
                job._terminate_all()
                for f in futures:
                    f.cancel()
                wait(futures)
                # Prefer a real failure over the cancellations it caused.
                errors = [f.exception() for f in futures if not f.cancelled() and f.exception()]
                real = [e for e in errors if not isinstance(e, EncodeCancelled)]
                raise (real or errors)[0]
        return outputs

    def _transcode_unit(
        self,
        job: ExportJob,
        unit: RenderUnit,
        output: str,
        render: RenderSettings,
        tracker: ProgressTracker,
    ) -> None:
        if job.cancel_requested:
            raise EncodeCancelled(f"transcode clip {unit.index}")
        key = f"unit{unit.index}"
        self._run_process(
            job,
            transcode_command(unit, output, render),
            f"transcode clip {unit.index} ({Path(unit.path).name})",
            unit.length,
            lambda f: job._set_progress(tracker.update(key, f)),
        )

    def _run_process(self, job, cmd, stage, duration, on_progress) -> None:
        proc = self._spawn(cmd, stage, duration, on_progress)
        job._register(proc)
        try:
            proc.run()
        finally:
            job._unregister(proc)

    def _spawn(self, cmd, stage, duration, on_progress) -> FfmpegProcess:
        return FfmpegProcess(cmd, stage=stage, duration=duration, on_progress=on_progress)
