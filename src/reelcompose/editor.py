"""HighlightEditor — the action API a UI (or the CLI) drives.

Wires the clip store, sprite generator, export engine and upload stage
together and owns the global transition and audio settings:

    editor = HighlightEditor()
    editor.add_clips(["a.mp4", "b.mp4"])
    editor.wait_loaded()
    editor.set_transition(type="fadeblack", duration=1.5)
    job = editor.export("reel.mp4")
    job.wait()

Errors from clips, exports and uploads live on their own entities. The
editor additionally collapses them into a single user-facing error slot
(last error wins) which dismiss_error() clears; dismissing never affects
running jobs.
"""

import logging
import threading
import time
from pathlib import Path

from .audio import AudioConfig
from .clips import Clip, ClipStore
from .errors import ExportBusyError, IngestError, ValidationError
from .render import ExportEngine, ExportJob, JobStatus
from .settings import EngineSettings
from .signals import JobUpdate, Signal
from .sprites import SpriteGenerator
from .transitions import TransitionConfig, available_transitions
from .upload import Destination, UploadJob, UploadStatus, start_upload

logger = logging.getLogger(__name__)


class ErrorSlot:
    """Single current user-visible error. Setting overwrites; dismiss clears."""

    def __init__(self):
        self._message: str | None = None
        self._lock = threading.Lock()
        self.changed = Signal("error.changed")

    @property
    def message(self) -> str | None:
        with self._lock:
            return self._message

    def set(self, message: str) -> None:
        with self._lock:
            self._message = message
        self.changed.emit(message)

    def dismiss(self) -> None:
        with self._lock:
            if self._message is None:
                return
            self._message = None
        self.changed.emit(None)


class HighlightEditor:
    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()
        self.store = ClipStore()
        self.sprites = SpriteGenerator(
            self.store, self.settings.cache_dir, workers=self.settings.sprite_workers,
        )
        self.engine = ExportEngine(self.settings)
        self.errors = ErrorSlot()
        self._transition = TransitionConfig()
        self._audio = AudioConfig()
        self._upload_job: UploadJob | None = None
        self._export_job: ExportJob | None = None
        self.sprites.failed.connect(self._on_clip_failed)

    # ── Views ──────────────────────────────────────────────────────

    @property
    def clips(self) -> list[Clip]:
        return self.store.clips

    @property
    def loaded_count(self) -> int:
        return self.store.loaded_count

    @property
    def loaded(self) -> bool:
        return self.store.loaded

    @property
    def transition(self) -> TransitionConfig:
        return self._transition

    @property
    def audio(self) -> AudioConfig:
        return self._audio

    @property
    def available_transitions(self) -> list[dict]:
        return available_transitions()

    @property
    def export_job(self) -> ExportJob | None:
        return self._export_job

    @property
    def upload_job(self) -> UploadJob | None:
        return self._upload_job

    @property
    def error(self) -> str | None:
        return self.errors.message

    # ── Clips ──────────────────────────────────────────────────────

    def add_clips(self, paths) -> list[Clip]:
        """Add clips and start loading them. Unsupported files are dropped."""
        added = self.store.add_clips(paths)
        self.sprites.enqueue(added)
        return added

    def load_clips(self) -> int:
        """Schedule sprite generation for every clip still pending."""
        return self.sprites.enqueue()

    def retry_failed(self) -> int:
        return self.sprites.enqueue(self.store.reset_failed())

    def remove_clip(self, path: str | Path) -> bool:
        clip = self.store.get(path)
        if clip is None:
            return False
        self.sprites.cancel(clip.path)
        return self.store.remove_clip(clip.path)

    def set_order(self, ordered_paths) -> list[str]:
        return self.store.set_order(ordered_paths)

    def set_clip_trim(self, path: str | Path, start: float, end: float) -> Clip:
        return self.store.set_clip_trim(path, start, end)

    def wait_loaded(self, timeout: float | None = None, poll: float = 0.05) -> bool:
        """Block until every clip has settled. True if loading finished.

        Pending clips that nothing is working on are scheduled first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.store.loaded:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            if self.sprites.active == 0 and self.load_clips() == 0:
                time.sleep(poll)
                continue
            self.sprites.wait(timeout=poll)
        return True

    # ── Settings ───────────────────────────────────────────────────

    def set_transition(self, type: str | None = None, duration: float | None = None) -> TransitionConfig:
        self._transition = self._transition.updated(type=type, duration=duration)
        return self._transition

    def set_audio(
        self,
        enabled: bool | None = None,
        path: str | None = None,
        volume: float | None = None,
    ) -> AudioConfig:
        self._audio = self._audio.updated(enabled=enabled, path=path, volume=volume)
        return self._audio

    # ── Export / upload ────────────────────────────────────────────

    def export(self, output_path: str | Path, preview: bool = False) -> ExportJob:
        """Export the current clips and settings.

        The job works from a snapshot, so later edits do not affect it.

        Raises:
            ExportBusyError: An export is already running.
        """
        try:
            job = self.engine.export(
                self.store.snapshot(),
                self._transition,
                self._audio,
                output_path,
                preview=preview,
            )
        except ExportBusyError as e:
            self.errors.set(str(e))
            raise
        self._export_job = job
        job.updates.connect(self._on_export_update)
        if job.status == JobStatus.FAILED:
            self._on_export_update(JobUpdate(job.status.value, job.progress, str(job.error)))
        return job

    def cancel_export(self) -> bool:
        job = self._export_job
        return job.cancel() if job is not None else False

    def upload(self, destination: Destination) -> UploadJob:
        """Upload the last completed export.

        Raises:
            ValidationError: No completed export to upload, or an upload
                is already running.
        """
        if self._upload_job is not None and not self._upload_job.done:
            raise ValidationError("An upload is already in progress")
        if self._export_job is None:
            raise ValidationError("Nothing has been exported yet")
        job = start_upload(self._export_job, destination)
        self._upload_job = job
        job.updates.connect(self._on_upload_update)
        return job

    def dismiss_error(self) -> None:
        self.errors.dismiss()

    def close(self) -> None:
        """Cancel running work and stop the worker pools."""
        self.cancel_export()
        if self._upload_job is not None:
            self._upload_job.cancel()
        self.sprites.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── Error routing ──────────────────────────────────────────────

    def _on_clip_failed(self, path: str, error: IngestError) -> None:
        self.errors.set(str(error))

    def _on_export_update(self, update: JobUpdate) -> None:
        if update.status == JobStatus.FAILED.value and update.error:
            self.errors.set(f"Export failed: {update.error}")

    def _on_upload_update(self, update: JobUpdate) -> None:
        if update.status == UploadStatus.FAILED.value and update.error:
            self.errors.set(f"Upload failed: {update.error}")
