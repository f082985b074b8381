"""Upload stage — deliver a completed export to a destination.

Upload has its own lifecycle, separate from the export job it consumes:
  idle -> uploading -> done | failed

A failed upload never touches the rendered local file. Destinations are
pluggable; anything with an `upload(path, on_progress, cancelled)` method
returning the remote location works. DirectoryDestination (copy into a
folder) ships with the engine.
"""

import logging
import shutil
import threading
import uuid
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from .errors import InvalidStateTransitionError, UploadError, ValidationError
from .render import ExportJob, JobStatus
from .signals import JobUpdate, Signal

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class UploadStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


_UPLOAD_TRANSITIONS = {
    (UploadStatus.IDLE, UploadStatus.UPLOADING),
    (UploadStatus.UPLOADING, UploadStatus.DONE),
    (UploadStatus.UPLOADING, UploadStatus.FAILED),
}


class Destination(Protocol):
    def upload(
        self,
        path: Path,
        on_progress: Callable[[float], None],
        cancelled: threading.Event,
    ) -> str:
        """Deliver path; return where it ended up. Raise UploadError on failure."""
        ...


class DirectoryDestination:
    """Copy the artifact into a directory, reporting progress per chunk."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def upload(self, path, on_progress, cancelled) -> str:
        path = Path(path)
        target = self.directory / path.name
        partial = target.with_name(target.name + ".partial")
        try:
            total = path.stat().st_size or 1
            self.directory.mkdir(parents=True, exist_ok=True)
            copied = 0
            with open(path, "rb") as src, open(partial, "wb") as dst:
                while chunk := src.read(CHUNK_SIZE):
                    if cancelled.is_set():
                        raise UploadError("upload cancelled")
                    dst.write(chunk)
                    copied += len(chunk)
                    on_progress(copied / total)
            shutil.move(str(partial), str(target))
        except OSError as e:
            raise UploadError(f"Could not copy {path} to {self.directory}: {e}") from e
        finally:
            partial.unlink(missing_ok=True)
        return str(target)


class UploadJob:
    """Handle for one upload of a completed export.

    Signals:
        updates: emitted with a JobUpdate on every status or progress change.
    """

    def __init__(self, source_path: str):
        self.id = uuid.uuid4().hex[:12]
        self.source_path = source_path
        self.status = UploadStatus.IDLE
        self.progress = 0.0
        self.location: str | None = None
        self.error: Exception | None = None
        self.updates = Signal(f"upload[{self.id}].updates")
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._cancelled = threading.Event()

    @property
    def done(self) -> bool:
        return self.status in (UploadStatus.DONE, UploadStatus.FAILED)

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def cancel(self) -> None:
        """Ask the destination to stop; the job then ends as failed."""
        if not self.done:
            self._cancelled.set()

    def _set_progress(self, value: float) -> None:
        with self._lock:
            if value <= self.progress:
                return
            self.progress = min(1.0, value)
        self._emit()

    def _transition(self, target: UploadStatus, error: Exception | None = None) -> None:
        with self._lock:
            if (self.status, target) not in _UPLOAD_TRANSITIONS:
                raise InvalidStateTransitionError("upload job", self.status.value, target.value)
            self.status = target
            if error is not None:
                self.error = error
            if target == UploadStatus.DONE:
                self.progress = 1.0
        self._emit()
        if self.done:
            self._done.set()

    def _emit(self) -> None:
        self.updates.emit(JobUpdate(
            status=self.status.value,
            progress=self.progress,
            error=str(self.error) if self.error else None,
        ))


def start_upload(export_job: ExportJob, destination: Destination) -> UploadJob:
    """Upload a completed export's output on a background thread.

    Raises:
        ValidationError: The export job is not complete.
    """
    if export_job.status != JobStatus.COMPLETE:
        raise ValidationError(
            f"Cannot upload export {export_job.id}: status is {export_job.status.value}"
        )

    job = UploadJob(export_job.output_path)
    job._transition(UploadStatus.UPLOADING)

    def _run():
        try:
            location = destination.upload(
                Path(job.source_path), job._set_progress, job._cancelled,
            )
        except UploadError as e:
            logger.error("Upload %s failed: %s", job.id, e)
            job._transition(UploadStatus.FAILED, e)
        except Exception as e:
            logger.exception("Upload %s crashed", job.id)
            job._transition(UploadStatus.FAILED, UploadError(str(e)))
        else:
            job.location = location
            logger.info("Upload %s done: %s", job.id, location)
            job._transition(UploadStatus.DONE)

    threading.Thread(target=_run, name=f"upload-{job.id}", daemon=True).start()
    return job
