"""Tests for the upload stage."""

import threading

import pytest

from reelcompose.errors import InvalidStateTransitionError, UploadError, ValidationError
from reelcompose.render import ExportJob, JobStatus
from reelcompose.upload import (
    DirectoryDestination,
    UploadJob,
    UploadStatus,
    start_upload,
)


def _complete_export(path):
    job = ExportJob(path)
    job._transition(JobStatus.RENDERING)
    job._transition(JobStatus.COMPLETE)
    return job


class FailingDestination:
    def upload(self, path, on_progress, cancelled):
        on_progress(0.5)
        raise UploadError("remote refused the file")


class BrokenDestination:
    def upload(self, path, on_progress, cancelled):
        raise RuntimeError("socket exploded")


class TestDirectoryDestination:
    def test_copies_with_progress(self, tmp_path):
        src = tmp_path / "reel.mp4"
        src.write_bytes(b"\x00" * 3000)
        seen = []
        location = DirectoryDestination(tmp_path / "out").upload(src, seen.append, threading.Event())

        assert location == str(tmp_path / "out" / "reel.mp4")
        assert (tmp_path / "out" / "reel.mp4").read_bytes() == src.read_bytes()
        assert seen[-1] == 1.0
        assert not (tmp_path / "out" / "reel.mp4.partial").exists()

    def test_cancelled_leaves_no_partial(self, tmp_path):
        src = tmp_path / "reel.mp4"
        src.write_bytes(b"\x00" * 10)
        cancelled = threading.Event()
        cancelled.set()
        with pytest.raises(UploadError, match="cancelled"):
            DirectoryDestination(tmp_path / "out").upload(src, lambda f: None, cancelled)
        assert list((tmp_path / "out").iterdir()) == []

    def test_missing_source(self, tmp_path):
        with pytest.raises(UploadError):
            DirectoryDestination(tmp_path / "out").upload(
                tmp_path / "gone.mp4", lambda f: None, threading.Event(),
            )


class TestUploadJob:
    def test_lifecycle(self):
        job = UploadJob("/x/reel.mp4")
        assert job.status == UploadStatus.IDLE
        job._transition(UploadStatus.UPLOADING)
        job._transition(UploadStatus.DONE)
        assert job.done and job.progress == 1.0

    def test_done_is_final(self):
        job = UploadJob("/x/reel.mp4")
        job._transition(UploadStatus.UPLOADING)
        job._transition(UploadStatus.FAILED, UploadError("x"))
        with pytest.raises(InvalidStateTransitionError):
            job._transition(UploadStatus.UPLOADING)


class TestStartUpload:
    def test_requires_complete_export(self, tmp_path):
        job = ExportJob(tmp_path / "reel.mp4")
        with pytest.raises(ValidationError, match="status is idle"):
            start_upload(job, DirectoryDestination(tmp_path / "out"))

    def test_upload_done(self, tmp_path):
        src = tmp_path / "reel.mp4"
        src.write_bytes(b"reel")
        upload = start_upload(_complete_export(src), DirectoryDestination(tmp_path / "out"))
        assert upload.wait(timeout=10)
        assert upload.status == UploadStatus.DONE
        assert upload.location == str(tmp_path / "out" / "reel.mp4")

    def test_failure_keeps_local_file(self, tmp_path):
        src = tmp_path / "reel.mp4"
        src.write_bytes(b"reel")
        export = _complete_export(src)

        upload = start_upload(export, FailingDestination())
        assert upload.wait(timeout=10)

        assert upload.status == UploadStatus.FAILED
        assert "remote refused" in str(upload.error)
        assert src.read_bytes() == b"reel"
        assert export.status == JobStatus.COMPLETE

    def test_unexpected_error_becomes_upload_error(self, tmp_path):
        src = tmp_path / "reel.mp4"
        src.write_bytes(b"reel")
        upload = start_upload(_complete_export(src), BrokenDestination())
        assert upload.wait(timeout=10)
        assert upload.status == UploadStatus.FAILED
        assert isinstance(upload.error, UploadError)
