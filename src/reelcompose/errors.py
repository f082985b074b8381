"""
Engine error types.

All errors inherit from ReelError for easy catching. Each maps to one
failure domain: ingest failures stay on their clip, validation and
encode failures stay on their export job, upload failures stay on their
upload job.
"""


class ReelError(Exception):
    """Base exception for all engine failures."""
    pass


class IngestError(ReelError):
    """A clip could not be probed or its sprite sheet could not be built."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load clip {path}: {reason}")


class ValidationError(ReelError, ValueError):
    """Bad input that blocks an operation before any work starts."""
    pass


class EncodeError(ReelError):
    """An ffmpeg process exited with a non-zero status."""

    def __init__(self, stage: str, returncode: int, stderr: str = ""):
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"Encoding failed during {stage} (exit {returncode}): {tail}")


class AudioError(ReelError):
    """The background music track is missing, unsupported, or unreadable."""
    pass


class UploadError(ReelError):
    """Delivering the rendered file to its destination failed."""
    pass


class ExportBusyError(ReelError):
    """An export was requested while another one is still active."""
    pass


class InvalidStateTransitionError(ReelError):
    """Raised when attempting an illegal job state transition."""

    def __init__(self, entity_type: str, current_state: str, target_state: str):
        self.entity_type = entity_type
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid {entity_type} state transition: "
            f"{current_state} -> {target_state}"
        )
