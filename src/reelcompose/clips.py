"""Clip Store — the ordered collection of source clips.

A clip is identified by its source path. The store owns every Clip and a
separate ordering list of paths; order is never a property of the clip,
so reordering cannot touch load state or sprites.

Clip lifecycle:
  pending  -> loading -> ready | failed

All mutation goes through one lock. Sprite workers report back through
mark_loading / mark_ready / mark_failed; those calls are ignored for paths
that were removed in the meantime, which is how in-flight work for a
removed clip gets abandoned.
"""

import logging
import os
import threading
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from .common import (
    MIN_TRIM_LENGTH,
    SUPPORTED_FILE_TYPES,
    clamp,
    has_extension,
)
from .errors import ValidationError
from .signals import Signal

logger = logging.getLogger(__name__)


class ClipState(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


SETTLED_STATES = frozenset({ClipState.READY, ClipState.FAILED})


@dataclass(frozen=True)
class Clip:
    path: str
    state: ClipState = ClipState.PENDING
    duration: float | None = None
    trim_start: float = 0.0
    trim_end: float | None = None
    has_audio: bool = False
    sprite_path: str | None = None
    error: str | None = None

    @property
    def effective_length(self) -> float:
        """Length of the trimmed range; 0 while duration is unknown."""
        if self.trim_end is None:
            return 0.0
        return self.trim_end - self.trim_start


def normalize_clip_path(path: str | Path) -> str:
    return os.path.abspath(os.fspath(path))


def clamp_trim(start: float, end: float, duration: float) -> tuple[float, float]:
    """Clamp a trim range so that 0 <= start < end <= duration.

    Out-of-range values are pulled to the nearest valid bound instead of
    rejected. A range shorter than MIN_TRIM_LENGTH (or inverted) is widened
    from its start, backing the start off if it would run past the end.
    """
    if duration <= 0:
        raise ValidationError(f"Cannot trim a clip of duration {duration}")
    min_len = min(MIN_TRIM_LENGTH, duration)
    start = clamp(float(start), 0.0, duration - min_len)
    # The duration bound wins over the minimum length if rounding pushes
    # start + min_len past it.
    end = min(duration, max(float(end), start + min_len))
    return start, end


class ClipStore:
    """Ordered, thread-safe collection of clips keyed by path.

    Signals:
        changed: emitted with no arguments after any mutation.
        progress: emitted with (loaded_count, total) whenever either moves.
    """

    def __init__(self):
        self._clips: dict[str, Clip] = {}
        self._order: list[str] = []
        self._lock = threading.RLock()
        self.changed = Signal("clips.changed")
        self.progress = Signal("clips.progress")

    # ── Views ──────────────────────────────────────────────────────

    @property
    def clips(self) -> list[Clip]:
        """Clips in their current order."""
        with self._lock:
            return [self._clips[p] for p in self._order]

    @property
    def order(self) -> list[str]:
        with self._lock:
            return list(self._order)

    @property
    def total(self) -> int:
        with self._lock:
            return len(self._clips)

    @property
    def loaded_count(self) -> int:
        """Number of clips that have settled (ready or failed)."""
        with self._lock:
            return sum(1 for c in self._clips.values() if c.state in SETTLED_STATES)

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self.loaded_count == self.total

    def get(self, path: str | Path) -> Clip | None:
        with self._lock:
            return self._clips.get(normalize_clip_path(path))

    def __contains__(self, path) -> bool:
        return self.get(path) is not None

    def __len__(self) -> int:
        return self.total

    def pending(self) -> list[Clip]:
        with self._lock:
            return [c for c in self.clips if c.state == ClipState.PENDING]

    def snapshot(self) -> tuple[Clip, ...]:
        """Immutable copy of the ordered clips for an export job."""
        return tuple(self.clips)

    # ── Action API ─────────────────────────────────────────────────

    def add_clips(self, paths) -> list[Clip]:
        """Add clips in pending state; return the ones actually added.

        Unsupported extensions are dropped with a warning. Paths already in
        the store are ignored, so adding the same file twice is a no-op.
        """
        added = []
        with self._lock:
            for raw in paths:
                if not has_extension(raw, SUPPORTED_FILE_TYPES):
                    logger.warning("Dropping unsupported clip type: %s", raw)
                    continue
                path = normalize_clip_path(raw)
                if path in self._clips:
                    continue
                clip = Clip(path=path)
                self._clips[path] = clip
                self._order.append(path)
                added.append(clip)
        if added:
            logger.info("Added %d clip(s)", len(added))
            self._notify()
        return added

    def remove_clip(self, path: str | Path) -> bool:
        """Remove a clip and its order entry. Returns False if absent."""
        path = normalize_clip_path(path)
        with self._lock:
            if path not in self._clips:
                return False
            del self._clips[path]
            self._order.remove(path)
        logger.info("Removed clip %s", path)
        self._notify()
        return True

    def set_order(self, ordered_paths) -> list[str]:
        """Replace the clip ordering atomically.

        Unknown paths and repeats are filtered out. Clips left out of the
        new order keep their previous relative order after the listed ones,
        so the ordering always covers every clip exactly once.
        """
        with self._lock:
            new_order = []
            seen = set()
            for raw in ordered_paths:
                path = normalize_clip_path(raw)
                if path not in self._clips:
                    logger.warning("Ignoring unknown clip in order: %s", raw)
                    continue
                if path in seen:
                    continue
                seen.add(path)
                new_order.append(path)
            new_order.extend(p for p in self._order if p not in seen)
            if new_order == self._order:
                return list(self._order)
            self._order = new_order
            result = list(new_order)
        self._notify(progress=False)
        return result

    def set_clip_trim(self, path: str | Path, start: float, end: float) -> Clip:
        """Set a clip's trim range, clamped to its duration.

        Before the clip's duration is known the range is stored as given
        (after basic ordering checks) and clamped once the clip is ready.

        Raises:
            ValidationError: Unknown clip.
        """
        path = normalize_clip_path(path)
        with self._lock:
            clip = self._clips.get(path)
            if clip is None:
                raise ValidationError(f"No such clip: {path}")
            if clip.duration is not None:
                trim_start, trim_end = clamp_trim(start, end, clip.duration)
            else:
                trim_start = max(0.0, float(start))
                trim_end = max(float(end), trim_start + MIN_TRIM_LENGTH)
            if (trim_start, trim_end) != (start, end):
                logger.warning(
                    "Clamped trim for %s: (%s, %s) -> (%.3f, %.3f)",
                    path, start, end, trim_start, trim_end,
                )
            clip = replace(clip, trim_start=trim_start, trim_end=trim_end)
            self._clips[path] = clip
        self._notify(progress=False)
        return clip

    # ── Worker callbacks ───────────────────────────────────────────

    def mark_loading(self, path: str) -> bool:
        return self._update(path, state=ClipState.LOADING)

    def mark_ready(
        self, path: str, duration: float, sprite_path: str, has_audio: bool,
    ) -> bool:
        """Record a successful load. Returns False if the clip is gone."""
        with self._lock:
            clip = self._clips.get(path)
            if clip is None:
                return False
            if clip.trim_end is None:
                trim = (0.0, duration)
            else:
                trim = clamp_trim(clip.trim_start, clip.trim_end, duration)
            self._clips[path] = replace(
                clip,
                state=ClipState.READY,
                duration=duration,
                trim_start=trim[0],
                trim_end=trim[1],
                has_audio=has_audio,
                sprite_path=sprite_path,
                error=None,
            )
        logger.info("Clip ready: %s (%.2fs)", path, duration)
        self._notify()
        return True

    def mark_failed(self, path: str, error: str) -> bool:
        ok = self._update(path, state=ClipState.FAILED, sprite_path=None, error=error)
        if ok:
            logger.warning("Clip failed: %s: %s", path, error)
        return ok

    def reset_failed(self) -> list[Clip]:
        """Put failed clips back to pending so they can be retried."""
        with self._lock:
            retried = []
            for path, clip in self._clips.items():
                if clip.state == ClipState.FAILED:
                    self._clips[path] = replace(clip, state=ClipState.PENDING, error=None)
                    retried.append(self._clips[path])
        if retried:
            self._notify()
        return retried

    def _update(self, path: str, **changes) -> bool:
        with self._lock:
            clip = self._clips.get(path)
            if clip is None:
                return False
            self._clips[path] = replace(clip, **changes)
        self._notify()
        return True

    def _notify(self, progress: bool = True) -> None:
        self.changed.emit()
        if progress:
            self.progress.emit(self.loaded_count, self.total)
