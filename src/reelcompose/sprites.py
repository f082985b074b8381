"""Scrub sprite generation for newly added clips.

For each pending clip a worker probes the file, samples SCRUB_FRAMES evenly
spaced frames, letterboxes each into a SCRUB_WIDTH x SCRUB_HEIGHT cell and
pastes them into one JPEG sprite sheet (SPRITE_COLUMNS cells per row):

  ┌─────┬─────┬─────┬─────┬─────┐
  │  0  │  1  │  2  │  3  │  4  │
  ├─────┼─────┼─────┼─────┼─────┤
  │  5  │ ... │     │     │  9  │
  ├─────┼─────┼─────┼─────┼─────┤
  │ 10  │     │     │     │ 14  │
  ├─────┼─────┼─────┼─────┼─────┤
  │ 15  │     │     │     │ 19  │
  └─────┴─────┴─────┴─────┴─────┘

Sheets live in the sprite cache directory under a name derived from the
clip's path, so a later session reuses them instead of decoding again.

Workers run on a small thread pool. A failing clip is marked failed in the
store and reported through `failed`; its siblings keep going. Cancelling a
clip (because it was removed) makes its worker stop between frames and
discard the partial sheet.
"""

import hashlib
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path

from PIL import Image, ImageOps
from moviepy import VideoFileClip

from .clips import Clip, ClipState, ClipStore
from .common import (
    SCRUB_FRAMES,
    SCRUB_HEIGHT,
    SCRUB_WIDTH,
    SPRITE_COLUMNS,
    probe_video,
)
from .errors import IngestError
from .signals import Signal

logger = logging.getLogger(__name__)


class SpriteCancelled(Exception):
    """Raised inside a worker when its clip was removed mid-generation."""


def sprite_path_for(cache_dir: str | Path, clip_path: str) -> Path:
    """Cache location of a clip's sprite sheet, keyed by the clip path."""
    digest = hashlib.sha1(clip_path.encode("utf-8")).hexdigest()
    return Path(cache_dir) / f"{digest}.jpg"


def sample_times(duration: float, count: int = SCRUB_FRAMES) -> list[float]:
    """Evenly spaced sample times, each at the centre of its slice.

    Centring keeps the last sample strictly before the end of the clip,
    where decoders often have no frame.
    """
    step = duration / count
    return [step * (i + 0.5) for i in range(count)]


def sprite_sheet_size(count: int = SCRUB_FRAMES) -> tuple[int, int]:
    rows = -(-count // SPRITE_COLUMNS)
    return SPRITE_COLUMNS * SCRUB_WIDTH, rows * SCRUB_HEIGHT


def build_sprite_sheet(
    clip_path: str,
    duration: float,
    output: Path,
    cancelled: threading.Event | None = None,
) -> Path:
    """Decode sample frames from clip_path and write the sprite sheet.

    The sheet is written to a temp name and renamed into place, so a
    cancelled or crashed worker never leaves a half-written sheet behind.

    Raises:
        SpriteCancelled: cancelled was set before the sheet was complete.
    """
    output.parent.mkdir(parents=True, exist_ok=True)
    sheet = Image.new("RGB", sprite_sheet_size(), (0, 0, 0))

    with VideoFileClip(clip_path, audio=False) as clip:
        for i, t in enumerate(sample_times(duration)):
            if cancelled is not None and cancelled.is_set():
                raise SpriteCancelled(clip_path)
            frame = clip.get_frame(t)
            cell = ImageOps.pad(
                Image.fromarray(frame).convert("RGB"),
                (SCRUB_WIDTH, SCRUB_HEIGHT),
                color=(0, 0, 0),
            )
            x = (i % SPRITE_COLUMNS) * SCRUB_WIDTH
            y = (i // SPRITE_COLUMNS) * SCRUB_HEIGHT
            sheet.paste(cell, (x, y))

    tmp = output.with_name(output.stem + ".partial.jpg")
    sheet.save(tmp, "JPEG", quality=85)
    os.replace(tmp, output)
    return output


class SpriteGenerator:
    """Bounded worker pool that loads pending clips from a ClipStore.

    Signals:
        failed: emitted with (path, IngestError) for each clip that fails.
    """

    def __init__(self, store: ClipStore, cache_dir: str | Path, workers: int = 2):
        self.store = store
        self.cache_dir = Path(cache_dir)
        self.failed = Signal("sprites.failed")
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, workers), thread_name_prefix="sprites",
        )
        self._jobs: dict[str, tuple[Future, threading.Event]] = {}
        # Reentrant: a future that is already done runs its done-callback
        # synchronously inside enqueue().
        self._lock = threading.RLock()

    def enqueue(self, clips: list[Clip] | None = None) -> int:
        """Schedule sprite generation for pending clips.

        With no argument every pending clip in the store is scheduled.
        Clips that are not pending (already ready, failed, or in flight)
        are skipped. Returns the number of newly scheduled clips.
        """
        if clips is None:
            clips = self.store.pending()
        scheduled = 0
        with self._lock:
            for clip in clips:
                if clip.state != ClipState.PENDING:
                    continue
                # A finished job may linger until its done-callback runs.
                job = self._jobs.get(clip.path)
                if job is not None and not job[0].done():
                    continue
                cancelled = threading.Event()
                future = self._executor.submit(self._load, clip.path, cancelled)
                self._jobs[clip.path] = (future, cancelled)
                future.add_done_callback(
                    lambda _f, path=clip.path: self._forget(path, _f)
                )
                scheduled += 1
        return scheduled

    def cancel(self, path: str) -> bool:
        """Abandon in-flight or queued generation for one clip."""
        with self._lock:
            job = self._jobs.pop(path, None)
        if job is None:
            return False
        future, cancelled = job
        cancelled.set()
        future.cancel()
        logger.info("Cancelled sprite generation for %s", path)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every scheduled job has finished. True if idle."""
        with self._lock:
            futures = [f for f, _ in self._jobs.values()]
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    @property
    def active(self) -> int:
        with self._lock:
            return sum(1 for f, _ in self._jobs.values() if not f.done())

    def shutdown(self) -> None:
        with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
        for _, cancelled in jobs:
            cancelled.set()
        self._executor.shutdown(wait=True, cancel_futures=True)

    # ── Worker ─────────────────────────────────────────────────────

    def _forget(self, path: str, future: Future) -> None:
        with self._lock:
            job = self._jobs.get(path)
            if job is not None and job[0] is future:
                del self._jobs[path]

    def _load(self, path: str, cancelled: threading.Event) -> None:
        if cancelled.is_set() or not self.store.mark_loading(path):
            return
        try:
            info = probe_video(path)
            duration = info["duration"]
            if duration <= 0:
                raise IngestError(path, "clip has no duration")

            sprite = sprite_path_for(self.cache_dir, path)
            if sprite.exists():
                logger.debug("Reusing cached sprite for %s", path)
            else:
                build_sprite_sheet(path, duration, sprite, cancelled)
        except SpriteCancelled:
            logger.debug("Sprite generation abandoned for %s", path)
            return
        except IngestError as e:
            self._fail(path, e, cancelled)
            return
        except Exception as e:
            logger.debug("Ingest of %s raised", path, exc_info=True)
            self._fail(path, IngestError(path, str(e) or type(e).__name__), cancelled)
            return

        if cancelled.is_set():
            return
        self.store.mark_ready(path, duration, str(sprite), info["has_audio"])

    def _fail(self, path: str, error: IngestError, cancelled: threading.Event) -> None:
        # The path may already belong to a re-added clip with its own worker.
        if cancelled.is_set():
            logger.debug("Dropping failure for abandoned clip %s", path)
            return
        if self.store.mark_failed(path, error.reason):
            self.failed.emit(path, error)
