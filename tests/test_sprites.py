"""Tests for scrub sprite generation.

Uses real clips from conftest; sprite sheets are written to a per-test
cache directory.
"""

import threading
from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from moviepy import VideoFileClip

from reelcompose.clips import ClipState, ClipStore
from reelcompose.common import SCRUB_FRAMES, SCRUB_HEIGHT, SCRUB_WIDTH
from reelcompose.sprites import (
    SpriteCancelled,
    SpriteGenerator,
    build_sprite_sheet,
    sample_times,
    sprite_path_for,
    sprite_sheet_size,
)


class TestSampleTimes:
    def test_count_and_spacing(self):
        times = sample_times(10.0, 20)
        assert len(times) == 20
        assert times[0] == pytest.approx(0.25)
        assert times[-1] == pytest.approx(9.75)
        gaps = np.diff(times)
        assert np.allclose(gaps, 0.5)

    def test_all_inside_clip(self):
        times = sample_times(3.0)
        assert len(times) == SCRUB_FRAMES
        assert all(0 < t < 3.0 for t in times)


class TestSpritePaths:
    def test_stable_key(self, tmp_path):
        a = sprite_path_for(tmp_path, "/clips/a.mp4")
        assert a == sprite_path_for(tmp_path, "/clips/a.mp4")
        assert a.suffix == ".jpg"
        assert a.parent == tmp_path

    def test_distinct_clips_distinct_files(self, tmp_path):
        assert sprite_path_for(tmp_path, "/clips/a.mp4") != sprite_path_for(tmp_path, "/clips/b.mp4")

    def test_sheet_size(self):
        assert sprite_sheet_size(20) == (5 * SCRUB_WIDTH, 4 * SCRUB_HEIGHT)
        assert sprite_sheet_size(7) == (5 * SCRUB_WIDTH, 2 * SCRUB_HEIGHT)


class TestBuildSpriteSheet:
    def test_writes_sheet(self, make_clip, tmp_path):
        clip = make_clip("red.mp4", duration=2.0, color="red")
        out = tmp_path / "cache" / "red.jpg"
        build_sprite_sheet(str(clip), 2.0, out)

        img = Image.open(out)
        assert img.size == sprite_sheet_size()
        # Centre of the first cell is red-ish (4:3 source letterboxed into 16:9).
        px = np.asarray(img.convert("RGB"))[SCRUB_HEIGHT // 2, SCRUB_WIDTH // 2]
        assert px[0] > 150 and px[1] < 100 and px[2] < 100

    def test_cancelled_leaves_nothing(self, make_clip, tmp_path):
        clip = make_clip("a.mp4", duration=2.0)
        out = tmp_path / "cache" / "a.jpg"
        cancelled = threading.Event()
        cancelled.set()
        with pytest.raises(SpriteCancelled):
            build_sprite_sheet(str(clip), 2.0, out, cancelled)
        assert not out.exists()
        assert list(out.parent.iterdir()) == []


class TestSpriteGenerator:
    def test_one_bad_clip_does_not_block_batch(self, make_clip, bad_clip, tmp_path):
        good1 = make_clip("one.mp4", duration=2.0, color="red")
        good2 = make_clip("two.mp4", duration=1.5, color="green", audio=False)
        store = ClipStore()
        gen = SpriteGenerator(store, tmp_path / "cache", workers=2)
        failures = []
        gen.failed.connect(lambda path, err: failures.append(path))

        added = store.add_clips([good1, bad_clip, good2])
        assert gen.enqueue(added) == 3
        assert gen.wait(timeout=60)
        gen.shutdown()

        states = {c.path: c.state for c in store.clips}
        assert sorted(states.values()) == sorted(
            [ClipState.READY, ClipState.READY, ClipState.FAILED]
        )
        assert store.total == 3
        assert store.loaded_count == 3
        assert failures == [str(bad_clip)]

        bad = store.get(bad_clip)
        assert bad.sprite_path is None
        assert bad.error

        two = store.get(good2)
        assert two.has_audio is False
        assert abs(two.duration - 1.5) < 0.2
        assert two.trim_end == two.duration

    def test_ready_clips_are_skipped(self, make_clip, tmp_path):
        clip = make_clip("a.mp4", duration=1.0)
        store = ClipStore()
        gen = SpriteGenerator(store, tmp_path / "cache")
        store.add_clips([clip])
        gen.enqueue()
        gen.wait(timeout=60)
        assert store.get(clip).state == ClipState.READY
        assert gen.enqueue() == 0
        gen.shutdown()

    def test_reuses_cached_sheet(self, make_clip, tmp_path):
        clip = make_clip("a.mp4", duration=1.0)
        cache = tmp_path / "cache"

        first = ClipStore()
        gen = SpriteGenerator(first, cache)
        first.add_clips([clip])
        gen.enqueue()
        gen.wait(timeout=60)
        gen.shutdown()
        sprite = first.get(clip).sprite_path
        mtime = Path(sprite).stat().st_mtime_ns

        # A new session with the same clip path reuses the sheet.
        second = ClipStore()
        gen = SpriteGenerator(second, cache)
        second.add_clips([clip])
        gen.enqueue()
        gen.wait(timeout=60)
        gen.shutdown()
        assert second.get(clip).sprite_path == sprite
        assert Path(sprite).stat().st_mtime_ns == mtime

    def test_cancel_removed_clip(self, make_clip, tmp_path):
        clip = make_clip("a.mp4", duration=2.0)
        store = ClipStore()
        # Occupy the only worker so the clip's job stays queued.
        gen = SpriteGenerator(store, tmp_path / "cache", workers=1)
        gate = threading.Event()
        gen._executor.submit(gate.wait)

        added = store.add_clips([clip])
        gen.enqueue(added)
        store.remove_clip(clip)
        assert gen.cancel(added[0].path)
        gate.set()
        gen.wait(timeout=30)
        gen.shutdown()

        assert store.total == 0
        assert not sprite_path_for(tmp_path / "cache", added[0].path).exists()

    def test_remove_clip_mid_generation(self, make_clip, tmp_path, monkeypatch):
        clip = make_clip("a.mp4", duration=3.0)
        store = ClipStore()
        gen = SpriteGenerator(store, tmp_path / "cache", workers=1)
        failures = []
        gen.failed.connect(lambda path, err: failures.append(path))
        added = store.add_clips([clip])
        path = added[0].path

        # Remove the clip once a few frames have been decoded.
        real_get_frame = VideoFileClip.get_frame
        decoded = []

        def get_frame(self, t):
            decoded.append(t)
            if len(decoded) == 3:
                gen.cancel(path)
                store.remove_clip(path)
            return real_get_frame(self, t)

        monkeypatch.setattr(VideoFileClip, "get_frame", get_frame)
        gen.enqueue(added)
        gen.shutdown()

        assert 3 <= len(decoded) < SCRUB_FRAMES
        assert store.total == 0
        assert store.get(path) is None
        assert failures == []
        assert list((tmp_path / "cache").glob("*.jpg")) == []

    def test_stale_failure_does_not_touch_readded_clip(self, bad_clip, tmp_path):
        store = ClipStore()
        gen = SpriteGenerator(store, tmp_path / "cache", workers=1)
        failures = []
        gen.failed.connect(lambda path, err: failures.append(path))
        added = store.add_clips([bad_clip])
        path = added[0].path
        readded = []

        def on_changed():
            clip = store.get(path)
            if readded or clip is None or clip.state != ClipState.LOADING:
                return
            gen.cancel(path)
            store.remove_clip(path)
            readded.extend(store.add_clips([path]))

        store.changed.connect(on_changed)
        gen.enqueue(added)
        gen.shutdown()

        assert len(readded) == 1
        clip = store.get(path)
        assert clip.state == ClipState.PENDING
        assert clip.error is None
        assert failures == []


    def test_cancel_unknown_is_noop(self, tmp_path):
        gen = SpriteGenerator(ClipStore(), tmp_path / "cache")
        assert not gen.cancel("/nope.mp4")
        gen.shutdown()
