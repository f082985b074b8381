"""CLI for pre-building scrub sprite sheets.

Useful to warm the sprite cache for a folder of clips before opening them
in an editor session.

Usage:
    reelcompose sprites clip1.mp4 clip2.mov
    reelcompose sprites clips/*.mp4 --cache-dir /tmp/sprites --workers 4
"""

import argparse
from dataclasses import replace
from pathlib import Path

from .editor import HighlightEditor
from .settings import EngineSettings


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Generate scrub sprite sheets for video clips.",
    )
    parser.add_argument(
        "clips", nargs="+",
        help="Video clips (.mp4, .mov, .mkv)",
    )
    parser.add_argument(
        "--cache-dir", default=None,
        help="Sprite cache directory (default: per-user cache)",
    )
    parser.add_argument(
        "--workers", type=int, default=2,
        help="Parallel sprite workers (default: 2)",
    )
    parsed = parser.parse_args(args)

    settings = EngineSettings(sprite_workers=parsed.workers)
    if parsed.cache_dir:
        settings = replace(settings, cache_dir=Path(parsed.cache_dir))

    with HighlightEditor(settings) as editor:
        added = editor.add_clips(parsed.clips)
        skipped = len(parsed.clips) - len(added)
        print(f"Generating sprites for {len(added)} clip(s) in {settings.cache_dir}")
        if skipped:
            print(f"  SKIP   {skipped} unsupported or duplicate path(s)")
        editor.wait_loaded()

        failed = 0
        for clip in editor.clips:
            if clip.sprite_path:
                print(f"  OK     {clip.path} ({clip.duration:.1f}s) -> {clip.sprite_path}")
            else:
                failed += 1
                print(f"  FAILED {clip.path}: {clip.error}")

    print(f"\nDone: {len(added) - failed} ready, {failed} failed")
    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
