"""CLI for exporting a highlight reel from a YAML project manifest.

Loads the project, ingests its clips (building scrub sprites on the way),
then renders the reel through the export engine. Ctrl-C cancels the
running export and removes its scratch files.

Usage:
    # Full export
    reelcompose export --project reel.yaml --output reel.mp4

    # Quick low-resolution preview
    reelcompose export --project reel.yaml --output preview.mp4 --preview

    # Export, then copy the result into a delivery folder
    reelcompose export --project reel.yaml --output reel.mp4 --upload-dir /srv/out

    # Validate only: ingest and print the render plan, no encoding
    reelcompose validate --project reel.yaml
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .editor import HighlightEditor
from .plan import resolve_render_plan
from .project import apply_project, load_project, validate_project_paths
from .render import JobStatus
from .settings import EngineSettings
from .transitions import compose_timeline
from .upload import DirectoryDestination


def _build_editor(config: dict, args) -> HighlightEditor:
    settings = EngineSettings().with_video(config["video"])
    if args.gpu:
        settings = settings.with_video({"codec": "h264_nvenc"})
    overrides = {}
    if args.cache_dir:
        overrides["cache_dir"] = Path(args.cache_dir)
    if args.workers:
        overrides["transcode_workers"] = args.workers
    return HighlightEditor(replace(settings, **overrides))


def _ingest(editor: HighlightEditor, config: dict) -> None:
    """Add the project's clips and wait for them to load, printing progress."""
    apply_project(editor, config)
    total = editor.store.total
    print(f"Loading {total} clip(s)...")

    def _progress(loaded, total):
        print(f"  {loaded}/{total} clips", flush=True)

    editor.store.progress.connect(_progress)
    editor.wait_loaded()
    editor.store.progress.disconnect(_progress)

    for clip in editor.clips:
        if clip.error:
            print(f"  FAILED {clip.path}: {clip.error}")


def validate(args) -> None:
    config = load_project(args.project)
    validate_project_paths(config)

    with _build_editor(config, args) as editor:
        _ingest(editor, config)
        units = resolve_render_plan(editor.store.snapshot())
        timeline = compose_timeline(units, editor.transition)

        print(f"\nRender plan: {len(units)} clip(s)")
        for seg in timeline.clips:
            u = seg.unit
            print(
                f"  {u.index}: {Path(u.path).name}  "
                f"{u.trim_start:.2f}s — {u.trim_end:.2f}s  @ {seg.start:.2f}s"
            )
        t = editor.transition
        print(f"Transition: {t.type} ({timeline.transition_duration:.2f}s)")
        audio = editor.audio
        if audio.enabled:
            print(f"Music: {audio.path} @ {audio.volume}%")
        print(f"Expected duration: {timeline.total_duration:.2f}s")


def export(args) -> None:
    config = load_project(args.project)
    validate_project_paths(config)

    with _build_editor(config, args) as editor:
        _ingest(editor, config)

        kind = "preview" if args.preview else "export"
        print(f"\nStarting {kind} -> {args.output}")
        job = editor.export(args.output, preview=args.preview)
        if job.timeline is not None:
            print(f"Expected duration: {job.timeline.total_duration:.1f}s")

        last = {"pct": -1}

        def _on_update(update):
            pct = int(update.progress * 100)
            if pct // 5 != last["pct"] // 5:
                last["pct"] = pct
                print(f"  {update.status:<10} {pct:3d}%", flush=True)

        job.updates.connect(_on_update)
        try:
            while not job.wait(timeout=0.5):
                pass
        except KeyboardInterrupt:
            print("\nCancelling...")
            job.cancel()
            job.wait()

        if job.status != JobStatus.COMPLETE:
            print(f"\nExport {job.status.value}: {job.error or ''}".rstrip())
            sys.exit(1)
        print(f"\nDone: {job.output_path}")

        if args.upload_dir:
            upload = editor.upload(DirectoryDestination(args.upload_dir))
            upload.wait()
            if upload.error:
                print(f"Upload failed: {upload.error}")
                sys.exit(1)
            print(f"Uploaded: {upload.location}")


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project", required=True,
        help="Path to YAML project manifest",
    )
    parser.add_argument(
        "--cache-dir", default=None,
        help="Sprite cache directory (default: per-user cache)",
    )
    parser.add_argument(
        "--workers", type=int, default=None,
        help="Parallel per-clip transcodes (default: 2)",
    )
    parser.add_argument(
        "--gpu", action="store_true",
        help="Use GPU encoding (h264_nvenc). Default is CPU (libx264).",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Log engine activity, including ffmpeg command lines",
    )


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Export a highlight reel from a YAML project manifest.",
    )
    _add_common_args(parser)
    parser.add_argument(
        "--output", required=True,
        help="Output video path (.mp4, .mov or .mkv)",
    )
    parser.add_argument(
        "--preview", action="store_true",
        help="Render a fast low-resolution preview",
    )
    parser.add_argument(
        "--upload-dir", default=None,
        help="Copy the finished export into this directory",
    )
    parsed = parser.parse_args(args)
    _configure_logging(parsed.verbose)
    export(parsed)


def validate_main(args=None):
    parser = argparse.ArgumentParser(
        description="Validate a project manifest and print its render plan.",
    )
    _add_common_args(parser)
    parsed = parser.parse_args(args)
    _configure_logging(parsed.verbose)
    validate(parsed)


if __name__ == "__main__":
    main()
