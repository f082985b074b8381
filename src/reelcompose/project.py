"""Project manifest loader — a highlight reel declared in YAML.

Project manifest schema:
  video:                        # optional, overrides full render settings
    fps: 30
    resolution: [1920, 1080]
    codec: libx264
  paths:
    clips: "/data/clips"
  clips:
    - path: "${clips}/goal.mp4"
      trim: [2.0, 7.5]          # optional [in, out] seconds
    - path: "${clips}/save.mov"
  transition:                   # optional
    type: fade
    duration: 1.0
  audio:                        # optional
    enabled: true
    path: "${clips}/music.mp3"
    volume: 50

Only structure is validated here. Numeric settings (transition duration,
volume, trims) are clamped by the engine when applied, never rejected.
"""

from pathlib import Path

import yaml

from .common import resolve_path_vars


def load_project(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a project manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Resolve ${path} variables in clip and music paths.
      3. Validate clip entries (path required, trim is a 2-item list).
      4. Fill defaults for video, transition and audio sections.

    Args:
        manifest_path: Path to the YAML project manifest.

    Returns:
        Normalized config dict with keys video, clips, transition, audio.

    Raises:
        ValueError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError("Project manifest: top level must be a mapping")
    if "clips" not in raw:
        raise ValueError("Project manifest: missing required 'clips' section")

    paths = raw.get("paths", {}) or {}

    video = dict(raw.get("video") or {})
    if "resolution" in video:
        res = video["resolution"]
        if not isinstance(res, (list, tuple)) or len(res) != 2:
            raise ValueError(
                f"Project manifest: video.resolution must be [width, height], got {res!r}"
            )
        video["resolution"] = (int(res[0]), int(res[1]))

    clips = []
    for i, entry in enumerate(raw["clips"] or []):
        if isinstance(entry, str):
            entry = {"path": entry}
        if "path" not in entry:
            raise ValueError(f"Project clip {i}: missing required field 'path'")
        clip = {"path": resolve_path_vars(str(entry["path"]), paths), "trim": None}

        if entry.get("trim") is not None:
            trim = entry["trim"]
            if (
                not isinstance(trim, (list, tuple))
                or len(trim) != 2
                or not all(isinstance(t, (int, float)) for t in trim)
            ):
                raise ValueError(
                    f"Project clip {i}: trim must be [in, out] seconds, got {trim!r}"
                )
            clip["trim"] = (float(trim[0]), float(trim[1]))
        clips.append(clip)

    transition = dict(raw.get("transition") or {})
    audio = dict(raw.get("audio") or {})
    if audio.get("path"):
        audio["path"] = resolve_path_vars(str(audio["path"]), paths)

    return {
        "video": video,
        "clips": clips,
        "transition": transition,
        "audio": audio,
    }


def validate_project_paths(config: dict) -> None:
    """Check that all clip paths (and an enabled music path) exist on disk.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    missing = [c["path"] for c in config["clips"] if not Path(c["path"]).exists()]
    audio = config["audio"]
    if audio.get("enabled") and audio.get("path") and not Path(audio["path"]).exists():
        missing.append(audio["path"])

    if missing:
        msg = f"Missing {len(missing)} file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)


def apply_project(editor, config: dict) -> None:
    """Load a normalized project config into a HighlightEditor.

    Adds the clips (in manifest order), records trims, and applies the
    transition and audio settings. Sprite generation starts immediately;
    trims set before a clip is loaded are clamped once its duration is
    known.
    """
    editor.add_clips([c["path"] for c in config["clips"]])
    editor.set_order([c["path"] for c in config["clips"]])
    for clip in config["clips"]:
        # Unsupported clip types were dropped by add_clips.
        if clip["trim"] is not None and clip["path"] in editor.store:
            editor.set_clip_trim(clip["path"], *clip["trim"])

    transition = config["transition"]
    editor.set_transition(
        type=transition.get("type"),
        duration=transition.get("duration"),
    )
    audio = config["audio"]
    editor.set_audio(
        enabled=audio.get("enabled"),
        path=audio.get("path"),
        volume=audio.get("volume"),
    )
