#!/usr/bin/env python3
"""Generate synthetic clips and a music bed for the demo reel project.

Creates 6 clips of varying durations and containers in examples/demo-clips/
plus a looping music track. Each clip is a solid color with its name drawn
in the middle, so ordering and trims are easy to check in the export.
Some clips are silent, to exercise the generated silent track.

Usage:
    python examples/generate_demo_clips.py
    # Then export:
    reelcompose export --project examples/demo-reel.yaml \
        --output examples/demo-renders/reel.mp4
"""

import numpy as np
from moviepy import AudioArrayClip, ColorClip, CompositeVideoClip, ImageClip
from pathlib import Path
from PIL import Image, ImageDraw, ImageFont

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-clips"
SIZE = (640, 360)
FPS = 30
SAMPLE_RATE = 48000

# (name, extension, color, duration, tone Hz or None for silent)
CLIPS = [
    ("goal",      "mp4", (180, 60, 60),  6.0, 330),   # red
    ("save",      "mov", (60, 60, 180),  4.0, None),  # blue
    ("dribble",   "mkv", (60, 160, 60),  5.0, 440),   # green
    ("celebrate", "mp4", (200, 130, 40), 3.0, 550),   # orange
    ("replay",    "mp4", (130, 60, 180), 7.5, None),  # purple
    ("crowd",     "mov", (40, 170, 170), 2.0, 660),   # cyan
]

MUSIC = ("music", 12.0)


def _make_label(name: str) -> np.ndarray:
    """Create a name card: white text on a transparent background."""
    img = Image.new("RGBA", SIZE, (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 56
        )
    except OSError:
        font = ImageFont.load_default()
    text = name.upper()
    bbox = draw.textbbox((0, 0), text, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(
        ((SIZE[0] - tw) / 2, (SIZE[1] - th) / 2),
        text,
        fill=(255, 255, 255, 255),
        font=font,
    )
    return np.array(img)


def _tone(freq: float, duration: float, level: float = 0.2) -> AudioArrayClip:
    t = np.arange(int(duration * SAMPLE_RATE)) / SAMPLE_RATE
    wave = level * np.sin(2 * np.pi * freq * t)
    return AudioArrayClip(np.column_stack([wave, wave]), fps=SAMPLE_RATE)


def _music(duration: float) -> AudioArrayClip:
    """A simple two-note loop so looping and volume are audible."""
    t = np.arange(int(duration * SAMPLE_RATE)) / SAMPLE_RATE
    freq = np.where((t % 1.0) < 0.5, 220.0, 277.0)
    wave = 0.3 * np.sin(2 * np.pi * freq * t)
    return AudioArrayClip(np.column_stack([wave, wave]), fps=SAMPLE_RATE)


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    for name, ext, color, duration, tone in CLIPS:
        out = OUTPUT_DIR / f"{name}.{ext}"
        if out.exists():
            print(f"  skip {out.name} (exists)")
            continue

        body = ColorClip(size=SIZE, color=color, duration=duration)
        label = ImageClip(_make_label(name), duration=duration)
        final = CompositeVideoClip([body, label], size=SIZE)
        if tone is not None:
            final = final.with_audio(_tone(tone, duration))
        final.write_videofile(
            str(out),
            fps=FPS,
            codec="libx264",
            audio_codec="aac" if tone is not None else None,
            audio=tone is not None,
            logger=None,
        )
        print(f"  wrote {out.name} ({duration}s{'' if tone else ', silent'})")

    name, duration = MUSIC
    music_out = OUTPUT_DIR / f"{name}.wav"
    if music_out.exists():
        print(f"  skip {music_out.name} (exists)")
    else:
        _music(duration).write_audiofile(str(music_out), fps=SAMPLE_RATE, logger=None)
        print(f"  wrote {music_out.name} ({duration}s)")

    print(f"\nDone. {len(CLIPS)} clips and 1 music track in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
