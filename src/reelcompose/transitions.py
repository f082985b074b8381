"""Transition compositor — temporal layout of render units.

One transition type and duration apply between every adjacent pair of
clips. All transitions overlap: the incoming clip starts D seconds before
the outgoing one ends, and both are blended with ffmpeg's xfade filter
(acrossfade for audio). So for N clips of effective lengths L1..LN:

    total = L1 + ... + LN - (N - 1) * D

A single clip skips compositing and passes straight through.

D is clamped twice: to [MIN_TRANSITION_DURATION, MAX_TRANSITION_DURATION]
when the user sets it, and per render to half the shortest unit so that
no clip's incoming and outgoing transitions overlap each other.
"""

import logging
from dataclasses import dataclass, replace

from .common import (
    MAX_TRANSITION_DURATION,
    MIN_TRANSITION_DURATION,
    clamp,
)
from .plan import RenderUnit

logger = logging.getLogger(__name__)


# ── Transition types ──────────────────────────────────────────────
# Maps type → display name. Every type is also the name of the ffmpeg
# xfade transition that renders it. Insertion order is display order.

TRANSITIONS = {
    "fade": "Fade",
    "fadeblack": "Fade to Black",
    "fadewhite": "Fade to White",
    "dissolve": "Dissolve",
    "wipeleft": "Wipe Left",
    "wiperight": "Wipe Right",
    "slideleft": "Slide Left",
    "slideright": "Slide Right",
    "circleopen": "Circle Open",
    "pixelize": "Pixelize",
    "radial": "Radial",
}

DEFAULT_TRANSITION = "fade"
DEFAULT_TRANSITION_DURATION = 1.0


def available_transitions() -> list[dict]:
    """Transition choices as [{'type': ..., 'display_name': ...}]."""
    return [{"type": t, "display_name": name} for t, name in TRANSITIONS.items()]


@dataclass(frozen=True)
class TransitionConfig:
    type: str = DEFAULT_TRANSITION
    duration: float = DEFAULT_TRANSITION_DURATION

    def updated(self, type: str | None = None, duration: float | None = None):
        """Return a copy with the given fields validated and clamped.

        An unknown type is ignored (the current type is kept); a duration
        outside the allowed range is clamped to it.
        """
        changes = {}
        if type is not None:
            if type in TRANSITIONS:
                changes["type"] = type
            else:
                logger.warning(
                    "Unknown transition type %r, keeping %r. Valid: %s",
                    type, self.type, sorted(TRANSITIONS),
                )
        if duration is not None:
            clamped = clamp(float(duration), MIN_TRANSITION_DURATION, MAX_TRANSITION_DURATION)
            if clamped != duration:
                logger.warning("Clamped transition duration %s -> %s", duration, clamped)
            changes["duration"] = clamped
        return replace(self, **changes)


# ── Timeline ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClipSegment:
    unit: RenderUnit
    start: float

    @property
    def end(self) -> float:
        return self.start + self.unit.length


@dataclass(frozen=True)
class TransitionSegment:
    type: str
    start: float
    duration: float
    from_index: int
    to_index: int


@dataclass(frozen=True)
class Timeline:
    clips: tuple[ClipSegment, ...]
    transitions: tuple[TransitionSegment, ...]
    transition_type: str
    transition_duration: float
    total_duration: float

    @property
    def is_passthrough(self) -> bool:
        return len(self.clips) == 1

    @property
    def segments(self) -> list:
        """Clip and transition segments interleaved in timeline order."""
        out = [self.clips[0]]
        for tr, seg in zip(self.transitions, self.clips[1:]):
            out.extend([tr, seg])
        return out


def effective_transition_duration(units: list[RenderUnit], duration: float) -> float:
    """Clamp D to half the shortest unit so every xfade offset is valid."""
    if len(units) < 2:
        return 0.0
    limit = min(u.length for u in units) / 2
    if duration > limit:
        logger.warning(
            "Transition duration %.3fs exceeds half the shortest clip; using %.3fs",
            duration, limit,
        )
        return limit
    return duration


def compose_timeline(units: list[RenderUnit], config: TransitionConfig) -> Timeline:
    """Lay render units out on a timeline with overlapping transitions.

    The algorithm walks units left-to-right with a running cursor. Each
    clip starts at the cursor; the cursor then advances by the clip's
    length minus the overlap with the next clip. Transition k covers the
    last D seconds of clip k and the first D seconds of clip k+1.

    Raises:
        ValueError: If units is empty.
    """
    if not units:
        raise ValueError("No render units to compose")

    # Single unit: nothing to compose.
    if len(units) == 1:
        unit = units[0]
        return Timeline(
            clips=(ClipSegment(unit, 0.0),),
            transitions=(),
            transition_type=config.type,
            transition_duration=0.0,
            total_duration=unit.length,
        )

    d = effective_transition_duration(units, config.duration)
    clips = []
    transitions = []
    cursor = 0.0
    for i, unit in enumerate(units):
        seg = ClipSegment(unit, cursor)
        clips.append(seg)
        if i < len(units) - 1:
            transitions.append(TransitionSegment(
                type=config.type,
                start=seg.end - d,
                duration=d,
                from_index=i,
                to_index=i + 1,
            ))
            cursor = seg.end - d

    total = clips[-1].end
    return Timeline(
        clips=tuple(clips),
        transitions=tuple(transitions),
        transition_type=config.type,
        transition_duration=d,
        total_duration=total,
    )


# ── ffmpeg filter graph ───────────────────────────────────────────


def build_video_graph(timeline: Timeline, fade_out: float = 0.0) -> tuple[list[str], str]:
    """Build the video half of the final mux filter graph.

    Input i of the ffmpeg command is the intermediate for clip i. Clips
    are chained pairwise with xfade; each xfade's offset is the start of
    the incoming clip on the timeline. An optional fade to black covers
    the last `fade_out` seconds (capped at half the output).

    Returns:
        (filter_parts, output_label)
    """
    parts = []
    label = "[0:v]"
    if not timeline.is_passthrough:
        # xfade needs both inputs on the same timebase.
        for i in range(len(timeline.clips)):
            parts.append(f"[{i}:v]settb=AVTB,setpts=PTS-STARTPTS[v{i}]")
        label = "[v0]"
    for tr in timeline.transitions:
        offset = timeline.clips[tr.to_index].start
        out = f"[xf{tr.to_index}]"
        parts.append(
            f"{label}[v{tr.to_index}]xfade=transition={tr.type}"
            f":duration={tr.duration:.3f}:offset={offset:.3f}{out}"
        )
        label = out

    fade = min(fade_out, timeline.total_duration / 2)
    if fade > 0:
        start = timeline.total_duration - fade
        parts.append(f"{label}fade=t=out:st={start:.3f}:d={fade:.3f}[vfade]")
        label = "[vfade]"
    return parts, label
