"""Trim & order resolver — the validation gate before any encoding.

Turns an ordered clip snapshot into render units: one (clip, trim-in,
trim-out) entry per usable clip, in timeline order. Failed clips are left
out; clips that are still loading block the export because their length
is not known yet.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from .clips import Clip, ClipState
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderUnit:
    """One trimmed clip at its position in the final ordering."""
    index: int
    path: str
    trim_start: float
    trim_end: float
    has_audio: bool = False

    @property
    def length(self) -> float:
        return self.trim_end - self.trim_start


def resolve_render_plan(clips: Sequence[Clip]) -> list[RenderUnit]:
    """Build render units from an ordered clip snapshot.

    Args:
        clips: Clips in timeline order (ClipStore.snapshot()).

    Returns:
        Render units for every ready clip, indexed 0..N-1 in order.

    Raises:
        ValidationError: Clips still loading, a corrupt trim range, or no
            ready clips at all.
    """
    loading = [c for c in clips if c.state in (ClipState.PENDING, ClipState.LOADING)]
    if loading:
        raise ValidationError(
            f"{len(loading)} clip(s) are still loading; wait for them to finish"
        )

    units = []
    for clip in clips:
        if clip.state == ClipState.FAILED:
            logger.warning("Skipping failed clip %s", clip.path)
            continue

        if clip.duration is None or clip.trim_end is None:
            raise ValidationError(f"Clip {clip.path} has no known duration")
        if not 0 <= clip.trim_start < clip.trim_end <= clip.duration:
            raise ValidationError(
                f"Clip {clip.path}: invalid trim range "
                f"({clip.trim_start}, {clip.trim_end}) for duration {clip.duration}"
            )

        units.append(RenderUnit(
            index=len(units),
            path=clip.path,
            trim_start=clip.trim_start,
            trim_end=clip.trim_end,
            has_audio=clip.has_audio,
        ))

    if not units:
        raise ValidationError("No ready clips to render")
    return units
