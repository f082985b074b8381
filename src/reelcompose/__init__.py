"""reelcompose — highlight reel composition and render engine.

Ingest short video clips, generate scrub sprites for trimming, order and
trim them, join them with a global transition, mix in background music,
and render one output file through ffmpeg. Driven from Python through
HighlightEditor or from the command line via YAML project manifests.
"""

from .editor import HighlightEditor

__all__ = ["HighlightEditor"]
