"""Processing layer - Notation layout.

This layer shapes the final chord sequence for tablature:
- Beat voting and bar/slot segmentation
- Manual slot overrides that survive re-analysis
- Transposition
"""

from .segmenter import NotationSegmenter, set_manual_chord
from .transpose import (
    transpose_bars,
    transpose_chord,
    transpose_frames,
    transpose_key,
    transpose_result,
)

__all__ = [
    "NotationSegmenter",
    "set_manual_chord",
    "transpose_chord",
    "transpose_key",
    "transpose_frames",
    "transpose_bars",
    "transpose_result",
]
