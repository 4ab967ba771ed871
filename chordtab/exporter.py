"""Export analysis results to JSON and plain-text chord sheets."""

import json
from pathlib import Path
from typing import List

from .core.models import Bar


class AnalysisExporter:
    """Export an AnalysisResult to a JSON file."""

    def __init__(self, indent: int = 2, include_frames: bool = True):
        """
        Initialize AnalysisExporter.

        Args:
            indent: JSON indentation
            include_frames: Write the per-frame chord sequence as well as bars
        """
        self.indent = indent
        self.include_frames = include_frames

    def to_dict(self, result) -> dict:
        data = result.to_dict()
        if not self.include_frames:
            data.pop("frames", None)
        return data

    def export(self, result, output_path) -> None:
        """
        Write an analysis result as JSON.

        Args:
            result: AnalysisResult
            output_path: Path to output JSON file
        """
        path = Path(output_path)
        # Ensure output directory exists
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(result), f, indent=self.indent)


def chords_to_text(bars: List[Bar], bars_per_line: int = 4) -> str:
    """
    Render bars as a compact chord sheet.

    Each bar is written between bar lines, with one chord per slot padded
    to its beat length, e.g. ``| C . . G | Am . F . |``. Empty slots print
    as ``N.C.``.
    """
    lines = []
    for start in range(0, len(bars), bars_per_line):
        cells = []
        for bar in bars[start:start + bars_per_line]:
            tokens = []
            for slot in bar.slots:
                tokens.append(slot.name or "N.C.")
                tokens.extend(["."] * (slot.beat_length - 1))
            cells.append(" ".join(tokens))
        lines.append("| " + " | ".join(cells) + " |")
    return "\n".join(lines)
