"""Chord hypothesis model, chord naming and priority tables.

Chord qualities are plain string tags ("major", "m7", "slash_major_3rd", ...).
Every tie-break between qualities goes through one ordered priority table
and ``pick_by_priority`` instead of ad-hoc if/else chains.
"""

import re
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Sequence

from .constants import FLAT_NAMES, PITCH_NAMES, SHARP_ALIASES


# Name suffix per quality; anything missing uses the quality tag itself
CHORD_SUFFIXES = {
    "major": "",
    "minor": "m",
    "power": "5",
    "mmaj7": "mMaj7",
}

# Tension/colour qualities mapped down to their playable base form
TENSION_BASE = {
    "9": "7",
    "11": "7",
    "13": "7",
    "m9": "m7",
    "m11": "m7",
    "m13": "m7",
    "maj9": "maj7",
    "maj11": "maj7",
    "add2": "major",
    "mmaj7": "minor",
    "sus2add7": "sus2",
    "6": "major",
    "m6": "minor",
    "dim7": "dim",
    "m7b5": "minor",
    "aug": "major",
}

# Only the tension extensions collapse when bucketing chords into bar slots
SEGMENT_TENSION_BASE = {
    q: TENSION_BASE[q]
    for q in ("9", "11", "13", "m9", "m11", "m13", "maj9", "maj11")
}

# Simplicity order used when two template scores are nearly tied
MATCH_PRIORITY = (
    "major", "minor", "7", "m7", "maj7", "sus2", "sus4", "add9", "madd9",
    "power", "6", "m6", "dim", "aug", "dim7", "m7b5", "mmaj7",
    "slash_major_3rd", "slash_minor_3rd", "slash_major_5th", "slash_minor_5th",
)

# Preferred quality when two window passes agree on the root but not the type
ENSEMBLE_PRIORITY = ("major", "minor", "power", "7", "m7")

# Quality order for representative beat chords
SEGMENT_PRIORITY = (
    "major", "minor", "m7", "maj7", "7", "madd9", "add9", "sus2", "sus4",
    "power", "m7b5", "dim7", "dim", "aug", "6", "m6", "mmaj7",
    "m9", "maj9", "9", "m11", "11", "13",
)

_CHORD_NAME_RE = re.compile(r"^([A-G][#b]?)([^/]*)(?:/([A-G][#b]?))?$")

# Suffixes whose spelling differs from the quality tag
_SUFFIX_TO_QUALITY = {
    "": "major", "m": "minor", "5": "power", "mMaj7": "mmaj7", "min": "minor",
    "maj": "major", "M": "major", "mmaj7": "mmaj7",
}


def priority_rank(item: str, priority: Sequence[str]) -> int:
    """Position of an item in a priority table (unknown items rank last)."""
    try:
        return priority.index(item)
    except ValueError:
        return len(priority)


def pick_by_priority(items: Iterable[str], priority: Sequence[str]) -> Optional[str]:
    """Return the item that comes first in the priority table."""
    best = None
    best_rank = None
    for item in items:
        rank = priority_rank(item, priority)
        if best_rank is None or rank < best_rank:
            best, best_rank = item, rank
    return best


def note_name(pitch_class: int) -> str:
    return PITCH_NAMES[pitch_class % 12]


def pitch_class(name: str) -> int:
    """Pitch class of a note name, accepting flats, E# and B#."""
    name = FLAT_NAMES.get(name, SHARP_ALIASES.get(name, name))
    if name not in PITCH_NAMES:
        raise ValueError(f"Unknown note name: {name!r}")
    return PITCH_NAMES.index(name)


def chord_suffix(quality: str) -> str:
    return CHORD_SUFFIXES.get(quality, quality)


def format_chord_name(root: int, quality: str, bass: Optional[int] = None) -> str:
    """Format a chord name such as 'Am7' or 'G/B'."""
    name = note_name(root) + chord_suffix(quality)
    if bass is not None and bass % 12 != root % 12:
        name += "/" + note_name(bass)
    return name


def simplify_quality(quality: str, table: Dict[str, str] = TENSION_BASE) -> str:
    return table.get(quality, quality)


@dataclass(frozen=True)
class ChordHypothesis:
    """A chord guess for a stretch of audio.

    ``score`` is the raw matcher score, which can exceed 1 after the root
    and prior bonuses; ``confidence`` is the same value clamped to [0, 1].
    """

    root: int  # Pitch class 0-11
    quality: str  # Template tag, e.g. "major", "m7"
    score: float = 0.0
    bass: Optional[int] = None  # Bass pitch class for slash chords

    @property
    def confidence(self) -> float:
        return min(1.0, max(0.0, self.score))

    @property
    def is_slash(self) -> bool:
        return self.bass is not None and self.bass != self.root

    @property
    def root_name(self) -> str:
        return note_name(self.root)

    @property
    def name(self) -> str:
        return format_chord_name(self.root, self.quality, self.bass)

    def transposed(self, semitones: int) -> "ChordHypothesis":
        bass = None if self.bass is None else (self.bass + semitones) % 12
        return replace(self, root=(self.root + semitones) % 12, bass=bass)

    def to_dict(self) -> dict:
        """Slot chord shape handed to notation renderers."""
        data = {
            "root": self.root_name,
            "type": self.quality,
            "name": self.name,
            "score": round(float(self.score), 4),
        }
        if self.is_slash:
            data["bassNote"] = note_name(self.bass)
            data["isSlash"] = True
        return data


def parse_chord_name(name: str, score: float = 1.0) -> ChordHypothesis:
    """Parse a chord name like 'F#m7', 'Bb' or 'G/B' into a hypothesis.

    Raises:
        ValueError: If the name cannot be parsed
    """
    match = _CHORD_NAME_RE.match(name.strip())
    if not match:
        raise ValueError(f"Cannot parse chord name: {name!r}")
    root_name, suffix, bass_name = match.groups()
    quality = _SUFFIX_TO_QUALITY.get(suffix, suffix)
    if quality not in MATCH_PRIORITY and quality not in TENSION_BASE:
        raise ValueError(f"Unknown chord quality in {name!r}: {suffix!r}")
    root = pitch_class(root_name)
    bass = pitch_class(bass_name) if bass_name else None
    if bass == root:
        bass = None
    return ChordHypothesis(root=root, quality=quality, score=score, bass=bass)
