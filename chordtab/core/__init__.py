"""Core types and constants for chordtab."""

from .chord import (
    ChordHypothesis,
    format_chord_name,
    parse_chord_name,
    pick_by_priority,
    note_name,
    pitch_class,
)
from .models import (
    Frame,
    ChordFrame,
    KeyEstimate,
    TempoEstimate,
    Bar,
    Slot,
    parse_key,
    DEFAULT_KEY,
)
from .constants import (
    PITCH_NAMES,
    REFERENCE_A4,
    DEFAULT_TEMPO,
    BEATS_PER_BAR,
)

__all__ = [
    "ChordHypothesis",
    "format_chord_name",
    "parse_chord_name",
    "pick_by_priority",
    "note_name",
    "pitch_class",
    "Frame",
    "ChordFrame",
    "KeyEstimate",
    "TempoEstimate",
    "Bar",
    "Slot",
    "parse_key",
    "PITCH_NAMES",
    "REFERENCE_A4",
    "DEFAULT_TEMPO",
    "DEFAULT_KEY",
    "BEATS_PER_BAR",
]
