"""Analysis data model: frames, chord frames, key, tempo and bar layout."""

import re
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .chord import ChordHypothesis, note_name, pitch_class
from .constants import BEATS_PER_BAR, DEFAULT_TEMPO, MAJOR_SCALE, MINOR_SCALE

_KEY_RE = re.compile(r"^([A-G][#b]?)\s*(Major|Minor)$")


@dataclass(frozen=True)
class Frame:
    """One analysis hop of the spectral frontend.

    ``freqs`` and ``magnitudes`` are parallel arrays holding the
    harmonic-masked, log-compressed spectrum.
    """

    time: float  # Frame start in seconds
    rms: float
    spectral_flux: float
    flux_low: float = 0.0
    flux_high: float = 0.0
    freqs: np.ndarray = field(default_factory=lambda: np.zeros(0), repr=False)
    magnitudes: np.ndarray = field(default_factory=lambda: np.zeros(0), repr=False)


def _clamp_confidence(value: float) -> float:
    if not np.isfinite(value):
        return 0.0
    return float(min(1.0, max(0.0, value)))


@dataclass
class ChordFrame:
    """A chord decision at a point in time.

    Smoothing passes replace ``chord`` and ``confidence`` together via
    ``assign``; a missing chord always carries zero confidence.
    """

    time: float
    chord: Optional[ChordHypothesis] = None
    confidence: float = 0.0

    def __post_init__(self):
        self.confidence = _clamp_confidence(self.confidence) if self.chord else 0.0

    def assign(self, chord: Optional[ChordHypothesis], confidence: float) -> None:
        self.chord = chord
        self.confidence = _clamp_confidence(confidence) if chord else 0.0

    @property
    def name(self) -> Optional[str]:
        return self.chord.name if self.chord else None

    def to_dict(self) -> dict:
        return {
            "time": round(self.time, 4),
            "chord": self.chord.to_dict() if self.chord else None,
            "confidence": round(self.confidence, 4),
        }


@dataclass(frozen=True)
class KeyEstimate:
    """Key estimate for a whole recording."""

    tonic: int  # Pitch class 0-11
    mode: str  # "major" or "minor"
    correlation: float = 0.0

    @property
    def name(self) -> str:
        """Key as '<NoteName> Major|Minor'."""
        return f"{note_name(self.tonic)} {self.mode.capitalize()}"

    @property
    def scale(self) -> List[int]:
        intervals = MAJOR_SCALE if self.mode == "major" else MINOR_SCALE
        return [(self.tonic + i) % 12 for i in intervals]

    def transposed(self, semitones: int) -> "KeyEstimate":
        return KeyEstimate((self.tonic + semitones) % 12, self.mode, self.correlation)


# Fallback when no key can be estimated
DEFAULT_KEY = KeyEstimate(tonic=0, mode="major")


def parse_key(name: str) -> KeyEstimate:
    """Parse 'F# Minor' style key names.

    Raises:
        ValueError: If the key name is malformed
    """
    match = _KEY_RE.match(name.strip())
    if not match:
        raise ValueError(f"Malformed key name: {name!r}")
    return KeyEstimate(pitch_class(match.group(1)), match.group(2).lower())


@dataclass(frozen=True)
class TempoEstimate:
    """Tempo and beat grid phase."""

    bpm: int = DEFAULT_TEMPO
    offset: float = 0.0  # Seconds from t=0 to the first beat line

    @property
    def beat_duration(self) -> float:
        """Duration of one beat in seconds."""
        return 60.0 / self.bpm


@dataclass
class Slot:
    """A run of beats inside a bar that shares one chord."""

    beat_offset: int  # First beat within the bar (0-3)
    beat_length: int
    chord: Optional[ChordHypothesis] = None
    start_time: float = 0.0
    manual: bool = False  # Set by an editor; never replaced by re-analysis

    @property
    def name(self) -> Optional[str]:
        return self.chord.name if self.chord else None

    def to_dict(self) -> dict:
        data = {
            "beatOffset": self.beat_offset,
            "beatLen": self.beat_length,
            "startTime": round(self.start_time, 4),
            "chord": self.chord.to_dict() if self.chord else None,
        }
        if self.manual:
            data["manual"] = True
        return data


@dataclass
class Bar:
    """A bar of ``BEATS_PER_BAR`` beats split into 1-4 slots."""

    index: int
    start_time: float
    slots: List[Slot] = field(default_factory=list)

    @property
    def chord_names(self) -> List[Optional[str]]:
        return [slot.name for slot in self.slots]

    def is_valid(self, beats_per_bar: int = BEATS_PER_BAR) -> bool:
        """Check that slots partition [0, beats_per_bar) without gaps."""
        position = 0
        for slot in self.slots:
            if slot.beat_offset != position or slot.beat_length < 1:
                return False
            position += slot.beat_length
        return position == beats_per_bar and 1 <= len(self.slots) <= beats_per_bar

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "startTime": round(self.start_time, 4),
            "slots": [slot.to_dict() for slot in self.slots],
        }
