"""Inference layer - Musical understanding from spectra.

This layer builds the tonal picture of a recording:
- Tuning reference (memoized per run)
- Harmonic pitch class profiles
- Chord template matching and windowed/beat-aligned sequencing
- Key detection
- Simplification and key snapping

Pipeline: Frames → Tuning → Chroma → [Chords, Key] → Smoothed chord sequence
"""

from .chords import ChordMatcher
from .chroma import compute_hpcp, normalize_chroma
from .ensemble import ChordSequencer
from .key import KeyCandidate, KeyDetector
from .snapping import ChordPostProcessor, diatonic_chords, diatonic_set
from .tuning import detect_tuning, tuning_for_run

__all__ = [
    # Tuning and chroma
    "detect_tuning",
    "tuning_for_run",
    "compute_hpcp",
    "normalize_chroma",
    # Chord analysis
    "ChordMatcher",
    "ChordSequencer",
    # Key detection
    "KeyDetector",
    "KeyCandidate",
    # Post-processing
    "ChordPostProcessor",
    "diatonic_chords",
    "diatonic_set",
]
