"""Transposition - Shift chords, keys and bars by semitones.

All functions return new objects; applying +n and then -n restores the
original names.
"""

from dataclasses import replace
from typing import List, Optional, Sequence

from ..core.chord import ChordHypothesis
from ..core.models import Bar, ChordFrame, KeyEstimate


def transpose_chord(chord: Optional[ChordHypothesis], semitones: int) -> Optional[ChordHypothesis]:
    """Rotate root and bass; None stays None."""
    if chord is None:
        return None
    return chord.transposed(semitones)


def transpose_key(key: KeyEstimate, semitones: int) -> KeyEstimate:
    return key.transposed(semitones)


def transpose_frames(frames: Sequence[ChordFrame], semitones: int) -> List[ChordFrame]:
    return [
        ChordFrame(f.time, transpose_chord(f.chord, semitones), f.confidence)
        for f in frames
    ]


def transpose_bars(bars: Sequence[Bar], semitones: int) -> List[Bar]:
    """Transpose every slot, manual ones included."""
    return [
        Bar(
            index=bar.index,
            start_time=bar.start_time,
            slots=[
                replace(slot, chord=transpose_chord(slot.chord, semitones))
                for slot in bar.slots
            ],
        )
        for bar in bars
    ]


def transpose_result(result, semitones: int):
    """
    Transpose a whole analysis result.

    Args:
        result: AnalysisResult to transpose
        semitones: Shift, any integer (taken mod 12)

    Returns:
        A new AnalysisResult; tempo and tuning are unchanged
    """
    return replace(
        result,
        frames=transpose_frames(result.frames, semitones),
        key=transpose_key(result.key, semitones),
        bars=transpose_bars(result.bars, semitones),
    )
