"""Chord post-processing - Simplification and key-aware snapping.

Runs after detection to make chord charts easier to read and play:
- Tension chords are reduced to their base form
- Weak sharp-root chords snap to the neighbouring natural root
- Weak non-diatonic chords snap to the nearest diatonic chord

Confident detections are never rewritten by the snapping passes.
"""

import logging
from typing import List, Optional, Sequence, Set, Tuple

from ..config import PostProcessConfig
from ..core.chord import TENSION_BASE, ChordHypothesis, simplify_quality
from ..core.constants import NATURAL_PITCH_CLASSES
from ..core.models import ChordFrame, KeyEstimate

logger = logging.getLogger(__name__)

DIATONIC_MAJOR = ((0, "major"), (2, "minor"), (4, "minor"), (5, "major"), (7, "major"), (9, "minor"), (11, "dim"))
DIATONIC_MINOR = ((0, "minor"), (2, "dim"), (3, "major"), (5, "minor"), (7, "minor"), (8, "major"), (10, "major"))

# Extensions accepted as diatonic on top of each triad quality
DIATONIC_EXTENSIONS = {
    "major": ("7", "maj7", "sus4", "sus2", "add9", "6"),
    "minor": ("m7", "m7b5", "madd9", "m6"),
    "dim": ("dim7", "m7b5"),
}

MAJOR_GROUP = {"major", "7", "maj7", "sus2", "sus4", "add9", "power", "aug", "6"}
MINOR_GROUP = {"minor", "m7", "m7b5", "dim", "dim7", "madd9", "m6"}


def diatonic_chords(key: KeyEstimate) -> List[Tuple[int, str]]:
    """The seven diatonic triads of a key as (root, quality)."""
    degrees = DIATONIC_MINOR if key.mode == "minor" else DIATONIC_MAJOR
    return [((key.tonic + interval) % 12, quality) for interval, quality in degrees]


def diatonic_set(key: KeyEstimate) -> Set[Tuple[int, str]]:
    """Diatonic triads plus their accepted extensions."""
    members = set()
    for root, quality in diatonic_chords(key):
        members.add((root, quality))
        for extension in DIATONIC_EXTENSIONS.get(quality, ()):
            members.add((root, extension))
    return members


class ChordPostProcessor:
    """Simplify and snap detected chords.

    Every method returns new ChordFrames and leaves its input untouched.
    """

    def __init__(self, config: Optional[PostProcessConfig] = None):
        self.config = config or PostProcessConfig()

    def simplify_chord(self, chord: ChordHypothesis) -> ChordHypothesis:
        """Map tension qualities (and acoustic power chords) to base forms."""
        if chord.is_slash:
            return chord
        if chord.quality == "power" and self.config.instrument == "acoustic":
            return ChordHypothesis(chord.root, "major", chord.score)
        quality = simplify_quality(chord.quality, TENSION_BASE)
        if quality == chord.quality:
            return chord
        return ChordHypothesis(chord.root, quality, chord.score)

    def simplify_chords(self, frames: Sequence[ChordFrame]) -> List[ChordFrame]:
        return [
            ChordFrame(f.time, self.simplify_chord(f.chord) if f.chord else None, f.confidence)
            for f in frames
        ]

    def snap_enharmonic(
        self, frames: Sequence[ChordFrame], key: Optional[KeyEstimate] = None
    ) -> List[ChordFrame]:
        """
        Move weak sharp-root chords onto a neighbouring natural root.

        A neighbour that forms a diatonic chord of the same quality is
        preferred and is taken below the higher of the snap-strength
        threshold and ``1 - enharmonic_threshold``. Otherwise the lower
        natural neighbour is taken below ``1 - enharmonic_threshold``.
        Chords above both limits are left alone.
        """
        members = diatonic_set(key) if key else set()
        limit = 1.0 - self.config.enharmonic_threshold
        diatonic_limit = max(limit, self.config.snap_threshold)
        snapped = []

        for frame in frames:
            chord = frame.chord
            if chord is None or chord.is_slash or chord.root in NATURAL_PITCH_CLASSES:
                snapped.append(ChordFrame(frame.time, chord, frame.confidence))
                continue

            neighbours = [
                (chord.root + delta) % 12
                for delta in (-1, 1)
                if (chord.root + delta) % 12 in NATURAL_PITCH_CLASSES
            ]
            diatonic = [n for n in neighbours if (n, chord.quality) in members]

            target = None
            if diatonic and frame.confidence < diatonic_limit:
                target = diatonic[0]
            elif neighbours and frame.confidence < limit:
                target = neighbours[0]

            if target is not None:
                logger.debug(f"Enharmonic snap at {frame.time:.2f}s: {chord.name} -> root {target}")
                chord = ChordHypothesis(target, chord.quality, chord.score)
            snapped.append(ChordFrame(frame.time, chord, frame.confidence))
        return snapped

    def nearest_diatonic(self, chord: ChordHypothesis, key: KeyEstimate) -> Optional[ChordHypothesis]:
        """Closest diatonic chord, preferring one of the same major/minor family."""
        in_major = chord.quality in MAJOR_GROUP
        in_minor = chord.quality in MINOR_GROUP
        best, best_cost = None, None

        for root, quality in diatonic_chords(key):
            distance = abs(root - chord.root)
            distance = min(distance, 12 - distance)
            type_match = (
                (not in_major and not in_minor)
                or (in_major and quality in MAJOR_GROUP)
                or (in_minor and quality in MINOR_GROUP)
            )
            cost = distance * 2 - (1 if type_match else 0)
            if best_cost is None or cost < best_cost:
                best_cost = cost
                if type_match and (in_major or in_minor):
                    quality = "major" if in_major else "minor"
                best = ChordHypothesis(root, quality, chord.score)
        return best

    def snap_to_diatonic(
        self, frames: Sequence[ChordFrame], key: Optional[KeyEstimate]
    ) -> List[ChordFrame]:
        """Replace weak non-diatonic chords with the nearest diatonic chord."""
        threshold = self.config.snap_threshold
        if key is None or threshold <= 0:
            return [ChordFrame(f.time, f.chord, f.confidence) for f in frames]

        members = diatonic_set(key)
        snapped = []
        for frame in frames:
            chord = frame.chord
            if (
                chord is not None
                and (chord.root, chord.quality) not in members
                and frame.confidence < threshold
            ):
                replacement = self.nearest_diatonic(chord, key)
                if replacement is not None:
                    logger.debug(f"Diatonic snap at {frame.time:.2f}s: {chord.name} -> {replacement.name}")
                    chord = replacement
            snapped.append(ChordFrame(frame.time, chord, frame.confidence))
        return snapped

    def process(
        self, frames: Sequence[ChordFrame], key: Optional[KeyEstimate]
    ) -> List[ChordFrame]:
        """Simplify, then snap enharmonics, then snap to the key."""
        result = list(frames)
        if self.config.simplify:
            result = self.simplify_chords(result)
        result = self.snap_enharmonic(result, key)
        return self.snap_to_diatonic(result, key)
