"""Notation segmentation - Bucket chords into bars and slots.

The final chord sequence is reduced to one representative chord per beat,
then each bar of four beats is split into at most ``max_slots`` contiguous
slots. Slots always partition the bar exactly.
"""

import logging
import math
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import SegmenterConfig
from ..core.chord import (
    SEGMENT_PRIORITY,
    SEGMENT_TENSION_BASE,
    ChordHypothesis,
    parse_chord_name,
    pick_by_priority,
    simplify_quality,
)
from ..core.models import Bar, ChordFrame, Slot, TempoEstimate

logger = logging.getLogger(__name__)


class NotationSegmenter:
    """Turn a chord sequence into bars of chord slots."""

    def __init__(self, config: Optional[SegmenterConfig] = None):
        self.config = config or SegmenterConfig()
        if not 1 <= self.config.max_slots <= self.config.beats_per_bar:
            raise ValueError(
                f"max_slots must be between 1 and {self.config.beats_per_bar}, "
                f"got {self.config.max_slots}"
            )

    # ------------------------------------------------------------------
    # Beat voting
    # ------------------------------------------------------------------

    def beat_index(self, time: float, tempo: TempoEstimate) -> int:
        return max(0, int(math.floor((time - tempo.offset) / tempo.beat_duration)))

    def beat_chords(
        self, frames: Sequence[ChordFrame], tempo: TempoEstimate
    ) -> List[Optional[ChordHypothesis]]:
        """
        Pick one representative chord per beat by confidence-weighted voting.

        Args:
            frames: Final chord sequence
            tempo: Tempo and beat-grid offset

        Returns:
            One chord (or None) per beat, covering the whole sequence
        """
        if not frames:
            return []
        total_beats = max(self.beat_index(f.time, tempo) for f in frames) + 1
        buckets: List[List[ChordFrame]] = [[] for _ in range(total_beats)]
        for frame in frames:
            if frame.chord is not None:
                buckets[self.beat_index(frame.time, tempo)].append(frame)
        return [self.representative(bucket) for bucket in buckets]

    def _weight(self, frame: ChordFrame) -> float:
        return frame.confidence if frame.confidence > 0 else self.config.default_weight

    def representative(self, votes: Sequence[ChordFrame]) -> Optional[ChordHypothesis]:
        """Weighted vote over the chords of one beat."""
        if not votes:
            return None
        cfg = self.config

        root_weight: Dict[int, float] = defaultdict(float)
        quality_weight: Dict[Tuple[int, str], float] = defaultdict(float)
        bass_weight: Dict[Tuple[int, int], float] = defaultdict(float)
        for frame in votes:
            weight = self._weight(frame)
            chord = frame.chord
            root_weight[chord.root] += weight
            quality_weight[(chord.root, chord.quality)] += weight
            if chord.is_slash:
                bass_weight[(chord.root, chord.bass)] += weight

        # Ties between roots go to the lower pitch class
        root = max(sorted(root_weight), key=lambda r: root_weight[r])
        total = root_weight[root]

        ranked = sorted(
            ((w, q) for (r, q), w in quality_weight.items() if r == root), reverse=True
        )
        top_weight = ranked[0][0]
        if len(ranked) == 1 or top_weight > ranked[1][0] * (1 + cfg.quality_margin):
            quality = ranked[0][1]
        else:
            close = [q for w, q in ranked if w * (1 + cfg.quality_margin) >= top_weight]
            quality = pick_by_priority(sorted(close), SEGMENT_PRIORITY)
        quality = simplify_quality(quality, SEGMENT_TENSION_BASE)

        bass = None
        slash = [(w, b) for (r, b), w in bass_weight.items() if r == root]
        if slash:
            weight, candidate = max(slash)
            if weight >= total * cfg.slash_weight_ratio:
                bass = candidate

        return ChordHypothesis(root=root, quality=quality, score=total / len(votes), bass=bass)

    # ------------------------------------------------------------------
    # Slotting
    # ------------------------------------------------------------------

    def fill_beats(
        self, beats: Sequence[Optional[ChordHypothesis]]
    ) -> List[Optional[ChordHypothesis]]:
        """Pad a bar to full length and fill gaps forward, then backward."""
        filled = list(beats)[: self.config.beats_per_bar]
        filled += [None] * (self.config.beats_per_bar - len(filled))

        for i in range(1, len(filled)):
            if filled[i] is None:
                filled[i] = filled[i - 1]
        for i in range(len(filled) - 2, -1, -1):
            if filled[i] is None:
                filled[i] = filled[i + 1]
        return filled

    def build_bar_slots(
        self,
        beats: Sequence[Optional[ChordHypothesis]],
        max_slots: Optional[int] = None,
    ) -> List[Slot]:
        """
        Split one bar into contiguous same-chord slots.

        Args:
            beats: Representative chord per beat (a short last bar is padded)
            max_slots: Slot limit, defaults to the configured one

        Returns:
            Slots partitioning the bar, at most ``max_slots`` of them
        """
        max_slots = max_slots or self.config.max_slots
        filled = self.fill_beats(beats)
        if all(chord is None for chord in filled):
            return [Slot(beat_offset=0, beat_length=self.config.beats_per_bar)]

        # Run-length encode as [length, chord]
        runs = self._coalesce([[1, chord] for chord in filled])

        while len(runs) > max_slots:
            shortest = min(range(len(runs)), key=lambda i: runs[i][0])
            if shortest == 0:
                target = 1
            elif shortest == len(runs) - 1:
                target = shortest - 1
            else:
                left, right = shortest - 1, shortest + 1
                target = left if runs[left][0] >= runs[right][0] else right
            runs[target][0] += runs[shortest][0]
            del runs[shortest]
            runs = self._coalesce(runs)

        slots = []
        offset = 0
        for length, chord in runs:
            slots.append(Slot(beat_offset=offset, beat_length=length, chord=chord))
            offset += length
        return slots

    @staticmethod
    def _coalesce(runs: List[List]) -> List[List]:
        merged: List[List] = []
        for length, chord in runs:
            if merged and merged[-1][1].name == chord.name:
                merged[-1][0] += length
            else:
                merged.append([length, chord])
        return merged

    # ------------------------------------------------------------------
    # Bars
    # ------------------------------------------------------------------

    def segment(
        self,
        frames: Sequence[ChordFrame],
        tempo: TempoEstimate,
        previous_bars: Optional[Sequence[Bar]] = None,
    ) -> List[Bar]:
        """
        Segment a chord sequence into bars.

        Args:
            frames: Final chord sequence
            tempo: Tempo and beat-grid offset
            previous_bars: Bars from an earlier run; their manual slots survive.
                Edited bars past the end of the new sequence are dropped
                and logged at debug level.

        Returns:
            Bars in order, each with 1 to ``max_slots`` slots
        """
        beats = self.beat_chords(frames, tempo)
        per_bar = self.config.beats_per_bar
        beat = tempo.beat_duration
        previous = {bar.index: bar for bar in previous_bars or []}

        bars = []
        for index in range(math.ceil(len(beats) / per_bar)):
            chunk = beats[index * per_bar:(index + 1) * per_bar]
            earlier = previous.get(index)
            if earlier is not None and any(slot.manual for slot in earlier.slots):
                slots = self._carry_manual(earlier, self.fill_beats(chunk))
            else:
                slots = self.build_bar_slots(chunk)

            for slot in slots:
                slot.start_time = (index * per_bar + slot.beat_offset) * beat + tempo.offset
            bars.append(Bar(index=index, start_time=index * per_bar * beat + tempo.offset, slots=slots))

        dropped = sorted(
            index for index, bar in previous.items()
            if index >= len(bars) and any(slot.manual for slot in bar.slots)
        )
        if dropped:
            logger.debug(f"Dropped manual edits in bars past the end: {dropped}")

        logger.debug(f"Segmented {len(beats)} beats into {len(bars)} bars")
        return bars

    def _carry_manual(
        self, earlier: Bar, filled: Sequence[Optional[ChordHypothesis]]
    ) -> List[Slot]:
        """Keep an edited bar's partition; only non-manual slots are refreshed."""
        slots = []
        for slot in earlier.slots:
            if slot.manual:
                slots.append(replace(slot))
            else:
                slots.append(
                    Slot(slot.beat_offset, slot.beat_length, chord=filled[slot.beat_offset])
                )
        return slots


def set_manual_chord(
    bars: Sequence[Bar], bar_index: int, slot_index: int, name: Optional[str]
) -> Slot:
    """
    Override one slot's chord, as an editor would.

    Args:
        bars: Segmented bars
        bar_index: Index into ``bars``
        slot_index: Index into that bar's slots
        name: Chord name such as 'G/B', or None to mark the slot as empty

    Returns:
        The updated slot

    Raises:
        IndexError: If the bar or slot does not exist
        ValueError: If the chord name cannot be parsed
    """
    slot = bars[bar_index].slots[slot_index]
    slot.chord = parse_chord_name(name) if name else None
    slot.manual = True
    return slot
