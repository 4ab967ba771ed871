"""Tests for bar/slot segmentation and manual edits."""

import logging
import random

import pytest

from chordtab.config import SegmenterConfig
from chordtab.core import Bar, ChordFrame, TempoEstimate, parse_chord_name
from chordtab.processing import NotationSegmenter, set_manual_chord

from conftest import make_chord_frames


def chords(*names):
    return [parse_chord_name(n) if n else None for n in names]


def slot_summary(slots):
    return [(slot.name, slot.beat_length) for slot in slots]


@pytest.fixture
def segmenter():
    return NotationSegmenter()


# ============================================================================
# Slot construction
# ============================================================================

class TestBuildBarSlots:
    """Splitting one bar into slots."""

    def test_run_length_encoding(self, segmenter):
        """Repeated beats share a slot."""
        slots = segmenter.build_bar_slots(chords("C", "C", "C", "G"))
        assert slot_summary(slots) == [("C", 3), ("G", 1)]
        assert [s.beat_offset for s in slots] == [0, 3]

    def test_all_silent(self, segmenter):
        """A bar without chords is one empty four-beat slot."""
        slots = segmenter.build_bar_slots([None, None, None, None])
        assert slot_summary(slots) == [(None, 4)]

    def test_gaps_filled(self, segmenter):
        """Missing beats take the previous chord, or the next one at the start."""
        slots = segmenter.build_bar_slots(chords(None, "C", None, "G"))
        assert slot_summary(slots) == [("C", 3), ("G", 1)]

    def test_short_bar_padded(self, segmenter):
        """A final bar with fewer beats is padded to four."""
        slots = segmenter.build_bar_slots(chords("Am", "F"))
        assert slot_summary(slots) == [("Am", 1), ("F", 3)]

    def test_max_two_slots(self, segmenter):
        """The shortest run merges into its longer neighbour until the limit holds."""
        slots = segmenter.build_bar_slots(chords("C", "G", "Am", "F"), max_slots=2)
        assert slot_summary(slots) == [("G", 3), ("F", 1)]

    def test_max_one_slot(self, segmenter):
        """With one slot the whole bar carries a single chord."""
        slots = segmenter.build_bar_slots(chords("C", "G", "Am", "F"), max_slots=1)
        assert len(slots) == 1
        assert slots[0].beat_length == 4

    def test_merge_keeps_runs_coalesced(self, segmenter):
        """Merging never leaves two adjacent slots with the same chord."""
        slots = segmenter.build_bar_slots(chords("C", "G", "C", "C"), max_slots=2)
        names = [s.name for s in slots]
        assert all(a != b for a, b in zip(names, names[1:]))
        assert sum(s.beat_length for s in slots) == 4

    def test_partition_invariant(self, segmenter):
        """Any beat pattern and slot limit yields a valid partition."""
        rng = random.Random(42)
        pool = [None, "C", "G", "Am", "F", "G/B"]
        for _ in range(300):
            beats = chords(*[rng.choice(pool) for _ in range(rng.randint(1, 4))])
            max_slots = rng.randint(1, 4)
            slots = segmenter.build_bar_slots(beats, max_slots=max_slots)
            bar = Bar(index=0, start_time=0.0, slots=slots)
            assert bar.is_valid()
            assert len(slots) <= max_slots

    @pytest.mark.parametrize("max_slots", [0, 5])
    def test_invalid_slot_limit(self, max_slots):
        """The slot limit must fit inside a bar."""
        with pytest.raises(ValueError):
            NotationSegmenter(SegmenterConfig(max_slots=max_slots))


# ============================================================================
# Beat voting
# ============================================================================

class TestRepresentative:
    """One chord per beat by weighted vote."""

    def test_empty_beat(self, segmenter):
        """No votes means no chord."""
        assert segmenter.representative([]) is None

    def test_heaviest_root_wins(self, segmenter):
        """The root with the most weight is chosen."""
        votes = make_chord_frames(["C", "G", "G"], confidence=0.5)
        assert segmenter.representative(votes).name == "G"

    def test_root_tie_prefers_lower_pitch_class(self, segmenter):
        """Equal root weight goes to the lower pitch class."""
        votes = make_chord_frames(["G", "D"], confidence=0.5)
        assert segmenter.representative(votes).name == "D"

    def test_close_qualities_use_priority(self, segmenter):
        """Qualities within the margin fall back to the priority order."""
        votes = [
            ChordFrame(0.0, parse_chord_name("C"), 0.50),
            ChordFrame(0.1, parse_chord_name("Cmaj7"), 0.51),
        ]
        assert segmenter.representative(votes).name == "C"

    def test_clear_quality_wins(self, segmenter):
        """A quality clearly ahead of the others is kept."""
        votes = [
            ChordFrame(0.0, parse_chord_name("C"), 0.3),
            ChordFrame(0.1, parse_chord_name("Cmaj7"), 0.9),
        ]
        assert segmenter.representative(votes).name == "Cmaj7"

    def test_tension_collapsed(self, segmenter):
        """Ninth chords are written as sevenths."""
        votes = make_chord_frames(["Cm9", "Cm9"])
        assert segmenter.representative(votes).name == "Cm7"

    def test_slash_kept_with_enough_weight(self, segmenter):
        """The slash form survives when its bass carries enough weight."""
        votes = [
            ChordFrame(0.0, parse_chord_name("G/B"), 0.6),
            ChordFrame(0.1, parse_chord_name("G"), 0.4),
        ]
        assert segmenter.representative(votes).name == "G/B"

    def test_slash_dropped_when_weak(self, segmenter):
        """A rare slash form is written as the plain chord."""
        votes = [
            ChordFrame(0.0, parse_chord_name("G/B"), 0.2),
            ChordFrame(0.1, parse_chord_name("G"), 0.8),
        ]
        assert segmenter.representative(votes).name == "G"

    def test_zero_confidence_votes(self, segmenter):
        """Filled frames without confidence still vote."""
        votes = make_chord_frames(["A", "A"], confidence=0.0)
        chord = segmenter.representative(votes)
        assert chord.name == "A"
        assert chord.score == pytest.approx(0.5)


# ============================================================================
# Bars
# ============================================================================

class TestSegment:
    """Whole-sequence segmentation."""

    @pytest.fixture
    def c_then_g(self):
        """C for 1.5 s then G until 4 s, in 0.1 s steps off the beat grid."""
        return make_chord_frames(["C"] * 15 + ["G"] * 25, step=0.1, start=0.05)

    def test_bars_and_slots(self, segmenter, c_then_g):
        """Chord changes land in the right beat slots."""
        bars = segmenter.segment(c_then_g, TempoEstimate(bpm=120))
        assert len(bars) == 2
        assert slot_summary(bars[0].slots) == [("C", 3), ("G", 1)]
        assert slot_summary(bars[1].slots) == [("G", 4)]
        assert all(bar.is_valid() for bar in bars)

    def test_slot_times(self, segmenter, c_then_g):
        """Slot and bar start times follow the beat grid and offset."""
        bars = segmenter.segment(c_then_g, TempoEstimate(bpm=120))
        assert bars[0].slots[1].start_time == pytest.approx(1.5)
        assert bars[1].start_time == pytest.approx(2.0)
        assert bars[1].slots[0].start_time == pytest.approx(2.0)

        shifted = segmenter.segment(c_then_g, TempoEstimate(bpm=120, offset=0.25))
        assert shifted[1].start_time == pytest.approx(2.25)

    def test_empty_sequence(self, segmenter):
        """No chord frames give no bars."""
        assert segmenter.segment([], TempoEstimate()) == []

    def test_manual_slot_survives(self, segmenter, c_then_g):
        """Re-segmenting keeps manual slots and the edited bar's partition."""
        bars = segmenter.segment(c_then_g, TempoEstimate(bpm=120))
        set_manual_chord(bars, 0, 1, "Em")

        fresh = make_chord_frames(["D"] * 40, step=0.1, start=0.05)
        again = segmenter.segment(fresh, TempoEstimate(bpm=120), previous_bars=bars)

        assert slot_summary(again[0].slots) == [("D", 3), ("Em", 1)]
        assert again[0].slots[1].manual
        assert not again[0].slots[0].manual
        assert slot_summary(again[1].slots) == [("D", 4)]

    def test_manual_bar_past_end_dropped(self, segmenter, c_then_g, caplog):
        """An edited bar beyond a shorter sequence is dropped with a debug log."""
        bars = segmenter.segment(c_then_g, TempoEstimate(bpm=120))
        set_manual_chord(bars, 1, 0, "Em")

        caplog.set_level(logging.DEBUG, logger="chordtab.processing.segmenter")
        shorter = make_chord_frames(["D"] * 15, step=0.1, start=0.05)
        again = segmenter.segment(shorter, TempoEstimate(bpm=120), previous_bars=bars)

        assert len(again) == 1
        assert not any(slot.manual for slot in again[0].slots)
        assert "Dropped manual edits in bars past the end: [1]" in caplog.text


# ============================================================================
# Manual edits
# ============================================================================

class TestSetManualChord:
    """Editor overrides."""

    @pytest.fixture
    def bars(self, segmenter):
        return segmenter.segment(make_chord_frames(["C"] * 20, start=0.05), TempoEstimate(bpm=120))

    def test_sets_chord_and_flag(self, bars):
        slot = set_manual_chord(bars, 0, 0, "G/B")
        assert slot.name == "G/B"
        assert slot.manual

    def test_clear_slot(self, bars):
        """An empty name marks the slot as empty."""
        slot = set_manual_chord(bars, 0, 0, None)
        assert slot.chord is None
        assert slot.manual

    def test_bad_name(self, bars):
        with pytest.raises(ValueError):
            set_manual_chord(bars, 0, 0, "H7")

    def test_bad_index(self, bars):
        with pytest.raises(IndexError):
            set_manual_chord(bars, 5, 0, "C")
