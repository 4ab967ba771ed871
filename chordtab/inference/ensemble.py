"""Chord sequencing - Windowed detection, ensembling and smoothing.

Turns per-frame chroma into one locally consistent chord sequence:

1. Two window passes (short and long) over cached frame chroma
2. Ensemble of the two passes
3. Beat-aligned median pooling, merged into the ensemble
4. Three smoothing passes and a forward fill of remaining gaps
"""

import logging
from bisect import bisect_left
from typing import List, Optional, Sequence

import numpy as np

from ..config import SmoothingConfig, TonalConfig
from ..core.chord import ENSEMBLE_PRIORITY, ChordHypothesis, priority_rank
from ..core.constants import SILENCE_RMS
from ..core.context import AnalysisContext
from ..core.models import ChordFrame, Frame, KeyEstimate
from .chords import ChordMatcher
from .chroma import chord_profile, compute_hpcp, normalize_chroma
from .tuning import tuning_for_run

logger = logging.getLogger(__name__)

MIN_BEAT_BPM = 40


def _same_chord(a: Optional[ChordHypothesis], b: Optional[ChordHypothesis]) -> bool:
    """Chord identity by name; two missing chords are the same."""
    if a is None or b is None:
        return a is None and b is None
    return a.name == b.name


class ChordSequencer:
    """Detect a smoothed chord sequence from spectral frames.

    Per-frame chroma is computed once per run and kept in the
    ``AnalysisContext`` chroma cache, so both window passes, beat pooling
    and the second (key-aware) pass reuse it.
    """

    def __init__(
        self,
        matcher: Optional[ChordMatcher] = None,
        tonal_config: Optional[TonalConfig] = None,
        config: Optional[SmoothingConfig] = None,
    ):
        self.tonal_config = tonal_config or TonalConfig()
        self.matcher = matcher or ChordMatcher(self.tonal_config)
        self.config = config or SmoothingConfig()

    # ------------------------------------------------------------------
    # Frame chroma
    # ------------------------------------------------------------------

    def frame_chroma(
        self, frames: Sequence[Frame], context: AnalysisContext
    ) -> List[np.ndarray]:
        """Per-frame chord chroma, cached on the run context."""
        reference_a4 = tuning_for_run(frames, context, self.tonal_config)
        profile = chord_profile(self.tonal_config)
        cache = context.chroma_cache
        for i, frame in enumerate(frames):
            if i not in cache:
                cache[i] = compute_hpcp(frame, reference_a4, profile)
        return [cache[i] for i in range(len(frames))]

    # ------------------------------------------------------------------
    # Window passes
    # ------------------------------------------------------------------

    def window_pass(
        self,
        frames: Sequence[Frame],
        chromas: Sequence[np.ndarray],
        window: int,
        key: Optional[KeyEstimate] = None,
    ) -> List[ChordFrame]:
        """Match summed chroma over windows of ``window`` frames, half-overlapping."""
        results = []
        hop = max(1, window // 2)
        n = len(frames)

        for start in range(0, n, hop):
            end = min(start + window, n)
            span = frames[start:end]
            avg_rms = sum(f.rms for f in span) / len(span)
            avg_flux = sum(f.spectral_flux for f in span) / len(span)

            if avg_rms < SILENCE_RMS:
                results.append(ChordFrame(time=frames[start].time))
                continue

            chroma = normalize_chroma(np.sum(chromas[start:end], axis=0))
            chord = self.matcher.match(chroma, key)
            flux_factor = 1.0 + min(avg_flux, self.config.max_flux_boost)
            confidence = chord.score * flux_factor if chord else 0.0
            results.append(ChordFrame(frames[start].time, chord, confidence))

        return results

    @staticmethod
    def _simpler(a: ChordHypothesis, b: ChordHypothesis) -> bool:
        """True if ``a`` is a listed simple quality ranked ahead of ``b``."""
        return priority_rank(a.quality, ENSEMBLE_PRIORITY) < priority_rank(b.quality, ENSEMBLE_PRIORITY)

    def ensemble(
        self, short_pass: Sequence[ChordFrame], long_pass: Sequence[ChordFrame]
    ) -> List[ChordFrame]:
        """Merge the short-window pass with the long-window pass."""
        cfg = self.config
        if not long_pass:
            return [ChordFrame(s.time, s.chord, s.confidence) for s in short_pass]

        by_tenth = {}
        for entry in long_pass:
            by_tenth.setdefault(int(np.floor(entry.time * 10 + 0.5)), entry)
        long_times = np.array([entry.time for entry in long_pass])

        merged = []
        for s in short_pass:
            l = by_tenth.get(int(np.floor(s.time * 10 + 0.5)))
            if l is None:
                l = long_pass[int(np.argmin(np.abs(long_times - s.time)))]

            if s.chord is None and l.chord is None:
                merged.append(ChordFrame(s.time))
            elif l.chord is None:
                merged.append(ChordFrame(s.time, s.chord, s.confidence))
            elif s.chord is None:
                merged.append(ChordFrame(s.time, l.chord, l.confidence * cfg.long_only_factor))
            elif s.chord.name == l.chord.name:
                merged.append(
                    ChordFrame(s.time, s.chord, s.confidence + l.confidence * cfg.agreement_weight)
                )
            elif s.chord.root == l.chord.root and self._simpler(l.chord, s.chord):
                merged.append(ChordFrame(s.time, l.chord, l.confidence))
            elif s.chord.root == l.chord.root and self._simpler(s.chord, l.chord):
                merged.append(ChordFrame(s.time, s.chord, s.confidence))
            elif s.confidence >= l.confidence:
                merged.append(ChordFrame(s.time, s.chord, s.confidence))
            else:
                merged.append(ChordFrame(s.time, l.chord, l.confidence))
        return merged

    # ------------------------------------------------------------------
    # Beat pooling
    # ------------------------------------------------------------------

    def beat_pass(
        self,
        frames: Sequence[Frame],
        chromas: Sequence[np.ndarray],
        bpm: float,
        key: Optional[KeyEstimate] = None,
    ) -> List[ChordFrame]:
        """One chord per beat from the per-bin median of its frame chroma."""
        if not frames:
            return []
        beat = 60.0 / bpm
        times = [f.time for f in frames]
        total_beats = int(np.ceil(times[-1] / beat)) + 1

        results = []
        for b in range(total_beats):
            beat_start = b * beat
            lo = bisect_left(times, beat_start)
            hi = bisect_left(times, beat_start + beat)

            if hi <= lo:
                carried = results[-1].chord if results else None
                results.append(ChordFrame(beat_start, carried, 0.0))
                continue

            avg_rms = sum(f.rms for f in frames[lo:hi]) / (hi - lo)
            if avg_rms < SILENCE_RMS:
                results.append(ChordFrame(beat_start))
                continue

            pooled = normalize_chroma(np.median(np.asarray(chromas[lo:hi]), axis=0))
            chord = self.matcher.match(pooled, key)
            confidence = chord.score * (0.5 + avg_rms * 2.0) if chord else 0.0
            results.append(ChordFrame(beat_start, chord, confidence))

        return self.smooth(results)

    def merge_beats(
        self, windowed: Sequence[ChordFrame], beats: Sequence[ChordFrame]
    ) -> List[ChordFrame]:
        """Let the beat-pooled estimate reinforce or override the windowed one."""
        cfg = self.config
        if not beats:
            return list(windowed)
        beat_times = np.array([b.time for b in beats])

        merged = []
        for entry in windowed:
            near = beats[int(np.argmin(np.abs(beat_times - entry.time)))]
            if near.chord is None:
                merged.append(entry)
            elif entry.chord is None:
                merged.append(ChordFrame(entry.time, near.chord, near.confidence * cfg.beat_fill_factor))
            elif near.chord.name == entry.chord.name:
                merged.append(
                    ChordFrame(entry.time, entry.chord,
                               entry.confidence + near.confidence * cfg.beat_merge_weight)
                )
            elif near.confidence * cfg.beat_override_factor > entry.confidence:
                merged.append(ChordFrame(entry.time, near.chord, near.confidence))
            else:
                merged.append(entry)
        return merged

    # ------------------------------------------------------------------
    # Smoothing
    # ------------------------------------------------------------------

    def smooth(self, sequence: List[ChordFrame]) -> List[ChordFrame]:
        """
        Local-consistency smoothing in three passes, in place.

        1. Single outliers between two identical neighbours
        2. Short runs (one or two frames) bounded by identical neighbours
        3. Missing or weak frames filled from the stronger neighbour
        """
        cfg = self.config
        n = len(sequence)
        if n < 3:
            return sequence

        for i in range(1, n - 1):
            prev, cur, nxt = sequence[i - 1], sequence[i], sequence[i + 1]
            if (
                prev.chord is not None
                and _same_chord(prev.chord, nxt.chord)
                and not _same_chord(cur.chord, prev.chord)
                and cur.confidence < cfg.outlier_confidence
            ):
                cur.assign(prev.chord, prev.confidence)

        i = 1
        while i < n - 2:
            a, b1, b2, c = sequence[i - 1], sequence[i], sequence[i + 1], sequence[i + 2]
            bounded = a.chord is not None and _same_chord(a.chord, c.chord)
            if (
                bounded
                and _same_chord(b1.chord, b2.chord)
                and not _same_chord(b1.chord, a.chord)
                and b1.confidence < cfg.pair_confidence
                and b2.confidence < cfg.pair_confidence
            ):
                b1.assign(a.chord, a.confidence)
                b2.assign(a.chord, a.confidence)
                i += 1
            elif (
                bounded
                and not _same_chord(b1.chord, a.chord)
                and b1.confidence < cfg.single_confidence
            ):
                b1.assign(a.chord, a.confidence)
            i += 1

        for i in range(1, n - 1):
            cur = sequence[i]
            if cur.chord is not None and cur.confidence >= cfg.fill_confidence:
                continue
            prev, nxt = sequence[i - 1], sequence[i + 1]
            if prev.chord is not None and prev.confidence > nxt.confidence:
                cur.assign(prev.chord, prev.confidence)
            elif nxt.chord is not None:
                cur.assign(nxt.chord, nxt.confidence)

        return sequence

    @staticmethod
    def forward_fill(sequence: List[ChordFrame]) -> List[ChordFrame]:
        """Fill missing chords from the last known chord."""
        last = None
        for entry in sequence:
            if entry.chord is not None:
                last = entry
            elif last is not None:
                entry.assign(last.chord, 0.0)
        return sequence

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def detect(
        self,
        frames: Sequence[Frame],
        context: AnalysisContext,
        window: int = 16,
        bpm: Optional[float] = None,
        key: Optional[KeyEstimate] = None,
    ) -> List[ChordFrame]:
        """
        Detect the chord sequence of a recording.

        Args:
            frames: Spectral frames
            context: Run context (tuning memo and chroma cache)
            window: Nominal window in frames
            bpm: Tempo; enables beat-aligned pooling above 40 BPM
            key: Key estimate; enables the diatonic bonus

        Returns:
            ChordFrames at the short-window hop, None where nothing sounds
        """
        if not frames:
            return []
        cfg = self.config
        chromas = self.frame_chroma(frames, context)

        short_window = max(cfg.min_short_window, int(round(window * cfg.short_window_factor)))
        long_window = max(cfg.min_long_window, int(round(window * cfg.long_window_factor)))
        short_pass = self.window_pass(frames, chromas, short_window, key)
        long_pass = self.window_pass(frames, chromas, long_window, key)
        sequence = self.ensemble(short_pass, long_pass)
        logger.debug(
            f"Window passes: short={short_window} ({len(short_pass)}), "
            f"long={long_window} ({len(long_pass)})"
        )

        if bpm and bpm > MIN_BEAT_BPM:
            beats = self.beat_pass(frames, chromas, bpm, key)
            sequence = self.merge_beats(sequence, beats)

        sequence = self.smooth(sequence)
        return self.forward_fill(sequence)
