"""Tempo analysis - BPM and beat-grid phase.

BPM comes from inter-onset-interval voting over the spectral-flux onset
signal, cross-checked by autocorrelation. The beat phase is recovered
afterwards from where chord changes fall relative to the beat grid.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config import RhythmConfig
from ..core.constants import NOMINAL_FRAME_SECONDS
from ..core.models import ChordFrame, Frame

logger = logging.getLogger(__name__)

MAX_IOI_MULTIPLE = 4
ACF_NEIGHBOURHOOD = 2
RMS_RISE = 0.015
MIN_FALLBACK_INTERVAL = 0.1
MAX_FALLBACK_INTERVAL = 2.0


def chord_window_frames(bpm: float, min_frames: int = 8, max_frames: int = 28) -> int:
    """Nominal chord window: one and a half beats worth of frames."""
    frames_per_beat = round((60.0 / bpm) / NOMINAL_FRAME_SECONDS)
    return max(min_frames, min(max_frames, int(round(frames_per_beat * 1.5))))


class TempoAnalyzer:
    """Estimate tempo and beat phase from analysis frames.

    Both estimates fall back to documented defaults (120 BPM, zero offset)
    when the material carries too little rhythmic evidence.
    """

    def __init__(self, config: Optional[RhythmConfig] = None):
        self.config = config or RhythmConfig()

    def fold_bpm(self, raw_bpm: float) -> int:
        """
        Fold a raw tempo into the preferred octave.

        Doubles below ``fold_low``, halves above ``fold_high``, then clamps
        to [min_bpm, max_bpm]; e.g. 45 -> 90 and 240 -> 120.
        """
        cfg = self.config
        if raw_bpm is None or not np.isfinite(raw_bpm) or raw_bpm <= 0:
            return cfg.default_bpm

        bpm = float(raw_bpm)
        while bpm < cfg.fold_low:
            bpm *= 2
        while bpm > cfg.fold_high:
            bpm = round(bpm / 2)
        return int(max(cfg.min_bpm, min(cfg.max_bpm, round(bpm))))

    def onset_signal(self, frames: Sequence[Frame]) -> np.ndarray:
        """Spectral flux (or RMS when flux is flat) normalized to max 1."""
        signal = np.array([f.spectral_flux for f in frames], dtype=np.float64)
        if not signal.any():
            signal = np.array([f.rms for f in frames], dtype=np.float64)
        signal = np.nan_to_num(signal)
        peak = signal.max() if len(signal) else 0.0
        return signal / peak if peak > 0 else signal

    def detect_onsets(self, signal: np.ndarray, times: np.ndarray) -> List[float]:
        """Adaptive-threshold peak picking on the onset signal."""
        cfg = self.config
        w = cfg.threshold_window
        onsets = []

        for i in range(w, len(signal) - 2):
            history = signal[i - w:i]
            threshold = max(
                np.sort(history)[w // 2] * 1.8,
                history.mean() * 1.5,
                0.012,
            )
            value = signal[i]
            if (
                value > threshold
                and value > signal[i - 1]
                and value >= signal[i + 1]
                and value >= signal[i + 2]
            ):
                if not onsets or times[i] - onsets[-1] > cfg.min_onset_gap:
                    onsets.append(float(times[i]))
        return onsets

    def _ioi_votes(self, intervals: Sequence[float]) -> Dict[int, float]:
        cfg = self.config
        votes = defaultdict(float)
        for ioi in intervals:
            for mult in range(1, MAX_IOI_MULTIPLE + 1):
                candidate = 60.0 / (ioi * mult)
                rounded = int(np.floor(candidate + 0.5))
                if cfg.min_bpm <= rounded <= cfg.max_bpm:
                    votes[rounded] += np.exp(-0.5 * (candidate - rounded) ** 2) / mult
        return votes

    def autocorrelation_bpm(self, signal: np.ndarray, times: np.ndarray) -> int:
        """
        Tempo from the autocorrelation peak of the onset signal.

        Returns:
            BPM within [min_bpm, max_bpm], or 0 when there is no usable peak
        """
        cfg = self.config
        if len(signal) < cfg.acf_min_frames:
            return 0
        frame_time = times[1] - times[0] if len(times) > 1 else NOMINAL_FRAME_SECONDS
        if frame_time <= 0:
            return 0

        n = min(len(signal), cfg.acf_max_frames)
        centered = signal[:n] - signal[:n].mean()
        lag_min = int(np.floor(60.0 / (cfg.max_bpm * frame_time)))
        lag_max = int(np.ceil(60.0 / (cfg.min_bpm * frame_time)))

        best_lag, best_corr = 0, -np.inf
        for lag in range(max(lag_min, 1), lag_max + 1):
            if lag >= n / 2:
                break
            corr = np.dot(centered[: n - lag], centered[lag:]) / (n - lag)
            if corr > best_corr:
                best_corr, best_lag = corr, lag

        if best_lag <= 0 or best_corr <= 0:
            return 0
        bpm = int(np.floor(60.0 / (best_lag * frame_time) + 0.5))
        return bpm if cfg.min_bpm <= bpm <= cfg.max_bpm else 0

    def _fallback_bpm(self, frames: Sequence[Frame]) -> int:
        """Median spacing of RMS rises when onsets are too sparse."""
        rises = [
            frames[i].time
            for i in range(1, len(frames))
            if frames[i].rms - frames[i - 1].rms > RMS_RISE
        ]
        if len(rises) < 4:
            return self.config.default_bpm

        intervals = sorted(
            d for d in np.diff(rises) if MIN_FALLBACK_INTERVAL < d < MAX_FALLBACK_INTERVAL
        )
        if not intervals:
            return self.config.default_bpm
        median = intervals[len(intervals) // 2]
        return self.fold_bpm(60.0 / median)

    def estimate_bpm(self, frames: Sequence[Frame]) -> int:
        """
        Estimate the tempo of a recording.

        Args:
            frames: Analysis frames

        Returns:
            Integer BPM folded into [min_bpm, max_bpm]; 120 without evidence
        """
        cfg = self.config
        if len(frames) < cfg.min_frames:
            return cfg.default_bpm

        signal = self.onset_signal(frames)
        times = np.array([f.time for f in frames])
        onsets = self.detect_onsets(signal, times)
        if len(onsets) < 4:
            logger.debug(f"Only {len(onsets)} onsets; using RMS fallback")
            return self._fallback_bpm(frames)

        intervals = [d for d in np.diff(onsets) if cfg.min_onset_gap < d < cfg.max_ioi]
        if len(intervals) < 3:
            return self._fallback_bpm(frames)

        votes = self._ioi_votes(intervals)
        acf_bpm = self.autocorrelation_bpm(signal, times)
        if acf_bpm > 0:
            for d in range(-ACF_NEIGHBOURHOOD, ACF_NEIGHBOURHOOD + 1):
                b = acf_bpm + d
                if cfg.min_bpm <= b <= cfg.max_bpm:
                    votes[b] += cfg.acf_bonus / (abs(d) + 1)

        best_bpm = acf_bpm if acf_bpm > 0 else cfg.default_bpm
        best_total = 0.0
        for bpm in list(votes):
            total = sum(votes.get(bpm + d, 0.0) for d in range(-2, 3))
            if total > best_total:
                best_total, best_bpm = total, bpm

        logger.debug(
            f"{len(onsets)} onsets, ACF {acf_bpm} BPM, vote winner {best_bpm} BPM"
        )
        return self.fold_bpm(best_bpm)

    def estimate_beat_offset(self, chord_frames: Sequence[ChordFrame], bpm: float) -> float:
        """
        Phase of the beat grid from chord-change positions.

        Args:
            chord_frames: Final chord sequence
            bpm: Tempo

        Returns:
            Offset in seconds within (-beat/2, beat/2], 0 when unreliable
        """
        cfg = self.config
        if len(chord_frames) < 4 or not bpm:
            return 0.0
        beat = 60.0 / bpm

        transitions = [
            cur.time
            for prev, cur in zip(chord_frames, chord_frames[1:])
            if cur.name != prev.name
            and cur.confidence > cfg.phase_min_confidence
            and cur.time >= cfg.phase_skip_seconds
        ]
        if len(transitions) < 2:
            return 0.0

        bins = np.zeros(cfg.phase_bins)
        for t in transitions:
            offset = t - np.floor(t / beat + 0.5) * beat
            if offset > beat / 2:
                offset -= beat
            elif offset <= -beat / 2:
                offset += beat
            idx = int(np.floor((offset / beat + 0.5) * cfg.phase_bins + 0.5))
            if 0 <= idx < cfg.phase_bins:
                bins[idx] += 1

        kernel = np.exp(-(np.arange(-2, 3) ** 2) / 2.0)
        smoothed = np.convolve(bins, kernel, mode="same")
        smoothed /= np.convolve(np.ones_like(bins), kernel, mode="same")
        best_bin = int(np.argmax(smoothed))

        offset = (best_bin / cfg.phase_bins - 0.5) * beat
        if abs(offset) > beat * cfg.phase_max_fraction:
            return 0.0
        return float(offset)
