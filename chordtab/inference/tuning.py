"""Tuning detection - Estimate the reference A4 of a recording.

Instruments are often tuned a few cents away from A4 = 440 Hz. The strongest
peaks of every voiced frame vote into a cents histogram and its smoothed
mode gives the deviation. The result only depends on the frames passed in.
"""

import logging
from typing import Optional, Sequence

import numpy as np
from scipy.ndimage import gaussian_filter1d

from ..config import TonalConfig
from ..core.constants import A4_MIDI, REFERENCE_A4
from ..core.context import AnalysisContext
from ..core.models import Frame
from .chroma import pick_peaks

logger = logging.getLogger(__name__)

HISTOGRAM_BINS = 100  # One bin per cent over [-50, 50)
MIN_TOTAL_WEIGHT = 0.1
MIN_PEAK_MAGNITUDE = 0.001


def cents_histogram(frames: Sequence[Frame], config: Optional[TonalConfig] = None) -> np.ndarray:
    """Magnitude-weighted histogram of peak deviation from the 440 Hz grid."""
    cfg = config or TonalConfig()
    histogram = np.zeros(HISTOGRAM_BINS)

    for frame in frames:
        if frame.rms < cfg.tuning_min_rms:
            continue
        freqs, mags = pick_peaks(
            frame.freqs, frame.magnitudes, cfg.tuning_band[0], cfg.tuning_band[1],
            MIN_PEAK_MAGNITUDE, cfg.tuning_peaks,
        )
        if len(freqs) == 0:
            continue

        midi = 12.0 * np.log2(freqs / REFERENCE_A4) + A4_MIDI
        cents = (midi - np.floor(midi + 0.5)) * 100.0
        bins = np.floor(cents + 50.0 + 0.5).astype(int)
        inside = (bins >= 0) & (bins < HISTOGRAM_BINS)
        np.add.at(histogram, bins[inside], mags[inside])

    return histogram


def smooth_histogram(histogram: np.ndarray) -> np.ndarray:
    """Gaussian smoothing (sigma 2, radius 4 bins) renormalized at the edges.

    Bins near either end are divided by the kernel weight that falls inside
    the histogram, so a peak on the edge keeps its full height.
    """
    smoothed = gaussian_filter1d(histogram, sigma=2.0, truncate=2.0, mode="constant")
    weight = gaussian_filter1d(np.ones_like(histogram), sigma=2.0, truncate=2.0, mode="constant")
    return smoothed / weight


def histogram_offset(histogram: np.ndarray) -> int:
    """Cents offset of the smoothed histogram mode.

    Ties go to the bin closest to zero offset.
    """
    smoothed = smooth_histogram(np.asarray(histogram, dtype=float))
    peaks = np.flatnonzero(np.isclose(smoothed, smoothed.max()))
    centre = HISTOGRAM_BINS // 2
    best = int(peaks[np.argmin(np.abs(peaks - centre))])
    return max(-50, min(50, best - centre))


def detect_tuning(frames: Sequence[Frame], config: Optional[TonalConfig] = None) -> float:
    """
    Estimate the tuned A4 frequency.

    Args:
        frames: Spectral frames of the recording
        config: Tonal configuration

    Returns:
        Reference A4 in Hz, 440.0 when there is too little pitched material
    """
    histogram = cents_histogram(frames, config)
    if histogram.sum() < MIN_TOTAL_WEIGHT:
        return REFERENCE_A4

    offset = histogram_offset(histogram)
    return REFERENCE_A4 * 2.0 ** (offset / 1200.0)


def tuning_for_run(
    frames: Sequence[Frame],
    context: AnalysisContext,
    config: Optional[TonalConfig] = None,
) -> float:
    """Tuning reference memoized on the run context."""
    if context.reference_a4 is None:
        context.reference_a4 = detect_tuning(frames, config)
        logger.info(f"Tuning reference: A4 = {context.reference_a4:.2f} Hz")
    return context.reference_a4
