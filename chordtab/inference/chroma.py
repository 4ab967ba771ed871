"""Harmonic pitch class profiles (HPCP).

Each spectral peak is treated as the n-th harmonic of a candidate
fundamental (n = 1..6). Every candidate adds energy to its pitch class,
weighted by harmonic index, distance from the tuned semitone, octave and a
high-pass roll-off that keeps kick-drum energy out.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..config import TonalConfig
from ..core.constants import A4_MIDI, REFERENCE_A4
from ..core.models import Frame

HARMONIC_WEIGHTS = np.array([1.0, 0.5, 0.33, 0.25, 0.2, 0.17])
SPREAD_SIGMA_CENTS = 15.0
LEAK_CENTS = 20.0
LEAK_FACTOR = 0.3
HIGHPASS_CUTOFF = 80.0
HIGHPASS_POWER = 2.5
MIN_HIGHPASS_GAIN = 0.05


@dataclass(frozen=True)
class ChromaProfile:
    """Peak count and weighting for one chroma flavour."""

    n_peaks: int
    exponent: float
    min_fundamental: float
    max_fundamental: float
    band: Tuple[float, float]
    relative_threshold: bool = True  # Threshold scales with frame RMS


def chord_profile(config: TonalConfig) -> ChromaProfile:
    """Sharper per-frame chroma used for chord matching."""
    return ChromaProfile(
        n_peaks=config.chord_peaks,
        exponent=config.chord_exponent,
        min_fundamental=config.chroma_band[0],
        max_fundamental=config.max_fundamental,
        band=config.chroma_band,
    )


def key_profile(config: TonalConfig) -> ChromaProfile:
    """Chroma for key estimation: fewer peaks, stronger magnitude emphasis."""
    return ChromaProfile(
        n_peaks=config.key_peaks,
        exponent=config.key_exponent,
        min_fundamental=config.key_min_fundamental,
        max_fundamental=config.max_fundamental,
        band=config.chroma_band,
        relative_threshold=False,
    )


def pick_peaks(
    freqs: np.ndarray,
    mags: np.ndarray,
    f_min: float,
    f_max: float,
    threshold: float = 0.0,
    top_n: int = 50,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the strongest local maxima of a magnitude spectrum.

    Peak frequency and magnitude are refined with a parabola through the
    peak bin and its neighbours, which removes most of the bin quantization
    error at low frequencies.

    Args:
        freqs: Bin frequencies (ascending, not necessarily uniform)
        mags: Bin magnitudes
        f_min: Lowest peak frequency kept
        f_max: Highest peak frequency kept
        threshold: Minimum bin magnitude
        top_n: Maximum number of peaks returned

    Returns:
        Tuple of (peak frequencies, peak magnitudes), strongest first
    """
    if len(mags) < 3 or top_n <= 0:
        return np.zeros(0), np.zeros(0)

    left, center, right = mags[:-2], mags[1:-1], mags[2:]
    is_peak = (center >= left) & (center >= right) & ((center > left) | (center > right))
    idx = np.nonzero(is_peak)[0] + 1

    f = freqs[idx]
    idx = idx[(f >= f_min) & (f <= f_max) & (mags[idx] > threshold)]
    if len(idx) == 0:
        return np.zeros(0), np.zeros(0)

    a, b, c = mags[idx - 1], mags[idx], mags[idx + 1]
    denom = a - 2.0 * b + c
    safe = np.abs(denom) > 1e-12
    delta = np.zeros(len(idx))
    delta[safe] = 0.5 * (a[safe] - c[safe]) / denom[safe]
    delta = np.clip(delta, -0.5, 0.5)

    peak_mags = b - 0.25 * (a - c) * delta
    spacing = np.where(delta >= 0, freqs[idx + 1] - freqs[idx], freqs[idx] - freqs[idx - 1])
    peak_freqs = freqs[idx] + delta * spacing

    order = np.argsort(-peak_mags, kind="stable")[:top_n]
    return peak_freqs[order], peak_mags[order]


def compute_hpcp(
    frame: Frame,
    reference_a4: float = REFERENCE_A4,
    profile: Optional[ChromaProfile] = None,
) -> np.ndarray:
    """
    Compute the L2-normalized 12-bin HPCP of one frame.

    Args:
        frame: Spectral frame
        reference_a4: Tuned A4 frequency
        profile: Chroma flavour (defaults to the chord profile)

    Returns:
        Array of 12 values with unit norm, or all zeros when nothing sounds
    """
    profile = profile or chord_profile(TonalConfig())
    chroma = np.zeros(12)

    threshold = max(1e-4, frame.rms * 0.05) if profile.relative_threshold else 1e-4
    peak_freqs, peak_mags = pick_peaks(
        frame.freqs, frame.magnitudes, profile.band[0], profile.band[1],
        threshold, profile.n_peaks,
    )
    if len(peak_freqs) == 0:
        return chroma

    highpass = np.where(
        peak_freqs < HIGHPASS_CUTOFF,
        (np.maximum(peak_freqs, 0.0) / HIGHPASS_CUTOFF) ** HIGHPASS_POWER,
        1.0,
    )
    keep = highpass >= MIN_HIGHPASS_GAIN
    peak_freqs, peak_mags, highpass = peak_freqs[keep], peak_mags[keep], highpass[keep]
    if len(peak_freqs) == 0:
        return chroma

    # (peaks, harmonics) grid of candidate fundamentals
    harmonics = np.arange(1, len(HARMONIC_WEIGHTS) + 1)
    fund = peak_freqs[:, None] / harmonics[None, :]
    valid = (fund >= profile.min_fundamental) & (fund <= profile.max_fundamental)
    if not valid.any():
        return chroma

    fund = fund[valid]
    midi = 12.0 * np.log2(fund / reference_a4) + A4_MIDI
    midi_round = np.floor(midi + 0.5)
    pitch = midi_round.astype(int) % 12
    cents = (midi - midi_round) * 100.0

    spread = np.exp(-(cents ** 2) / (2.0 * SPREAD_SIGMA_CENTS ** 2))
    octave = np.floor(midi_round / 12.0) - 1
    octave_weight = np.where(
        (octave >= 2) & (octave <= 6), 1.0 - np.abs(octave - 4) * 0.07, 0.45
    )

    base = (peak_mags ** profile.exponent * highpass)[:, None] * HARMONIC_WEIGHTS[None, :]
    contribution = base[valid] * spread * octave_weight
    np.add.at(chroma, pitch, contribution)

    leaking = np.abs(cents) > LEAK_CENTS
    if leaking.any():
        neighbour = (pitch[leaking] + np.where(cents[leaking] > 0, 1, -1)) % 12
        leak = contribution[leaking] * (1.0 - spread[leaking]) * LEAK_FACTOR
        np.add.at(chroma, neighbour, leak)

    return normalize_chroma(chroma)


def normalize_chroma(chroma: np.ndarray) -> np.ndarray:
    """L2-normalize; zero or non-finite vectors come back as exact zeros."""
    chroma = np.asarray(chroma, dtype=np.float64)
    norm = np.sqrt(np.sum(chroma ** 2))
    if not np.isfinite(norm) or norm <= 0:
        return np.zeros(12)
    return chroma / norm
