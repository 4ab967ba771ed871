"""Harmonic-percussive separation by median filtering.

Sustained tones are smooth along time and peaky along frequency; drum hits
are the opposite. Median filtering each axis gives harmonic (H) and
percussive (P) estimates, and a soft Wiener mask H^2 / (H^2 + P^2) keeps
the harmonic part of every bin.
"""

import numpy as np
from scipy.ndimage import median_filter

# Mask value where both estimates vanish
NEUTRAL_MASK = 0.5
MASK_EPSILON = 1e-10


def harmonic_mask(
    spectrogram: np.ndarray,
    time_kernel: int = 17,
    freq_kernel: int = 9,
) -> np.ndarray:
    """Soft harmonic mask for a (frames, bins) magnitude matrix.

    Edges are clamped, i.e. the border frame/bin is repeated.
    """
    harmonic = median_filter(spectrogram, size=(time_kernel, 1), mode="nearest")
    percussive = median_filter(spectrogram, size=(1, freq_kernel), mode="nearest")

    h2 = harmonic ** 2
    denom = h2 + percussive ** 2
    mask = np.full_like(spectrogram, NEUTRAL_MASK, dtype=np.float64)
    valid = denom > MASK_EPSILON
    mask[valid] = h2[valid] / denom[valid]
    return mask


def apply_hpss(
    spectrogram: np.ndarray,
    time_kernel: int = 17,
    freq_kernel: int = 9,
    min_frames: int = 5,
) -> np.ndarray:
    """Return the harmonic-masked spectrogram.

    Matrices with fewer than ``min_frames`` frames or no bins are returned
    unchanged.
    """
    if spectrogram.ndim != 2 or spectrogram.shape[0] < min_frames or spectrogram.shape[1] == 0:
        return spectrogram
    return spectrogram * harmonic_mask(spectrogram, time_kernel, freq_kernel)
