"""Spectral frontend - Waveform to framed, harmonic-masked spectra.

Implements:
- Stereo down-mix and input validation
- Iterative radix-2 FFT (bit-reversal permutation + butterfly passes)
- Dual-resolution framing (large window for lows, medium window for highs)
- Band-split spectral flux as onset strength
- HPSS soft masking of the assembled spectrogram

Pipeline: PCM buffer → Hann-windowed segments → FFT → Frames → HPSS
"""

import logging
from functools import lru_cache
from typing import List, Optional, Tuple

import numpy as np

from ..config import FrontendConfig
from ..core.context import AnalysisContext
from ..core.models import Frame
from ..errors import InputError
from .hpss import apply_hpss

logger = logging.getLogger(__name__)


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Down-mix a mono or stereo buffer to mono as (L + R) * 0.5.

    Stereo may be laid out channel-first (2, n) as librosa returns it, or
    channel-last (n, 2) as soundfile does.

    Raises:
        InputError: If the buffer is not 1-D or two-channel 2-D
    """
    audio = np.asarray(samples, dtype=np.float64)

    if audio.ndim == 1:
        mono = audio
    elif audio.ndim == 2 and audio.shape[0] in (1, 2) and audio.shape[0] <= audio.shape[1]:
        mono = audio[0] if audio.shape[0] == 1 else (audio[0] + audio[1]) * 0.5
    elif audio.ndim == 2 and audio.shape[1] in (1, 2):
        mono = audio[:, 0] if audio.shape[1] == 1 else (audio[:, 0] + audio[:, 1]) * 0.5
    else:
        raise InputError(f"Expected a mono or stereo buffer, got shape {audio.shape}")

    return np.nan_to_num(mono, nan=0.0, posinf=0.0, neginf=0.0)


def validate_sample_rate(sample_rate) -> int:
    """Raises InputError unless the sample rate is a positive integer."""
    try:
        sr = int(sample_rate)
    except (TypeError, ValueError):
        raise InputError(f"Invalid sample rate: {sample_rate!r}")
    if sr <= 0 or sr != sample_rate:
        raise InputError(f"Invalid sample rate: {sample_rate!r}")
    return sr


@lru_cache(maxsize=8)
def hann_window(n: int) -> np.ndarray:
    """Symmetric Hann window 0.5 * (1 - cos(2*pi*i / (n - 1)))."""
    i = np.arange(n)
    return 0.5 * (1.0 - np.cos(2.0 * np.pi * i / (n - 1)))


@lru_cache(maxsize=8)
def _bit_reversal(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    idx = np.arange(n)
    rev = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        rev |= ((idx >> b) & 1) << (bits - 1 - b)
    return rev


@lru_cache(maxsize=64)
def _twiddles(size: int) -> np.ndarray:
    return np.exp(-2j * np.pi * np.arange(size // 2) / size)


def fft(x: np.ndarray) -> np.ndarray:
    """Iterative radix-2 Cooley-Tukey FFT.

    Each butterfly pass is applied to all blocks of the current size at
    once, so only log2(n) Python-level iterations run.

    Raises:
        ValueError: If the length is not a power of two
    """
    n = len(x)
    if n == 0 or n & (n - 1):
        raise ValueError(f"FFT length must be a power of two, got {n}")

    a = np.asarray(x, dtype=np.complex128)[_bit_reversal(n)]
    size = 2
    while size <= n:
        half = size // 2
        blocks = a.reshape(-1, size)
        even = blocks[:, :half].copy()
        odd = blocks[:, half:] * _twiddles(size)
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        size *= 2
    return a


def magnitude_spectrum(segment: np.ndarray) -> np.ndarray:
    """Magnitudes of the first n/2 bins, normalized by 2/n."""
    n = len(segment)
    return np.abs(fft(segment)[: n // 2]) * (2.0 / n)


def _band_flux(current: np.ndarray, previous: Optional[np.ndarray], mask: np.ndarray) -> float:
    if previous is None:
        return 0.0
    diff = current[mask] - previous[mask]
    return float(diff[diff > 0].sum())


class SpectralFrontend:
    """Turn a PCM buffer into a sequence of immutable Frames.

    Two windows share each hop: the large one resolves low notes, the medium
    one gives time resolution above ``spectrum_split`` and drives RMS.
    """

    def __init__(self, config: Optional[FrontendConfig] = None):
        self.config = config or FrontendConfig()

    def frame_count(self, n_samples: int) -> int:
        """Number of frames for a buffer (0 if shorter than the large window)."""
        cfg = self.config
        if n_samples < cfg.large_window:
            return 0
        return (n_samples - cfg.large_window) // cfg.hop_length + 1

    def _bin_layout(self, sample_rate: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Frequency axis of stored bins and the masks selecting them."""
        cfg = self.config
        freqs_large = np.arange(cfg.large_window // 2) * sample_rate / cfg.large_window
        freqs_medium = np.arange(cfg.medium_window // 2) * sample_rate / cfg.medium_window
        low, high = cfg.spectrum_band

        large_mask = (freqs_large >= low) & (freqs_large <= cfg.spectrum_split)
        medium_mask = (freqs_medium > cfg.spectrum_split) & (freqs_medium <= high)
        freqs = np.concatenate([freqs_large[large_mask], freqs_medium[medium_mask]])
        return freqs, large_mask, medium_mask

    def analyze(
        self,
        samples: np.ndarray,
        sample_rate: int,
        context: Optional[AnalysisContext] = None,
    ) -> List[Frame]:
        """
        Frame a buffer and return harmonic-masked spectra.

        Args:
            samples: Mono or stereo float PCM
            sample_rate: Sample rate in Hz
            context: Run context for progress and cancellation

        Returns:
            List of Frames (empty if the buffer is shorter than one window)

        Raises:
            InputError: If the buffer shape or sample rate is malformed
        """
        cfg = self.config
        sr = validate_sample_rate(sample_rate)
        mono = to_mono(samples)
        context = context or AnalysisContext()

        n_frames = self.frame_count(len(mono))
        if n_frames == 0:
            logger.info(
                f"Buffer of {len(mono)} samples is shorter than one window; no frames"
            )
            return []

        hop = cfg.hop_length
        large_win = hann_window(cfg.large_window)
        medium_win = hann_window(cfg.medium_window)
        freqs, large_mask, medium_mask = self._bin_layout(sr)

        freqs_large = np.arange(cfg.large_window // 2) * sr / cfg.large_window
        freqs_medium = np.arange(cfg.medium_window // 2) * sr / cfg.medium_window
        low_band = (freqs_large >= cfg.low_flux_band[0]) & (freqs_large <= cfg.low_flux_band[1])
        high_band = (freqs_medium >= cfg.high_flux_band[0]) & (freqs_medium <= cfg.high_flux_band[1])

        times = np.zeros(n_frames)
        rms = np.zeros(n_frames)
        flux_low = np.zeros(n_frames)
        flux_high = np.zeros(n_frames)
        spectrogram = np.zeros((n_frames, len(freqs)))

        prev_large = None
        prev_medium = None
        for i in range(n_frames):
            start = i * hop
            large = np.zeros(cfg.large_window)
            chunk = mono[start:start + cfg.large_window]
            large[: len(chunk)] = chunk * large_win[: len(chunk)]

            medium = np.zeros(cfg.medium_window)
            chunk = mono[start:start + cfg.medium_window]
            medium[: len(chunk)] = chunk * medium_win[: len(chunk)]
            rms[i] = np.sqrt(np.mean(chunk ** 2)) if len(chunk) else 0.0

            mag_large = magnitude_spectrum(large)
            mag_medium = magnitude_spectrum(medium)

            flux_low[i] = _band_flux(mag_large, prev_large, low_band)
            flux_high[i] = _band_flux(mag_medium, prev_medium, high_band)
            prev_large, prev_medium = mag_large, mag_medium

            raw = np.concatenate([mag_large[large_mask], mag_medium[medium_mask]])
            spectrogram[i] = np.log1p(raw * cfg.log_gain) * cfg.log_scale
            times[i] = start / sr

            if i % cfg.progress_interval == 0:
                context.checkpoint("spectrum", i / n_frames * 90.0)

        context.checkpoint("hpss", 92.0)
        spectrogram = apply_hpss(
            spectrogram,
            time_kernel=self.harmonic_kernel_frames(sr),
            freq_kernel=cfg.percussive_kernel_bins,
            min_frames=cfg.min_hpss_frames,
        )
        context.checkpoint("hpss", 100.0)

        spectral_flux = flux_low * cfg.low_flux_weight + flux_high
        logger.debug(f"Framed {n_frames} frames with {len(freqs)} bins each")

        return [
            Frame(
                time=float(times[i]),
                rms=float(rms[i]),
                spectral_flux=float(spectral_flux[i]),
                flux_low=float(flux_low[i]),
                flux_high=float(flux_high[i]),
                freqs=freqs,
                magnitudes=spectrogram[i],
            )
            for i in range(n_frames)
        ]

    def harmonic_kernel_frames(self, sample_rate: int) -> int:
        """HPSS time kernel in frames, derived from its duration.

        With hop 1024 at 44.1 kHz this gives the reference 17 frames.
        """
        hop_seconds = self.config.hop_length / sample_rate
        frames = int(round(self.config.harmonic_kernel_seconds / hop_seconds))
        if frames % 2 == 0:
            frames += 1
        return max(3, frames)
