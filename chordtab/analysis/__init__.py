"""Analysis layer - Low-level signal analysis.

This layer turns a PCM buffer into frame-level features:
- Framed magnitude spectra (FFT, dual window sizes)
- Harmonic/percussive soft masking
- Onset strength, tempo and beat phase
"""

from .hpss import apply_hpss, harmonic_mask
from .spectral import SpectralFrontend, fft, to_mono
from .tempo import TempoAnalyzer, chord_window_frames

__all__ = [
    "SpectralFrontend",
    "fft",
    "to_mono",
    "apply_hpss",
    "harmonic_mask",
    "TempoAnalyzer",
    "chord_window_frames",
]
