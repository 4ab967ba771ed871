"""Analysis configuration.

Every threshold of the pipeline lives in one of these dataclasses. The
defaults reproduce the reference tuning of the analyzer; the empirical ones
(slash-bass ratio, slash weight ratio, tie-break gap, HPSS kernels) are
exposed so they can be recalibrated against labelled recordings.
"""

from dataclasses import dataclass, field
from typing import Tuple

from .core.constants import BEATS_PER_BAR, DEFAULT_TEMPO, MAX_SLOTS_PER_BAR, MAX_TEMPO, MIN_TEMPO


@dataclass
class FrontendConfig:
    """Configuration for the spectral frontend.

    Attributes:
        large_window: FFT size used for the low band (default: 8192)
        medium_window: FFT size used for the high band and RMS (default: 4096)
        low_flux_band: Onset band taken from the large window in Hz (default: 30-600)
        high_flux_band: Onset band taken from the medium window in Hz (default: 600-4000)
        low_flux_weight: Weight of the low band in the combined flux (default: 1.5)
        spectrum_band: Range of bins stored on each frame in Hz (default: 30-4200)
        spectrum_split: Frequency above which medium-window bins are used (default: 620)
        log_gain: Gain inside log1p when compressing magnitudes (default: 100)
        log_scale: Scale applied after log1p (default: 0.1)
        harmonic_kernel_seconds: Duration of the HPSS time median (default: 0.395)
        percussive_kernel_bins: Width of the HPSS frequency median (default: 9)
        min_hpss_frames: Frames required before HPSS is applied (default: 5)
        progress_interval: Frames between progress callbacks (default: 60)
    """

    large_window: int = 8192
    medium_window: int = 4096
    low_flux_band: Tuple[float, float] = (30.0, 600.0)
    high_flux_band: Tuple[float, float] = (600.0, 4000.0)
    low_flux_weight: float = 1.5
    spectrum_band: Tuple[float, float] = (30.0, 4200.0)
    spectrum_split: float = 620.0
    log_gain: float = 100.0
    log_scale: float = 0.1
    harmonic_kernel_seconds: float = 0.395
    percussive_kernel_bins: int = 9
    min_hpss_frames: int = 5
    progress_interval: int = 60

    @property
    def hop_length(self) -> int:
        return self.medium_window // 4


@dataclass
class TonalConfig:
    """Configuration for tuning, chroma, chord matching and key estimation.

    Attributes:
        tuning_min_rms: Frames quieter than this are ignored for tuning (default: 0.003)
        tuning_band: Peak frequency range used for tuning in Hz (default: 80-2000)
        tuning_peaks: Strongest peaks per frame used for tuning (default: 5)
        chroma_band: Peak frequency range used for chroma in Hz (default: 55-3500)
        max_fundamental: Highest hypothesised fundamental in Hz (default: 1600)
        key_min_fundamental: Lowest fundamental for key chroma in Hz (default: 60)
        chord_peaks: Peaks kept per frame for chord chroma (default: 50)
        chord_exponent: Magnitude exponent for chord chroma (default: 1.3)
        key_peaks: Peaks kept per frame for key chroma (default: 40)
        key_exponent: Magnitude exponent for key chroma (default: 1.5)
        min_chord_score: Matches below this score are rejected (default: 0.30)
        root_bonus: Weight of chroma energy at the root (default: 0.22)
        tie_gap: Score gap under which the simpler chord wins (default: 0.025)
        slash_bass_ratio: Bass/root energy needed to keep a slash chord (default: 0.6)
        slash_fallback_factor: Score factor when a slash chord loses its bass (default: 0.9)
        key_chord_bonus: Weight of chord-root votes in key scoring (default: 0.05)
        key_chord_bonus_cap: Maximum chord-root bonus per key (default: 0.15)
    """

    tuning_min_rms: float = 0.003
    tuning_band: Tuple[float, float] = (80.0, 2000.0)
    tuning_peaks: int = 5
    chroma_band: Tuple[float, float] = (55.0, 3500.0)
    max_fundamental: float = 1600.0
    key_min_fundamental: float = 60.0
    chord_peaks: int = 50
    chord_exponent: float = 1.3
    key_peaks: int = 40
    key_exponent: float = 1.5
    min_chord_score: float = 0.30
    root_bonus: float = 0.22
    tie_gap: float = 0.025
    slash_bass_ratio: float = 0.6
    slash_fallback_factor: float = 0.9
    key_chord_bonus: float = 0.05
    key_chord_bonus_cap: float = 0.15


@dataclass
class RhythmConfig:
    """Configuration for tempo and beat-phase estimation."""

    min_bpm: int = MIN_TEMPO
    max_bpm: int = MAX_TEMPO
    fold_low: float = 60.0
    fold_high: float = 180.0
    default_bpm: int = DEFAULT_TEMPO
    min_frames: int = 20
    threshold_window: int = 30  # Frames of history for the adaptive threshold
    min_onset_gap: float = 0.06
    max_ioi: float = 3.0
    acf_min_frames: int = 50
    acf_max_frames: int = 2000
    acf_bonus: float = 5.0
    phase_bins: int = 40
    phase_min_confidence: float = 0.3
    phase_skip_seconds: float = 0.5
    phase_max_fraction: float = 0.4


@dataclass
class SmoothingConfig:
    """Configuration for the window ensemble and the smoothing passes."""

    short_window_factor: float = 0.6
    long_window_factor: float = 1.5
    min_short_window: int = 6
    min_long_window: int = 16
    long_only_factor: float = 0.8
    agreement_weight: float = 0.5
    max_flux_boost: float = 0.5
    beat_merge_weight: float = 0.4
    beat_override_factor: float = 1.2
    beat_fill_factor: float = 0.9
    outlier_confidence: float = 0.42
    pair_confidence: float = 0.32
    single_confidence: float = 0.30
    fill_confidence: float = 0.22


@dataclass
class SegmenterConfig:
    """Configuration for bar/slot segmentation.

    Attributes:
        beats_per_bar: Beats in one bar (default: 4)
        max_slots: Maximum chord slots per bar (default: 4)
        quality_margin: Relative margin a quality needs to beat the priority order (default: 0.05)
        slash_weight_ratio: Share of the root weight a slash form needs (default: 0.35)
        default_weight: Vote weight of a chord frame without confidence (default: 0.5)
    """

    beats_per_bar: int = BEATS_PER_BAR
    max_slots: int = MAX_SLOTS_PER_BAR
    quality_margin: float = 0.05
    slash_weight_ratio: float = 0.35
    default_weight: float = 0.5


SNAP_STRENGTHS = {"soft": 0.60, "medium": 0.75, "hard": 0.90}
INSTRUMENTS = ("acoustic", "electric", "bass")


@dataclass
class PostProcessConfig:
    """Chord simplification and key snapping after detection.

    Attributes:
        instrument: Instrument profile; 'acoustic' turns power chords into triads
        simplify: Map tension qualities to their base form (default: True)
        enharmonic_threshold: Confidence margin for snapping sharp roots (default: 0.15)
        snap_strength: 'soft', 'medium', 'hard' or 'off' (default: 'medium')
    """

    instrument: str = "acoustic"
    simplify: bool = True
    enharmonic_threshold: float = 0.15
    snap_strength: str = "medium"

    @property
    def snap_threshold(self) -> float:
        return SNAP_STRENGTHS.get(self.snap_strength, 0.0)


@dataclass
class AnalysisConfig:
    """Full pipeline configuration."""

    frontend: FrontendConfig = field(default_factory=FrontendConfig)
    tonal: TonalConfig = field(default_factory=TonalConfig)
    rhythm: RhythmConfig = field(default_factory=RhythmConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)
    postprocess: PostProcessConfig = field(default_factory=PostProcessConfig)
    two_pass: bool = True  # Re-run chord detection with the estimated key
