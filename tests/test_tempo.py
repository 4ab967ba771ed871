"""Tests for tempo estimation and beat phase."""

import numpy as np
import pytest

from chordtab.analysis import SpectralFrontend, TempoAnalyzer, chord_window_frames
from chordtab.core import Frame

from conftest import generate_click_track, make_chord_frames


@pytest.fixture
def analyzer():
    return TempoAnalyzer()


# ============================================================================
# Octave folding
# ============================================================================

class TestFoldBpm:
    """Folding raw tempi into the preferred range."""

    @pytest.mark.parametrize(
        "raw,expected",
        [(45, 90), (240, 120), (120, 120), (30, 60), (400, 100), (59.6, 119), (180, 180)],
    )
    def test_folding(self, analyzer, raw, expected):
        """Slow tempi double and fast tempi halve."""
        assert analyzer.fold_bpm(raw) == expected

    @pytest.mark.parametrize("raw", [0, -10, float("nan"), float("inf"), None])
    def test_invalid_defaults(self, analyzer, raw):
        """Unusable estimates fall back to 120."""
        assert analyzer.fold_bpm(raw) == 120

    def test_always_in_range(self, analyzer):
        """Any positive raw tempo folds into [55, 220]."""
        for raw in np.linspace(1, 1000, 400):
            assert 55 <= analyzer.fold_bpm(raw) <= 220


# ============================================================================
# BPM estimation
# ============================================================================

class TestEstimateBpm:
    """Onset voting and autocorrelation."""

    def test_too_few_frames(self, analyzer):
        """Fewer than 20 frames gives the default."""
        frames = [Frame(time=i * 0.023, rms=0.1, spectral_flux=0.0) for i in range(10)]
        assert analyzer.estimate_bpm(frames) == 120

    def test_silence(self, analyzer, silence, sample_rate):
        """Silence has no onsets and gives the default."""
        frames = SpectralFrontend().analyze(silence, sample_rate)
        assert analyzer.estimate_bpm(frames) == 120

    def test_click_track(self, analyzer):
        """A 100 BPM click track is detected within a few BPM."""
        sr = 22050
        frames = SpectralFrontend().analyze(generate_click_track(100, 8.0, sr), sr)
        assert abs(analyzer.estimate_bpm(frames) - 100) <= 4

    def test_onset_signal_normalized(self, analyzer):
        """The onset signal peaks at 1."""
        frames = [Frame(time=i * 0.02, rms=0.1, spectral_flux=float(i % 5)) for i in range(30)]
        signal = analyzer.onset_signal(frames)
        assert signal.max() == pytest.approx(1.0)

    def test_onset_signal_falls_back_to_rms(self, analyzer):
        """Without flux the RMS envelope is used."""
        frames = [Frame(time=i * 0.02, rms=0.1 * (i % 3), spectral_flux=0.0) for i in range(30)]
        signal = analyzer.onset_signal(frames)
        np.testing.assert_allclose(signal[:3], [0.0, 0.5, 1.0])

    def test_detect_onsets_spacing(self, analyzer):
        """Isolated spikes above the adaptive threshold become onsets."""
        signal = np.zeros(200)
        signal[40::20] = 1.0
        times = np.arange(200) * 0.02
        onsets = analyzer.detect_onsets(signal, times)
        assert onsets == pytest.approx([t for t in times[40:198:20]])

    def test_chord_window(self):
        """Chord windows span a beat and a half, within [8, 28] frames."""
        assert chord_window_frames(120) == 28
        assert chord_window_frames(220) == 18
        assert chord_window_frames(55) == 28
        assert chord_window_frames(1000) == 8


# ============================================================================
# Beat phase
# ============================================================================

class TestBeatOffset:
    """Beat-grid phase from chord changes."""

    def test_changes_on_the_beat(self, analyzer):
        """Changes at 0.50 s and 1.50 s at 120 BPM give an offset of 0."""
        names = ["C"] * 5 + ["G"] * 10 + ["C"] * 10
        frames = make_chord_frames(names, step=0.1)
        assert abs(analyzer.estimate_beat_offset(frames, 120)) <= 0.05

    def test_changes_off_the_beat(self, analyzer):
        """Changes consistently 0.1 s late give an offset near 0.1 s."""
        names = ["C"] * 6 + ["G"] * 10 + ["C"] * 10 + ["G"] * 10
        frames = make_chord_frames(names, step=0.1)
        assert analyzer.estimate_beat_offset(frames, 120) == pytest.approx(0.1, abs=0.02)

    def test_single_change(self, analyzer):
        """One transition is not enough evidence."""
        frames = make_chord_frames(["C"] * 10 + ["G"] * 10, step=0.1)
        assert analyzer.estimate_beat_offset(frames, 120) == 0.0

    def test_low_confidence_changes_ignored(self, analyzer):
        """Transitions at confidence 0.3 or below do not count."""
        names = ["C"] * 6 + ["G"] * 10 + ["C"] * 10
        frames = make_chord_frames(names, step=0.1, confidence=0.3)
        assert analyzer.estimate_beat_offset(frames, 120) == 0.0

    def test_too_few_frames(self, analyzer):
        """Fewer than four chord frames give 0."""
        assert analyzer.estimate_beat_offset(make_chord_frames(["C", "G", "C"]), 120) == 0.0
