"""Shared test fixtures for chordtab tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from chordtab.core import ChordFrame, parse_chord_name


def generate_sine_wave(freq: float, duration: float, sr: int = 48000) -> np.ndarray:
    """Generate a sine wave at given frequency."""
    t = np.linspace(0, duration, int(sr * duration), endpoint=False)
    return np.sin(2 * np.pi * freq * t).astype(np.float32)


def generate_chord(frequencies: list, duration: float, sr: int = 48000) -> np.ndarray:
    """Generate a chord by summing sine waves, with short fades and peak 0.8."""
    voices = [generate_sine_wave(f, duration, sr) for f in frequencies]
    chord = np.sum(voices, axis=0)

    envelope = np.ones_like(chord)
    fade = int(0.02 * sr)  # 20ms attack and release
    envelope[:fade] = np.linspace(0, 1, fade)
    envelope[-fade:] = np.linspace(1, 0, fade)
    chord = chord * envelope

    max_abs = np.max(np.abs(chord)) or 1.0
    return (chord / max_abs * 0.8).astype(np.float32)


def generate_click_track(
    bpm: float,
    duration_seconds: float = 8.0,
    sr: int = 22050,
) -> np.ndarray:
    """Generate a synthetic click track (1 kHz bursts) at a fixed tempo."""
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float32)

    click_samples = int(0.02 * sr)  # 20ms click
    t_click = np.arange(click_samples) / sr
    click = np.sin(2 * np.pi * 1000 * t_click) * np.exp(-t_click * 100)

    time = 0.0
    while time < duration_seconds:
        start = int(time * sr)
        end = min(start + click_samples, n_samples)
        if end > start:
            audio[start:end] += click[: end - start]
        time += 60.0 / bpm

    return audio / np.max(np.abs(audio))


def make_chord_frames(names, step: float = 0.1, confidence: float = 0.8, start: float = 0.0):
    """ChordFrames from chord names (None for silence) at a fixed time step."""
    return [
        ChordFrame(
            time=start + i * step,
            chord=parse_chord_name(name) if name else None,
            confidence=confidence,
        )
        for i, name in enumerate(names)
    ]


A_MAJOR_FREQS = [110.0, 220.0, 277.18]


@pytest.fixture
def sample_rate():
    return 48000


@pytest.fixture
def a_major_audio(sample_rate):
    """A / A-octave / C# mixture sustained for 2 seconds."""
    return generate_chord(A_MAJOR_FREQS, 2.0, sample_rate)


@pytest.fixture
def silence(sample_rate):
    """Two seconds of digital silence."""
    return np.zeros(2 * sample_rate, dtype=np.float32)


@pytest.fixture
def a_major_frames(a_major_audio, sample_rate):
    """Spectral frames of the A major mixture."""
    from chordtab.analysis import SpectralFrontend

    return SpectralFrontend().analyze(a_major_audio, sample_rate)
