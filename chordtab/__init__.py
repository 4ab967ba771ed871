"""ChordTab - Chord, key and tempo analysis for tablature.

Architecture Layers:
    1. input/       - Audio loading
    2. analysis/    - Low-level signal analysis (FFT, HPSS, tempo)
    3. inference/   - Musical understanding (tuning, chroma, chords, key, smoothing)
    4. processing/  - Notation layout (bars and slots, transposition)
    5. pipeline     - One blocking call from PCM buffer to AnalysisResult
"""

__version__ = "0.2.0"

# Core types
from .core import (
    Bar,
    ChordFrame,
    ChordHypothesis,
    Frame,
    KeyEstimate,
    Slot,
    TempoEstimate,
)
from .config import AnalysisConfig
from .errors import AnalysisCancelled, ChordTabError, InputError

# Input layer
from .input import AudioLoader

# Analysis layer
from .analysis import SpectralFrontend, TempoAnalyzer

# Inference layer
from .inference import ChordMatcher, ChordPostProcessor, ChordSequencer, KeyDetector

# Processing layer
from .processing import NotationSegmenter, set_manual_chord, transpose_result

# Pipeline and output
from .pipeline import AnalysisResult, ChordTabAnalyzer
from .exporter import AnalysisExporter, chords_to_text

__all__ = [
    # Core
    "Bar",
    "ChordFrame",
    "ChordHypothesis",
    "Frame",
    "KeyEstimate",
    "Slot",
    "TempoEstimate",
    "AnalysisConfig",
    "AnalysisCancelled",
    "ChordTabError",
    "InputError",
    # Input
    "AudioLoader",
    # Analysis
    "SpectralFrontend",
    "TempoAnalyzer",
    # Inference
    "ChordMatcher",
    "ChordPostProcessor",
    "ChordSequencer",
    "KeyDetector",
    # Processing
    "NotationSegmenter",
    "set_manual_chord",
    "transpose_result",
    # Pipeline
    "AnalysisResult",
    "ChordTabAnalyzer",
    # Output
    "AnalysisExporter",
    "chords_to_text",
]
