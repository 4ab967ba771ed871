"""Analysis pipeline - PCM buffer to chords, key, tempo and bars.

Stages:
1. Spectral frontend (frames with harmonic-masked spectra)
2. Tempo from the onset signal
3. Chord pass without a key, key estimate, chord pass with the key
4. Simplification and key snapping
5. Beat phase from chord changes, then bar segmentation
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np

from .analysis.spectral import SpectralFrontend, to_mono
from .analysis.tempo import TempoAnalyzer, chord_window_frames
from .config import AnalysisConfig
from .core.constants import REFERENCE_A4
from .core.context import AnalysisContext, ProgressCallback
from .core.models import DEFAULT_KEY, Bar, ChordFrame, KeyEstimate, TempoEstimate
from .inference.ensemble import ChordSequencer
from .inference.key import KeyDetector
from .inference.snapping import ChordPostProcessor
from .inference.tuning import tuning_for_run
from .processing.segmenter import NotationSegmenter

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Everything one analysis run produces."""

    frames: List[ChordFrame] = field(default_factory=list)
    key: KeyEstimate = DEFAULT_KEY
    tempo: TempoEstimate = field(default_factory=TempoEstimate)
    bars: List[Bar] = field(default_factory=list)
    reference_a4: float = REFERENCE_A4
    duration: float = 0.0

    @property
    def is_empty(self) -> bool:
        """True when no chord was found; key and tempo are then defaults."""
        return all(frame.chord is None for frame in self.frames)

    @property
    def chord_names(self) -> List[Optional[str]]:
        return [frame.name for frame in self.frames]

    def to_dict(self) -> dict:
        return {
            "key": self.key.name,
            "bpm": self.tempo.bpm,
            "beatOffset": round(self.tempo.offset, 4),
            "referenceA4": round(self.reference_a4, 3),
            "duration": round(self.duration, 3),
            "frames": [frame.to_dict() for frame in self.frames],
            "bars": [bar.to_dict() for bar in self.bars],
        }


class ChordTabAnalyzer:
    """Run the full analysis on a buffered recording.

    An analyzer holds only configuration and stateless stage objects, so
    one instance can analyze many recordings; all per-run state lives on an
    ``AnalysisContext`` created inside ``analyze``.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()
        cfg = self.config
        self.frontend = SpectralFrontend(cfg.frontend)
        self.tempo_analyzer = TempoAnalyzer(cfg.rhythm)
        self.sequencer = ChordSequencer(tonal_config=cfg.tonal, config=cfg.smoothing)
        self.key_detector = KeyDetector(cfg.tonal)
        self.postprocessor = ChordPostProcessor(cfg.postprocess)
        self.segmenter = NotationSegmenter(cfg.segmenter)

    def analyze(
        self,
        samples: np.ndarray,
        sample_rate: int,
        progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        previous_bars: Optional[Sequence[Bar]] = None,
    ) -> AnalysisResult:
        """
        Analyze a PCM buffer.

        Args:
            samples: Mono or stereo float PCM (stereo is down-mixed)
            sample_rate: Sample rate in Hz
            progress: Called as ``progress(stage, percent)`` at yield points
            should_cancel: Polled at the same yield points
            previous_bars: Bars from an earlier run whose manual slots survive

        Returns:
            AnalysisResult; a silent or too-short buffer gives no chords,
            C Major and 120 BPM

        Raises:
            InputError: If the buffer shape or sample rate is malformed
            AnalysisCancelled: If ``should_cancel`` returned True
        """
        context = AnalysisContext(progress=progress, should_cancel=should_cancel)
        try:
            return self._run(samples, sample_rate, context, previous_bars)
        finally:
            context.clear()

    def _run(
        self,
        samples: np.ndarray,
        sample_rate: int,
        context: AnalysisContext,
        previous_bars: Optional[Sequence[Bar]],
    ) -> AnalysisResult:
        frames = self.frontend.analyze(samples, sample_rate, context)
        duration = len(to_mono(samples)) / sample_rate
        logger.info(f"Analyzing {duration:.1f}s of audio: {len(frames)} frames")

        if not frames:
            return AnalysisResult(duration=duration)

        context.checkpoint("tempo", 0.0)
        bpm = self.tempo_analyzer.estimate_bpm(frames)
        window = chord_window_frames(bpm)
        logger.info(f"Tempo: {bpm} BPM (chord window {window} frames)")

        context.checkpoint("chords", 0.0)
        reference_a4 = tuning_for_run(frames, context, self.config.tonal)
        chords = self.sequencer.detect(frames, context, window=window, bpm=bpm)

        context.checkpoint("key", 0.0)
        key = self.key_detector.detect(frames, reference_a4, chords, context)
        logger.info(f"Key: {key.name} (score {key.correlation:.3f})")

        if self.config.two_pass:
            context.checkpoint("chords", 50.0)
            chords = self.sequencer.detect(frames, context, window=window, bpm=bpm, key=key)
        chords = self.postprocessor.process(chords, key)

        context.checkpoint("segment", 0.0)
        offset = self.tempo_analyzer.estimate_beat_offset(chords, bpm)
        tempo = TempoEstimate(bpm=bpm, offset=offset)
        bars = self.segmenter.segment(chords, tempo, previous_bars)
        context.checkpoint("segment", 100.0)

        logger.info(
            f"Found {sum(1 for c in chords if c.chord)} voiced chord frames "
            f"in {len(bars)} bars"
        )
        return AnalysisResult(
            frames=chords,
            key=key,
            tempo=tempo,
            bars=bars,
            reference_a4=reference_a4,
            duration=duration,
        )
