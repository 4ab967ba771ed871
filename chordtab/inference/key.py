"""Key detection - Identify the tonal center of a recording.

Implements key estimation with:
- RMS-weighted HPCP accumulated over the whole recording
- Krumhansl-Schmuckler major/minor profiles in all 12 rotations
- A capped bonus for keys whose scale contains the detected chord roots
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..config import TonalConfig
from ..core.constants import MAJOR_SCALE, MINOR_SCALE, REFERENCE_A4
from ..core.context import AnalysisContext
from ..core.models import DEFAULT_KEY, ChordFrame, Frame, KeyEstimate
from .chroma import compute_hpcp, key_profile, normalize_chroma

logger = logging.getLogger(__name__)


@dataclass
class KeyCandidate:
    """A candidate key with its score."""
    tonic: int
    mode: str
    correlation: float
    chord_bonus: float = 0.0

    @property
    def score(self) -> float:
        return self.correlation + self.chord_bonus


class KeyDetector:
    """Detect the musical key from spectral frames.

    Features:
    - Key-flavoured chroma (fewer peaks, stronger magnitude emphasis)
    - Pearson correlation against rotated key profiles
    - Chord-root votes from an earlier chord pass as a tie-breaker
    """

    # Krumhansl-Schmuckler key profiles (cognitive-based)
    KRUMHANSL_MAJOR = np.array(
        [6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88]
    )
    KRUMHANSL_MINOR = np.array(
        [6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17]
    )

    def __init__(self, config: Optional[TonalConfig] = None):
        self.config = config or TonalConfig()

    def key_chroma(
        self,
        frames: Sequence[Frame],
        reference_a4: float = REFERENCE_A4,
        context: Optional[AnalysisContext] = None,
    ) -> np.ndarray:
        """Whole-recording chroma, each frame weighted by sqrt(rms)."""
        profile = key_profile(self.config)
        cache = context.key_chroma_cache if context is not None else {}
        total = np.zeros(12)
        for i, frame in enumerate(frames):
            if i not in cache:
                cache[i] = compute_hpcp(frame, reference_a4, profile)
            total += cache[i] * np.sqrt(max(frame.rms, 0.0))
        return normalize_chroma(total)

    def detect(
        self,
        frames: Sequence[Frame],
        reference_a4: float = REFERENCE_A4,
        chord_frames: Optional[Sequence[ChordFrame]] = None,
        context: Optional[AnalysisContext] = None,
    ) -> KeyEstimate:
        """
        Estimate the key of a recording.

        Args:
            frames: Spectral frames
            reference_a4: Tuned A4 frequency
            chord_frames: Chords from an earlier pass, used for root votes
            context: Run context holding the chroma cache

        Returns:
            KeyEstimate, C major when the recording carries no pitch
        """
        chroma = self.key_chroma(frames, reference_a4, context)
        if not chroma.any():
            logger.debug("No pitched energy for key detection; using C Major")
            return DEFAULT_KEY

        votes = self._root_votes(chord_frames or [])
        candidates = self._get_all_candidates(chroma, votes)
        best = max(candidates, key=lambda c: c.score)
        return KeyEstimate(tonic=best.tonic, mode=best.mode, correlation=best.score)

    def _root_votes(self, chord_frames: Sequence[ChordFrame]) -> np.ndarray:
        votes = np.zeros(12)
        for frame in chord_frames:
            if frame.chord is not None:
                votes[frame.chord.root] += 1
        return votes

    def _get_all_candidates(self, chroma: np.ndarray, votes: np.ndarray) -> List[KeyCandidate]:
        """Score all 24 keys, majors first so ties resolve to C Major."""
        candidates = []
        for mode, profile, scale in (
            ("major", self.KRUMHANSL_MAJOR, MAJOR_SCALE),
            ("minor", self.KRUMHANSL_MINOR, MINOR_SCALE),
        ):
            for tonic in range(12):
                rotated = np.roll(profile, tonic)
                members = [(tonic + step) % 12 for step in scale]
                bonus = min(
                    float(votes[members].sum()) * self.config.key_chord_bonus,
                    self.config.key_chord_bonus_cap,
                )
                candidates.append(
                    KeyCandidate(tonic, mode, self._correlate(chroma, rotated), bonus)
                )
        return candidates

    def _correlate(self, distribution: np.ndarray, profile: np.ndarray) -> float:
        """
        Pearson correlation between a chroma vector and a key profile.

        A zero-variance input correlates as 0 instead of NaN.
        """
        d = distribution - distribution.mean()
        p = profile - profile.mean()
        denom = np.sqrt(np.sum(d ** 2) * np.sum(p ** 2))
        if denom == 0 or not np.isfinite(denom):
            denom = 1.0
        corr = float(np.sum(d * p) / denom)
        return corr if np.isfinite(corr) else 0.0
