"""Chord matching - Identify chords from chroma vectors.

Implements template matching with:
- 21 chord templates weighted by interval importance
- Root-energy bonus and an empirical chord-frequency prior
- Diatonic bonus when the key is known
- Near-tie resolution towards simpler chords
- Slash/inversion resolution from bass energy
"""

from typing import Dict, Optional, Tuple

import numpy as np

from ..config import TonalConfig
from ..core.chord import MATCH_PRIORITY, ChordHypothesis, priority_rank
from ..core.models import KeyEstimate


# Slash variants carry their bass as a trailing interval
SLASH_BASS_OFFSETS = {
    "slash_major_3rd": 4,
    "slash_major_5th": 7,
    "slash_minor_3rd": 3,
    "slash_minor_5th": 7,
}


def slash_base_quality(quality: str) -> str:
    """Plain triad a slash variant stands for."""
    return "minor" if "minor" in quality else "major"


def interval_weight(interval: int) -> float:
    """Template weight of a chord tone by its interval from the root."""
    if interval == 0:
        return 2.2
    if interval == 7:
        return 1.5
    if interval in (3, 4):
        return 1.3
    if interval in (10, 11):
        return 1.0
    if interval == 9:
        return 0.85
    if interval in (2, 5):
        return 0.8
    return 0.7


class ChordMatcher:
    """Match 12-bin chroma vectors against weighted chord templates.

    ``match`` returns ``None`` when nothing scores above the minimum; that
    is the normal answer for silence or noise.
    """

    # Intervals from the root; the last entry of a slash template is its bass
    CHORD_TEMPLATES = {
        # Triads
        "major": [0, 4, 7],
        "minor": [0, 3, 7],
        "dim": [0, 3, 6],
        "aug": [0, 4, 8],
        "sus2": [0, 2, 7],
        "sus4": [0, 5, 7],
        # Seventh chords
        "7": [0, 4, 7, 10],
        "maj7": [0, 4, 7, 11],
        "m7": [0, 3, 7, 10],
        "dim7": [0, 3, 6, 9],
        "m7b5": [0, 3, 6, 10],
        "mmaj7": [0, 3, 7, 11],
        # Added tones and sixths (9th folded to the 2nd)
        "add9": [0, 4, 7, 2],
        "madd9": [0, 3, 7, 2],
        "6": [0, 4, 7, 9],
        "m6": [0, 3, 7, 9],
        "power": [0, 7],
        # Inversions
        "slash_major_3rd": [0, 4, 7, -9],
        "slash_major_5th": [0, 4, 7, -5],
        "slash_minor_3rd": [0, 3, 7, -9],
        "slash_minor_5th": [0, 3, 7, -5],
    }

    # Share of real-world chord charts, used as a small prior
    QUALITY_PRIOR = {
        "major": 0.055,
        "minor": 0.048,
        "7": 0.028,
        "m7": 0.025,
        "maj7": 0.022,
        "sus2": 0.018,
        "sus4": 0.018,
        "add9": 0.016,
        "madd9": 0.014,
        "dim": 0.010,
        "aug": 0.008,
        "6": 0.009,
        "m6": 0.007,
        "dim7": 0.008,
        "m7b5": 0.007,
        "mmaj7": 0.006,
        "power": 0.010,
        "slash_major_3rd": 0.018,
        "slash_major_5th": 0.012,
        "slash_minor_3rd": 0.016,
        "slash_minor_5th": 0.010,
    }

    # Diatonic triad quality for each scale degree
    DIATONIC_CHORDS_MAJOR = {
        0: "major",  # I
        2: "minor",  # ii
        4: "minor",  # iii
        5: "major",  # IV
        7: "major",  # V
        9: "minor",  # vi
        11: "dim",  # vii°
    }

    DIATONIC_CHORDS_MINOR = {
        0: "minor",  # i
        2: "m7b5",  # iiø
        3: "major",  # III
        5: "minor",  # iv
        7: "minor",  # v
        8: "major",  # VI
        10: "major",  # VII
    }

    DIATONIC_BONUS = 0.018
    EXTENSION_BONUS = {"major": {"7": 0.012, "maj7": 0.010}, "minor": {"m7": 0.012}}
    SUS_BONUS = 0.006

    def __init__(self, config: Optional[TonalConfig] = None):
        self.config = config or TonalConfig()
        self.qualities = list(self.CHORD_TEMPLATES)
        self._templates = self._build_templates()
        self._priors = np.array([self.QUALITY_PRIOR.get(q, 0.0) for q in self.qualities])

    def _build_templates(self) -> np.ndarray:
        """(12 roots, qualities, 12 bins) array of unit-norm templates."""
        templates = np.zeros((12, len(self.qualities), 12))
        for qi, quality in enumerate(self.qualities):
            intervals = self.CHORD_TEMPLATES[quality]
            is_slash = quality in SLASH_BASS_OFFSETS
            for root in range(12):
                for idx, interval in enumerate(intervals):
                    if is_slash and idx == len(intervals) - 1:
                        weight = 0.6
                    else:
                        weight = interval_weight(interval)
                    templates[root, qi, (root + interval) % 12] += weight
        norms = np.linalg.norm(templates, axis=2, keepdims=True)
        return templates / np.where(norms > 0, norms, 1.0)

    @classmethod
    def diatonic_bonus(cls, key: KeyEstimate) -> Dict[Tuple[int, str], float]:
        """Score bonus per (root, quality) for chords that belong to the key."""
        degrees = cls.DIATONIC_CHORDS_MINOR if key.mode == "minor" else cls.DIATONIC_CHORDS_MAJOR
        bonus = {}
        for interval, quality in degrees.items():
            root = (key.tonic + interval) % 12
            bonus[(root, quality)] = cls.DIATONIC_BONUS
            for extension, value in cls.EXTENSION_BONUS.get(quality, {}).items():
                bonus[(root, extension)] = value
            bonus[(root, "sus4")] = cls.SUS_BONUS
            bonus[(root, "sus2")] = cls.SUS_BONUS
        return bonus

    def score_all(self, chroma: np.ndarray, key: Optional[KeyEstimate] = None) -> np.ndarray:
        """Scores for every (root, quality) pair as a (12, n_qualities) array."""
        chroma = np.asarray(chroma, dtype=np.float64)
        scores = self._templates @ chroma
        scores += self.config.root_bonus * chroma[:, None]
        scores += self._priors[None, :]
        if key is not None:
            for (root, quality), value in self.diatonic_bonus(key).items():
                if quality in self.CHORD_TEMPLATES:
                    scores[root, self.qualities.index(quality)] += value
        return scores

    def match(
        self,
        chroma: np.ndarray,
        key: Optional[KeyEstimate] = None,
    ) -> Optional[ChordHypothesis]:
        """
        Find the best chord for a chroma vector.

        Args:
            chroma: 12-bin L2-normalized chroma
            key: Estimated key, enables the diatonic bonus

        Returns:
            ChordHypothesis, or None if the best score is below the minimum
        """
        scores = self.score_all(chroma, key)
        flat = scores.ravel()
        order = np.argsort(-flat, kind="stable")
        best = int(order[0])
        best_score = float(flat[best])
        if not np.isfinite(best_score) or best_score < self.config.min_chord_score:
            return None

        n_q = len(self.qualities)
        root, quality = divmod(best, n_q)
        quality = self.qualities[quality]
        score = best_score

        if len(order) > 1:
            runner = int(order[1])
            runner_score = float(flat[runner])
            runner_root, runner_quality = divmod(runner, n_q)
            runner_quality = self.qualities[runner_quality]
            if best_score - runner_score < self.config.tie_gap and (
                priority_rank(runner_quality, MATCH_PRIORITY) < priority_rank(quality, MATCH_PRIORITY)
            ):
                root, quality, score = runner_root, runner_quality, runner_score

        if quality in SLASH_BASS_OFFSETS:
            return self.resolve_slash(root, quality, score, chroma)
        return ChordHypothesis(root=root, quality=quality, score=score)

    def resolve_slash(
        self, root: int, quality: str, score: float, chroma: np.ndarray
    ) -> ChordHypothesis:
        """Keep the inversion only when the bass note is clearly present."""
        base = slash_base_quality(quality)
        bass = (root + SLASH_BASS_OFFSETS[quality]) % 12
        if chroma[bass] >= chroma[root] * self.config.slash_bass_ratio:
            return ChordHypothesis(root=root, quality=base, score=score, bass=bass)
        return ChordHypothesis(
            root=root, quality=base, score=score * self.config.slash_fallback_factor
        )
