"""Audio loading utilities."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import librosa
import numpy as np
import soundfile as sf


@dataclass
class AudioInfo:
    """Header information of an audio file."""

    path: Path
    sample_rate: int
    channels: int
    frames: int

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate if self.sample_rate else 0.0


class AudioLoader:
    """Loads audio files as float PCM at their native sample rate.

    Stereo is kept as a (2, n) array; the analysis core down-mixes it.
    """

    SUPPORTED_FORMATS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".aiff", ".aif"}

    def __init__(self, mono: bool = False, normalize: bool = False):
        """
        Initialize AudioLoader.

        Args:
            mono: Down-mix while loading instead of leaving it to the core
            normalize: Peak-normalize to [-1, 1]
        """
        self.mono = mono
        self.normalize = normalize

    def _check(self, path) -> Path:
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        if path.suffix.lower() not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {sorted(self.SUPPORTED_FORMATS)}"
            )
        return path

    def load(self, path) -> Tuple[np.ndarray, int]:
        """
        Load an audio file.

        Args:
            path: Path to audio file

        Returns:
            Tuple of (audio array, sample rate); stereo is shaped (2, n)

        Raises:
            ValueError: If file format not supported
            FileNotFoundError: If file doesn't exist
        """
        path = self._check(path)

        audio, sr = librosa.load(str(path), sr=None, mono=self.mono)

        if self.normalize:
            audio = self._normalize(audio)

        return audio, int(sr)

    def read_info(self, path) -> AudioInfo:
        """Read the file header without decoding samples."""
        path = self._check(path)
        header = sf.info(str(path))
        return AudioInfo(
            path=path,
            sample_rate=int(header.samplerate),
            channels=int(header.channels),
            frames=int(header.frames),
        )

    def _normalize(self, audio: np.ndarray) -> np.ndarray:
        """Normalize audio to [-1, 1] range using peak normalization."""
        peak = np.abs(audio).max() if audio.size else 0.0
        if peak > 0:
            audio = audio / peak
        return audio

    def get_duration(self, audio: np.ndarray, sr: Optional[int] = None) -> float:
        """Get duration in seconds."""
        if not sr:
            return 0.0
        return audio.shape[-1] / sr
