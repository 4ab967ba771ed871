"""Input layer - Audio file loading."""

from .loader import AudioInfo, AudioLoader

__all__ = [
    "AudioInfo",
    "AudioLoader",
]
