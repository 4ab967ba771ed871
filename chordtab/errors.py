"""Exceptions raised by chordtab.

Low-confidence outcomes (no chord, default key or tempo) are ordinary
results and never raise.
"""


class ChordTabError(Exception):
    """Base class for chordtab errors."""


class InputError(ChordTabError, ValueError):
    """Malformed sample buffer or sample rate."""


class AnalysisCancelled(ChordTabError):
    """Raised at a progress checkpoint when the caller asked to stop."""
