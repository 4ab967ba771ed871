"""Per-run analysis state.

An ``AnalysisContext`` is created by each ``analyze`` call and dropped when
it returns. It owns the memoized tuning reference, the per-frame chroma
cache and the caller's progress and cancellation hooks, so analyzers can be
shared between runs without carrying state across recordings.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import numpy as np

from ..errors import AnalysisCancelled

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]


@dataclass
class AnalysisContext:
    """Scratch space owned by a single analysis run."""

    progress: Optional[ProgressCallback] = None
    should_cancel: Optional[Callable[[], bool]] = None
    reference_a4: Optional[float] = None  # Memoized tuning, None until detected
    chroma_cache: Dict[int, np.ndarray] = field(default_factory=dict)
    key_chroma_cache: Dict[int, np.ndarray] = field(default_factory=dict)

    def checkpoint(self, stage: str, percent: float) -> None:
        """Report progress and honour cancellation.

        This is the only place a run can be interrupted.

        Raises:
            AnalysisCancelled: If ``should_cancel`` returns True
        """
        if self.progress is not None:
            self.progress(stage, float(percent))
        if self.should_cancel is not None and self.should_cancel():
            logger.info(f"Analysis cancelled during {stage} at {percent:.0f}%")
            raise AnalysisCancelled(f"Cancelled during {stage}")

    def clear(self) -> None:
        self.reference_a4 = None
        self.chroma_cache.clear()
        self.key_chroma_cache.clear()
