"""
Time-based progress projection for jobs that report no usable logs.
"""

import math
import time
import logging
from typing import Callable, Optional

from falprogress.core.constants import (
    DEFAULT_TOTAL, DEFAULT_MAX_CAP_STEP,
    ETA_MIN_EXPECTED_MS, ETA_MIN_START_STEP, ETA_MAX_RATIO,
)
from falprogress.core.models import EtaSnapshot

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class EtaEstimator:
    """
    Projects a step from elapsed wall-clock time against an expected duration.
    The projection never reaches the total on its own, and successive
    calls to current() never return a lower step than before.
    """

    def __init__(self, expected_ms: int, min_start_step: int = ETA_MIN_START_STEP,
                 max_cap_step: int = DEFAULT_MAX_CAP_STEP, total: int = DEFAULT_TOTAL,
                 clock: Optional[Callable[[], float]] = None):
        self.total = total
        self.min_start_step = max(0, min_start_step)
        self.max_cap_step = max(0, min(max_cap_step, total))
        self.expected_ms = max(expected_ms, ETA_MIN_EXPECTED_MS)
        self._clock = clock or _monotonic_ms
        self._started_at = self._clock()
        self._last_step = 0

    @property
    def last_step(self) -> int:
        return self._last_step

    def elapsed_ms(self) -> float:
        elapsed = self._clock() - self._started_at
        if elapsed < 0:
            # clock jitter must never read as negative time
            logger.debug("Clock went back %.0fms; treating elapsed time as 0", -elapsed)
            return 0.0
        return elapsed

    def current(self) -> EtaSnapshot:
        elapsed_ms = self.elapsed_ms()
        ratio = min(elapsed_ms / self.expected_ms, ETA_MAX_RATIO)
        projected = math.floor(ratio * self.total)
        step = min(self.max_cap_step, max(self.min_start_step, projected, self._last_step))
        self._last_step = step

        remaining_ms = max(self.expected_ms - elapsed_ms, 0)
        return EtaSnapshot(
            step=step,
            total=self.total,
            eta_seconds=math.ceil(remaining_ms / 1000),
            elapsed_seconds=math.floor(elapsed_ms / 1000),
        )
