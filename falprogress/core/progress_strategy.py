"""
Per-job progress strategy.

Picks the best signal available on every queue callback:
custom log parser → classified log line + call-count baseline → ETA projection.
Never raises; every call returns a ProgressUpdate with 0 <= step <= total.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from falprogress.core.constants import (
    QueueStatus, DEFAULT_TOTAL, QUEUE_STEP, COMPLETED_STEP,
    DEFAULT_MIN_START_STEP, DEFAULT_MAX_CAP_STEP,
    BASELINE_START, BASELINE_PER_CALL, BASELINE_MAX,
    DEFAULT_IN_QUEUE_MESSAGE, DEFAULT_FINALIZING_MESSAGE, ETA_MIN_EXPECTED_MS,
)
from falprogress.core.models import ProgressUpdate, QueueStatusEvent
from falprogress.core.log_parse import parse_log_line, combine_progress
from falprogress.core.eta_estimator import EtaEstimator

logger = logging.getLogger(__name__)

# Returns a ProgressUpdate (or any object with message/step/total), a
# {"message", "progress": {"step", "total"}} mapping, or None for no signal.
LogParser = Callable[[QueueStatusEvent, int], object]


def processing_step_message(call_count: int) -> str:
    return f"Processing step {call_count}..."


def _clamp_step(value, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid step setting %r, using %d", value, default)
        return default
    return max(0, min(DEFAULT_TOTAL, value))


def _coerce_expected_ms(value) -> int:
    try:
        return max(ETA_MIN_EXPECTED_MS, int(value))
    except (TypeError, ValueError):
        logger.warning("Invalid expected_ms %r, using %d", value, ETA_MIN_EXPECTED_MS)
        return ETA_MIN_EXPECTED_MS


@dataclass
class StrategyConfig:
    expected_ms: int
    min_start_step: int = DEFAULT_MIN_START_STEP
    max_cap_step: int = DEFAULT_MAX_CAP_STEP
    in_queue_message: str = DEFAULT_IN_QUEUE_MESSAGE
    finalizing_message: str = DEFAULT_FINALIZING_MESSAGE
    default_in_progress_message: Callable[[int], str] = processing_step_message
    log_parser: Optional[LogParser] = None


class ProgressStrategy:
    """
    Owns one job's progress state (ETA ratchet, plus whatever the log parser keeps).
    Create one per submitted job and drop it once the job is done.
    """

    def __init__(self, config: StrategyConfig, clock: Callable[[], float] | None = None):
        self.config = config
        self.min_start_step = _clamp_step(config.min_start_step, DEFAULT_MIN_START_STEP)
        self.max_cap_step = _clamp_step(config.max_cap_step, DEFAULT_MAX_CAP_STEP)
        self.eta = EtaEstimator(
            expected_ms=_coerce_expected_ms(config.expected_ms),
            min_start_step=self.min_start_step,
            max_cap_step=self.max_cap_step,
            clock=clock,
        )

    # ── Lifecycle callbacks ───────────────────────────────────────────

    def on_queue(self) -> ProgressUpdate:
        return ProgressUpdate(self.config.in_queue_message, QUEUE_STEP, DEFAULT_TOTAL)

    def on_progress(self, event: QueueStatusEvent, call_count: int) -> ProgressUpdate:
        update = self._from_log_parser(event, call_count)
        if update is not None:
            return update

        log_message = event.last_log_message
        if log_message is not None:
            parsed = parse_log_line(log_message)
            base = min(BASELINE_START + call_count * BASELINE_PER_CALL, BASELINE_MAX)
            step, total = combine_progress(base, parsed)
            message = (parsed.message or log_message
                       or self.config.default_in_progress_message(call_count))
            return ProgressUpdate(message, step, total)

        snap = self.eta.current()
        return ProgressUpdate(
            f"Processing... ({snap.elapsed_seconds}s elapsed, ~{snap.eta_seconds}s ETA)",
            snap.step, snap.total,
        )

    def on_completed(self) -> ProgressUpdate:
        # Reports 100% as soon as the remote job completes, before any
        # downstream result download the caller still has to do.
        return ProgressUpdate(self.config.finalizing_message, COMPLETED_STEP, DEFAULT_TOTAL)

    def handle(self, event: QueueStatusEvent, call_count: int) -> ProgressUpdate:
        """Dispatch a queue event to the matching lifecycle callback."""
        if event.status == QueueStatus.IN_QUEUE:
            return self.on_queue()
        if event.status == QueueStatus.COMPLETED:
            return self.on_completed()
        return self.on_progress(event, call_count)

    # ── Internals ─────────────────────────────────────────────────────

    def _from_log_parser(self, event: QueueStatusEvent, call_count: int) -> ProgressUpdate | None:
        parser = self.config.log_parser
        if parser is None:
            return None
        try:
            return _coerce_parser_result(parser(event, call_count))
        except Exception as e:
            logger.warning("Custom log parser failed: %s; using generic progress", e)
            return None


def create_progress_strategy(expected_ms: int,
                             min_start_step: int = DEFAULT_MIN_START_STEP,
                             max_cap_step: int = DEFAULT_MAX_CAP_STEP,
                             in_queue_message: str | None = None,
                             finalizing_message: str | None = None,
                             default_in_progress_message: Callable[[int], str] | None = None,
                             log_parser: LogParser | None = None,
                             clock: Callable[[], float] | None = None) -> ProgressStrategy:
    """Build a strategy from loose options, filling in the defaults."""
    config = StrategyConfig(
        expected_ms=expected_ms,
        min_start_step=min_start_step,
        max_cap_step=max_cap_step,
        in_queue_message=in_queue_message or DEFAULT_IN_QUEUE_MESSAGE,
        finalizing_message=finalizing_message or DEFAULT_FINALIZING_MESSAGE,
        default_in_progress_message=default_in_progress_message or processing_step_message,
        log_parser=log_parser,
    )
    return ProgressStrategy(config, clock=clock)


def _coerce_parser_result(parsed) -> ProgressUpdate | None:
    """Normalise a log parser result; None when it has no usable step/total."""
    if parsed is None:
        return None
    if isinstance(parsed, dict):
        progress = parsed.get('progress')
        if not isinstance(progress, dict):
            return None
        message, step, total = parsed.get('message'), progress.get('step'), progress.get('total')
    else:
        message, step, total = parsed.message, parsed.step, parsed.total

    if not total or step is None:
        return None
    total = int(total)
    if total <= 0:
        return None
    return ProgressUpdate(message or '', min(total, max(0, int(step))), total)
