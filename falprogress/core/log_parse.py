"""
Queue log line → coarse pipeline stage + baseline step.
Keyword heuristics only, safe to use across every model endpoint.
"""

from falprogress.core.constants import (
    Stage, STAGE_KEYWORDS, DEFAULT_TOTAL,
    PROGRESS_EMPTY, PROGRESS_UNKNOWN, EMPTY_LOG_MESSAGE,
)
from falprogress.core.models import ParsedLogInfo


def parse_log_line(raw_message: str | None = None) -> ParsedLogInfo:
    """
    Classify a single log line.
    Keyword groups are checked in order and the first match wins.
    """
    message = raw_message.strip() if isinstance(raw_message, str) else ''

    if not message:
        return ParsedLogInfo(Stage.UNKNOWN, EMPTY_LOG_MESSAGE, PROGRESS_EMPTY, DEFAULT_TOTAL)

    lower = message.lower()

    for keywords, stage, step in STAGE_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return ParsedLogInfo(stage, message, step, DEFAULT_TOTAL)

    # Unrecognised text keeps its wording at a neutral midpoint
    return ParsedLogInfo(Stage.UNKNOWN, message, PROGRESS_UNKNOWN, DEFAULT_TOTAL)


def combine_progress(base_step: int, info: ParsedLogInfo | None = None) -> tuple[int, int]:
    """Merge a call-count baseline with a classified step. Returns (step, total)."""
    total = info.total if info is not None and info.total else DEFAULT_TOTAL
    parsed_step = info.step if info is not None and info.step is not None else 0
    step = min(total, max(0, base_step, parsed_step))
    return step, total
