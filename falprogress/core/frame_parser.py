"""
Frame-number log parser for video jobs that print "Animating frame N".
Plugs into a ProgressStrategy as its custom log parser.
"""

import re
import math
import logging

from falprogress.core.constants import (
    DEFAULT_TOTAL, DEFAULT_FRAME_PATTERN, DEFAULT_TOTAL_FRAMES, MIN_TOTAL_FRAMES,
    FRAME_HEADROOM, DEFAULT_FRAME_CAP_PERCENT, FRAME_CAP_MIN, FRAME_CAP_MAX,
)
from falprogress.core.models import ProgressUpdate, QueueStatusEvent

logger = logging.getLogger(__name__)

_DEFAULT_FRAME_RE = re.compile(DEFAULT_FRAME_PATTERN, re.IGNORECASE)


class FrameLogParser:
    """
    Turns frame numbers into a percentage of an estimated frame total.
    The total starts from a hint and grows when a higher frame shows up,
    so it never shrinks within one job.
    """

    def __init__(self, frame_regex: str | re.Pattern | None = None,
                 initial_total_frames: int | None = DEFAULT_TOTAL_FRAMES,
                 hard_cap_percent: int | None = DEFAULT_FRAME_CAP_PERCENT):
        if frame_regex is None:
            self.regex = _DEFAULT_FRAME_RE
        elif isinstance(frame_regex, str):
            self.regex = re.compile(frame_regex, re.IGNORECASE)
        else:
            self.regex = frame_regex
        if initial_total_frames is None:
            initial_total_frames = DEFAULT_TOTAL_FRAMES
        if hard_cap_percent is None:
            hard_cap_percent = DEFAULT_FRAME_CAP_PERCENT
        self._total_frames = max(MIN_TOTAL_FRAMES, int(initial_total_frames))
        self.hard_cap_percent = min(FRAME_CAP_MAX, max(FRAME_CAP_MIN, int(hard_cap_percent)))

    @property
    def total_frames(self) -> int:
        return self._total_frames

    def parse_line(self, line: str | None) -> ProgressUpdate | None:
        """Return a frame-based update, or None when the line carries no frame number."""
        if not isinstance(line, str) or not line:
            return None
        match = self.regex.search(line)
        if not match or not match.groups():
            return None
        try:
            frame = int(match.group(1))
        except (TypeError, ValueError):
            return None

        if frame > self._total_frames:
            # leave headroom so the next frame does not read as 100%
            self._total_frames = frame + FRAME_HEADROOM
            logger.debug("Frame %d beyond estimate, total frames now %d", frame, self._total_frames)

        percent = min(self.hard_cap_percent, math.floor(frame / self._total_frames * 100))
        return ProgressUpdate(f"Animating frame {frame}...", max(0, percent), DEFAULT_TOTAL)

    def __call__(self, event: QueueStatusEvent, call_count: int) -> ProgressUpdate | None:
        return self.parse_line(event.last_log_message)


def create_frame_log_parser(frame_regex: str | re.Pattern | None = None,
                            initial_total_frames: int | None = DEFAULT_TOTAL_FRAMES,
                            hard_cap_percent: int | None = DEFAULT_FRAME_CAP_PERCENT) -> FrameLogParser:
    return FrameLogParser(frame_regex, initial_total_frames, hard_cap_percent)
