"""
Ready-made strategies for the job families we submit: image batches and
frame-animated video.
"""

import math
from typing import Callable

from falprogress.core.constants import (
    DEFAULT_TOTAL, DEFAULT_IN_QUEUE_MESSAGE,
    VIDEO_FPS, VIDEO_DEFAULT_DURATION_SEC, RESOLUTION_EXTRA_MS,
    ETA_MIN_EXPECTED_MS, MIN_TOTAL_FRAMES,
    IMAGE_MS_PER_IMAGE, IMAGE_MIN_EXPECTED_MS, IMAGE_MAX_EXPECTED_MS,
)
from falprogress.core.models import ProgressUpdate
from falprogress.core.frame_parser import FrameLogParser
from falprogress.core.progress_strategy import StrategyConfig, ProgressStrategy


class QueueStartStrategy(ProgressStrategy):
    """ProgressStrategy whose queued step is fixed by the caller instead of 5%."""

    def __init__(self, config: StrategyConfig, queue_step: int, clock=None):
        super().__init__(config, clock=clock)
        self.queue_step = max(0, min(DEFAULT_TOTAL, int(queue_step)))

    def on_queue(self) -> ProgressUpdate:
        return ProgressUpdate(self.config.in_queue_message, self.queue_step, DEFAULT_TOTAL)


def video_expected_ms(duration_sec: float | None, resolution: str | None = None) -> int:
    """Rough render time: one second per clip second, plus a resolution surcharge."""
    duration = duration_sec or VIDEO_DEFAULT_DURATION_SEC
    expected_ms = max(ETA_MIN_EXPECTED_MS, math.floor(duration * 1000))
    return expected_ms + RESOLUTION_EXTRA_MS.get(resolution or '', 0)


def video_total_frames(duration_sec: float | None) -> int:
    duration = duration_sec or VIDEO_DEFAULT_DURATION_SEC
    return max(MIN_TOTAL_FRAMES, math.floor(duration * VIDEO_FPS))


def create_video_progress_strategy(duration_sec: float | None,
                                   resolution: str | None = None,
                                   queue_start_step: int | None = None,
                                   in_queue_message: str | None = None,
                                   finalizing_message: str | None = None,
                                   default_in_progress_message: Callable[[int], str] | None = None,
                                   clock=None) -> ProgressStrategy:
    """
    Strategy for video jobs that log "Animating frame N".
    Frame numbers drive progress; the ETA projection covers silent stretches.
    """
    config = StrategyConfig(
        expected_ms=video_expected_ms(duration_sec, resolution),
        in_queue_message=in_queue_message or DEFAULT_IN_QUEUE_MESSAGE,
        finalizing_message=finalizing_message or "Finalizing video...",
        default_in_progress_message=default_in_progress_message or (lambda n: f"Animating frame {n}..."),
        log_parser=FrameLogParser(initial_total_frames=video_total_frames(duration_sec)),
    )
    if queue_start_step is not None:
        return QueueStartStrategy(config, queue_start_step, clock=clock)
    return ProgressStrategy(config, clock=clock)


def expected_ms_for_images(num_images: int) -> int:
    return min(IMAGE_MAX_EXPECTED_MS, max(IMAGE_MIN_EXPECTED_MS, num_images * IMAGE_MS_PER_IMAGE))


def create_image_progress_strategy(num_images: int = 1, clock=None) -> ProgressStrategy:
    config = StrategyConfig(
        expected_ms=expected_ms_for_images(num_images),
        finalizing_message="Finalizing images...",
    )
    return ProgressStrategy(config, clock=clock)
