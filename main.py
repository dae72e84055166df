#!/usr/bin/env python3
"""
fal-progress — watch a fal queue request and print smoothed progress.

Usage:
    python3 main.py fal-ai/nano-banana <request_id> --expected-ms 20000
    python3 main.py fal-ai/bytedance/seedance/v1/lite/reference-to-video <request_id> \\
        --video-duration 5 --resolution 720p
"""

import sys
import logging
import argparse
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from falprogress.core.constants import APP_NAME, APP_VERSION, LOG_DIR
from falprogress.core.config import AppConfig
from falprogress.core.error_codes import QueueError
from falprogress.core.models import ProgressUpdate
from falprogress.core.progress_strategy import create_progress_strategy
from falprogress.core.presets import create_video_progress_strategy
from falprogress.core.queue_client import watch_request

logger = logging.getLogger(APP_NAME)


def setup_logging(verbose: bool = False):
    """Log to a file under ~/.cache/fal-progress/logs, and to stderr when verbose."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [
        logging.FileHandler(LOG_DIR / "app.log", encoding="utf-8"),
    ]
    if verbose:
        handlers.append(logging.StreamHandler(sys.stderr))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def print_update(update: ProgressUpdate):
    print(f"[{round(update.percent):3d}%] {update.message}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME, description=__doc__.strip().splitlines()[0])
    parser.add_argument("app_id", help="fal application id, e.g. fal-ai/nano-banana")
    parser.add_argument("request_id", help="queue request id returned on submission")
    parser.add_argument("--expected-ms", type=int, help="expected run time in milliseconds")
    parser.add_argument("--video-duration", type=float,
                        help="clip length in seconds; enables frame-based progress")
    parser.add_argument("--resolution", help="video resolution, e.g. 720p or 1080p")
    parser.add_argument("--interval", type=float, help="seconds between status polls")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.video_duration is not None and args.expected_ms is not None:
        parser.error("--expected-ms cannot be combined with --video-duration; "
                     "video run time is derived from the clip length")
    setup_logging(args.verbose)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())

    config = AppConfig()
    if args.video_duration is not None:
        strategy = create_video_progress_strategy(args.video_duration, args.resolution)
    else:
        options = config.strategy_options()
        if args.expected_ms:
            options['expected_ms'] = args.expected_ms
        strategy = create_progress_strategy(**options)

    try:
        watch_request(
            args.app_id, args.request_id, strategy,
            on_update=print_update,
            poll_interval=args.interval or config.poll_interval_sec,
            timeout=config.request_timeout_sec,
        )
    except QueueError as e:
        logger.error("Watching %s failed: %s", args.request_id, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
