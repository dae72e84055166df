"""
Shared constants for fal-progress.
Single source of truth — imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "fal-progress"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_CONFIG_DIR = HOME / ".config" / APP_NAME
CONFIG_PATH = APP_CONFIG_DIR / "config.json"
LOG_DIR = HOME / ".cache" / APP_NAME / "logs"

# ── Queue status values (as reported by the fal queue API) ───────────
class QueueStatus:
    IN_QUEUE = "IN_QUEUE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

TERMINAL_STATUSES = {QueueStatus.COMPLETED}

# Finished job ids remembered so late callbacks are ignored
FINISHED_JOBS_MEMORY = 1024

# ── Pipeline stages inferred from log text (ordered) ─────────────────
class Stage:
    QUEUE = "queue"
    PREPROCESSING = "preprocessing"
    ENCODING = "encoding"
    INFERENCE = "inference"
    POSTPROCESSING = "postprocessing"
    UPLOADING = "uploading"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    UNKNOWN = "unknown"

# ── Progress mapping (against DEFAULT_TOTAL) ─────────────────────────
DEFAULT_TOTAL = 100

PROGRESS_QUEUE = 1
PROGRESS_PREPROCESSING = 5
PROGRESS_ENCODING = 10
PROGRESS_INFERENCE = 40
PROGRESS_POSTPROCESSING = 70
PROGRESS_UPLOADING = 90
PROGRESS_FINALIZING = 95
PROGRESS_COMPLETED = 100
PROGRESS_UNKNOWN = 50
PROGRESS_EMPTY = 0

# First matching group wins. Reordering changes classification results.
STAGE_KEYWORDS = (
    (("queue", "queued"), Stage.QUEUE, PROGRESS_QUEUE),
    (("preprocess", "prepare"), Stage.PREPROCESSING, PROGRESS_PREPROCESSING),
    (("encode", "tokenize"), Stage.ENCODING, PROGRESS_ENCODING),
    (("inference", "sampling", "denoise"), Stage.INFERENCE, PROGRESS_INFERENCE),
    (("render", "compose", "stitch"), Stage.POSTPROCESSING, PROGRESS_POSTPROCESSING),
    (("upload",), Stage.UPLOADING, PROGRESS_UPLOADING),
    (("finalizing", "finalize"), Stage.FINALIZING, PROGRESS_FINALIZING),
    (("complete", "done"), Stage.COMPLETED, PROGRESS_COMPLETED),
)

# ── Strategy defaults ────────────────────────────────────────────────
QUEUE_STEP = 5
COMPLETED_STEP = 100

DEFAULT_MIN_START_STEP = 10
DEFAULT_MAX_CAP_STEP = 98

# Call-count baseline used alongside classified log lines
BASELINE_START = 20
BASELINE_PER_CALL = 3
BASELINE_MAX = 92

DEFAULT_IN_QUEUE_MESSAGE = "Waiting in queue..."
DEFAULT_FINALIZING_MESSAGE = "Finalizing..."
EMPTY_LOG_MESSAGE = "Processing..."

# ── ETA estimator ─────────────────────────────────────────────────────
ETA_MIN_EXPECTED_MS = 2000
ETA_MIN_START_STEP = 5
ETA_MAX_RATIO = 0.99

# ── Frame parser ──────────────────────────────────────────────────────
DEFAULT_FRAME_PATTERN = r"Animating frame\s+(\d+)"
DEFAULT_TOTAL_FRAMES = 200
MIN_TOTAL_FRAMES = 10
FRAME_HEADROOM = 5
DEFAULT_FRAME_CAP_PERCENT = 98
FRAME_CAP_MIN = 50
FRAME_CAP_MAX = 99

# ── Presets ───────────────────────────────────────────────────────────
VIDEO_FPS = 24
VIDEO_DEFAULT_DURATION_SEC = 5
RESOLUTION_EXTRA_MS = {
    "1080p": 20000,
    "720p": 10000,
}
IMAGE_MS_PER_IMAGE = 8000
IMAGE_MIN_EXPECTED_MS = 15000
IMAGE_MAX_EXPECTED_MS = 120000

# ── fal queue API ─────────────────────────────────────────────────────
FAL_QUEUE_BASE = "https://queue.fal.run"
FAL_KEY_ENV = "FAL_KEY"
DEFAULT_POLL_INTERVAL_SEC = 1.0
DEFAULT_REQUEST_TIMEOUT_SEC = 10

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Non-retryable
    MISSING_API_KEY = "ERR_MISSING_API_KEY"
    QUEUE_STATUS_FAILED = "ERR_QUEUE_STATUS_FAILED"
    QUEUE_BAD_RESPONSE = "ERR_QUEUE_BAD_RESPONSE"

    # Retryable
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    QUEUE_TIMEOUT = "ERR_QUEUE_TIMEOUT"

RETRYABLE_ERRORS = {
    ErrorCode.NETWORK_TRANSIENT,
    ErrorCode.QUEUE_TIMEOUT,
}
