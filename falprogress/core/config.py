"""
Application configuration manager.
Stores progress defaults in a JSON file under ~/.config/fal-progress.
"""

import json
import logging
from pathlib import Path

from falprogress.core.constants import (
    CONFIG_PATH, DEFAULT_MIN_START_STEP, DEFAULT_MAX_CAP_STEP,
    DEFAULT_IN_QUEUE_MESSAGE, DEFAULT_FINALIZING_MESSAGE,
    DEFAULT_POLL_INTERVAL_SEC, DEFAULT_REQUEST_TIMEOUT_SEC,
    ETA_MIN_EXPECTED_MS,
)

# Validation bounds
_STEP_MIN = 0
_STEP_MAX = 100
_POLL_INTERVAL_MIN = 0.1
_POLL_INTERVAL_MAX = 60.0
_TIMEOUT_MIN = 1
_TIMEOUT_MAX = 120

DEFAULT_EXPECTED_MS = 30000

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'expected_ms': DEFAULT_EXPECTED_MS,
    'min_start_step': DEFAULT_MIN_START_STEP,
    'max_cap_step': DEFAULT_MAX_CAP_STEP,
    'in_queue_message': DEFAULT_IN_QUEUE_MESSAGE,
    'finalizing_message': DEFAULT_FINALIZING_MESSAGE,
    'poll_interval_sec': DEFAULT_POLL_INTERVAL_SEC,
    'request_timeout_sec': DEFAULT_REQUEST_TIMEOUT_SEC,
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = config_path or CONFIG_PATH
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load config: %s", e)
                return
            if not isinstance(saved, dict):
                logger.warning("Ignoring config file %s: not a JSON object", self.path)
                return
            for key, value in saved.items():
                self._data[key] = self._validate(key, value)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'expected_ms':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid expected_ms %r, using default", value)
                return DEFAULT_EXPECTED_MS
            return max(ETA_MIN_EXPECTED_MS, value)

        if key in ('min_start_step', 'max_cap_step'):
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r, using default", key, value)
                return _DEFAULTS[key]
            return max(_STEP_MIN, min(_STEP_MAX, value))

        if key == 'poll_interval_sec':
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Invalid poll_interval_sec %r, using default", value)
                return DEFAULT_POLL_INTERVAL_SEC
            return max(_POLL_INTERVAL_MIN, min(_POLL_INTERVAL_MAX, value))

        if key == 'request_timeout_sec':
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Invalid request_timeout_sec %r, using default", value)
                return DEFAULT_REQUEST_TIMEOUT_SEC
            return max(_TIMEOUT_MIN, min(_TIMEOUT_MAX, value))

        if key in ('in_queue_message', 'finalizing_message'):
            if not isinstance(value, str) or not value.strip():
                logger.warning("Invalid %s %r, using default", key, value)
                return _DEFAULTS[key]

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    def strategy_options(self) -> dict:
        """Keyword arguments for create_progress_strategy()."""
        return {
            'expected_ms': self._data['expected_ms'],
            'min_start_step': self._data['min_start_step'],
            'max_cap_step': self._data['max_cap_step'],
            'in_queue_message': self._data['in_queue_message'],
            'finalizing_message': self._data['finalizing_message'],
        }

    @property
    def poll_interval_sec(self) -> float:
        return self._data.get('poll_interval_sec', DEFAULT_POLL_INTERVAL_SEC)

    @property
    def request_timeout_sec(self) -> float:
        return self._data.get('request_timeout_sec', DEFAULT_REQUEST_TIMEOUT_SEC)
