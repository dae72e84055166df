"""
fal queue status polling.
Reads request status (with logs) and feeds it through a ProgressStrategy.
Submission and result download belong to the caller.
"""

import os
import json
import time
import logging
from typing import Callable, Optional

import requests

from falprogress.core.error_codes import QueueError
from falprogress.core.constants import (
    ErrorCode, QueueStatus, FAL_QUEUE_BASE, FAL_KEY_ENV,
    DEFAULT_POLL_INTERVAL_SEC, DEFAULT_REQUEST_TIMEOUT_SEC,
)
from falprogress.core.models import ProgressUpdate, QueueStatusEvent
from falprogress.core.progress_strategy import ProgressStrategy

logger = logging.getLogger(__name__)


def status_url(app_id: str, request_id: str) -> str:
    return f"{FAL_QUEUE_BASE}/{app_id.strip('/')}/requests/{request_id}/status"


def resolve_api_key(api_key: str | None = None) -> str:
    key = api_key or os.environ.get(FAL_KEY_ENV)
    if not key:
        raise QueueError(ErrorCode.MISSING_API_KEY,
                         f"{FAL_KEY_ENV} environment variable is required")
    return key


def fetch_status(app_id: str, request_id: str, api_key: str | None = None,
                 timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC,
                 session: requests.Session | None = None) -> QueueStatusEvent:
    """
    Fetch one status snapshot for a queued request, logs included.
    Raises QueueError on network, HTTP or payload problems.
    """
    headers = {"Authorization": f"Key {resolve_api_key(api_key)}"}
    http = session or requests

    try:
        resp = http.get(
            status_url(app_id, request_id),
            headers=headers,
            params={"logs": "1"},
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        raise QueueError(ErrorCode.QUEUE_TIMEOUT,
                         "Queue status request timed out", request_id=request_id)
    except requests.exceptions.ConnectionError:
        raise QueueError(ErrorCode.NETWORK_TRANSIENT,
                         "Network error connecting to the fal queue", request_id=request_id)
    except requests.exceptions.RequestException as e:
        raise QueueError(ErrorCode.QUEUE_STATUS_FAILED,
                         f"Queue status request failed: {e}", request_id=request_id)

    # fal answers 202 while the request is still queued or running
    if resp.status_code not in (200, 202):
        # never echo the key; body only
        error_body = resp.text[:300] if resp.text else "No response body"
        raise QueueError(ErrorCode.QUEUE_STATUS_FAILED,
                         f"Queue returned {resp.status_code}: {error_body}",
                         status_code=resp.status_code, request_id=request_id)

    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError):
        raise QueueError(ErrorCode.QUEUE_BAD_RESPONSE,
                         "Failed to parse queue status JSON", request_id=request_id)

    if not isinstance(payload, dict):
        raise QueueError(ErrorCode.QUEUE_BAD_RESPONSE,
                         f"Unexpected queue status payload: {type(payload).__name__}",
                         request_id=request_id)

    event = QueueStatusEvent.from_dict(payload)
    if event.request_id is None:
        event.request_id = request_id
    return event


def watch_request(app_id: str, request_id: str, strategy: ProgressStrategy,
                  on_update: Optional[Callable[[ProgressUpdate], None]] = None,
                  poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
                  api_key: str | None = None,
                  timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC,
                  max_polls: int | None = None,
                  sleep: Callable[[float], None] = time.sleep) -> ProgressUpdate | None:
    """
    Poll a request until it completes, reporting each status through the strategy.
    Returns the last update sent (the completion update when the job finished).
    """
    key = resolve_api_key(api_key)
    call_count = 0
    polls = 0
    last_update: ProgressUpdate | None = None

    with requests.Session() as session:
        while max_polls is None or polls < max_polls:
            event = fetch_status(app_id, request_id, key, timeout=timeout, session=session)
            polls += 1

            if event.status == QueueStatus.IN_PROGRESS:
                call_count += 1
            last_update = strategy.handle(event, call_count)

            logger.debug("Request %s %s: %s (%d/%d)", request_id, event.status,
                         last_update.message, last_update.step, last_update.total)
            if on_update:
                on_update(last_update)

            if event.status == QueueStatus.COMPLETED:
                logger.info("Request %s completed after %d polls", request_id, polls)
                return last_update

            sleep(poll_interval)

    logger.warning("Stopped watching request %s after %d polls", request_id, polls)
    return last_update
