"""
Progress Tracker.
Keeps one ProgressStrategy per job and routes queue events to it.
Emits progress callbacks for UI updates.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

from falprogress.core.constants import QueueStatus, TERMINAL_STATUSES, FINISHED_JOBS_MEMORY
from falprogress.core.models import ProgressUpdate, QueueStatusEvent
from falprogress.core.progress_strategy import ProgressStrategy

logger = logging.getLogger(__name__)


@dataclass
class _JobEntry:
    strategy: ProgressStrategy
    call_count: int = 0
    final_update: Optional[ProgressUpdate] = None
    lock: threading.Lock = field(default_factory=threading.Lock)


class ProgressTracker:
    """
    Routes status events to per-job strategies.
    Callbacks for the same job are serialized; different jobs never share state.
    Once a job completes, later events for it are ignored and answered with
    the completion update.
    """

    def __init__(self, strategy_factory: Callable[[str], ProgressStrategy],
                 on_update: Optional[Callable[[str, ProgressUpdate], None]] = None):
        self.strategy_factory = strategy_factory
        self.on_update = on_update
        self._jobs: dict[str, _JobEntry] = {}
        self._finished: OrderedDict[str, ProgressUpdate] = OrderedDict()
        self._lock = threading.Lock()

    # ── Job management ────────────────────────────────────────────────

    def track(self, job_id: str, strategy: ProgressStrategy | None = None) -> ProgressStrategy:
        """Register a job, building its strategy from the factory unless given.
        Tracking a finished job id again starts it afresh."""
        with self._lock:
            self._finished.pop(job_id, None)
            return self._get_or_create(job_id, strategy).strategy

    def _get_or_create(self, job_id: str, strategy: ProgressStrategy | None = None) -> _JobEntry:
        entry = self._jobs.get(job_id)
        if entry is None:
            entry = _JobEntry(strategy or self.strategy_factory(job_id))
            self._jobs[job_id] = entry
        return entry

    def discard(self, job_id: str):
        with self._lock:
            self._jobs.pop(job_id, None)

    def active_jobs(self) -> list[str]:
        with self._lock:
            return list(self._jobs)

    def is_finished(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._finished

    def call_count(self, job_id: str) -> int:
        with self._lock:
            entry = self._jobs.get(job_id)
        return entry.call_count if entry else 0

    # ── Event routing ─────────────────────────────────────────────────

    def handle_event(self, job_id: str, event: QueueStatusEvent) -> ProgressUpdate:
        """Compute the update for one event, notify the sink, and forget finished jobs."""
        with self._lock:
            final = self._finished.get(job_id)
            entry = None if final is not None else self._get_or_create(job_id)
        if final is not None:
            logger.debug("Ignoring %s event for finished job %s", event.status, job_id)
            return final

        with entry.lock:
            if entry.final_update is not None:
                # completed while this callback waited for the lock
                logger.debug("Ignoring %s event for finished job %s", event.status, job_id)
                return entry.final_update

            if event.status == QueueStatus.IN_PROGRESS:
                entry.call_count += 1
            update = entry.strategy.handle(event, entry.call_count)

            if event.status in TERMINAL_STATUSES:
                entry.final_update = update
                self._mark_finished(job_id, entry, update)

        self._notify(job_id, update)
        return update

    def _mark_finished(self, job_id: str, entry: _JobEntry, update: ProgressUpdate):
        with self._lock:
            if self._jobs.get(job_id) is entry:
                del self._jobs[job_id]
            self._finished[job_id] = update
            while len(self._finished) > FINISHED_JOBS_MEMORY:
                self._finished.popitem(last=False)

    def _notify(self, job_id: str, update: ProgressUpdate):
        if not self.on_update:
            return
        try:
            self.on_update(job_id, update)
        except Exception as e:
            logger.error("Progress callback failed for job %s: %s", job_id, e, exc_info=True)
