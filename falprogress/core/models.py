"""
Plain dataclasses passed between the progress components.
"""

from dataclasses import dataclass, field
from typing import Optional

from falprogress.core.constants import DEFAULT_TOTAL, QueueStatus


@dataclass
class ProgressUpdate:
    message: str
    step: int
    total: int = DEFAULT_TOTAL

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.step * 100.0 / self.total

    def as_dict(self) -> dict:
        """Shape consumed by status sinks: message + progress{step, total}."""
        return {
            'message': self.message,
            'progress': {'step': self.step, 'total': self.total},
        }


@dataclass
class ParsedLogInfo:
    stage: str
    message: str
    step: int
    total: int = DEFAULT_TOTAL


@dataclass
class EtaSnapshot:
    step: int
    total: int
    eta_seconds: int
    elapsed_seconds: int


@dataclass
class LogLine:
    message: str = ""
    level: Optional[str] = None
    source: Optional[str] = None
    timestamp: Optional[str] = None

    @classmethod
    def from_dict(cls, data) -> "LogLine":
        if isinstance(data, str):
            return cls(message=data)
        if not isinstance(data, dict):
            return cls()
        message = data.get('message')
        return cls(
            message=message if isinstance(message, str) else "",
            level=data.get('level'),
            source=data.get('source'),
            timestamp=data.get('timestamp'),
        )


@dataclass
class QueueStatusEvent:
    status: str
    logs: list[LogLine] = field(default_factory=list)
    queue_position: Optional[int] = None
    request_id: Optional[str] = None

    @property
    def last_log_message(self) -> Optional[str]:
        """Text of the newest log entry, or None when it carries no usable text."""
        if not self.logs or not isinstance(self.logs, (list, tuple)):
            return None
        entry = self.logs[-1]
        if isinstance(entry, dict):
            message = entry.get('message')
        else:
            message = getattr(entry, 'message', None)
        return message if isinstance(message, str) else None

    @classmethod
    def from_dict(cls, data: dict) -> "QueueStatusEvent":
        """Build an event from a queue API payload, ignoring anything malformed."""
        raw_logs = data.get('logs')
        logs = [LogLine.from_dict(item) for item in raw_logs] if isinstance(raw_logs, list) else []
        position = data.get('queue_position')
        return cls(
            status=str(data.get('status', '')),
            logs=logs,
            queue_position=position if isinstance(position, int) else None,
            request_id=data.get('request_id'),
        )

    @classmethod
    def queued(cls, queue_position: int | None = None) -> "QueueStatusEvent":
        return cls(status=QueueStatus.IN_QUEUE, queue_position=queue_position)

    @classmethod
    def in_progress(cls, *messages: str) -> "QueueStatusEvent":
        return cls(status=QueueStatus.IN_PROGRESS,
                   logs=[LogLine(message=m) for m in messages])

    @classmethod
    def completed(cls) -> "QueueStatusEvent":
        return cls(status=QueueStatus.COMPLETED)
