"""
Errors raised by the fal queue client.
The progress engine itself never raises.
"""

from falprogress.core.constants import RETRYABLE_ERRORS


class QueueError(Exception):
    """Raised when the queue status endpoint cannot be read."""

    def __init__(self, code: str, message: str, retryable: bool | None = None,
                 status_code: int | None = None, request_id: str | None = None):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        if retryable is None:
            # server-side HTTP failures are worth another poll; otherwise go by code
            retryable = (status_code is not None and status_code >= 500) or code in RETRYABLE_ERRORS
        self.retryable = retryable
        super().__init__(str(self))

    def __str__(self) -> str:
        where = f" (request {self.request_id})" if self.request_id else ""
        http = f" HTTP {self.status_code}" if self.status_code is not None else ""
        return f"[{self.code}{http}] {self.message}{where}"


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS
