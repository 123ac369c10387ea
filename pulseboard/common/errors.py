from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

@dataclass
class ApiError(Exception):
    """统一的业务错误，用于转换成契约规定的错误响应结构。"""
    code: str
    message: str
    http_status: int = 400
    data: Optional[dict[str, Any]] = None


class PulseboardError(Exception):
    """Base for domain errors raised below the HTTP layer."""

    code = "INTERNAL"
    http_status = 500

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_api_error(self, data: Optional[dict[str, Any]] = None) -> ApiError:
        return ApiError(code=self.code, message=self.message, http_status=self.http_status, data=data)


class StoreError(PulseboardError):
    """The event store rejected or could not perform a read/write."""

    code = "STORE_UNAVAILABLE"
    http_status = 503


class QueueUnavailableError(PulseboardError):
    """The durable queue (or the liveness record beside it) is not reachable."""

    code = "QUEUE_UNAVAILABLE"
    http_status = 503


class EnvelopeDecodeError(PulseboardError):
    """A queue item could not be turned into an EventEnvelope."""

    code = "INVALID_ENVELOPE"
    http_status = 400


class InvalidRangeError(PulseboardError):
    code = "INVALID_ARGUMENT"
    http_status = 400
