"""
MODULE OVERVIEW:
The error taxonomy used at the edge of the retry layer.

WHAT IS HAPPENING HERE:
Upstream failures arrive in many shapes: httpx exceptions, builtin socket and
timeout errors, or database client errors that only carry a `status`, a
Postgres `code` or a message. `describe_error()` maps any of them ONCE into an
`ErrorInfo` tagged with a closed `ErrorKind`, so retry policies branch on a
stable enum instead of sniffing attributes on every call.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx


class ErrorKind(str, Enum):
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    CLIENT = "client"
    SERVER = "server"
    VALIDATION = "validation"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


class PortalError(Exception):
    """Base class for errors raised by our own service adapters."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_status: int | None = None

    def __init__(self, message: str = "", status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status
        self.code = code


class NetworkError(PortalError):
    kind = ErrorKind.NETWORK


class RateLimitedError(PortalError):
    kind = ErrorKind.RATE_LIMITED
    default_status = 429

    def __init__(self, message: str = "Rate limit exceeded", retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ClientError(PortalError):
    kind = ErrorKind.CLIENT
    default_status = 400


class ServerError(PortalError):
    kind = ErrorKind.SERVER
    default_status = 500


class ValidationError(PortalError):
    kind = ErrorKind.VALIDATION
    default_status = 422


class PermissionDeniedError(PortalError):
    kind = ErrorKind.PERMISSION
    default_status = 403


class CircuitOpenError(Exception):
    """Raised when the circuit breaker is open and rejecting calls."""

    def __init__(self, message: str = "Circuit breaker is OPEN - service temporarily unavailable"):
        super().__init__(message)


class RetryAbortedError(Exception):
    """Raised when a retry loop is aborted through its abort signal."""

    def __init__(self, attempts: int, message: str | None = None):
        super().__init__(message or f"Retry aborted after {attempts} attempt(s)")
        self.attempts = attempts


@dataclass(frozen=True)
class ErrorInfo:
    kind: ErrorKind
    status: int | None
    code: str | None
    message: str

    @property
    def is_client_status(self) -> bool:
        return self.status is not None and 400 <= self.status < 500


_NETWORK_MARKERS = ("failed to fetch", "networkerror", "timeout", "timed out")
_PERMISSION_MARKERS = ("permission denied", "row-level security", "row level security")
_FILE_VALIDATION_MARKERS = ("file size", "too large", "file type", "mime type", "unsupported media")
_NETWORK_CODES = {"ETIMEDOUT", "ECONNRESET", "ECONNREFUSED", "ENOTFOUND"}


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _kind_from_status(status: int) -> ErrorKind:
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status in (401, 403):
        return ErrorKind.PERMISSION
    if status in (413, 415, 422):
        return ErrorKind.VALIDATION
    if 400 <= status < 500:
        return ErrorKind.CLIENT
    if status >= 500:
        return ErrorKind.SERVER
    return ErrorKind.UNKNOWN


def describe_error(exc: BaseException) -> ErrorInfo:
    """Classify any exception into an `ErrorInfo`."""
    message = str(getattr(exc, "message", None) or exc)

    if isinstance(exc, PortalError):
        return ErrorInfo(exc.kind, exc.status, exc.code, message)

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return ErrorInfo(_kind_from_status(status), status, None, message)
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorInfo(ErrorKind.NETWORK, None, None, message)
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorInfo(ErrorKind.NETWORK, None, None, message)

    status = _status_of(exc)
    raw_code = getattr(exc, "code", None)
    code = str(raw_code) if raw_code is not None else None
    lowered = message.lower()

    # Order matters: Postgres codes are authoritative, then transport symptoms,
    # then rate limiting, then message hints, then plain status ranges.
    if code is not None and code.startswith("23"):
        return ErrorInfo(ErrorKind.VALIDATION, status, code, message)
    if code == "42501":
        return ErrorInfo(ErrorKind.PERMISSION, status, code, message)
    if code in _NETWORK_CODES or any(marker in lowered for marker in _NETWORK_MARKERS):
        return ErrorInfo(ErrorKind.NETWORK, status, code, message)
    if status == 429:
        return ErrorInfo(ErrorKind.RATE_LIMITED, status, code, message)
    if "RLS" in message or any(marker in lowered for marker in _PERMISSION_MARKERS):
        return ErrorInfo(ErrorKind.PERMISSION, status, code, message)
    if any(marker in lowered for marker in _FILE_VALIDATION_MARKERS):
        return ErrorInfo(ErrorKind.VALIDATION, status, code, message)
    if status is not None:
        return ErrorInfo(_kind_from_status(status), status, code, message)
    return ErrorInfo(ErrorKind.UNKNOWN, None, code, message)
