"""Centralized error codes and session error classification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional

import grpc


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced in logs and metrics."""

    # configuration (ERR100x)
    CONFIG_INVALID = "ERR1001"

    # transport (ERR200x)
    BIND_FAILED = "ERR2001"
    MALFORMED_FRAME = "ERR2002"
    SINK_WRITE_FAILED = "ERR2003"
    RECEIVE_FAILED = "ERR2004"

    # recognition session (ERR300x)
    SESSION_OPEN_FAILED = "ERR3001"
    SESSION_TRANSIENT = "ERR3002"
    SESSION_FATAL = "ERR3003"

    # lifecycle (ERR400x)
    TEARDOWN_FAILED = "ERR4001"


@dataclass(frozen=True)
class ErrorSpec:
    """Maps an error code to its default message and fatality."""

    code: ErrorCode
    fatal: bool
    message: str


ERROR_SPECS: Final[dict[ErrorCode, ErrorSpec]] = {
    ErrorCode.CONFIG_INVALID: ErrorSpec(
        ErrorCode.CONFIG_INVALID,
        True,
        "invalid configuration",
    ),
    ErrorCode.BIND_FAILED: ErrorSpec(
        ErrorCode.BIND_FAILED,
        True,
        "transport endpoint unavailable",
    ),
    ErrorCode.MALFORMED_FRAME: ErrorSpec(
        ErrorCode.MALFORMED_FRAME,
        False,
        "malformed datagram dropped",
    ),
    ErrorCode.SINK_WRITE_FAILED: ErrorSpec(
        ErrorCode.SINK_WRITE_FAILED,
        False,
        "debug audio sink write failed",
    ),
    ErrorCode.RECEIVE_FAILED: ErrorSpec(
        ErrorCode.RECEIVE_FAILED,
        True,
        "transport receive failed",
    ),
    ErrorCode.SESSION_OPEN_FAILED: ErrorSpec(
        ErrorCode.SESSION_OPEN_FAILED,
        True,
        "recognition session failed to start",
    ),
    ErrorCode.SESSION_TRANSIENT: ErrorSpec(
        ErrorCode.SESSION_TRANSIENT,
        False,
        "recognition session expired or interrupted",
    ),
    ErrorCode.SESSION_FATAL: ErrorSpec(
        ErrorCode.SESSION_FATAL,
        True,
        "recognition session failed",
    ),
    ErrorCode.TEARDOWN_FAILED: ErrorSpec(
        ErrorCode.TEARDOWN_FAILED,
        False,
        "resource release failed",
    ),
}

# gRPC statuses the provider uses for stream-duration limits and
# recoverable interruptions.
TRANSIENT_STATUS: Final[frozenset[grpc.StatusCode]] = frozenset(
    {
        grpc.StatusCode.OUT_OF_RANGE,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.ABORTED,
    }
)


def spec_for(code: ErrorCode) -> ErrorSpec:
    """Return the ErrorSpec for a given error code."""
    return ERROR_SPECS[code]


def format_error(code: ErrorCode, detail: Optional[str] = None) -> str:
    """Format an error code and optional detail into a message."""
    spec = ERROR_SPECS[code]
    message = detail if detail else spec.message
    return f"{spec.code.value} {message}"


class TranscriberError(RuntimeError):
    """Base class for application-defined errors with code metadata."""

    code: ErrorCode = ErrorCode.SESSION_FATAL

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or ERROR_SPECS[self.code].message
        self.fatal = ERROR_SPECS[self.code].fatal
        super().__init__(format_error(self.code, detail))


class ConfigError(TranscriberError):
    code = ErrorCode.CONFIG_INVALID


class BindError(TranscriberError):
    code = ErrorCode.BIND_FAILED


class MalformedFrameError(TranscriberError):
    code = ErrorCode.MALFORMED_FRAME

    def __init__(self, reason: str, detail: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(detail)


class SinkWriteError(TranscriberError):
    code = ErrorCode.SINK_WRITE_FAILED


class ReceiveError(TranscriberError):
    code = ErrorCode.RECEIVE_FAILED


class SessionError(TranscriberError):
    """Errors raised or reported by a recognition session."""


class SessionOpenError(SessionError):
    code = ErrorCode.SESSION_OPEN_FAILED


class SessionTransientError(SessionError):
    code = ErrorCode.SESSION_TRANSIENT


class SessionFatalError(SessionError):
    code = ErrorCode.SESSION_FATAL


class TeardownError(TranscriberError):
    code = ErrorCode.TEARDOWN_FAILED


def _status_of(exc: Exception) -> Optional[grpc.StatusCode]:
    # google-api-core wraps grpc.RpcError and keeps the status on the wrapper.
    wrapped = getattr(exc, "grpc_status_code", None)
    if isinstance(wrapped, grpc.StatusCode):
        return wrapped
    code_fn = getattr(exc, "code", None)
    if not callable(code_fn):
        return None
    try:
        status = code_fn()
    except Exception:  # pylint: disable=broad-exception-caught
        return None
    return status if isinstance(status, grpc.StatusCode) else None


def classify_rpc_error(exc: Exception) -> SessionError:
    """Map a provider RPC failure onto a transient or fatal session error."""
    status = _status_of(exc)
    details = getattr(exc, "message", None) or ""
    details_fn = getattr(exc, "details", None)
    if not details and callable(details_fn):
        try:
            details = details_fn() or ""
        except Exception:  # pylint: disable=broad-exception-caught
            details = ""
    name = status.name if status is not None else "UNKNOWN"
    detail = f"{name}: {details}" if details else name
    if status in TRANSIENT_STATUS:
        return SessionTransientError(detail)
    return SessionFatalError(detail)


__all__ = [
    "ErrorCode",
    "ErrorSpec",
    "ERROR_SPECS",
    "TRANSIENT_STATUS",
    "BindError",
    "ConfigError",
    "MalformedFrameError",
    "ReceiveError",
    "SessionError",
    "SessionFatalError",
    "SessionOpenError",
    "SessionTransientError",
    "SinkWriteError",
    "TeardownError",
    "TranscriberError",
    "classify_rpc_error",
    "format_error",
    "spec_for",
]
