import grpc
from google.api_core import exceptions as google_exceptions

from rtp_transcriber.errors import (
    ErrorCode,
    MalformedFrameError,
    SessionFatalError,
    SessionOpenError,
    SessionTransientError,
    classify_rpc_error,
    format_error,
    spec_for,
)


class _FakeRpcError(grpc.RpcError):
    def __init__(self, status, details=""):
        super().__init__()
        self._status = status
        self._details = details

    def code(self):
        return self._status

    def details(self):
        return self._details


def test_format_error_uses_code_and_detail():
    """Test format error uses code and detail."""
    assert format_error(ErrorCode.BIND_FAILED) == "ERR2001 transport endpoint unavailable"
    assert format_error(ErrorCode.BIND_FAILED, "port busy") == "ERR2001 port busy"


def test_exceptions_carry_code_and_fatality():
    """Test exceptions carry code and fatality."""
    error = SessionOpenError("no credentials")
    assert error.code == ErrorCode.SESSION_OPEN_FAILED
    assert error.fatal
    assert error.detail == "no credentials"
    assert str(error) == "ERR3001 no credentials"
    assert not spec_for(ErrorCode.SESSION_TRANSIENT).fatal


def test_malformed_frame_keeps_reason():
    """Test malformed frame keeps reason."""
    error = MalformedFrameError("short")
    assert error.reason == "short"
    assert not error.fatal


def test_out_of_range_rpc_is_transient():
    """Test out of range rpc is transient."""
    error = classify_rpc_error(
        _FakeRpcError(grpc.StatusCode.OUT_OF_RANGE, "Exceeded maximum allowed stream duration")
    )
    assert isinstance(error, SessionTransientError)
    assert "OUT_OF_RANGE" in error.detail


def test_permission_denied_rpc_is_fatal():
    """Test permission denied rpc is fatal."""
    error = classify_rpc_error(_FakeRpcError(grpc.StatusCode.PERMISSION_DENIED))
    assert isinstance(error, SessionFatalError)


def test_google_api_errors_are_classified():
    """Test google api errors are classified."""
    transient = classify_rpc_error(google_exceptions.OutOfRange("stream too long"))
    fatal = classify_rpc_error(google_exceptions.Unauthenticated("bad key"))
    assert isinstance(transient, SessionTransientError)
    assert "stream too long" in transient.detail
    assert isinstance(fatal, SessionFatalError)
