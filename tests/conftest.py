from typing import Callable, List, Optional

import pytest

from rtp_transcriber.backend.provider.base import (
    RecognitionProvider,
    RecognitionResult,
    SessionCallbacks,
    SessionHandle,
)
from rtp_transcriber.errors import SessionError, SessionOpenError


class FakeSession(SessionHandle):
    def __init__(self, index: int, callbacks: SessionCallbacks) -> None:
        self.index = index
        self.installed_callbacks = callbacks
        self._callbacks = callbacks
        self.writes: List[bytes] = []
        self.detached = False
        self.closed = False

    @property
    def is_open(self) -> bool:
        return not self.closed

    def write(self, payload: bytes) -> None:
        if self.closed:
            return
        self.writes.append(payload)

    def detach(self) -> None:
        self.detached = True
        self._callbacks = SessionCallbacks()

    def close(self) -> None:
        self.closed = True

    def emit_result(self, result: RecognitionResult) -> None:
        self._callbacks.on_result(result)

    def emit_error(self, error: SessionError) -> None:
        self._callbacks.on_error(error)


class FakeProvider(RecognitionProvider):
    name = "fake"

    def __init__(self) -> None:
        self.sessions: List[FakeSession] = []
        self.fail_on_open: set = set()
        self.max_open = 0

    def open_session(self, callbacks: SessionCallbacks) -> FakeSession:
        index = len(self.sessions)
        if index in self.fail_on_open:
            raise SessionOpenError(f"open {index} refused")
        session = FakeSession(index, callbacks)
        self.sessions.append(session)
        open_count = sum(1 for s in self.sessions if s.is_open)
        self.max_open = max(self.max_open, open_count)
        return session

    @property
    def current(self) -> Optional[FakeSession]:
        return self.sessions[-1] if self.sessions else None


class FakeTimer:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_timers() -> FakeTimerFactory:
    return FakeTimerFactory()
