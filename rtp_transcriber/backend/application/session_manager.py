"""Provider session lifecycle with expiry-driven restarts."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from rtp_transcriber.backend.application.result_router import ResultRouter
from rtp_transcriber.backend.application.types import ManagerState, SessionEpoch
from rtp_transcriber.backend.component.continuity_buffer import (
    ContinuityBuffer,
    RotationPlan,
)
from rtp_transcriber.backend.provider.base import (
    RecognitionProvider,
    RecognitionResult,
    SessionCallbacks,
    SessionHandle,
)
from rtp_transcriber.backend.transport.rtp_receiver import Frame
from rtp_transcriber.errors import (
    SessionError,
    SessionOpenError,
    SessionTransientError,
    TeardownError,
)
from rtp_transcriber.utils.logger import LOGGER

RESTART_REASON_EXPIRY = "expiry"
RESTART_REASON_ERROR = "transient_error"

TimerFactory = Callable[[float, Callable[[], None]], Any]


def _default_timer(interval_sec: float, callback: Callable[[], None]) -> Any:
    timer = threading.Timer(interval_sec, callback)
    timer.daemon = True
    return timer


def _noop_state(_: ManagerState) -> None:
    return None


def _noop_epoch(_: SessionEpoch) -> None:
    return None


def _noop_restart(_: str, __: RotationPlan) -> None:
    return None


def _noop_closed(_: Optional[SessionError]) -> None:
    return None


def _noop_dropped(_: Frame) -> None:
    return None


@dataclass(frozen=True)
class SessionManagerHooks:
    """Callbacks fired after the manager lock is released."""

    on_state_change: Callable[[ManagerState], None] = _noop_state
    on_session_opened: Callable[[SessionEpoch], None] = _noop_epoch
    on_restart: Callable[[str, RotationPlan], None] = _noop_restart
    on_closed: Callable[[Optional[SessionError]], None] = _noop_closed
    on_frame_dropped: Callable[[Frame], None] = _noop_dropped


class SessionManager:
    """Owns exactly one active provider session at a time.

    Buffer mutation, session writes, rotation and result routing all run
    under a single lock, so replayed frames always reach a new session before
    any live frame of that epoch.
    """

    def __init__(
        self,
        provider: RecognitionProvider,
        buffer: ContinuityBuffer,
        router: ResultRouter,
        max_duration_ms: int,
        hooks: Optional[SessionManagerHooks] = None,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._provider = provider
        self._buffer = buffer
        self._router = router
        self._max_duration_ms = max_duration_ms
        self._hooks = hooks or SessionManagerHooks()
        self._timer_factory = timer_factory or _default_timer
        self._lock = threading.RLock()
        self._state = ManagerState.IDLE
        self._epoch: Optional[SessionEpoch] = None
        self._session: Optional[SessionHandle] = None
        self._timer: Any = None
        self._close_error: Optional[SessionError] = None

    @property
    def state(self) -> ManagerState:
        with self._lock:
            return self._state

    @property
    def epoch(self) -> Optional[SessionEpoch]:
        with self._lock:
            return self._epoch

    @property
    def close_error(self) -> Optional[SessionError]:
        with self._lock:
            return self._close_error

    def start(self) -> SessionEpoch:
        """Open the first session; SessionOpenError closes the manager."""
        events: List[Callable[[], None]] = []
        with self._lock:
            if self._state != ManagerState.IDLE:
                raise RuntimeError(f"session manager cannot start from {self._state.value}")
            self._set_state(ManagerState.STARTING, events)
            epoch = SessionEpoch(
                index=0,
                started_at=time.time(),
                max_duration_ms=self._max_duration_ms,
                bridging_offset_ms=self._buffer.bridging_offset_ms,
            )
            self._epoch = epoch
            self._router.begin_epoch(epoch)
            try:
                self._session = self._provider.open_session(self._callbacks_for(epoch))
            except SessionOpenError as exc:
                LOGGER.error("%s", exc)
                self._shutdown_locked(exc, events)
                error: Optional[SessionOpenError] = exc
            else:
                error = None
                self._arm_timer(epoch)
                self._set_state(ManagerState.STREAMING, events)
                events.append(lambda: self._hooks.on_session_opened(epoch))
                LOGGER.info(
                    "Recognition session started epoch=%d max_duration_ms=%d",
                    epoch.index,
                    self._max_duration_ms,
                )
        self._fire(events)
        if error is not None:
            raise error
        return epoch

    def on_frame(self, frame: Frame) -> None:
        """Buffer a live frame and forward it to the active session."""
        with self._lock:
            if self._state != ManagerState.STREAMING or self._session is None:
                dropped = True
            else:
                dropped = False
                self._buffer.append(frame)
                self._session.write(frame.payload)
        if dropped:
            self._hooks.on_frame_dropped(frame)

    def request_restart(self, epoch_index: int, reason: str) -> bool:
        """Rotate to a new session unless the request is stale or in flight."""
        events: List[Callable[[], None]] = []
        with self._lock:
            epoch = self._epoch
            if (
                self._state != ManagerState.STREAMING
                or epoch is None
                or epoch.index != epoch_index
            ):
                LOGGER.debug(
                    "Ignoring restart request epoch=%d reason=%s state=%s",
                    epoch_index,
                    reason,
                    self._state.value,
                )
                return False
            self._set_state(ManagerState.RESTARTING, events)
            self._cancel_timer()
            self._release_session()

            plan = self._buffer.rotate(self._router.last_final_end_ms)
            new_epoch = SessionEpoch(
                index=epoch.index + 1,
                started_at=time.time(),
                max_duration_ms=self._max_duration_ms,
                bridging_offset_ms=plan.bridging_offset_ms,
            )
            self._epoch = new_epoch
            self._router.begin_epoch(new_epoch)
            LOGGER.info(
                "Restarting recognition session epoch=%d reason=%s replay=%d "
                "skip=%d bridging_offset_ms=%d",
                new_epoch.index,
                reason,
                len(plan.replay),
                plan.frames_to_skip,
                plan.bridging_offset_ms,
            )
            try:
                session = self._provider.open_session(self._callbacks_for(new_epoch))
            except SessionOpenError as exc:
                LOGGER.error("%s", exc)
                self._shutdown_locked(exc, events)
                restarted = False
            else:
                self._session = session
                for replayed in plan.replay:
                    session.write(replayed.payload)
                self._arm_timer(new_epoch)
                self._set_state(ManagerState.STREAMING, events)
                events.append(lambda: self._hooks.on_restart(reason, plan))
                events.append(lambda: self._hooks.on_session_opened(new_epoch))
                restarted = True
        self._fire(events)
        return restarted

    def close(self, error: Optional[SessionError] = None) -> None:
        """Tear down the timer and session; later calls are no-ops."""
        events: List[Callable[[], None]] = []
        with self._lock:
            if self._state == ManagerState.CLOSED:
                return
            self._shutdown_locked(error, events)
        self._fire(events)

    def _callbacks_for(self, epoch: SessionEpoch) -> SessionCallbacks:
        def on_result(result: RecognitionResult) -> None:
            self._handle_result(epoch.index, result)

        def on_error(error: SessionError) -> None:
            self._handle_error(epoch.index, error)

        return SessionCallbacks(on_result=on_result, on_error=on_error)

    def _handle_result(self, epoch_index: int, result: RecognitionResult) -> None:
        with self._lock:
            epoch = self._epoch
            if (
                self._state != ManagerState.STREAMING
                or epoch is None
                or epoch.index != epoch_index
            ):
                LOGGER.debug("Ignoring result from detached session epoch=%d", epoch_index)
                return
            self._router.on_result(result, epoch)

    def _handle_error(self, epoch_index: int, error: SessionError) -> None:
        with self._lock:
            epoch = self._epoch
            stale = (
                self._state == ManagerState.CLOSED
                or epoch is None
                or epoch.index != epoch_index
            )
        if stale:
            LOGGER.debug("Ignoring error from detached session epoch=%d: %s", epoch_index, error)
            return
        if isinstance(error, SessionTransientError):
            LOGGER.warning("Transient session error epoch=%d: %s", epoch_index, error)
            self.request_restart(epoch_index, RESTART_REASON_ERROR)
            return
        LOGGER.error("Fatal session error epoch=%d: %s", epoch_index, error)
        with self._lock:
            current = self._epoch
            if current is None or current.index != epoch_index:
                return
        self.close(error)

    def _on_timer(self, epoch_index: int) -> None:
        self.request_restart(epoch_index, RESTART_REASON_EXPIRY)

    def _arm_timer(self, epoch: SessionEpoch) -> None:
        self._timer = self._timer_factory(
            self._max_duration_ms / 1000.0, lambda: self._on_timer(epoch.index)
        )
        self._timer.start()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _release_session(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        session.detach()
        try:
            session.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.warning("%s", TeardownError(f"session close failed: {exc}"))

    def _shutdown_locked(
        self, error: Optional[SessionError], events: List[Callable[[], None]]
    ) -> None:
        self._cancel_timer()
        self._release_session()
        self._close_error = error
        self._set_state(ManagerState.CLOSED, events)
        events.append(lambda: self._hooks.on_closed(error))
        LOGGER.info(
            "Session manager closed%s", f" error={error}" if error is not None else ""
        )

    def _set_state(self, state: ManagerState, events: List[Callable[[], None]]) -> None:
        self._state = state
        events.append(lambda: self._hooks.on_state_change(state))

    @staticmethod
    def _fire(events: List[Callable[[], None]]) -> None:
        for event in events:
            event()


__all__ = [
    "ManagerState",
    "RESTART_REASON_ERROR",
    "RESTART_REASON_EXPIRY",
    "SessionEpoch",
    "SessionManager",
    "SessionManagerHooks",
    "TimerFactory",
]
