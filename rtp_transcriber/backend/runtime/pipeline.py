"""Wires receiver, continuity engine and provider into one closable unit."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from rtp_transcriber.backend.application.result_router import (
    ResultRouter,
    ResultRouterHooks,
    ResultSubscriber,
    TranscriptSubscriber,
)
from rtp_transcriber.backend.application.session_manager import (
    SessionManager,
    SessionManagerHooks,
    TimerFactory,
)
from rtp_transcriber.backend.application.types import ManagerState
from rtp_transcriber.backend.component.audio_sink import DebugAudioSink
from rtp_transcriber.backend.component.continuity_buffer import ContinuityBuffer
from rtp_transcriber.backend.core.call_control import (
    CallControl,
    CallControlHooks,
    StaticMediaCallControl,
)
from rtp_transcriber.backend.core.metrics import Metrics
from rtp_transcriber.backend.provider.base import RecognitionProvider
from rtp_transcriber.backend.transport.rtp_receiver import ReceiverHooks, RtpFrameReceiver
from rtp_transcriber.config.loader import TranscriberConfig
from rtp_transcriber.errors import (
    ErrorCode,
    ReceiveError,
    SessionError,
    SinkWriteError,
    TeardownError,
    TranscriberError,
)
from rtp_transcriber.utils.audio import payload_duration_ms
from rtp_transcriber.utils.logger import LOGGER

CloseListener = Callable[[str, Optional[TranscriberError]], None]


class TranscriptionPipeline:
    """Owns every resource of one transcription run.

    ``close`` may be called from any thread, any number of times; only the
    first call releases resources.
    """

    def __init__(
        self,
        config: TranscriberConfig,
        provider: RecognitionProvider,
        call_control: Optional[CallControl] = None,
        metrics: Optional[Metrics] = None,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._config = config
        self._audio_format = config.audio_format
        self._host, self._port = config.listen_endpoint
        self.metrics = metrics or Metrics()

        self._sink = (
            DebugAudioSink(config.debug_audio_path) if config.debug_audio_path else None
        )
        self.receiver = RtpFrameReceiver(
            swap_bytes=self._audio_format.swap16,
            sink=self._sink,
            hooks=ReceiverHooks(
                on_datagram=self.metrics.record_datagram,
                on_frame=self._record_frame,
                on_malformed=lambda exc: self.metrics.record_malformed(exc.reason),
                on_sink_error=lambda _exc: self.metrics.record_sink_error(),
                on_subscriber_error=lambda _exc: self.metrics.record_subscriber_error(),
                on_error=self._on_receiver_error,
            ),
        )
        self.buffer = ContinuityBuffer(config.max_session_duration_ms)
        self.router = ResultRouter(
            config.max_session_duration_ms,
            hooks=ResultRouterHooks(
                on_routed=lambda routed: self.metrics.record_result(routed.is_final),
                on_subscriber_error=lambda _exc: self.metrics.record_subscriber_error(),
            ),
        )
        self.manager = SessionManager(
            provider,
            self.buffer,
            self.router,
            config.max_session_duration_ms,
            hooks=SessionManagerHooks(
                on_state_change=lambda state: self.metrics.set_state(state.value),
                on_session_opened=lambda epoch: self.metrics.record_session_opened(
                    epoch.index, epoch.bridging_offset_ms
                ),
                on_restart=lambda reason, plan: self.metrics.record_restart(
                    reason, len(plan.replay)
                ),
                on_closed=self._on_manager_closed,
                on_frame_dropped=lambda _frame: self.metrics.record_frame_dropped(),
            ),
            timer_factory=timer_factory,
        )
        self.receiver.subscribe(self.manager.on_frame)

        self.call_control = call_control or StaticMediaCallControl()
        self.call_control.set_hooks(
            CallControlHooks(on_close=lambda reason: self.close(f"call_control:{reason}"))
        )

        self._close_lock = threading.Lock()
        self._closing = False
        self._closed = threading.Event()
        self._close_reason: Optional[str] = None
        self._close_error: Optional[TranscriberError] = None
        self._close_listeners: List[CloseListener] = []

    @property
    def close_error(self) -> Optional[TranscriberError]:
        return self._close_error

    @property
    def close_reason(self) -> Optional[str]:
        return self._close_reason

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def subscribe_transcripts(self, callback: TranscriptSubscriber) -> None:
        self.router.subscribe_transcripts(callback)

    def subscribe_results(self, callback: ResultSubscriber) -> None:
        self.router.subscribe_results(callback)

    def add_close_listener(self, callback: CloseListener) -> None:
        self._close_listeners.append(callback)

    def start(self) -> None:
        """Acquire every resource in order; failures release what was acquired."""
        if self._sink is not None:
            try:
                self._sink.open()
            except SinkWriteError as exc:
                LOGGER.warning("Debug audio disabled: %s", exc)
                self.metrics.record_sink_error()
                self.receiver.set_sink(None)
                self._sink = None
        try:
            self.receiver.bind(self._host, self._port)
            self.receiver.start()
            self.manager.start()
            self.call_control.connect()
        except TranscriberError as exc:
            LOGGER.error("Pipeline startup failed: %s", exc)
            if not isinstance(exc, SessionError):
                self.metrics.record_error(exc.code)
            self.close("startup_failed", exc)
            raise
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Pipeline startup failed")
            self.close("startup_failed")
            raise
        LOGGER.info(
            "Pipeline started format=%s listen=%s:%s max_session_ms=%d",
            self._audio_format.name,
            self._host,
            self._port,
            self._config.max_session_duration_ms,
        )

    def close(self, reason: str = "requested", error: Optional[TranscriberError] = None) -> None:
        with self._close_lock:
            if self._closing:
                return
            self._closing = True
            self._close_reason = reason
            self._close_error = error
        LOGGER.info("Closing pipeline reason=%s", reason)

        steps = [
            ("session manager", self.manager.close),
            ("receiver", self.receiver.close),
            ("call control", lambda: self.call_control.close(reason)),
        ]
        if self._sink is not None:
            steps.append(("debug sink", self._sink.close))
        for name, release in steps:
            try:
                release()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.error("%s", TeardownError(f"{name} release failed: {exc}"))
                self.metrics.record_error(ErrorCode.TEARDOWN_FAILED)

        self._closed.set()
        for listener in list(self._close_listeners):
            try:
                listener(reason, error)
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.exception("Close listener failed")

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed.wait(timeout)

    def health_snapshot(self) -> Dict[str, Any]:
        address = self.receiver.address
        state = self.manager.state
        epoch = self.manager.epoch
        return {
            "state": state.value,
            "streaming": state == ManagerState.STREAMING,
            "epoch_index": epoch.index if epoch is not None else None,
            "listen_address": f"{address[0]}:{address[1]}" if address else None,
            "closed": self.closed,
            "close_reason": self._close_reason,
            "metrics": self.metrics.snapshot(),
        }

    def _record_frame(self, frame: Any) -> None:
        size = len(frame.payload)
        self.metrics.record_frame(
            size,
            payload_duration_ms(
                size, self._audio_format.sample_rate_hz, self._audio_format.bytes_per_sample
            ),
        )

    def _on_receiver_error(self, error: ReceiveError) -> None:
        self.metrics.record_error(error.code)
        self.close("receiver_error", error)

    def _on_manager_closed(self, error: Optional[SessionError]) -> None:
        if error is None:
            return
        self.metrics.record_error(error.code)
        self.close("session_error", error)


__all__ = ["CloseListener", "TranscriptionPipeline"]
