"""UDP ingress that turns RTP datagrams into ordered audio frames."""

from __future__ import annotations

import itertools
import socket
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from rtp_transcriber.backend.component.audio_sink import DebugAudioSink
from rtp_transcriber.config.default.server import DEFAULT_RTP_HEADER_LENGTH
from rtp_transcriber.errors import (
    BindError,
    MalformedFrameError,
    ReceiveError,
    SinkWriteError,
)
from rtp_transcriber.utils.audio import swap16
from rtp_transcriber.utils.logger import LOGGER

_MAX_DATAGRAM_BYTES = 65535


@dataclass(frozen=True)
class Frame:
    """Normalized audio payload with its arrival sequence number."""

    payload: bytes
    sequence: int


FrameSubscriber = Callable[[Frame], None]


def _noop_datagram(_: int) -> None:
    return None


def _noop_frame(_: Frame) -> None:
    return None


def _noop_malformed(_: MalformedFrameError) -> None:
    return None


def _noop_sink_error(_: SinkWriteError) -> None:
    return None


def _noop_subscriber_error(_: Exception) -> None:
    return None


def _noop_error(_: ReceiveError) -> None:
    return None


@dataclass(frozen=True)
class ReceiverHooks:
    """Callbacks for receiver activity and receive-loop failure."""

    on_datagram: Callable[[int], None] = _noop_datagram
    on_frame: Callable[[Frame], None] = _noop_frame
    on_malformed: Callable[[MalformedFrameError], None] = _noop_malformed
    on_sink_error: Callable[[SinkWriteError], None] = _noop_sink_error
    on_subscriber_error: Callable[[Exception], None] = _noop_subscriber_error
    on_error: Callable[[ReceiveError], None] = _noop_error


class RtpFrameReceiver:
    """Receives RTP datagrams, strips the header and republishes frames.

    Frames are delivered on the receive thread in arrival order. The payload
    is not retained once every subscriber has been called.
    """

    def __init__(
        self,
        swap_bytes: bool = False,
        sink: Optional[DebugAudioSink] = None,
        hooks: Optional[ReceiverHooks] = None,
        header_length: int = DEFAULT_RTP_HEADER_LENGTH,
        poll_interval_sec: float = 0.2,
    ) -> None:
        self._swap_bytes = swap_bytes
        self._sink = sink
        self._hooks = hooks or ReceiverHooks()
        self._header_length = header_length
        self._poll_interval_sec = poll_interval_sec
        self._subscribers: List[FrameSubscriber] = []
        self._sequence = itertools.count()
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._closed = False

    def set_sink(self, sink: Optional[DebugAudioSink]) -> None:
        """Replace the debug sink; None stops teeing audio."""
        with self._lock:
            self._sink = sink

    def subscribe(self, callback: FrameSubscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port), useful when binding to port 0."""
        if self._socket is None:
            return None
        host, port = self._socket.getsockname()[:2]
        return host, port

    def bind(self, host: str, port: int) -> Tuple[str, int]:
        """Open the UDP endpoint, raising BindError if it is unavailable."""
        if self._socket is not None:
            raise BindError("receiver already bound")
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError as exc:
            sock.close()
            raise BindError(f"cannot bind {host}:{port}: {exc}") from exc
        sock.settimeout(self._poll_interval_sec)
        self._socket = sock
        address = self.address
        LOGGER.info("RTP receiver listening on %s:%s", address[0], address[1])
        return address

    def start(self) -> None:
        if self._socket is None:
            raise BindError("receiver must be bound before start")
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._receive_loop, name="rtp-receiver", daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        """Stop the receive loop and release the socket."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._poll_interval_sec * 5 + 1.0)
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()
            LOGGER.info("RTP receiver closed")

    def normalize(self, datagram: bytes) -> bytes:
        """Return the frame payload for a datagram.

        Raises MalformedFrameError for datagrams shorter than the header or,
        with byte swapping enabled, payloads of odd length. Header-only
        datagrams yield an empty payload.
        """
        if len(datagram) < self._header_length:
            raise MalformedFrameError(
                "short",
                f"datagram of {len(datagram)} bytes is shorter than the "
                f"{self._header_length}-byte header",
            )
        payload = bytes(datagram[self._header_length :])
        if not payload or not self._swap_bytes:
            return payload
        if len(payload) % 2:
            raise MalformedFrameError(
                "odd_length", f"payload of {len(payload)} bytes cannot be swapped"
            )
        return swap16(payload)

    def handle_datagram(self, datagram: bytes) -> Optional[Frame]:
        """Normalize one datagram and publish it to subscribers."""
        self._hooks.on_datagram(len(datagram))
        try:
            payload = self.normalize(datagram)
        except MalformedFrameError as exc:
            LOGGER.warning("Dropping datagram reason=%s: %s", exc.reason, exc)
            self._hooks.on_malformed(exc)
            return None
        if not payload:
            LOGGER.trace("Dropping header-only datagram")
            return None

        with self._lock:
            sink = self._sink
        if sink is not None:
            try:
                sink.write(payload)
            except SinkWriteError as exc:
                LOGGER.warning("%s", exc)
                self._hooks.on_sink_error(exc)

        frame = Frame(payload=payload, sequence=next(self._sequence))
        self._hooks.on_frame(frame)
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(frame)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.exception("Frame subscriber failed seq=%d", frame.sequence)
                self._hooks.on_subscriber_error(exc)
        return frame

    def _receive_loop(self) -> None:
        sock = self._socket
        while not self._stop_event.is_set() and sock is not None:
            try:
                datagram, _ = sock.recvfrom(_MAX_DATAGRAM_BYTES)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stop_event.is_set():
                    break
                LOGGER.exception("RTP receive failed")
                self._hooks.on_error(ReceiveError(f"receive failed: {exc}"))
                break
            try:
                self.handle_datagram(datagram)
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.exception("Datagram handling failed")
        LOGGER.debug("RTP receive loop exited")


__all__ = ["Frame", "FrameSubscriber", "ReceiverHooks", "RtpFrameReceiver"]
