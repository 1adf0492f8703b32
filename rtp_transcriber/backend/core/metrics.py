import threading
from collections import defaultdict
from typing import Any, Dict

from rtp_transcriber.errors import ErrorCode


class Metrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._datagrams = 0
        self._datagram_bytes = 0
        self._frames = 0
        self._frame_bytes = 0
        self._audio_ms = 0.0
        self._malformed: Dict[str, int] = defaultdict(int)
        self._sink_errors = 0
        self._frames_dropped = 0
        self._sessions_opened = 0
        self._restarts: Dict[str, int] = defaultdict(int)
        self._replayed_frames = 0
        self._interim_results = 0
        self._final_results = 0
        self._subscriber_errors = 0
        self._error_counts: Dict[str, int] = defaultdict(int)
        self._epoch_index = 0
        self._bridging_offset_ms = 0
        self._state = "idle"

    def record_datagram(self, size: int) -> None:
        with self._lock:
            self._datagrams += 1
            self._datagram_bytes += size

    def record_frame(self, size: int, duration_ms: float) -> None:
        with self._lock:
            self._frames += 1
            self._frame_bytes += size
            self._audio_ms += duration_ms

    def record_malformed(self, reason: str) -> None:
        with self._lock:
            self._malformed[reason] += 1
            self._error_counts[ErrorCode.MALFORMED_FRAME.value] += 1

    def record_sink_error(self) -> None:
        with self._lock:
            self._sink_errors += 1
            self._error_counts[ErrorCode.SINK_WRITE_FAILED.value] += 1

    def record_frame_dropped(self) -> None:
        with self._lock:
            self._frames_dropped += 1

    def record_session_opened(self, epoch_index: int, bridging_offset_ms: int) -> None:
        with self._lock:
            self._sessions_opened += 1
            self._epoch_index = epoch_index
            self._bridging_offset_ms = bridging_offset_ms

    def record_restart(self, reason: str, replayed_frames: int) -> None:
        with self._lock:
            self._restarts[reason] += 1
            self._replayed_frames += replayed_frames

    def record_result(self, is_final: bool) -> None:
        with self._lock:
            if is_final:
                self._final_results += 1
            else:
                self._interim_results += 1

    def record_subscriber_error(self) -> None:
        with self._lock:
            self._subscriber_errors += 1

    def record_error(self, code: ErrorCode) -> None:
        with self._lock:
            self._error_counts[code.value] += 1

    def set_state(self, state: str) -> None:
        with self._lock:
            self._state = state

    def render(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "datagrams_total": self._datagrams,
                "datagram_bytes_total": self._datagram_bytes,
                "frames_total": self._frames,
                "frame_bytes_total": self._frame_bytes,
                "audio_ms_total": round(self._audio_ms, 3),
                "malformed_frames": dict(self._malformed),
                "sink_errors_total": self._sink_errors,
                "frames_dropped_total": self._frames_dropped,
                "sessions_opened_total": self._sessions_opened,
                "restarts": dict(self._restarts),
                "replayed_frames_total": self._replayed_frames,
                "interim_results_total": self._interim_results,
                "final_results_total": self._final_results,
                "subscriber_errors_total": self._subscriber_errors,
                "error_counts": dict(self._error_counts),
                "epoch_index": self._epoch_index,
                "bridging_offset_ms": self._bridging_offset_ms,
                "streaming": self._state == "streaming",
            }

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state,
                "epoch_index": self._epoch_index,
                "bridging_offset_ms": self._bridging_offset_ms,
                "frames_total": self._frames,
                "restarts_total": sum(self._restarts.values()),
                "final_results_total": self._final_results,
            }
