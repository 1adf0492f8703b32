"""Timestamp correction and fan-out of recognition results."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, List, Tuple

from rtp_transcriber.backend.application.types import SessionEpoch
from rtp_transcriber.backend.provider.base import Alternative, RecognitionResult
from rtp_transcriber.utils.logger import LOGGER, TRANSCRIPT_LOGGER


@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    is_final: bool
    corrected_ms: int


@dataclass(frozen=True)
class RoutedResult:
    """A provider result placed on the continuous timeline."""

    alternatives: Tuple[Alternative, ...]
    is_final: bool
    corrected_ms: int
    end_time_ms: int
    epoch_index: int


TranscriptSubscriber = Callable[[TranscriptEvent], None]
ResultSubscriber = Callable[[RoutedResult], None]


def correct_end_time(
    end_time_ms: int, bridging_offset_ms: int, max_duration_ms: int, epoch_index: int
) -> int:
    """Map an epoch-relative end time onto the continuous stream clock."""
    return end_time_ms - bridging_offset_ms + max_duration_ms * epoch_index


def _noop_routed(_: RoutedResult) -> None:
    return None


def _noop_error(_: Exception) -> None:
    return None


@dataclass(frozen=True)
class ResultRouterHooks:
    on_routed: Callable[[RoutedResult], None] = _noop_routed
    on_subscriber_error: Callable[[Exception], None] = _noop_error


class ResultRouter:
    def __init__(self, max_duration_ms: int, hooks: ResultRouterHooks | None = None):
        self._max_duration_ms = max_duration_ms
        self._hooks = hooks or ResultRouterHooks()
        self._lock = threading.Lock()
        self._transcript_subscribers: List[TranscriptSubscriber] = []
        self._result_subscribers: List[ResultSubscriber] = []
        self._last_final_end_ms = 0

    def subscribe_transcripts(self, callback: TranscriptSubscriber) -> None:
        with self._lock:
            self._transcript_subscribers.append(callback)

    def subscribe_results(self, callback: ResultSubscriber) -> None:
        with self._lock:
            self._result_subscribers.append(callback)

    @property
    def last_final_end_ms(self) -> int:
        """Epoch-relative end time of the latest final in the current epoch."""
        with self._lock:
            return self._last_final_end_ms

    def begin_epoch(self, epoch: SessionEpoch) -> None:
        with self._lock:
            self._last_final_end_ms = 0
        if epoch.index > 0:
            TRANSCRIPT_LOGGER.info("%d: RESTARTING REQUEST", epoch.prior_duration_ms)

    def on_result(self, result: RecognitionResult, epoch: SessionEpoch) -> int:
        """Route one result and return its corrected end time in ms."""
        corrected_ms = correct_end_time(
            result.end_time_ms,
            epoch.bridging_offset_ms,
            self._max_duration_ms,
            epoch.index,
        )
        routed = RoutedResult(
            alternatives=result.alternatives,
            is_final=result.is_final,
            corrected_ms=corrected_ms,
            end_time_ms=result.end_time_ms,
            epoch_index=epoch.index,
        )
        text = result.best_transcript
        with self._lock:
            if result.is_final:
                self._last_final_end_ms = result.end_time_ms
            transcript_subscribers = list(self._transcript_subscribers)
            result_subscribers = list(self._result_subscribers)

        self._hooks.on_routed(routed)
        if text is not None:
            if result.is_final:
                TRANSCRIPT_LOGGER.info("%d: %s", corrected_ms, text)
                event = TranscriptEvent(text=text, is_final=True, corrected_ms=corrected_ms)
                for callback in transcript_subscribers:
                    self._dispatch(callback, event)
            else:
                TRANSCRIPT_LOGGER.debug("%d: %s", corrected_ms, text)
        for callback in result_subscribers:
            self._dispatch(callback, routed)
        return corrected_ms

    def _dispatch(self, callback: Callable, payload: object) -> None:
        try:
            callback(payload)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Result subscriber failed")
            self._hooks.on_subscriber_error(exc)


__all__ = [
    "ResultRouter",
    "ResultRouterHooks",
    "RoutedResult",
    "TranscriptEvent",
    "correct_end_time",
]
