"""Per-epoch frame retention and replay planning across session restarts."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import List, Tuple

from rtp_transcriber.backend.transport.rtp_receiver import Frame


@dataclass(frozen=True)
class RotationPlan:
    """Outcome of one rotation: what to replay and the new bridging offset."""

    chunk_duration_ms: float
    clamped_offset_ms: int
    frames_to_skip: int
    bridging_offset_ms: int
    replay: Tuple[Frame, ...]
    previous_frame_count: int


class ContinuityBuffer:
    """Holds the frames of the active epoch and of the one before it.

    Frame durations are approximated as the epoch's maximum duration divided
    evenly across its frames.
    """

    def __init__(self, max_duration_ms: int) -> None:
        self._max_duration_ms = max_duration_ms
        self._lock = threading.Lock()
        self._current: List[Frame] = []
        self._previous: List[Frame] = []
        self._bridging_offset_ms = 0

    def append(self, frame: Frame) -> None:
        with self._lock:
            self._current.append(frame)

    @property
    def bridging_offset_ms(self) -> int:
        with self._lock:
            return self._bridging_offset_ms

    def current_frames(self) -> Tuple[Frame, ...]:
        with self._lock:
            return tuple(self._current)

    def previous_frames(self) -> Tuple[Frame, ...]:
        with self._lock:
            return tuple(self._previous)

    def rotate(self, final_request_end_time_ms: int) -> RotationPlan:
        """Close the current epoch and plan the replay for the next one.

        ``final_request_end_time_ms`` is the epoch-relative end time of the
        last final result seen in the epoch that just ended, or 0.
        """
        final_end = max(0, int(final_request_end_time_ms))
        with self._lock:
            self._previous = self._current
            self._current = []
            previous = self._previous
            count = len(previous)

            if count == 0:
                return RotationPlan(
                    chunk_duration_ms=0.0,
                    clamped_offset_ms=self._bridging_offset_ms,
                    frames_to_skip=0,
                    bridging_offset_ms=self._bridging_offset_ms,
                    replay=(),
                    previous_frame_count=0,
                )

            chunk_duration_ms = self._max_duration_ms / count
            clamped = min(max(self._bridging_offset_ms, 0), final_end)
            frames_to_skip = math.floor((final_end - clamped) / chunk_duration_ms)
            frames_to_skip = min(max(frames_to_skip, 0), count)
            self._bridging_offset_ms = math.floor(
                (count - frames_to_skip) * chunk_duration_ms
            )
            return RotationPlan(
                chunk_duration_ms=chunk_duration_ms,
                clamped_offset_ms=clamped,
                frames_to_skip=frames_to_skip,
                bridging_offset_ms=self._bridging_offset_ms,
                replay=tuple(previous[frames_to_skip:]),
                previous_frame_count=count,
            )


__all__ = ["ContinuityBuffer", "RotationPlan"]
