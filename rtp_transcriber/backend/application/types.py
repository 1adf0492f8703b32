from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ManagerState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    RESTARTING = "restarting"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionEpoch:
    """Lifetime of one provider session."""

    index: int
    started_at: float
    max_duration_ms: int
    bridging_offset_ms: int = 0

    @property
    def prior_duration_ms(self) -> int:
        return self.index * self.max_duration_ms


__all__ = ["ManagerState", "SessionEpoch"]
