"""Recognition provider contract shared by the session manager and backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from rtp_transcriber.errors import SessionError


@dataclass(frozen=True)
class WordInfo:
    word: str
    start_ms: int = 0
    end_ms: int = 0
    speaker_tag: int = 0


@dataclass(frozen=True)
class Alternative:
    transcript: str
    confidence: float = 0.0
    words: Tuple[WordInfo, ...] = ()


@dataclass(frozen=True)
class RecognitionResult:
    """One provider result; ``end_time_ms`` is relative to its own session."""

    end_time_ms: int
    is_final: bool
    alternatives: Tuple[Alternative, ...] = ()

    @property
    def best_transcript(self) -> Optional[str]:
        if not self.alternatives:
            return None
        return self.alternatives[0].transcript


def _noop_result(_: RecognitionResult) -> None:
    return None


def _noop_error(_: SessionError) -> None:
    return None


@dataclass(frozen=True)
class SessionCallbacks:
    """Result and error callbacks installed on a single provider session."""

    on_result: Callable[[RecognitionResult], None] = _noop_result
    on_error: Callable[[SessionError], None] = _noop_error


class SessionHandle(ABC):
    """An open streaming recognition session."""

    @abstractmethod
    def write(self, payload: bytes) -> None:
        """Send audio bytes; a no-op once the session is closed."""

    @abstractmethod
    def detach(self) -> None:
        """Stop delivering callbacks for this session."""

    @abstractmethod
    def close(self) -> None:
        """Release the session. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...


class RecognitionProvider(ABC):
    """Factory for recognition sessions."""

    name: str = "provider"

    @abstractmethod
    def open_session(self, callbacks: SessionCallbacks) -> SessionHandle:
        """Open a new session, raising SessionOpenError on failure."""


__all__ = [
    "Alternative",
    "RecognitionProvider",
    "RecognitionResult",
    "SessionCallbacks",
    "SessionHandle",
    "WordInfo",
]
