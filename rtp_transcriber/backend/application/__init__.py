"""Session lifecycle and result routing."""

from .result_router import ResultRouter, RoutedResult, TranscriptEvent
from .session_manager import SessionManager, SessionManagerHooks
from .types import ManagerState, SessionEpoch

__all__ = [
    "ManagerState",
    "ResultRouter",
    "RoutedResult",
    "SessionEpoch",
    "SessionManager",
    "SessionManagerHooks",
    "TranscriptEvent",
]
