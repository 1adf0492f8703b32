"""Call-control collaborator that gates the media path."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from rtp_transcriber.utils.logger import LOGGER


def _noop_ready() -> None:
    return None


def _noop_close(_: str) -> None:
    return None


@dataclass(frozen=True)
class CallControlHooks:
    on_ready: Callable[[], None] = _noop_ready
    on_close: Callable[[str], None] = _noop_close


class CallControl(ABC):
    """Sets up the media path towards the receiver and reports its end.

    Subclasses implement ``_connect``/``_disconnect``; ``close`` is idempotent
    and fires ``on_close`` exactly once.
    """

    def __init__(self, hooks: CallControlHooks | None = None) -> None:
        self._hooks = hooks or CallControlHooks()
        self._lock = threading.Lock()
        self._closing = False

    def set_hooks(self, hooks: CallControlHooks) -> None:
        self._hooks = hooks

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closing

    def connect(self) -> None:
        with self._lock:
            if self._closing:
                raise RuntimeError("call control already closed")
        self._connect()
        self._hooks.on_ready()

    def close(self, reason: str = "requested") -> None:
        with self._lock:
            if self._closing:
                return
            self._closing = True
        try:
            self._disconnect()
        finally:
            LOGGER.info("Call control closed reason=%s", reason)
            self._hooks.on_close(reason)

    @abstractmethod
    def _connect(self) -> None:
        ...

    @abstractmethod
    def _disconnect(self) -> None:
        ...


class StaticMediaCallControl(CallControl):
    """Media server streams to the listener on its own; nothing to set up."""

    def _connect(self) -> None:
        LOGGER.info("Static media path ready")

    def _disconnect(self) -> None:
        return None


__all__ = ["CallControl", "CallControlHooks", "StaticMediaCallControl"]
