from __future__ import annotations

import threading
from pathlib import Path
from typing import BinaryIO, Optional

from rtp_transcriber.errors import SinkWriteError
from rtp_transcriber.utils.logger import LOGGER


class DebugAudioSink:
    """Appends normalized frame payloads to a raw audio file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._handle: Optional[BinaryIO] = None
        self._bytes_written = 0
        self._closed = False

    def open(self) -> None:
        with self._lock:
            if self._handle is not None:
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = self.path.open("ab")
            except OSError as exc:
                raise SinkWriteError(f"cannot open {self.path}: {exc}") from exc
            self._closed = False
        LOGGER.info("Debug audio sink opened path=%s", self.path)

    def write(self, payload: bytes) -> None:
        if not payload:
            return
        with self._lock:
            if self._closed:
                return
            if self._handle is None:
                raise SinkWriteError(f"sink not open: {self.path}")
            try:
                self._handle.write(payload)
            except OSError as exc:
                raise SinkWriteError(f"write to {self.path} failed: {exc}") from exc
            self._bytes_written += len(payload)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            handle, self._handle = self._handle, None
        if handle is None:
            return
        handle.close()
        LOGGER.info(
            "Debug audio sink closed path=%s bytes=%d", self.path, self._bytes_written
        )

    @property
    def bytes_written(self) -> int:
        return self._bytes_written


__all__ = ["DebugAudioSink"]
