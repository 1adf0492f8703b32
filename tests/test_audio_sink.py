from unittest.mock import MagicMock

import pytest

from rtp_transcriber.backend.component.audio_sink import DebugAudioSink
from rtp_transcriber.errors import SinkWriteError


def test_sink_appends_payloads(tmp_path):
    """Test sink appends payloads."""
    path = tmp_path / "debug" / "call.raw"
    sink = DebugAudioSink(path)
    sink.open()
    sink.write(b"\x01\x02")
    sink.write(b"")
    sink.write(b"\x03")
    sink.close()

    assert path.read_bytes() == b"\x01\x02\x03"
    assert sink.bytes_written == 3


def test_sink_appends_to_existing_file(tmp_path):
    """Test sink appends to existing file."""
    path = tmp_path / "call.raw"
    path.write_bytes(b"old")
    sink = DebugAudioSink(path)
    sink.open()
    sink.write(b"new")
    sink.close()
    assert path.read_bytes() == b"oldnew"


def test_sink_open_failure_raises(tmp_path):
    """Test sink open failure raises."""
    sink = DebugAudioSink(tmp_path)
    with pytest.raises(SinkWriteError):
        sink.open()


def test_sink_write_failure_raises(tmp_path):
    """Test sink write failure raises."""
    sink = DebugAudioSink(tmp_path / "call.raw")
    sink.open()
    sink._handle.close()
    handle = MagicMock()
    handle.write.side_effect = OSError("disk full")
    sink._handle = handle
    with pytest.raises(SinkWriteError):
        sink.write(b"\x00")


def test_sink_ignores_writes_after_close(tmp_path):
    """Test sink ignores writes after close."""
    path = tmp_path / "call.raw"
    sink = DebugAudioSink(path)
    sink.open()
    sink.close()
    sink.write(b"late")
    sink.close()
    assert path.read_bytes() == b""
