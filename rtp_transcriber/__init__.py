"""RTP audio to streaming speech recognition with session-restart continuity."""

__version__ = "0.1.0"
