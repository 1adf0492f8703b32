"""Supported media formats and their recognition settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from rtp_transcriber.errors import ConfigError


@dataclass(frozen=True)
class AudioFormat:
    """Encoding details for one media format negotiated with the media server."""

    name: str
    encoding: str
    sample_rate_hz: int
    bytes_per_sample: int
    swap16: bool


# RTP SLIN is big-endian while the recognizer expects little-endian PCM.
AUDIO_FORMATS: Dict[str, AudioFormat] = {
    "ulaw": AudioFormat(
        name="ulaw",
        encoding="MULAW",
        sample_rate_hz=8000,
        bytes_per_sample=1,
        swap16=False,
    ),
    "slin16": AudioFormat(
        name="slin16",
        encoding="LINEAR16",
        sample_rate_hz=16000,
        bytes_per_sample=2,
        swap16=True,
    ),
}


def supported_formats() -> Tuple[str, ...]:
    return tuple(sorted(AUDIO_FORMATS))


def resolve_format(name: str) -> AudioFormat:
    """Return the AudioFormat for a name, raising ConfigError if unknown."""
    key = (name or "").strip().lower()
    fmt = AUDIO_FORMATS.get(key)
    if fmt is None:
        raise ConfigError(
            f"unknown format '{name}' (expected one of: {', '.join(supported_formats())})"
        )
    return fmt


__all__ = ["AudioFormat", "AUDIO_FORMATS", "resolve_format", "supported_formats"]
