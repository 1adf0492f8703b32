from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from rtp_transcriber.config.default.server import (
    DEFAULT_CONSOLE_TRANSCRIPTS,
    DEFAULT_DEBUG_AUDIO_PATH,
    DEFAULT_DIARIZATION_SPEAKER_COUNT,
    DEFAULT_FORMAT,
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_SESSION_DURATION_MS,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_SPEAKER_DIARIZATION,
    DEFAULT_SPEECH_LANGUAGE,
    DEFAULT_SPEECH_MODEL,
    DEFAULT_TRANSCRIPT_LOG_FILE,
    SECTION_MAP,
)
from rtp_transcriber.config.formats import AudioFormat, resolve_format
from rtp_transcriber.errors import ConfigError


@dataclass
class TranscriberConfig:
    format: str = DEFAULT_FORMAT
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    debug_audio_path: Optional[str] = DEFAULT_DEBUG_AUDIO_PATH
    max_session_duration_ms: int = DEFAULT_MAX_SESSION_DURATION_MS
    speaker_diarization: bool = DEFAULT_SPEAKER_DIARIZATION
    diarization_speaker_count: int = DEFAULT_DIARIZATION_SPEAKER_COUNT
    speech_language: str = DEFAULT_SPEECH_LANGUAGE
    speech_model: str = DEFAULT_SPEECH_MODEL
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = DEFAULT_LOG_FILE
    transcript_log_file: Optional[str] = DEFAULT_TRANSCRIPT_LOG_FILE
    console_transcripts: bool = DEFAULT_CONSOLE_TRANSCRIPTS
    metrics_host: str = DEFAULT_METRICS_HOST
    metrics_port: int = DEFAULT_METRICS_PORT

    @property
    def audio_format(self) -> AudioFormat:
        return resolve_format(self.format)

    @property
    def listen_endpoint(self) -> Tuple[str, int]:
        return parse_listen_address(self.listen_address)


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "transcriber.yaml"


def parse_listen_address(value: str) -> Tuple[str, int]:
    """Split an ``address:port`` string, raising ConfigError when malformed."""
    text = (value or "").strip()
    host, sep, port_text = text.rpartition(":")
    if not sep or not host or not port_text:
        raise ConfigError(f"listen address must be 'host:port', got '{value}'")
    host = host.strip("[]")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ConfigError(f"listen port is not an integer: '{port_text}'") from exc
    if not 0 <= port <= 65535:
        raise ConfigError(f"listen port out of range: {port}")
    return host, port


def validate_config(cfg: TranscriberConfig) -> TranscriberConfig:
    """Reject values the pipeline cannot run with."""
    cfg.format = resolve_format(cfg.format).name
    parse_listen_address(cfg.listen_address)
    try:
        cfg.max_session_duration_ms = int(cfg.max_session_duration_ms)
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"max_session_duration_ms must be an integer, got {cfg.max_session_duration_ms!r}"
        ) from exc
    if cfg.max_session_duration_ms <= 0:
        raise ConfigError(
            f"max_session_duration_ms must be positive, got {cfg.max_session_duration_ms}"
        )
    try:
        cfg.diarization_speaker_count = int(cfg.diarization_speaker_count)
        cfg.metrics_port = int(cfg.metrics_port)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"expected an integer: {exc}") from exc
    if cfg.diarization_speaker_count <= 0:
        raise ConfigError("diarization speaker count must be positive")
    if cfg.metrics_port < 0:
        raise ConfigError(f"metrics port must be non-negative, got {cfg.metrics_port}")
    return cfg


def load_config(path: Optional[Path] = None) -> TranscriberConfig:
    """Load transcriber configuration from YAML, falling back to defaults."""
    cfg = TranscriberConfig()
    data = _read_yaml(path or DEFAULT_CONFIG_PATH)
    if data:
        _apply_sections(cfg, data)
    return cfg


def _read_yaml(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if not path or not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, dict):
        return data
    return None


def _apply_sections(cfg: TranscriberConfig, raw: Dict[str, Any]) -> None:
    field_names = {f.name for f in fields(TranscriberConfig)}
    for section, mapping in SECTION_MAP.items():
        data = raw.get(section)
        if not isinstance(data, dict):
            continue
        for key, attr in mapping.items():
            if key in data and data[key] is not None:
                setattr(cfg, attr, data[key])

    for key, value in raw.items():
        if key in SECTION_MAP:
            continue
        if key in field_names and value is not None:
            setattr(cfg, key, value)


__all__ = [
    "TranscriberConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "parse_listen_address",
    "validate_config",
]
