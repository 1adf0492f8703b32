"""Configuration loader utilities."""

from .formats import AUDIO_FORMATS, AudioFormat, resolve_format
from .loader import (
    DEFAULT_CONFIG_PATH,
    TranscriberConfig,
    load_config,
    parse_listen_address,
    validate_config,
)

__all__ = [
    "AUDIO_FORMATS",
    "AudioFormat",
    "DEFAULT_CONFIG_PATH",
    "TranscriberConfig",
    "load_config",
    "parse_listen_address",
    "resolve_format",
    "validate_config",
]
