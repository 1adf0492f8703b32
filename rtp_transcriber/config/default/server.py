"""Default values for transcriber configuration."""

from typing import Dict

DEFAULT_FORMAT = "ulaw"
DEFAULT_LISTEN_ADDRESS = "127.0.0.1:9999"
DEFAULT_MAX_SESSION_DURATION_MS = 25000
DEFAULT_SPEAKER_DIARIZATION = False
DEFAULT_DIARIZATION_SPEAKER_COUNT = 5
DEFAULT_SPEECH_LANGUAGE = "en-US"
DEFAULT_SPEECH_MODEL = "phone_call"
DEFAULT_DEBUG_AUDIO_PATH = None
DEFAULT_RTP_HEADER_LENGTH = 12
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = None
DEFAULT_TRANSCRIPT_LOG_FILE = None
DEFAULT_CONSOLE_TRANSCRIPTS = True
DEFAULT_METRICS_HOST = "127.0.0.1"
DEFAULT_METRICS_PORT = 0

SECTION_MAP: Dict[str, Dict[str, str]] = {
    "audio": {
        "format": "format",
        "debug_path": "debug_audio_path",
    },
    "transport": {
        "listen": "listen_address",
    },
    "speech": {
        "language": "speech_language",
        "model": "speech_model",
        "speaker_diarization": "speaker_diarization",
        "speaker_count": "diarization_speaker_count",
        "max_session_ms": "max_session_duration_ms",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
        "transcript_file": "transcript_log_file",
        "console_transcripts": "console_transcripts",
    },
    "observability": {
        "host": "metrics_host",
        "port": "metrics_port",
    },
}

__all__ = [
    "DEFAULT_FORMAT",
    "DEFAULT_LISTEN_ADDRESS",
    "DEFAULT_MAX_SESSION_DURATION_MS",
    "DEFAULT_SPEAKER_DIARIZATION",
    "DEFAULT_DIARIZATION_SPEAKER_COUNT",
    "DEFAULT_SPEECH_LANGUAGE",
    "DEFAULT_SPEECH_MODEL",
    "DEFAULT_DEBUG_AUDIO_PATH",
    "DEFAULT_RTP_HEADER_LENGTH",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_FILE",
    "DEFAULT_TRANSCRIPT_LOG_FILE",
    "DEFAULT_CONSOLE_TRANSCRIPTS",
    "DEFAULT_METRICS_HOST",
    "DEFAULT_METRICS_PORT",
    "SECTION_MAP",
]
