import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rtp_transcriber.backend.application.result_router import RoutedResult
from rtp_transcriber.backend.endpoints.http import HttpServerHandle, start_http_server
from rtp_transcriber.backend.provider.base import RecognitionProvider
from rtp_transcriber.backend.provider.google_speech import (
    GoogleSpeechOptions,
    GoogleSpeechProvider,
)
from rtp_transcriber.backend.runtime.pipeline import TranscriptionPipeline
from rtp_transcriber.config import (
    DEFAULT_CONFIG_PATH,
    TranscriberConfig,
    load_config,
    validate_config,
)
from rtp_transcriber.config.formats import supported_formats
from rtp_transcriber.errors import ConfigError, TranscriberError
from rtp_transcriber.utils.logger import (
    LOGGER,
    TRANSCRIPT_LOGGER,
    configure_logging,
    stop_logging,
)

EXIT_OK = 0
EXIT_FAILURE = 1


def log_speaker_words(routed: RoutedResult) -> None:
    """Print each word of a final result with its speaker tag."""
    if not routed.is_final or not routed.alternatives:
        return
    for word in routed.alternatives[0].words:
        TRANSCRIPT_LOGGER.info("word: %s, speakerTag: %d", word.word, word.speaker_tag)


def build_provider(config: TranscriberConfig) -> RecognitionProvider:
    options = GoogleSpeechOptions(
        language_code=config.speech_language,
        model=config.speech_model,
        speaker_diarization=bool(config.speaker_diarization),
        diarization_speaker_count=int(config.diarization_speaker_count),
    )
    return GoogleSpeechProvider(config.audio_format, options)


def build_pipeline(
    config: TranscriberConfig, provider: Optional[RecognitionProvider] = None
) -> TranscriptionPipeline:
    pipeline = TranscriptionPipeline(config, provider or build_provider(config))
    if config.speaker_diarization:
        pipeline.subscribe_results(log_speaker_words)
    return pipeline


def serve(
    config: TranscriberConfig, pipeline: Optional[TranscriptionPipeline] = None
) -> int:
    """Run the pipeline until it closes and return the process exit code."""
    pipeline = pipeline or build_pipeline(config)

    def _handle_signal(signum: int, _frame: object) -> None:
        LOGGER.info("Received %s, shutting down", signal.Signals(signum).name)
        pipeline.close("signal")

    previous_handlers = {
        signum: signal.signal(signum, _handle_signal)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    http_handle: Optional[HttpServerHandle] = None
    try:
        if config.metrics_port > 0:
            http_handle = start_http_server(
                pipeline, host=config.metrics_host, port=config.metrics_port
            )
        try:
            pipeline.start()
        except TranscriberError as exc:
            LOGGER.error("Startup aborted: %s", exc)
            return EXIT_FAILURE

        # Short waits keep the main thread responsive to signals.
        while not pipeline.wait_closed(timeout=0.5):
            pass
    finally:
        if http_handle is not None:
            http_handle.stop(timeout=2.0)
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    if pipeline.close_error is not None:
        LOGGER.error("Pipeline closed with error: %s", pipeline.close_error)
        return EXIT_FAILURE
    LOGGER.info("Pipeline closed reason=%s", pipeline.close_reason)
    return EXIT_OK


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Transcribe RTP audio with Google streaming speech recognition"
    )
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to YAML config (default search: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--format",
        choices=supported_formats(),
        default=None,
        help="Media format sent by the media server",
    )
    parser.add_argument(
        "--listen",
        dest="listen_address",
        default=None,
        help="UDP listen address as host:port",
    )
    parser.add_argument(
        "--debug-audio",
        dest="debug_audio_path",
        default=None,
        help="Append normalized audio to this raw file",
    )
    parser.add_argument(
        "--speaker-diarization",
        dest="speaker_diarization",
        action="store_true",
        help="Request speaker tags from the recognizer",
    )
    parser.add_argument(
        "--no-speaker-diarization",
        dest="speaker_diarization",
        action="store_false",
        help="Disable speaker diarization (overrides config)",
    )
    parser.add_argument(
        "--max-session-ms",
        type=int,
        default=None,
        help="Recognition session lifetime before a planned restart",
    )
    parser.add_argument("--language", default=None, help="BCP-47 language code")
    parser.add_argument("--model", default=None, help="Recognition model name")
    parser.add_argument(
        "--metrics-host",
        default=None,
        help="Bind address for the HTTP metrics/health server",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for HTTP metrics/health server (0 disables)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, TRACE); overrides config",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path; overrides config",
    )
    parser.add_argument(
        "--transcript-file",
        dest="transcript_log_file",
        default=None,
        help="Write transcript lines to this file",
    )
    parser.add_argument(
        "--quiet-transcripts",
        dest="console_transcripts",
        action="store_false",
        help="Do not print transcripts to the console",
    )
    parser.set_defaults(speaker_diarization=None, console_transcripts=None)
    return parser.parse_args(argv)


def configure_from_args(args: argparse.Namespace) -> TranscriberConfig:
    config_arg_path = Path(args.config).expanduser() if args.config else None
    effective_config_path = config_arg_path or DEFAULT_CONFIG_PATH
    config = load_config(effective_config_path)

    if args.format is not None:
        config.format = args.format
    if args.listen_address is not None:
        config.listen_address = args.listen_address
    if args.debug_audio_path is not None:
        config.debug_audio_path = args.debug_audio_path
    if args.speaker_diarization is not None:
        config.speaker_diarization = args.speaker_diarization
    if args.max_session_ms is not None:
        config.max_session_duration_ms = args.max_session_ms
    if args.language is not None:
        config.speech_language = args.language
    if args.model is not None:
        config.speech_model = args.model
    if args.metrics_host is not None:
        config.metrics_host = args.metrics_host
    if args.metrics_port is not None:
        config.metrics_port = args.metrics_port
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file
    if args.transcript_log_file is not None:
        config.transcript_log_file = args.transcript_log_file
    if args.console_transcripts is not None:
        config.console_transcripts = args.console_transcripts

    validate_config(config)
    configure_logging(
        config.log_level,
        config.log_file,
        transcript_log_file=config.transcript_log_file,
        console_transcripts=bool(config.console_transcripts),
    )
    if effective_config_path.exists():
        LOGGER.info("Loaded transcriber config from %s", effective_config_path)
    else:
        LOGGER.info(
            "Transcriber config file not found at %s; using defaults/CLI overrides",
            effective_config_path,
        )
    return config


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    try:
        config = configure_from_args(args)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    try:
        code = serve(config)
    finally:
        stop_logging()
    sys.exit(code)


if __name__ == "__main__":
    main()
