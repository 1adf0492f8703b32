"""Google Cloud Speech-to-Text streaming backend."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterator, Optional

import grpc
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech_v1p1beta1 as speech

from rtp_transcriber.backend.provider.base import (
    Alternative,
    RecognitionProvider,
    RecognitionResult,
    SessionCallbacks,
    SessionHandle,
    WordInfo,
)
from rtp_transcriber.config.default.server import (
    DEFAULT_DIARIZATION_SPEAKER_COUNT,
    DEFAULT_SPEECH_LANGUAGE,
    DEFAULT_SPEECH_MODEL,
)
from rtp_transcriber.config.formats import AudioFormat
from rtp_transcriber.errors import (
    SessionFatalError,
    SessionOpenError,
    SessionTransientError,
    classify_rpc_error,
)
from rtp_transcriber.utils.logger import LOGGER

_ENCODINGS = {
    "MULAW": speech.RecognitionConfig.AudioEncoding.MULAW,
    "LINEAR16": speech.RecognitionConfig.AudioEncoding.LINEAR16,
}


@dataclass
class GoogleSpeechOptions:
    language_code: str = DEFAULT_SPEECH_LANGUAGE
    model: str = DEFAULT_SPEECH_MODEL
    use_enhanced: bool = True
    speaker_diarization: bool = False
    diarization_speaker_count: int = DEFAULT_DIARIZATION_SPEAKER_COUNT
    interim_results: bool = True


def duration_to_ms(value: Any) -> int:
    """Convert a protobuf duration (timedelta or seconds/nanos) to milliseconds."""
    if value is None:
        return 0
    if isinstance(value, timedelta):
        return int(round(value.total_seconds() * 1000))
    seconds = getattr(value, "seconds", 0) or 0
    nanos = getattr(value, "nanos", 0) or 0
    return int(seconds) * 1000 + int(round(nanos / 1_000_000))


def build_recognition_config(
    audio_format: AudioFormat, options: GoogleSpeechOptions
) -> speech.StreamingRecognitionConfig:
    """Build the streaming config for a telephony call leg."""
    metadata = speech.RecognitionMetadata(
        interaction_type=speech.RecognitionMetadata.InteractionType.DISCUSSION,
        microphone_distance=speech.RecognitionMetadata.MicrophoneDistance.MIDFIELD,
        original_media_type=speech.RecognitionMetadata.OriginalMediaType.AUDIO,
        recording_device_name="ConferenceCall",
    )
    config_kwargs = {
        "encoding": _ENCODINGS[audio_format.encoding],
        "sample_rate_hertz": audio_format.sample_rate_hz,
        "audio_channel_count": 1,
        "language_code": options.language_code,
        "model": options.model,
        "use_enhanced": options.use_enhanced,
        "profanity_filter": False,
        "enable_automatic_punctuation": True,
        "enable_word_time_offsets": True,
        "metadata": metadata,
    }
    if options.speaker_diarization:
        config_kwargs["diarization_config"] = speech.SpeakerDiarizationConfig(
            enable_speaker_diarization=True,
            max_speaker_count=options.diarization_speaker_count,
        )
    return speech.StreamingRecognitionConfig(
        config=speech.RecognitionConfig(**config_kwargs),
        interim_results=options.interim_results,
    )


def convert_result(result: Any) -> RecognitionResult:
    """Translate a StreamingRecognitionResult into the provider-neutral type."""
    alternatives = []
    for alt in result.alternatives:
        words = tuple(
            WordInfo(
                word=word.word,
                start_ms=duration_to_ms(word.start_time),
                end_ms=duration_to_ms(word.end_time),
                speaker_tag=int(getattr(word, "speaker_tag", 0) or 0),
            )
            for word in alt.words
        )
        alternatives.append(
            Alternative(
                transcript=alt.transcript,
                confidence=float(alt.confidence),
                words=words,
            )
        )
    return RecognitionResult(
        end_time_ms=duration_to_ms(result.result_end_time),
        is_final=bool(result.is_final),
        alternatives=tuple(alternatives),
    )


class GoogleSpeechSession(SessionHandle):
    """One streaming_recognize call fed from a request queue.

    Responses are read on a dedicated daemon thread which invokes the
    installed callbacks until the session is detached or closed.
    """

    def __init__(
        self,
        client: speech.SpeechClient,
        streaming_config: speech.StreamingRecognitionConfig,
        callbacks: SessionCallbacks,
        name: str = "google-speech",
    ) -> None:
        self._client = client
        self._streaming_config = streaming_config
        self._callbacks = callbacks
        self._requests: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._responses: Any = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    @property
    def is_open(self) -> bool:
        with self._lock:
            return not self._closed

    def write(self, payload: bytes) -> None:
        with self._lock:
            if self._closed:
                return
        if payload:
            self._requests.put(payload)

    def detach(self) -> None:
        with self._lock:
            self._callbacks = SessionCallbacks()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._callbacks = SessionCallbacks()
            responses = self._responses
        self._requests.put(None)
        if responses is not None:
            cancel = getattr(responses, "cancel", None)
            if callable(cancel):
                cancel()

    def _request_iter(self) -> Iterator[speech.StreamingRecognizeRequest]:
        while True:
            chunk = self._requests.get()
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _current_callbacks(self) -> Optional[SessionCallbacks]:
        with self._lock:
            if self._closed:
                return None
            return self._callbacks

    def _run(self) -> None:
        try:
            responses = self._client.streaming_recognize(
                self._streaming_config, self._request_iter()
            )
            with self._lock:
                self._responses = responses
                closed = self._closed
            if closed:
                cancel = getattr(responses, "cancel", None)
                if callable(cancel):
                    cancel()
                return
            for response in responses:
                if not response.results:
                    continue
                result = convert_result(response.results[0])
                callbacks = self._current_callbacks()
                if callbacks is None:
                    return
                callbacks.on_result(result)
        except (google_exceptions.GoogleAPICallError, grpc.RpcError) as exc:
            callbacks = self._current_callbacks()
            if callbacks is None:
                LOGGER.debug("Speech stream ended after close: %s", exc)
                return
            error = classify_rpc_error(exc)
            LOGGER.warning("Speech stream error: %s", error)
            callbacks.on_error(error)
            return
        except Exception as exc:
            callbacks = self._current_callbacks()
            if callbacks is None:
                LOGGER.debug("Speech stream failed after close: %s", exc)
                return
            LOGGER.exception("Speech stream failed")
            callbacks.on_error(SessionFatalError(str(exc)))
            return

        callbacks = self._current_callbacks()
        if callbacks is not None:
            callbacks.on_error(
                SessionTransientError("speech stream ended without a local close")
            )


class GoogleSpeechProvider(RecognitionProvider):
    """Opens Google streaming recognition sessions for one audio format."""

    name = "google"

    def __init__(
        self,
        audio_format: AudioFormat,
        options: Optional[GoogleSpeechOptions] = None,
        client: Optional[speech.SpeechClient] = None,
    ) -> None:
        self._audio_format = audio_format
        self._options = options or GoogleSpeechOptions()
        self._client = client
        self._streaming_config = build_recognition_config(audio_format, self._options)
        self._opened = 0

    @property
    def streaming_config(self) -> speech.StreamingRecognitionConfig:
        return self._streaming_config

    def _ensure_client(self) -> speech.SpeechClient:
        if self._client is None:
            try:
                self._client = speech.SpeechClient()
            except (auth_exceptions.GoogleAuthError, ValueError) as exc:
                raise SessionOpenError(f"speech client unavailable: {exc}") from exc
        return self._client

    def open_session(self, callbacks: SessionCallbacks) -> GoogleSpeechSession:
        client = self._ensure_client()
        self._opened += 1
        session = GoogleSpeechSession(
            client,
            self._streaming_config,
            callbacks,
            name=f"google-speech-{self._opened}",
        )
        try:
            session.start()
        except RuntimeError as exc:
            raise SessionOpenError(f"speech stream thread failed: {exc}") from exc
        LOGGER.debug(
            "Google speech session opened encoding=%s rate=%d language=%s",
            self._audio_format.encoding,
            self._audio_format.sample_rate_hz,
            self._options.language_code,
        )
        return session


__all__ = [
    "GoogleSpeechOptions",
    "GoogleSpeechProvider",
    "GoogleSpeechSession",
    "build_recognition_config",
    "convert_result",
    "duration_to_ms",
]
