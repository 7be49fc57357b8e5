"""Speech-to-text clients and the per-chunk transcription step."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from openai import OpenAI, OpenAIError

from clipstudio import ffutil
from clipstudio.analyzers.chunking import synthesize_word_spans
from clipstudio.config import TranscriptionConfig
from clipstudio.errors import ExtractionError, ProcessTimeoutError, TranscriptionServiceError
from clipstudio.models import ChunkResult, MediaHandle, TimeWindow, WordSpan

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionResponse:
    """What a backend returned for one audio file.

    ``words`` is None when the service declined word-level detail; word
    offsets are relative to the start of the file that was sent.
    """

    text: str
    duration: float | None = None
    words: list[WordSpan] | None = None


class Transcriber(Protocol):
    def transcribe(self, audio_path: Path) -> TranscriptionResponse: ...


def _field(obj, name: str):
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _parse_words(raw_words) -> list[WordSpan] | None:
    if not raw_words:
        return None
    spans = []
    for w in raw_words:
        word = _field(w, "word")
        if not isinstance(word, str):
            raise ValueError(f"word must be a string, got {word!r}")
        spans.append(WordSpan(word=word.strip(), start=_field(w, "start"), end=_field(w, "end")))
    return spans


class OpenAITranscriber:
    """Hosted transcription through the OpenAI audio API.

    The client is built on the first request and reused, so a missing API key
    only matters once something is transcribed. The SDK's own retries are
    disabled because the pipeline retries each chunk exactly once itself.
    """

    def __init__(self, config: TranscriptionConfig, client=None):
        self.config = config
        self._client = client
        self._lock = threading.Lock()

    @property
    def client(self):
        with self._lock:
            if self._client is None:
                try:
                    self._client = OpenAI(
                        api_key=self.config.api_key,
                        timeout=self.config.request_timeout,
                        max_retries=0,
                    )
                except OpenAIError as e:
                    raise TranscriptionServiceError(
                        f"Could not create the OpenAI client: {e}",
                        hint="Set OPENAI_API_KEY or transcription.api_key in the config.",
                    ) from e
            return self._client

    def transcribe(self, audio_path: Path) -> TranscriptionResponse:
        kwargs = {
            "model": self.config.model,
            "response_format": "verbose_json",
            "timestamp_granularities": ["word"],
            "temperature": self.config.temperature,
        }
        if self.config.language:
            kwargs["language"] = self.config.language

        try:
            with open(audio_path, "rb") as fh:
                resp = self.client.audio.transcriptions.create(file=fh, **kwargs)
        except OpenAIError as e:
            raise TranscriptionServiceError(f"OpenAI transcription failed: {e}") from e
        except OSError as e:
            raise TranscriptionServiceError(f"Could not read {audio_path}: {e}") from e

        return self._parse(resp)

    @staticmethod
    def _parse(resp) -> TranscriptionResponse:
        text = _field(resp, "text")
        if not isinstance(text, str):
            raise TranscriptionServiceError(f"Malformed transcription response: text={text!r}")
        duration = _field(resp, "duration")
        try:
            words = _parse_words(_field(resp, "words"))
            duration = float(duration) if duration is not None else None
        except (TypeError, ValueError) as e:
            raise TranscriptionServiceError(f"Malformed transcription response: {e}") from e
        return TranscriptionResponse(text=text.strip(), duration=duration, words=words)


class WhisperTranscriber:
    """Local transcription with OpenAI Whisper. The model loads on first use."""

    def __init__(self, config: TranscriptionConfig, model_name: str | None = None):
        self.config = config
        self.model_name = model_name or (
            "base" if config.model.startswith("whisper-") else config.model
        )
        self._model = None
        self._lock = threading.Lock()

    def _load_model(self):
        if self._model is None:
            import whisper

            logger.info("Loading Whisper model %s", self.model_name)
            self._model = whisper.load_model(self.model_name)
        return self._model

    def transcribe(self, audio_path: Path) -> TranscriptionResponse:
        with self._lock:
            try:
                model = self._load_model()
                result = model.transcribe(
                    str(audio_path),
                    language=self.config.language,
                    temperature=self.config.temperature,
                    word_timestamps=True,
                )
            except (RuntimeError, ValueError, OSError) as e:
                raise TranscriptionServiceError(f"Whisper transcription failed: {e}") from e

        segments = result.get("segments") or []
        raw_words = [w for seg in segments for w in seg.get("words") or []]
        try:
            words = _parse_words(raw_words)
        except (TypeError, ValueError) as e:
            raise TranscriptionServiceError(f"Malformed Whisper output: {e}") from e
        duration = float(segments[-1]["end"]) if segments else None
        return TranscriptionResponse(
            text=result.get("text", "").strip(), duration=duration, words=words
        )


def build_transcriber(config: TranscriptionConfig) -> Transcriber:
    if config.backend == "whisper":
        return WhisperTranscriber(config)
    return OpenAITranscriber(config)


def can_process_directly(size_bytes: int, duration: float, config: TranscriptionConfig) -> bool:
    """True when the whole audio fits in a single service request."""
    return size_bytes <= config.direct_max_bytes and duration <= config.direct_max_duration


def _transcribe_with_retry(
    transcriber: Transcriber, audio_path: Path, label: str
) -> TranscriptionResponse:
    try:
        return transcriber.transcribe(audio_path)
    except TranscriptionServiceError as e:
        logger.warning("Transcription of %s failed, retrying once: %s", label, e)
    return transcriber.transcribe(audio_path)


def _to_chunk_result(window: TimeWindow, resp: TranscriptionResponse) -> ChunkResult:
    duration = resp.duration if resp.duration is not None else window.duration
    words = resp.words
    if not words and resp.text:
        words = synthesize_word_spans(resp.text, duration)
    return ChunkResult(
        window_start=window.start,
        text=resp.text,
        words=words or [],
        duration=duration,
    )


def transcribe_file(
    audio_path: Path, window: TimeWindow, transcriber: Transcriber
) -> ChunkResult:
    """Send an already extracted file covering *window* as one request."""
    label = f"[{window.start:.1f}s, {window.end:.1f}s]"
    try:
        resp = _transcribe_with_retry(transcriber, audio_path, label)
    except TranscriptionServiceError as e:
        logger.warning("Giving up on chunk %s: %s", label, e)
        return ChunkResult.empty(window.start, window.duration)
    return _to_chunk_result(window, resp)


def transcribe_chunk(
    audio_path: Path,
    window: TimeWindow,
    transcriber: Transcriber,
    scratch_path: Path,
    ffmpeg: str = "ffmpeg",
    timeout: float | None = ffutil.DEFAULT_TIMEOUT,
) -> ChunkResult:
    """Extract *window* to *scratch_path*, transcribe it, and delete the file.

    A chunk that cannot be extracted or transcribed (after one retry) comes
    back as an empty, failed ChunkResult instead of raising.
    """
    with MediaHandle(scratch_path, "audio"):
        try:
            ffutil.extract_window(audio_path, window, scratch_path, ffmpeg=ffmpeg, timeout=timeout)
        except (ExtractionError, ProcessTimeoutError) as e:
            logger.warning(
                "Could not extract chunk [%.1fs, %.1fs]: %s", window.start, window.end, e
            )
            return ChunkResult.empty(window.start, window.duration)
        return transcribe_file(scratch_path, window, transcriber)
