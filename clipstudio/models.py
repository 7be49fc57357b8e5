"""Shared data types used across clipstudio."""

import math
from dataclasses import dataclass, field
from pathlib import Path

from clipstudio.errors import InvalidClipRequestError

MAX_CLIP_DURATION = 300.0

# 150 words per minute
WORDS_PER_SECOND = 2.5


def _check_number(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return float(value)


@dataclass
class MediaHandle:
    """A file on local disk plus its media kind.

    The creator owns the file and must ``release()`` it unless it hands the
    handle to a caller. Used as a context manager the file is released on
    exit, whatever the outcome.
    """

    path: Path
    kind: str

    def __post_init__(self):
        self.path = Path(self.path)
        if self.kind not in ("audio", "video"):
            raise ValueError(f"kind must be 'audio' or 'video', got {self.kind!r}")

    @classmethod
    def from_mimetype(cls, path: Path, mimetype: str) -> "MediaHandle":
        kind = "audio" if mimetype.startswith("audio/") else "video"
        return cls(path=path, kind=kind)

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    def release(self) -> None:
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> "MediaHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


@dataclass
class TimeWindow:
    """A start/end time pair in seconds, ``0 <= start < end``."""

    start: float
    end: float

    def __post_init__(self):
        self.start = _check_number("start", self.start)
        self.end = _check_number("end", self.end)
        if self.start < 0 or self.start >= self.end:
            raise ValueError(f"invalid window [{self.start}, {self.end}]")

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class WordSpan:
    """A single transcribed word with its start/end offset in seconds."""

    word: str
    start: float
    end: float

    def __post_init__(self):
        if not isinstance(self.word, str):
            raise ValueError(f"word must be a string, got {self.word!r}")
        self.start = _check_number("start", self.start)
        self.end = _check_number("end", self.end)
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"invalid word span {self.word!r} [{self.start}, {self.end}]")

    def shifted(self, offset: float) -> "WordSpan":
        return WordSpan(word=self.word, start=self.start + offset, end=self.end + offset)

    def to_dict(self) -> dict:
        return {"word": self.word, "start": self.start, "end": self.end}


@dataclass
class ChunkResult:
    """Transcription of one window. ``words`` are relative to ``window_start``."""

    window_start: float
    text: str = ""
    words: list[WordSpan] = field(default_factory=list)
    duration: float | None = None
    failed: bool = False

    def __post_init__(self):
        self.window_start = _check_number("window_start", self.window_start)
        if self.window_start < 0:
            raise ValueError(f"window_start must be >= 0, got {self.window_start}")

    @classmethod
    def empty(cls, window_start: float, duration: float | None = None) -> "ChunkResult":
        """Placeholder for a chunk whose transcription failed."""
        return cls(window_start=window_start, duration=duration, failed=True)


@dataclass
class Transcript:
    """Merged transcript. ``words`` are absolute and non-decreasing by start."""

    text: str = ""
    duration_estimate: float = 0.0
    words: list[WordSpan] = field(default_factory=list)

    def __post_init__(self):
        for prev, cur in zip(self.words, self.words[1:]):
            if cur.start < prev.start:
                raise ValueError(
                    f"words out of order: {cur.word!r}@{cur.start} after {prev.word!r}@{prev.start}"
                )

    @classmethod
    def from_text(cls, text: str) -> "Transcript":
        """Build a word-less transcript, estimating duration from word count."""
        text = text.strip()
        word_count = len(text.split())
        return cls(text=text, duration_estimate=max(60.0, word_count / WORDS_PER_SECOND))

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "duration_estimate": self.duration_estimate,
            "words": [w.to_dict() for w in self.words],
        }


@dataclass
class ClipRequest:
    """A clip to cut from a source video, as proposed by the clip planner."""

    title: str
    start_time: float
    end_time: float
    description: str = ""
    social_score: float = 0.0

    def __post_init__(self):
        if not isinstance(self.title, str) or not isinstance(self.description, str):
            raise ValueError("title and description must be strings")
        self.start_time = _check_number("start_time", self.start_time)
        self.end_time = _check_number("end_time", self.end_time)
        self.social_score = _check_number("social_score", self.social_score)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def check_bounds(self, max_duration: float = MAX_CLIP_DURATION) -> None:
        """Raise InvalidClipRequestError unless ``0 < duration <= max_duration``."""
        if self.start_time < 0:
            raise InvalidClipRequestError(
                f"clip {self.title!r} starts before 0 ({self.start_time}s)"
            )
        if not 0 < self.duration <= max_duration:
            raise InvalidClipRequestError(
                f"clip {self.title!r} has duration {self.duration:.2f}s, "
                f"expected 0 < duration <= {max_duration:g}s"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "ClipRequest":
        """Accept both camelCase (``startTime``) and snake_case keys."""
        if not isinstance(data, dict):
            raise ValueError(f"clip request must be an object, got {type(data).__name__}")

        def pick(snake: str, camel: str, default=None):
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        start = pick("start_time", "startTime")
        end = pick("end_time", "endTime")
        if start is None or end is None:
            raise ValueError("clip request needs startTime and endTime")
        return cls(
            title=data.get("title", ""),
            description=data.get("description") or "",
            start_time=start,
            end_time=end,
            social_score=pick("social_score", "socialScore", 0) or 0,
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "socialScore": self.social_score,
        }


@dataclass
class ClipResult:
    """A clip that ffmpeg produced successfully."""

    request: ClipRequest
    video_path: Path
    duration: float

    def to_dict(self) -> dict:
        data = self.request.to_dict()
        data["videoPath"] = str(self.video_path)
        data["duration"] = self.duration
        return data


@dataclass
class TranscriptionOutcome:
    """A transcript plus how many of its chunks could not be transcribed."""

    transcript: Transcript
    chunks_total: int = 0
    chunks_failed: int = 0
    direct: bool = False

    @property
    def partial(self) -> bool:
        return self.chunks_failed > 0

    def to_dict(self) -> dict:
        return {
            "transcript": self.transcript.to_dict(),
            "chunks_total": self.chunks_total,
            "chunks_failed": self.chunks_failed,
            "direct": self.direct,
            "partial": self.partial,
        }


@dataclass
class ClipOutcome:
    """Clips produced from a plan; skipped requests are simply absent."""

    clips: list[ClipResult] = field(default_factory=list)
    requested: int = 0

    @property
    def skipped(self) -> int:
        return self.requested - len(self.clips)

    @property
    def partial(self) -> bool:
        return self.skipped > 0

    def to_dict(self) -> dict:
        return {
            "clips": [c.to_dict() for c in self.clips],
            "requested": self.requested,
            "skipped": self.skipped,
            "partial": self.partial,
        }
