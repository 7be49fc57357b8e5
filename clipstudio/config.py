"""JSON configuration schema: the contract between CLI/web and the pipeline."""

import json
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path


@dataclass
class TranscriptionConfig:
    """How long recordings are split and sent to the speech-to-text service."""

    backend: str = "openai"
    model: str = "whisper-1"
    language: str | None = "en"
    temperature: float = 0.0
    chunk_duration: float = 300.0
    overlap: float = 30.0
    chunk_workers: int = 1
    direct_max_bytes: int = 25 * 1024 * 1024
    direct_max_duration: float = 300.0
    request_timeout: float = 300.0
    api_key: str | None = None


@dataclass
class ClipConfig:
    """Encoding settings for cut clips."""

    output_dir: Path | None = None
    max_duration: float = 300.0
    preset: str = "fast"
    crf: int = 23


@dataclass
class UploadConfig:
    """Limits enforced while an upload streams in."""

    max_bytes: int = 500 * 1024 * 1024
    max_field_bytes: int = 1024 * 1024
    block_size: int = 64 * 1024


@dataclass
class Config:
    """Top-level configuration, built once per process."""

    work_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "clipstudio")
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    operation_timeout: float = 30 * 60.0
    subprocess_timeout: float = 10 * 60.0
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    clips: ClipConfig = field(default_factory=ClipConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)

    def __post_init__(self):
        self.work_dir = Path(self.work_dir)
        if self.clips.output_dir is None:
            self.clips.output_dir = self.work_dir / "clips"
        else:
            self.clips.output_dir = Path(self.clips.output_dir)

        tc = self.transcription
        if tc.backend not in ("openai", "whisper"):
            raise ValueError(f"Unknown transcription backend {tc.backend!r}")
        if tc.chunk_duration <= 0:
            raise ValueError("transcription.chunk_duration must be positive")
        if not 0 <= tc.overlap < tc.chunk_duration:
            raise ValueError("transcription.overlap must be in [0, chunk_duration)")
        if tc.chunk_workers < 1:
            raise ValueError("transcription.chunk_workers must be at least 1")


def _section(cls, data: dict | None):
    if not data:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(sorted(unknown))}")
    return cls(**data)


def apply_env(config: Config, environ=None) -> Config:
    """Override binaries, work dir and API key from the environment."""
    environ = os.environ if environ is None else environ
    if environ.get("FFMPEG_BINARY_PATH"):
        config.ffmpeg_binary = environ["FFMPEG_BINARY_PATH"]
    if environ.get("FFPROBE_BINARY_PATH"):
        config.ffprobe_binary = environ["FFPROBE_BINARY_PATH"]
    if environ.get("CLIPSTUDIO_WORK_DIR"):
        work_dir = Path(environ["CLIPSTUDIO_WORK_DIR"])
        if config.clips.output_dir == config.work_dir / "clips":
            config.clips.output_dir = work_dir / "clips"
        config.work_dir = work_dir
    if config.transcription.api_key is None and environ.get("OPENAI_API_KEY"):
        config.transcription.api_key = environ["OPENAI_API_KEY"]
    return config


def load_config(path: str | Path | None = None, environ=None) -> Config:
    """Load and validate a configuration from a JSON file, then apply env overrides."""
    data: dict = {}
    if path is not None:
        data = json.loads(Path(path).read_text())
        if not isinstance(data, dict):
            raise ValueError("Config file must contain a JSON object")

    top = {k: v for k, v in data.items() if k not in ("transcription", "clips", "upload")}
    unknown = set(top) - {f.name for f in fields(Config)}
    if unknown:
        raise ValueError(f"Unknown Config keys: {', '.join(sorted(unknown))}")
    config = Config(
        transcription=_section(TranscriptionConfig, data.get("transcription")),
        clips=_section(ClipConfig, data.get("clips")),
        upload=_section(UploadConfig, data.get("upload")),
        **top,
    )
    return apply_env(config, environ)
