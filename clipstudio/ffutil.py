"""FFmpeg/ffprobe subprocess helpers."""

import logging
import math
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from clipstudio.errors import (
    ExtractionError,
    FFmpegNotFoundError,
    ProbeError,
    ProcessTimeoutError,
)
from clipstudio.models import TimeWindow

logger = logging.getLogger(__name__)

TRANSCRIPTION_SAMPLE_RATE = 16000
TRANSCRIPTION_CHANNELS = 1
ARCHIVAL_SAMPLE_RATE = 44100
ARCHIVAL_CHANNELS = 2

# Seconds; callers normally pass a tighter value from their deadline.
DEFAULT_TIMEOUT = 600.0


@dataclass
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def stderr_tail(self, limit: int = 500) -> str:
        return self.stderr[-limit:].strip()


def check_ffmpeg(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in (ffmpeg, ffprobe):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def run_process(args: list[str], timeout: float | None = DEFAULT_TIMEOUT) -> ProcessResult:
    """Run a command to completion and capture its output.

    A non-zero exit is returned, not raised. A missing binary raises
    FFmpegNotFoundError; exceeding ``timeout`` kills the child and raises
    ProcessTimeoutError.
    """
    try:
        proc = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise FFmpegNotFoundError(f"{args[0]} not found on PATH") from e
    except subprocess.TimeoutExpired as e:
        raise ProcessTimeoutError(
            f"{args[0]} did not finish within {timeout:g}s"
        ) from e
    return ProcessResult(
        exit_code=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )


# ---------------------------------------------------------------------------
# Command builders
# ---------------------------------------------------------------------------

def build_probe_duration_cmd(input_path: Path, ffprobe: str = "ffprobe") -> list[str]:
    return [
        ffprobe,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]


def build_extract_audio_cmd(
    input_path: Path,
    output_path: Path,
    sample_rate: int = TRANSCRIPTION_SAMPLE_RATE,
    channels: int = TRANSCRIPTION_CHANNELS,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    return [
        ffmpeg, "-y",
        "-nostdin",
        "-i", str(input_path),
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", str(channels),
        str(output_path),
    ]


def build_extract_window_cmd(
    input_path: Path,
    window: TimeWindow,
    output_path: Path,
    sample_rate: int = TRANSCRIPTION_SAMPLE_RATE,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    return [
        ffmpeg, "-y",
        "-nostdin",
        "-ss", f"{window.start:.3f}",
        "-i", str(input_path),
        "-t", f"{window.duration:.3f}",
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", str(TRANSCRIPTION_CHANNELS),
        str(output_path),
    ]


def build_cut_clip_cmd(
    input_path: Path,
    start: float,
    duration: float,
    output_path: Path,
    preset: str = "fast",
    crf: int = 23,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    """Re-encode a sub-range as an MP4 tuned for web playback."""
    return [
        ffmpeg, "-y",
        "-nostdin",
        "-ss", f"{start:.3f}",
        "-i", str(input_path),
        "-t", f"{duration:.3f}",
        "-c:v", "libx264",
        "-preset", preset,
        "-crf", str(crf),
        "-c:a", "aac",
        "-movflags", "+faststart",
        "-f", "mp4",
        str(output_path),
    ]


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def probe_duration(
    input_path: Path,
    ffprobe: str = "ffprobe",
    timeout: float | None = DEFAULT_TIMEOUT,
) -> float:
    """Return the container duration of *input_path* in seconds."""
    cmd = build_probe_duration_cmd(input_path, ffprobe=ffprobe)
    result = run_process(cmd, timeout=timeout)
    if not result.ok:
        raise ProbeError(
            f"ffprobe failed on {input_path} (rc={result.exit_code}): {result.stderr_tail()}"
        )

    raw = result.stdout.strip()
    try:
        duration = float(raw)
    except ValueError:
        raise ProbeError(f"ffprobe returned an unreadable duration {raw!r} for {input_path}")
    if not math.isfinite(duration) or duration < 0:
        raise ProbeError(f"ffprobe returned an invalid duration {raw!r} for {input_path}")
    return duration


def _require_output(output_path: Path, result: ProcessResult, what: str) -> None:
    if not result.ok:
        logger.error("%s failed (rc=%d): %s", what, result.exit_code, result.stderr_tail())
        raise ExtractionError(
            f"{what} failed (rc={result.exit_code})", stderr=result.stderr_tail()
        )
    if not output_path.exists() or output_path.stat().st_size == 0:
        raise ExtractionError(
            f"{what} produced no output at {output_path}", stderr=result.stderr_tail()
        )


def extract_audio(
    input_path: Path,
    output_path: Path,
    sample_rate: int = TRANSCRIPTION_SAMPLE_RATE,
    channels: int = TRANSCRIPTION_CHANNELS,
    ffmpeg: str = "ffmpeg",
    timeout: float | None = DEFAULT_TIMEOUT,
) -> Path:
    """Extract the audio track as 16-bit PCM WAV.

    Transcription uses 16 kHz mono (the defaults); archival copies use
    ARCHIVAL_SAMPLE_RATE / ARCHIVAL_CHANNELS. The caller owns *output_path*.
    """
    cmd = build_extract_audio_cmd(
        input_path, output_path, sample_rate=sample_rate, channels=channels, ffmpeg=ffmpeg
    )
    logger.info("Executing ffmpeg: %s", " ".join(cmd))
    result = run_process(cmd, timeout=timeout)
    _require_output(output_path, result, "audio extraction")
    return output_path


def extract_window(
    input_path: Path,
    window: TimeWindow,
    output_path: Path,
    ffmpeg: str = "ffmpeg",
    timeout: float | None = DEFAULT_TIMEOUT,
) -> Path:
    """Extract one time window of *input_path* as a standalone WAV file."""
    cmd = build_extract_window_cmd(input_path, window, output_path, ffmpeg=ffmpeg)
    logger.debug("Executing ffmpeg: %s", " ".join(cmd))
    result = run_process(cmd, timeout=timeout)
    _require_output(output_path, result, f"window extraction [{window.start:.1f}, {window.end:.1f}]")
    return output_path
