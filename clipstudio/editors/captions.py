"""Transcript export: plain text, JSON and SRT/VTT subtitle files."""

import json
from dataclasses import dataclass
from pathlib import Path

from clipstudio.models import Transcript

FORMATS = ("txt", "json", "srt", "vtt")


@dataclass
class Cue:
    start: float
    end: float
    text: str


def _format_srt_time(seconds: float) -> str:
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = int(seconds % 60)
    ms = int((seconds % 1) * 1000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def _format_vtt_time(seconds: float) -> str:
    return _format_srt_time(seconds).replace(",", ".")


def group_cues(
    transcript: Transcript, max_words: int = 12, max_gap: float = 1.0
) -> list[Cue]:
    """Group words into subtitle cues.

    A new cue starts after *max_words* words or when the pause before a word
    exceeds *max_gap* seconds. A transcript without word timings becomes a
    single cue spanning its estimated duration.
    """
    if not transcript.words:
        if not transcript.text:
            return []
        return [Cue(start=0.0, end=transcript.duration_estimate, text=transcript.text)]

    cues: list[Cue] = []
    current = [transcript.words[0]]
    for word in transcript.words[1:]:
        if len(current) >= max_words or word.start - current[-1].end > max_gap:
            cues.append(Cue(current[0].start, current[-1].end, " ".join(w.word for w in current)))
            current = []
        current.append(word)
    cues.append(Cue(current[0].start, current[-1].end, " ".join(w.word for w in current)))
    return cues


def _render_srt(cues: list[Cue]) -> str:
    lines: list[str] = []
    for i, cue in enumerate(cues, 1):
        lines.append(str(i))
        lines.append(f"{_format_srt_time(cue.start)} --> {_format_srt_time(cue.end)}")
        lines.append(cue.text)
        lines.append("")
    return "\n".join(lines)


def _render_vtt(cues: list[Cue]) -> str:
    lines: list[str] = ["WEBVTT", ""]
    for cue in cues:
        lines.append(f"{_format_vtt_time(cue.start)} --> {_format_vtt_time(cue.end)}")
        lines.append(cue.text)
        lines.append("")
    return "\n".join(lines)


def render_transcript(transcript: Transcript, output_format: str = "txt") -> str:
    if output_format == "txt":
        return transcript.text + "\n"
    if output_format == "json":
        return json.dumps(transcript.to_dict(), indent=2)
    if output_format == "srt":
        return _render_srt(group_cues(transcript))
    if output_format == "vtt":
        return _render_vtt(group_cues(transcript))
    raise ValueError(f"Unknown transcript format {output_format!r}; expected one of {FORMATS}")


def export_transcript(transcript: Transcript, output_path: Path, output_format: str | None = None) -> Path:
    """Write *transcript* to *output_path*; the format defaults to the file suffix."""
    output_format = output_format or output_path.suffix.lstrip(".") or "txt"
    output_path.write_text(render_transcript(transcript, output_format), encoding="utf-8")
    return output_path
