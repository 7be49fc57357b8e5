"""Orchestrator: runs transcription and clip cutting for one operation."""

import logging
import shutil
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from clipstudio import ffutil
from clipstudio.analyzers.chunking import merge_chunks, plan_chunks
from clipstudio.analyzers.transcribe import (
    Transcriber,
    build_transcriber,
    can_process_directly,
    transcribe_chunk,
    transcribe_file,
)
from clipstudio.config import Config
from clipstudio.editors.clips import cut_clips
from clipstudio.errors import PipelineTimeoutError, ProcessTimeoutError
from clipstudio.models import (
    ChunkResult,
    ClipOutcome,
    ClipRequest,
    TimeWindow,
    TranscriptionOutcome,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]


class Deadline:
    """Wall-clock budget shared by every step of one operation."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(self.expires_at - self._clock(), 0.0)

    def check(self) -> None:
        if self.remaining() <= 0:
            raise PipelineTimeoutError(
                f"Operation exceeded its {self.seconds:g}s time limit"
            )

    def timeout(self, cap: float) -> float:
        """Per-subprocess timeout: *cap*, shortened to what is left."""
        self.check()
        return min(cap, self.remaining())


class Pipeline:
    """Long-form transcription and clip extraction.

    Built once per process from a Config; the transcriber it holds is reused
    across operations. Each call gets its own operation id and scratch
    directory, which is removed before the call returns or raises.
    """

    def __init__(self, config: Config, transcriber: Transcriber | None = None):
        self.config = config
        self.transcriber = transcriber or build_transcriber(config.transcription)

    def _scratch_dir(self, operation_id: str) -> Path:
        path = self.config.work_dir / f"op_{operation_id}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def transcribe(
        self,
        media_path: Path,
        on_progress: ProgressCallback | None = None,
        operation_id: str | None = None,
    ) -> TranscriptionOutcome:
        """Transcribe *media_path* into one word-timestamped transcript.

        Probe and audio-extraction failures are fatal. Chunks that fail are
        counted in ``chunks_failed`` and contribute nothing.
        """

        def _progress(stage: str, frac: float) -> None:
            if on_progress:
                on_progress(stage, frac)

        operation_id = operation_id or uuid.uuid4().hex[:12]
        cfg = self.config
        tc = cfg.transcription
        deadline = Deadline(cfg.operation_timeout)
        scratch = self._scratch_dir(operation_id)

        try:
            _progress("Probing media duration", 0.0)
            duration = ffutil.probe_duration(
                media_path,
                ffprobe=cfg.ffprobe_binary,
                timeout=deadline.timeout(cfg.subprocess_timeout),
            )
            logger.info("Operation %s: %s is %.1fs long", operation_id, media_path, duration)

            _progress("Extracting audio", 0.05)
            audio_path = ffutil.extract_audio(
                media_path,
                scratch / f"{operation_id}_audio.wav",
                ffmpeg=cfg.ffmpeg_binary,
                timeout=deadline.timeout(cfg.subprocess_timeout),
            )
            size = audio_path.stat().st_size

            if can_process_directly(size, duration, tc):
                _progress("Transcribing audio", 0.15)
                window = TimeWindow(start=0.0, end=max(duration, 1e-3))
                chunks = [transcribe_file(audio_path, window, self.transcriber)]
                deadline.check()
                direct = True
            else:
                windows = plan_chunks(duration, tc.chunk_duration, tc.overlap)
                logger.info(
                    "Operation %s: %d bytes of audio, splitting into %d chunks",
                    operation_id, size, len(windows),
                )
                chunks = self._transcribe_windows(
                    audio_path, windows, scratch, operation_id, deadline, _progress
                )
                direct = False

            _progress("Merging transcript", 0.95)
            transcript = merge_chunks(chunks, tc.chunk_duration)
            failed = sum(1 for c in chunks if c.failed)
            if failed:
                logger.warning(
                    "Operation %s: %d of %d chunks could not be transcribed",
                    operation_id, failed, len(chunks),
                )
            _progress("Done", 1.0)
            return TranscriptionOutcome(
                transcript=transcript,
                chunks_total=len(chunks),
                chunks_failed=failed,
                direct=direct,
            )
        except ProcessTimeoutError as e:
            if deadline.remaining() <= 0:
                raise PipelineTimeoutError(str(e)) from e
            raise
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _transcribe_windows(
        self,
        audio_path: Path,
        windows: list[TimeWindow],
        scratch: Path,
        operation_id: str,
        deadline: Deadline,
        progress: ProgressCallback,
    ) -> list[ChunkResult]:
        cfg = self.config
        total = len(windows)
        results: list[ChunkResult | None] = [None] * total

        def run(index: int) -> ChunkResult:
            window = windows[index]
            return transcribe_chunk(
                audio_path,
                window,
                self.transcriber,
                scratch / f"{operation_id}_chunk{index:03d}.wav",
                ffmpeg=cfg.ffmpeg_binary,
                timeout=deadline.timeout(cfg.subprocess_timeout),
            )

        def fraction(done: int) -> float:
            return min(0.15 + 0.8 * done / total, 0.95)

        def record(index: int, result: ChunkResult, done: int) -> None:
            results[index] = result
            deadline.check()
            progress(f"Transcribed chunk {done}/{total}", fraction(done))

        workers = min(cfg.transcription.chunk_workers, total)
        if workers <= 1:
            for i in range(total):
                progress(f"Transcribing chunk {i + 1}/{total}", fraction(i))
                record(i, run(i), i + 1)
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(run, i) for i in range(total)]
                try:
                    for i, future in enumerate(futures):
                        record(i, future.result(), i + 1)
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

        return [r for r in results if r is not None]

    def cut_clips(
        self,
        source_path: Path,
        requests: list[ClipRequest],
        output_dir: Path | None = None,
        on_progress: ProgressCallback | None = None,
        operation_id: str | None = None,
    ) -> ClipOutcome:
        """Cut *requests* from *source_path*; skipped or failed clips are absent."""
        operation_id = operation_id or uuid.uuid4().hex[:12]
        cfg = self.config
        deadline = Deadline(cfg.operation_timeout)
        if on_progress:
            on_progress(f"Cutting {len(requests)} clips", 0.0)

        clips = cut_clips(
            source_path,
            requests,
            output_dir or cfg.clips.output_dir,
            max_duration=cfg.clips.max_duration,
            preset=cfg.clips.preset,
            crf=cfg.clips.crf,
            operation_id=operation_id,
            ffmpeg=cfg.ffmpeg_binary,
            timeout=cfg.subprocess_timeout,
            deadline=deadline,
        )

        outcome = ClipOutcome(clips=clips, requested=len(requests))
        if outcome.skipped:
            logger.warning(
                "Operation %s: %d of %d clips were skipped",
                operation_id, outcome.skipped, outcome.requested,
            )
        if on_progress:
            on_progress("Done", 1.0)
        return outcome
