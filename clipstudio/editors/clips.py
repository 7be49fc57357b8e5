"""Clip cutter: re-encodes requested sub-ranges of a video into MP4 files."""

import logging
import uuid
from pathlib import Path

from clipstudio import ffutil
from clipstudio.errors import InvalidClipRequestError, PipelineTimeoutError, ProcessTimeoutError
from clipstudio.models import MAX_CLIP_DURATION, ClipRequest, ClipResult

logger = logging.getLogger(__name__)


def cut_clips(
    source_path: Path,
    requests: list[ClipRequest],
    output_dir: Path,
    max_duration: float = MAX_CLIP_DURATION,
    preset: str = "fast",
    crf: int = 23,
    operation_id: str | None = None,
    ffmpeg: str = "ffmpeg",
    timeout: float | None = ffutil.DEFAULT_TIMEOUT,
    deadline=None,
) -> list[ClipResult]:
    """Cut one MP4 per valid request, in input order.

    Invalid requests are skipped without running ffmpeg; a failed encode is
    logged and the batch moves on. Only successful clips are returned, so the
    result does not line up index-for-index with *requests*.

    With a *deadline* (see engine.Deadline) each encode gets at most the time
    left; once it runs out the clips made so far are deleted and
    PipelineTimeoutError propagates.
    """
    operation_id = operation_id or uuid.uuid4().hex[:12]
    output_dir.mkdir(parents=True, exist_ok=True)
    total = len(requests)

    results: list[ClipResult] = []
    try:
        for i, request in enumerate(requests):
            try:
                request.check_bounds(max_duration)
            except InvalidClipRequestError as e:
                logger.warning("Skipping clip %d/%d: %s", i + 1, total, e)
                continue

            clip_timeout = deadline.timeout(timeout) if deadline is not None else timeout
            output_path = output_dir / f"clip_{operation_id}_{i:03d}.mp4"
            cmd = ffutil.build_cut_clip_cmd(
                source_path,
                request.start_time,
                request.duration,
                output_path,
                preset=preset,
                crf=crf,
                ffmpeg=ffmpeg,
            )
            logger.info("Creating clip %d/%d: %s", i + 1, total, output_path.name)
            logger.debug("Executing ffmpeg: %s", " ".join(cmd))

            try:
                result = ffutil.run_process(cmd, timeout=clip_timeout)
            except ProcessTimeoutError as e:
                logger.warning("Clip %d/%d timed out: %s", i + 1, total, e)
                output_path.unlink(missing_ok=True)
                continue

            if not result.ok:
                logger.warning(
                    "Failed to create clip %d/%d (rc=%d): %s",
                    i + 1, total, result.exit_code, result.stderr_tail(),
                )
                output_path.unlink(missing_ok=True)
                continue

            results.append(
                ClipResult(request=request, video_path=output_path, duration=request.duration)
            )
    except PipelineTimeoutError:
        cleanup_clips([c.video_path for c in results])
        raise

    return results


def cleanup_clips(clip_paths: list[Path]) -> int:
    """Delete clip files that still exist; return how many were removed."""
    removed = 0
    for path in clip_paths:
        path = Path(path)
        try:
            if path.exists():
                path.unlink()
                removed += 1
                logger.info("Cleaned up clip: %s", path)
        except OSError as e:
            logger.warning("Failed to clean up clip %s: %s", path, e)
    return removed
