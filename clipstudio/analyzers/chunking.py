"""Chunk planning and merging for recordings longer than one service request."""

import logging
import math

from clipstudio.models import ChunkResult, TimeWindow, Transcript, WordSpan

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_DURATION = 300.0
DEFAULT_OVERLAP = 30.0


def plan_chunks(
    total_duration: float,
    chunk_duration: float = DEFAULT_CHUNK_DURATION,
    overlap: float = DEFAULT_OVERLAP,
) -> list[TimeWindow]:
    """Split ``[0, total_duration]`` into overlapping windows.

    Each window is ``[t, min(t + chunk_duration, total)]``; the next one starts
    ``overlap`` seconds before the previous end. The loop is capped at
    ``ceil(total / stride) + 2`` iterations so float drift in the duration
    can never stall it.
    """
    if total_duration < 0:
        raise ValueError(f"total_duration must be >= 0, got {total_duration}")
    if chunk_duration <= 0:
        raise ValueError(f"chunk_duration must be positive, got {chunk_duration}")
    if not 0 <= overlap < chunk_duration:
        raise ValueError(f"overlap must be in [0, {chunk_duration}), got {overlap}")

    if total_duration == 0:
        return []
    if total_duration <= chunk_duration:
        return [TimeWindow(start=0.0, end=total_duration)]

    max_iterations = math.ceil(total_duration / (chunk_duration - overlap)) + 2
    windows: list[TimeWindow] = []
    t = 0.0
    for _ in range(max_iterations):
        end = min(t + chunk_duration, total_duration)
        windows.append(TimeWindow(start=t, end=end))
        if end >= total_duration:
            break
        t = max(end - overlap, 0.0)
    else:
        logger.warning(
            "Chunk planning hit its iteration cap (%d) before reaching %.3fs",
            max_iterations, total_duration,
        )
    return windows


def synthesize_word_spans(text: str, duration: float) -> list[WordSpan]:
    """Approximate word timings by dividing *duration* evenly across words.

    Used when the service returns text without word-level data. The spans are
    an approximation only.
    """
    words = text.split()
    if not words or duration <= 0:
        return []
    step = duration / len(words)
    return [
        WordSpan(word=w, start=i * step, end=(i + 1) * step)
        for i, w in enumerate(words)
    ]


def merge_chunks(
    chunks: list[ChunkResult],
    chunk_duration: float = DEFAULT_CHUNK_DURATION,
) -> Transcript:
    """Combine per-chunk results, in the given order, into one transcript.

    Words are shifted by their chunk's ``window_start``. Repeated words in an
    overlap are not deduplicated by content; a word that would start before
    the last kept word is dropped so that ``words`` stays non-decreasing.
    """
    if not chunks:
        return Transcript()

    words: list[WordSpan] = []
    texts: list[str] = []
    dropped = 0
    for chunk in chunks:
        if chunk.text.strip():
            texts.append(chunk.text.strip())
        for span in chunk.words:
            absolute = span.shifted(chunk.window_start)
            if words and absolute.start < words[-1].start:
                dropped += 1
                continue
            words.append(absolute)

    if dropped:
        logger.debug("Dropped %d out-of-order words at chunk seams", dropped)

    if words:
        text = " ".join(w.word for w in words)
        duration_estimate = max(w.end for w in words)
    else:
        text = " ".join(texts)
        duration_estimate = chunks[-1].window_start + chunk_duration

    return Transcript(text=text, duration_estimate=duration_estimate, words=words)
