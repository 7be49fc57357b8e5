"""Unit tests for chunk planning and merging."""

import math

import pytest

from clipstudio.analyzers.chunking import merge_chunks, plan_chunks, synthesize_word_spans
from clipstudio.models import ChunkResult, TimeWindow, Transcript, WordSpan


def _words(*triples):
    return [WordSpan(word=w, start=s, end=e) for w, s, e in triples]


# ---------------------------------------------------------------------------
# plan_chunks
# ---------------------------------------------------------------------------

class TestPlanChunks:
    def test_620_seconds(self):
        assert plan_chunks(620, chunk_duration=300, overlap=30) == [
            TimeWindow(start=0, end=300),
            TimeWindow(start=270, end=570),
            TimeWindow(start=540, end=620),
        ]

    @pytest.mark.parametrize("total", [0.5, 120.0, 299.99, 300.0])
    def test_short_input_is_single_window(self, total):
        assert plan_chunks(total, chunk_duration=300, overlap=30) == [
            TimeWindow(start=0, end=total)
        ]

    def test_zero_duration(self):
        assert plan_chunks(0) == []

    @pytest.mark.parametrize(
        "total", [300.001, 570.0, 571.5, 3600.0, 7200.123, 36000.0, 100000.7]
    )
    def test_covers_without_gaps(self, total):
        windows = plan_chunks(total, chunk_duration=300, overlap=30)
        assert windows[0].start == 0
        assert windows[-1].end == total
        for prev, cur in zip(windows, windows[1:]):
            assert cur.start <= prev.end
            assert cur.start > prev.start
        assert len(windows) <= math.ceil(total / 270) + 2

    def test_windows_never_exceed_chunk_duration(self):
        for w in plan_chunks(5000, chunk_duration=300, overlap=30):
            assert w.duration <= 300

    def test_large_overlap_still_terminates_and_covers(self):
        windows = plan_chunks(1000, chunk_duration=300, overlap=290)
        assert windows[-1].end == 1000

    def test_no_overlap(self):
        assert plan_chunks(600.5, chunk_duration=300, overlap=0) == [
            TimeWindow(0, 300),
            TimeWindow(300, 600),
            TimeWindow(600, 600.5),
        ]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"total_duration": -1},
            {"total_duration": 10, "chunk_duration": 0},
            {"total_duration": 10, "overlap": 300},
            {"total_duration": 10, "overlap": -1},
        ],
    )
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            plan_chunks(**kwargs)


# ---------------------------------------------------------------------------
# synthesize_word_spans
# ---------------------------------------------------------------------------

class TestSynthesizeWordSpans:
    def test_even_division(self):
        assert synthesize_word_spans("hello world", 2.0) == _words(
            ("hello", 0.0, 1.0), ("world", 1.0, 2.0)
        )

    def test_extra_whitespace(self):
        spans = synthesize_word_spans("  one   two\nthree ", 3.0)
        assert [s.word for s in spans] == ["one", "two", "three"]
        assert spans[-1].end == pytest.approx(3.0)

    def test_empty(self):
        assert synthesize_word_spans("", 5.0) == []
        assert synthesize_word_spans("hello", 0.0) == []


# ---------------------------------------------------------------------------
# merge_chunks
# ---------------------------------------------------------------------------

class TestMergeChunks:
    def test_empty(self):
        result = merge_chunks([])
        assert result == Transcript(text="", duration_estimate=0.0, words=[])

    def test_shifts_words_by_window_start(self):
        chunks = [
            ChunkResult(window_start=0, text="good morning", words=_words(("good", 0.5, 0.9), ("morning", 1.0, 1.6))),
            ChunkResult(window_start=300, text="thanks", words=_words(("thanks", 2.0, 2.5))),
        ]
        result = merge_chunks(chunks)
        assert [(w.word, w.start, w.end) for w in result.words] == [
            ("good", 0.5, 0.9),
            ("morning", 1.0, 1.6),
            ("thanks", 302.0, 302.5),
        ]
        assert result.text == "good morning thanks"
        assert result.duration_estimate == pytest.approx(302.5)

    def test_words_non_decreasing_across_overlap(self):
        chunks = [
            ChunkResult(window_start=0, text="a b", words=_words(("a", 290.0, 295.0), ("b", 298.0, 299.5))),
            ChunkResult(
                window_start=270,
                text="a b c",
                words=_words(("a", 20.0, 25.0), ("b", 28.0, 29.5), ("c", 31.0, 32.0)),
            ),
        ]
        result = merge_chunks(chunks)
        starts = [w.start for w in result.words]
        assert starts == sorted(starts)
        # Not deduplicated by content: "b" at the seam appears twice.
        assert [w.word for w in result.words] == ["a", "b", "b", "c"]

    def test_failed_chunk_is_tolerated(self):
        chunks = [
            ChunkResult(window_start=0, text="first", words=_words(("first", 1.0, 1.5))),
            ChunkResult.empty(270, 300),
            ChunkResult(window_start=540, text="last", words=_words(("last", 10.0, 10.4))),
        ]
        result = merge_chunks(chunks)
        assert result.text == "first last"
        assert result.words[-1].start == pytest.approx(550.0)

    def test_no_words_falls_back_to_chunk_text(self):
        chunks = [
            ChunkResult(window_start=0, text="part one"),
            ChunkResult(window_start=270, text=""),
            ChunkResult(window_start=540, text="part three"),
        ]
        result = merge_chunks(chunks, chunk_duration=300)
        assert result.text == "part one part three"
        assert result.words == []
        assert result.duration_estimate == 840

    def test_synthesized_words_are_shifted(self):
        chunk = ChunkResult(
            window_start=270, text="hello world", words=synthesize_word_spans("hello world", 2.0)
        )
        result = merge_chunks([chunk])
        assert result.words == _words(("hello", 270.0, 271.0), ("world", 271.0, 272.0))

    def test_text_round_trip(self):
        chunks = [
            ChunkResult(window_start=0, text="we started the company", words=synthesize_word_spans("we started the company", 4.0)),
            ChunkResult(window_start=300, text="in a garage", words=synthesize_word_spans("in a garage", 3.0)),
        ]
        result = merge_chunks(chunks)
        rejoined = " ".join(w.word for w in result.words)
        assert rejoined.split() == " ".join(c.text for c in chunks).split()
        assert result.text == rejoined
