"""Tests for segmentation.py: hysteresis passages and candidate ranking."""
from __future__ import annotations

import numpy as np
import pytest

from aspect_retrieval.schema import Document, Passage, Source
from aspect_retrieval.segmentation import (
    SegmentationStrategy,
    document_candidates,
    segment,
    segment_by_ranking,
    segment_by_threshold,
)

from conftest import make_sentences


def _make_document(count: int, passages: list[Passage] | None = None) -> Document:
    return Document(doc_id="D1", sentences=make_sentences(count), passages=passages or ())


# ---------------------------------------------------------------------------
# segment_by_threshold
# ---------------------------------------------------------------------------


class TestSegmentByThreshold:
    def test_two_passages_with_hysteresis(self):
        doc = _make_document(5)
        results = segment_by_threshold(doc, np.array([0.9, 0.7, 0.5, 0.85, 0.65]))
        assert [(r.begin, r.end) for r in results] == [(0, 19), (30, 49)]
        assert results[0].judgment.score == pytest.approx(0.8)
        assert results[1].judgment.score == pytest.approx(0.75)
        assert all(r.source == Source.PRED and r.doc_id == "D1" for r in results)

    def test_constant_histogram_gives_one_passage(self):
        doc = _make_document(6)
        results = segment_by_threshold(doc, np.ones(6))
        assert [(r.begin, r.end) for r in results] == [(0, 59)]
        assert results[0].judgment.score == pytest.approx(1.0)

    def test_rerun_gives_identical_passages(self):
        doc = _make_document(8)
        histogram = np.array([0.9, 0.61, 0.2, 0.8, 0.8, 0.59, 0.95, 0.7])
        first = segment_by_threshold(doc, histogram)
        second = segment_by_threshold(doc, histogram)
        assert first == second

    def test_nothing_above_open_threshold(self):
        doc = _make_document(3)
        assert segment_by_threshold(doc, np.array([0.79, 0.7, 0.1])) == []

    def test_open_threshold_is_inclusive(self):
        doc = _make_document(2)
        results = segment_by_threshold(doc, np.array([0.8, 0.2]))
        assert [(r.begin, r.end) for r in results] == [(0, 9)]

    def test_close_threshold_is_exclusive(self):
        doc = _make_document(3)
        results = segment_by_threshold(doc, np.array([0.9, 0.6, 0.59]))
        assert [(r.begin, r.end) for r in results] == [(0, 19)]
        assert results[0].judgment.score == pytest.approx(0.75)

    def test_open_passage_is_flushed_at_end(self):
        doc = _make_document(3)
        results = segment_by_threshold(doc, np.array([0.1, 0.95, 0.7]))
        assert [(r.begin, r.end) for r in results] == [(10, 29)]

    def test_custom_thresholds(self):
        doc = _make_document(3)
        results = segment_by_threshold(doc, np.array([0.5, 0.3, 0.1]), thres_in=0.4, thres_out=0.2)
        assert [(r.begin, r.end) for r in results] == [(0, 19)]
        assert results[0].judgment.score == pytest.approx(0.4)

    def test_histogram_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            segment_by_threshold(_make_document(3), np.array([0.9, 0.9]))

    def test_passages_are_disjoint_and_ordered(self):
        rng = np.random.default_rng(3)
        doc = _make_document(50)
        results = segment_by_threshold(doc, rng.uniform(-1, 1, size=50))
        for left, right in zip(results, results[1:]):
            assert left.end <= right.begin


# ---------------------------------------------------------------------------
# segment_by_ranking
# ---------------------------------------------------------------------------


class TestSegmentByRanking:
    def test_scores_are_means_of_enclosed_sentences(self):
        doc = _make_document(4)
        candidates = [Passage("D1", 0, 19, "P-1"), Passage("D1", 20, 39, "P-2")]
        results = segment_by_ranking(doc, np.array([0.9, 0.5, 0.2, 0.4]), candidates)
        assert [r.judgment.score for r in results] == pytest.approx([0.7, 0.3])
        assert results[0].passage is candidates[0]
        assert results[0].result_id == "P-1"

    def test_partially_covered_sentences_are_ignored(self):
        doc = _make_document(3)
        results = segment_by_ranking(doc, np.array([0.9, 0.1, 0.3]), [Passage("D1", 5, 29)])
        assert results[0].judgment.score == pytest.approx(0.2)

    def test_candidate_without_sentence_is_skipped(self):
        doc = _make_document(3)
        assert segment_by_ranking(doc, np.array([0.9, 0.1, 0.3]), [Passage("D1", 11, 15)]) == []

    def test_candidates_of_other_documents_are_skipped(self):
        doc = _make_document(2)
        results = segment_by_ranking(doc, np.array([0.9, 0.1]), [Passage("D2", 0, 19), Passage("D1", 0, 9)])
        assert [(r.doc_id, r.begin) for r in results] == [("D1", 0)]

    def test_uses_document_passages_when_no_candidates(self):
        doc = _make_document(3, passages=[Passage(None, 20, 29), Passage(None, 0, 19)])
        results = segment_by_ranking(doc, np.array([1.0, 0.5, 0.0]))
        assert [(r.begin, r.end) for r in results] == [(0, 19), (20, 29)]
        assert all(r.passage.doc_id == "D1" for r in results)

    def test_histogram_length_mismatch_raises(self):
        with pytest.raises(ValueError, match="3 sentences"):
            segment_by_ranking(_make_document(3), np.array([0.1]), [])


class TestDocumentCandidates:
    def test_sorted_and_bound_to_document(self):
        doc = _make_document(3, passages=[Passage(None, 10, 29), Passage("D1", 0, 9)])
        assert document_candidates(doc) == [Passage("D1", 0, 9), Passage("D1", 10, 29)]


class TestSegment:
    def test_dispatches_to_threshold(self):
        doc = _make_document(2)
        results = segment(SegmentationStrategy.THRESHOLD, doc, np.array([0.9, 0.9]))
        assert [(r.begin, r.end) for r in results] == [(0, 19)]

    def test_dispatches_to_ranking(self):
        doc = _make_document(2)
        results = segment(
            SegmentationStrategy.PASSAGE_RANK, doc, np.array([0.2, 0.4]), candidates=[Passage("D1", 0, 19)]
        )
        assert results[0].judgment.score == pytest.approx(0.3)
