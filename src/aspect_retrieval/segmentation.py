from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Sequence

import numpy as np

from .schema import Document, Passage, Result, Source

THRES_IN = 0.8
THRES_OUT = 0.6


class SegmentationStrategy(str, Enum):
    """How passage Results are cut from a sentence histogram."""

    THRESHOLD = "threshold"
    PASSAGE_RANK = "passage_rank"


def segment_by_threshold(
    doc: Document,
    histogram: np.ndarray,
    thres_in: float = THRES_IN,
    thres_out: float = THRES_OUT,
) -> list[Result]:
    """Cut passages with a two-threshold hysteresis over sentence scores.

    A passage opens at the first sentence scoring at least `thres_in` and
    stays open until a sentence scores below `thres_out`. The passage score is
    the unweighted mean of the enclosed sentence scores.

    Args:
        doc: Document whose sentences align with `histogram`.
        histogram: Per-sentence relevance scores.
        thres_in: Score needed to open a passage.
        thres_out: Score below which an open passage is closed.

    Returns:
        Disjoint PRED results in document order.
    """
    results: list[Result] = []
    inside = False
    begin = end = 0
    total = 0.0
    length = 0

    for sentence, value in zip(doc.sentences, histogram, strict=True):
        p = float(value)
        if not inside:
            if p >= thres_in:
                inside = True
                begin, end = sentence.begin, sentence.end
                total = p
                length = 1
        elif p < thres_out:
            inside = False
            results.append(Result.scored(Source.PRED, doc.doc_id, total / length, begin, end))
        else:
            end = sentence.end
            total += p
            length += 1

    if inside:
        results.append(Result.scored(Source.PRED, doc.doc_id, total / length, begin, end))
    return results


def document_candidates(doc: Document) -> list[Passage]:
    """Return the document's GOLD passages in position order, bound to the document."""
    ordered = sorted(doc.passages, key=lambda passage: (passage.begin, passage.end))
    return [replace(passage, doc_id=doc.doc_id) if passage.doc_id is None else passage for passage in ordered]


def segment_by_ranking(
    doc: Document,
    histogram: np.ndarray,
    candidates: Sequence[Passage] | None = None,
) -> list[Result]:
    """Score predefined candidate passages by the mean of their enclosed sentences.

    Args:
        doc: Document whose sentences align with `histogram`.
        histogram: Per-sentence relevance scores.
        candidates: Candidate passages; candidates of other documents are
            ignored. When `None`, the document's own passages are used.

    Returns:
        One PRED result per candidate that encloses at least one sentence, in
        candidate order, each referencing its candidate.
    """
    if candidates is None:
        candidates = document_candidates(doc)
    histogram = np.asarray(histogram, dtype=np.float64)
    if histogram.shape[0] != len(doc.sentences):
        raise ValueError(
            f"Histogram has {histogram.shape[0]} values for {len(doc.sentences)} sentences"
        )

    results: list[Result] = []
    for candidate in candidates:
        if candidate.doc_id != doc.doc_id:
            continue
        indices = doc.sentences_in_range(candidate.begin, candidate.end)
        if not indices:
            continue
        score = float(np.mean(histogram[indices]))
        results.append(
            Result.scored(
                Source.PRED,
                doc.doc_id,
                score,
                candidate.begin,
                candidate.end,
                passage=candidate,
                result_id=candidate.passage_id,
            )
        )
    return results


def segment(
    strategy: SegmentationStrategy,
    doc: Document,
    histogram: np.ndarray,
    candidates: Sequence[Passage] | None = None,
    thres_in: float = THRES_IN,
    thres_out: float = THRES_OUT,
) -> list[Result]:
    """Dispatch to the segmentation strategy chosen for this call."""
    if strategy == SegmentationStrategy.PASSAGE_RANK:
        return segment_by_ranking(doc, histogram, candidates)
    return segment_by_threshold(doc, histogram, thres_in=thres_in, thres_out=thres_out)
