"""Entity/aspect passage retrieval over sentence embeddings, with IR evaluation."""

from .evaluation import RetrievalEvaluator, RetrievalMetrics
from .runner import CandidateStrategy, QueryRunner, RunStats
from .schema import Document, EncoderKind, Passage, Query, Result, Sentence, Source
from .segmentation import SegmentationStrategy

__all__ = [
    "CandidateStrategy",
    "Document",
    "EncoderKind",
    "Passage",
    "Query",
    "QueryRunner",
    "Result",
    "RetrievalEvaluator",
    "RetrievalMetrics",
    "RunStats",
    "SegmentationStrategy",
    "Sentence",
    "Source",
]
