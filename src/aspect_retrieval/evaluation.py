from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import math
from typing import Iterable, Sequence

from .schema import Query, Result, Source
from .tracing import ATTR_EVAL_MAP, ATTR_EVAL_MRR, ATTR_EVAL_QUERIES, get_tracer

logger = logging.getLogger(__name__)

MAX_K = 10


def gain(relevance: int) -> float:
    """Exponential gain `2^rel - 1` used for DCG."""
    return 2.0**relevance - 1.0


def discounted_gain(relevance: int, position: int) -> float:
    return gain(relevance) / math.log2(position + 1)


def _div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _check_k(k: int) -> int:
    if not 1 <= k <= MAX_K:
        raise ValueError(f"k must satisfy 1 <= k <= {MAX_K}, but got: {k}")
    return k


@dataclass(slots=True)
class RankedItem:
    """Predicted result with its rank and the judgment copied from a matching GOLD result."""

    rank: int
    result: Result
    relevance: int = 0
    relevant: bool = False


@dataclass(frozen=True, slots=True)
class QueryScores:
    """Metrics of a single query; the per-k tuples are indexed by `k - 1`."""

    query_id: str
    reciprocal_rank: float
    average_precision: float
    recall_n: float
    precision: tuple[float, ...]
    recall: tuple[float, ...]
    dcg: tuple[float, ...]
    idcg: tuple[float, ...]
    ndcg: tuple[float, ...]
    relevant_retrieved: int
    relevant_total: int


def rank_predictions(query: Query, expected: Sequence[Result] | None = None) -> list[RankedItem]:
    """Assign ranks 1..N to PRED results and copy relevance from matching GOLD results.

    PRED results are taken in the order the query returns them and are not
    re-sorted. Unmatched predictions keep grade 0 and are not relevant.
    """
    if expected is None:
        expected = query.get_results(Source.GOLD)
    items = [RankedItem(rank=rank, result=pred) for rank, pred in enumerate(query.get_results(Source.PRED), start=1)]

    by_span: dict[tuple[str | None, int, int], list[RankedItem]] = {}
    for item in items:
        key = (item.result.doc_id, item.result.begin, item.result.end)
        by_span.setdefault(key, []).append(item)

    for exp in expected:
        for item in by_span.get((exp.doc_id, exp.begin, exp.end), ()):
            item.relevance = exp.relevance
            item.relevant = exp.is_relevant
    return items


def evaluate_query(query: Query) -> QueryScores:
    """Compute MRR, AP, P@k, R@k, DCG@k, IDCG@k and nDCG@k for one query.

    Args:
        query: Query holding GOLD judgments and ranked PRED results.

    Returns:
        `QueryScores` for `k` in `1..MAX_K`. Zero denominators yield 0.
    """
    expected = query.get_results(Source.GOLD)
    items = rank_predictions(query, expected)

    idcg: list[float] = []
    idcg_sum = 0.0
    for position in range(1, MAX_K + 1):
        if position <= len(expected):
            idcg_sum += discounted_gain(expected[position - 1].relevance, position)
        idcg.append(idcg_sum)

    relevant_total = sum(1 for exp in expected if exp.is_relevant)
    first = next((item for item in items if item.relevant), None)
    reciprocal_rank = 1.0 / first.rank if first is not None else 0.0

    precision: list[float] = []
    recall: list[float] = []
    dcg: list[float] = []
    ndcg: list[float] = []
    relevant_so_far = 0
    precision_sum = 0.0
    dcg_sum = 0.0

    for item in items:
        k = item.rank
        if item.relevant:
            relevant_so_far += 1
            precision_sum += relevant_so_far / k
        if k <= MAX_K:
            dcg_sum += discounted_gain(item.relevance, k)
            precision.append(relevant_so_far / k)
            recall.append(_div(relevant_so_far, relevant_total))
            dcg.append(dcg_sum)
            ndcg.append(_div(dcg_sum, idcg[k - 1]))
        if relevant_so_far >= relevant_total:
            # all relevant results found
            break

    for k in range(len(precision) + 1, MAX_K + 1):
        precision.append(relevant_so_far / k)
        recall.append(_div(relevant_so_far, relevant_total))
        dcg.append(dcg_sum)
        ndcg.append(_div(dcg_sum, idcg[k - 1]))

    return QueryScores(
        query_id=query.query_id,
        reciprocal_rank=reciprocal_rank,
        average_precision=_div(precision_sum, relevant_total),
        recall_n=_div(relevant_so_far, relevant_total),
        precision=tuple(precision),
        recall=tuple(recall),
        dcg=tuple(dcg),
        idcg=tuple(idcg),
        ndcg=tuple(ndcg),
        relevant_retrieved=relevant_so_far,
        relevant_total=relevant_total,
    )


def _mean(values: Iterable[float], count: int) -> float:
    total = 0.0
    for value in values:
        total += value
    return _div(total, count)


@dataclass(frozen=True, slots=True)
class RetrievalMetrics:
    """Macro-averaged ranking metrics over a set of queries."""

    num_queries: int
    mrr: float
    map: float
    recall_n: float
    precision: tuple[float, ...]
    recall: tuple[float, ...]
    dcg: tuple[float, ...]
    idcg: tuple[float, ...]
    ndcg: tuple[float, ...]

    @classmethod
    def from_scores(cls, scores: Sequence[QueryScores]) -> RetrievalMetrics:
        n = len(scores)

        def per_k(attribute: str) -> tuple[float, ...]:
            return tuple(_mean((getattr(row, attribute)[k] for row in scores), n) for k in range(MAX_K))

        return cls(
            num_queries=n,
            mrr=_mean((row.reciprocal_rank for row in scores), n),
            map=_mean((row.average_precision for row in scores), n),
            recall_n=_mean((row.recall_n for row in scores), n),
            precision=per_k("precision"),
            recall=per_k("recall"),
            dcg=per_k("dcg"),
            idcg=per_k("idcg"),
            ndcg=per_k("ndcg"),
        )

    def precision_at(self, k: int) -> float:
        return self.precision[_check_k(k) - 1]

    def recall_at(self, k: int) -> float:
        return self.recall[_check_k(k) - 1]

    def dcg_at(self, k: int) -> float:
        return self.dcg[_check_k(k) - 1]

    def idcg_at(self, k: int) -> float:
        """Mean ideal DCG; only meaningful as a per-query normalizer for a single query."""
        return self.idcg[_check_k(k) - 1]

    def ndcg_at(self, k: int) -> float:
        return self.ndcg[_check_k(k) - 1]

    def summary(self) -> dict[str, float]:
        """Headline metrics as a flat dictionary."""
        return {
            "queries": float(self.num_queries),
            "mrr": self.mrr,
            "map": self.map,
            "precision_at_1": self.precision_at(1),
            "precision_at_5": self.precision_at(5),
            "recall_at_5": self.recall_at(5),
            "recall_at_10": self.recall_at(10),
            "recall_n": self.recall_n,
            "ndcg_at_10": self.ndcg_at(10),
        }

    def format_stats(self, title: str = "RETRIEVAL EVALUATION") -> str:
        cutoffs = (1, 3, 5, 10)
        header = ["|queries|"]
        header += [f"P@{k}" for k in cutoffs]
        header += [f"R@{k}" for k in cutoffs]
        header += ["R@N"]
        header += [f"nDCG@{k}" for k in cutoffs]
        header += ["MRR", "MAP"]

        values = [str(self.num_queries)]
        values += [f"{self.precision_at(k):.4f}" for k in cutoffs]
        values += [f"{self.recall_at(k):.4f}" for k in cutoffs]
        values += [f"{self.recall_n:.4f}"]
        values += [f"{self.ndcg_at(k):.4f}" for k in cutoffs]
        values += [f"{self.mrr:.4f}", f"{self.map:.4f}"]
        return f"{title} [macro-avg]\n" + "\t".join(header) + "\n" + "\t".join(values) + "\n"


class RetrievalEvaluator:
    """Evaluate PRED rankings against GOLD judgments over many queries."""

    def __init__(self, name: str = "retrieval", max_workers: int | None = None):
        self.name = name
        self.max_workers = max_workers
        self._tracer = get_tracer(__name__)

    def evaluate(self, queries: Iterable[Query], max_workers: int | None = None) -> RetrievalMetrics:
        """Score every query and macro-average the results.

        Queries may be scored in a thread pool; the reduction always runs in
        input order, so repeated runs give identical metrics.
        """
        queries = list(queries)
        workers = max_workers if max_workers is not None else self.max_workers
        with self._tracer.start_as_current_span("evaluation") as span:
            span.set_attribute(ATTR_EVAL_QUERIES, len(queries))
            if workers is not None and workers > 1 and len(queries) > 1:
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    scores = list(pool.map(evaluate_query, queries))
            else:
                scores = [evaluate_query(query) for query in queries]
            metrics = RetrievalMetrics.from_scores(scores)
            span.set_attribute(ATTR_EVAL_MRR, metrics.mrr)
            span.set_attribute(ATTR_EVAL_MAP, metrics.map)

        logger.info(
            "%s: %d queries MRR=%.4f P@1=%.4f P@3=%.4f P@5=%.4f R@1=%.4f R@3=%.4f MAP=%.4f",
            self.name,
            metrics.num_queries,
            metrics.mrr,
            metrics.precision_at(1),
            metrics.precision_at(3),
            metrics.precision_at(5),
            metrics.recall_at(1),
            metrics.recall_at(3),
            metrics.map,
        )
        return metrics
