from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import Callable, Iterable, Sequence, TypeVar

import numpy as np

from .lexical import BM25DocumentIndex, LexicalDocumentIndex
from .projection import ProjectionError, project_query
from .schema import Document, EncoderKind, Passage, Query, Result, Source
from .segmentation import SegmentationStrategy, segment
from .settings import RetrievalSettings
from .tracing import (
    ATTR_INPUT_VALUE,
    ATTR_RETRIEVAL_DOCUMENTS,
    ATTR_RETRIEVAL_FAILED,
    ATTR_RETRIEVAL_RESULTS,
    get_tracer,
)
from .vectors import (
    AttachedMatrixProvider,
    DocumentMatrixProvider,
    QueryVectors,
    VectorIndex,
    resolve_query_vectors,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CandidateStrategy(str, Enum):
    """Which corpus documents a query is run against."""

    ALL = "all"
    GIVEN = "given"
    INDEX = "index"


@dataclass(slots=True)
class RunStats:
    """Per-run document counts; failures surface here instead of as exceptions."""

    documents: int = 0
    empty: int = 0
    skipped: int = 0
    failed: int = 0
    results: int = 0

    def __add__(self, other: RunStats) -> RunStats:
        return RunStats(
            documents=self.documents + other.documents,
            empty=self.empty + other.empty,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
            results=self.results + other.results,
        )


_OK = "ok"
_EMPTY = "empty"
_SKIPPED = "skipped"
_FAILED = "failed"


class QueryRunner:
    """Run entity/aspect queries against a corpus and attach PRED passages.

    Query vectors are resolved once per query. Every selected document is
    then projected and segmented independently; documents may be processed in
    a thread pool, and their results are appended to the query in selection
    order once all documents are done.
    """

    def __init__(
        self,
        corpus: Sequence[Document],
        entity_index: VectorIndex | None = None,
        aspect_index: VectorIndex | None = None,
        matrix_provider: DocumentMatrixProvider | None = None,
        document_index: LexicalDocumentIndex | None = None,
        settings: RetrievalSettings | None = None,
    ):
        self.corpus = list(corpus)
        self.entity_index = entity_index
        self.aspect_index = aspect_index
        self.matrix_provider = matrix_provider or AttachedMatrixProvider()
        self.settings = settings or RetrievalSettings()
        self._document_index = document_index
        self._documents = {doc.doc_id: doc for doc in self.corpus}
        self._tracer = get_tracer(__name__)

    @property
    def document_index(self) -> LexicalDocumentIndex:
        if self._document_index is None:
            self._document_index = BM25DocumentIndex(self.corpus)
        return self._document_index

    # --- candidate selection -----------------------------------------------------

    def select_documents(
        self, query: Query, candidates: CandidateStrategy
    ) -> tuple[list[Document], list[Passage] | None]:
        """Return the documents to search and, for `GIVEN`, the candidate passages."""
        if candidates == CandidateStrategy.GIVEN:
            given = query.get_results(Source.GOLD) + query.get_results(Source.SILVER)
            unique: dict[tuple[str | None, int, int], Passage] = {}
            for result in given:
                # a span judged in both GOLD and SILVER is one candidate
                unique.setdefault((result.doc_id, result.begin, result.end), result.as_passage())
            passages = list(unique.values())
            doc_ids = list(dict.fromkeys(result.doc_id for result in given))
            return self._lookup_documents(doc_ids), passages

        if candidates == CandidateStrategy.INDEX:
            text = query.entity if query.has_entity else (query.aspect or "")
            hits = self.document_index.search(text, self.settings.num_candidates)
            return self._lookup_documents([doc_id for doc_id, _ in hits]), None

        return list(self.corpus), None

    def _lookup_documents(self, doc_ids: Iterable[str]) -> list[Document]:
        documents = []
        for doc_id in doc_ids:
            doc = self._documents.get(doc_id)
            if doc is None:
                logger.warning("document '%s' is not part of the corpus, skipping", doc_id)
                continue
            documents.append(doc)
        return documents

    # --- projection --------------------------------------------------------------

    def _histogram(self, doc: Document, vectors: QueryVectors) -> np.ndarray | None:
        entity_matrix = None
        aspect_matrix = None
        if vectors.entity is not None:
            entity_matrix = self.matrix_provider.matrix_for(doc, EncoderKind.ENTITY)
        if vectors.aspect is not None:
            aspect_matrix = self.matrix_provider.matrix_for(doc, EncoderKind.ASPECT)
        histogram = project_query(entity_matrix, aspect_matrix, vectors.entity, vectors.aspect)
        if histogram is not None and histogram.shape[0] != len(doc.sentences):
            raise ProjectionError(
                f"Histogram for document '{doc.doc_id}' has {histogram.shape[0]} values "
                f"for {len(doc.sentences)} sentences"
            )
        return histogram

    def histogram_for(self, doc: Document, query: Query) -> np.ndarray | None:
        """Return the per-sentence relevance histogram of `query` over one document."""
        vectors = resolve_query_vectors(query, self.entity_index, self.aspect_index)
        return self._histogram(doc, vectors)

    # --- retrieval ---------------------------------------------------------------

    def _retrieve_document(
        self,
        doc: Document,
        vectors: QueryVectors,
        strategy: SegmentationStrategy,
        passages: list[Passage] | None,
    ) -> tuple[str, list[Result]]:
        if doc.is_empty:
            return _EMPTY, []
        try:
            histogram = self._histogram(doc, vectors)
            if histogram is None:
                logger.debug("no histogram for document '%s', skipping", doc.doc_id)
                return _SKIPPED, []
            results = segment(
                strategy,
                doc,
                histogram,
                candidates=passages,
                thres_in=self.settings.thres_in,
                thres_out=self.settings.thres_out,
            )
        except Exception:
            logger.exception("retrieval failed for document '%s'", doc.doc_id)
            return _FAILED, []
        return _OK, results

    def _map(self, fn: Callable[[T], R], items: list[T]) -> list[R]:
        if self.settings.max_workers <= 1 or len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
            return list(pool.map(fn, items))

    def retrieve_query(
        self,
        query: Query,
        candidates: CandidateStrategy = CandidateStrategy.ALL,
        strategy: SegmentationStrategy = SegmentationStrategy.THRESHOLD,
    ) -> RunStats:
        """Retrieve passages for one query and append them as PRED results.

        Args:
            query: Query to run; receives the PRED results.
            candidates: Document selection strategy.
            strategy: Segmentation strategy for every selected document.

        Returns:
            Counts of processed, empty, skipped and failed documents and of
            emitted results.
        """
        with self._tracer.start_as_current_span("retrieval") as span:
            span.set_attribute(ATTR_INPUT_VALUE, query.text)
            documents, passages = self.select_documents(query, candidates)
            stats = RunStats(documents=len(documents))
            span.set_attribute(ATTR_RETRIEVAL_DOCUMENTS, len(documents))

            vectors = resolve_query_vectors(query, self.entity_index, self.aspect_index)

            by_document: dict[str | None, list[Passage]] = defaultdict(list)
            if passages is not None:
                for passage in passages:
                    by_document[passage.doc_id].append(passage)

            def run(doc: Document) -> tuple[str, list[Result]]:
                doc_passages = by_document.get(doc.doc_id, []) if passages is not None else None
                return self._retrieve_document(doc, vectors, strategy, doc_passages)

            for status, results in self._map(run, documents):
                if status == _EMPTY:
                    stats.empty += 1
                elif status == _SKIPPED:
                    stats.skipped += 1
                elif status == _FAILED:
                    stats.failed += 1
                elif results:
                    query.add_results(results)
                    stats.results += len(results)

            span.set_attribute(ATTR_RETRIEVAL_RESULTS, stats.results)
            span.set_attribute(ATTR_RETRIEVAL_FAILED, stats.failed)
            return stats

    def retrieve_all_queries(
        self,
        queries: Sequence[Query],
        candidates: CandidateStrategy = CandidateStrategy.ALL,
        strategy: SegmentationStrategy = SegmentationStrategy.THRESHOLD,
    ) -> RunStats:
        """Run every query in order and return the summed run statistics."""
        started = time.perf_counter()
        total = RunStats()
        count = len(queries)
        logger.info("Retrieving %d queries on %d documents...", count, len(self.corpus))
        for i, query in enumerate(queries, start=1):
            query_started = time.perf_counter()
            stats = self.retrieve_query(query, candidates=candidates, strategy=strategy)
            total = total + stats
            logger.info(
                "Finished query %d/%d '%s' (%s) - '%s' [%d results, %d failed, %.1f ms]",
                i,
                count,
                query.entity,
                query.entity_id,
                query.aspect,
                stats.results,
                stats.failed,
                (time.perf_counter() - query_started) * 1000,
            )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("Finished %d queries on %d documents [%.1f ms]", count, len(self.corpus), elapsed_ms)
        return total
