from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import logging
import math
import re
from typing import Callable, Iterable, Mapping, Protocol

import numpy as np

from .projection import MatrixUnavailableError, ProjectionError, unit_vec
from .schema import Document, EncoderKind, Query

logger = logging.getLogger(__name__)


class KeyPreprocessor(Protocol):
    def pre_process(self, key: str) -> str: ...


class VectorIndex(Protocol):
    """Key-to-vector lookup with an encoder for keys outside the vocabulary."""

    key_preprocessor: KeyPreprocessor

    def lookup(self, key: str) -> np.ndarray | None: ...

    def encode(self, text: str) -> np.ndarray: ...

    def weight_factor(self, key: str) -> float: ...


class DocumentMatrixProvider(Protocol):
    def matrix_for(self, doc: Document, kind: EncoderKind) -> np.ndarray: ...


class IdentityPreprocessor:
    def pre_process(self, key: str) -> str:
        return key


class AspectPreprocessor:
    """Normalize aspect headings into single lookup keys, e.g. `Signs and Symptoms` -> `signs_and_symptoms`."""

    _SEPARATORS = re.compile(r"[\s\-]+")

    def pre_process(self, key: str) -> str:
        return self._SEPARATORS.sub("_", key.strip().lower())


class InMemoryVectorIndex:
    """Dictionary-backed `VectorIndex` holding unit-length vectors.

    Keys are normalized through `key_preprocessor` on insert and on lookup.
    Text outside the vocabulary is embedded by `encoder`, which receives the
    raw text and returns a vector of the same dimension.
    """

    def __init__(
        self,
        vectors: Mapping[str, np.ndarray],
        encoder: Callable[[str], np.ndarray],
        key_preprocessor: KeyPreprocessor | None = None,
        key_counts: Mapping[str, int] | None = None,
    ):
        self.key_preprocessor = key_preprocessor or IdentityPreprocessor()
        self.encoder = encoder
        self._vectors: dict[str, np.ndarray] = {}
        for key, vector in vectors.items():
            self._vectors[self.key_preprocessor.pre_process(key)] = unit_vec(vector)
        self._counts: Counter[str] = Counter()
        for key, count in (key_counts or {}).items():
            self._counts[self.key_preprocessor.pre_process(key)] += count

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, key: str) -> bool:
        return self.key_preprocessor.pre_process(key) in self._vectors

    def keys(self) -> list[str]:
        return list(self._vectors)

    def lookup(self, key: str | None) -> np.ndarray | None:
        if key is None:
            return None
        return self._vectors.get(self.key_preprocessor.pre_process(key))

    def encode(self, text: str) -> np.ndarray:
        return unit_vec(self.encoder(text))

    def count_keys(self, keys: Iterable[str]) -> None:
        """Record key occurrences from a training corpus for `weight_factor`."""
        for key in keys:
            self._counts[self.key_preprocessor.pre_process(key)] += 1

    def probability(self, key: str) -> float:
        total = sum(self._counts.values())
        if total == 0:
            return 0.0
        return self._counts[self.key_preprocessor.pre_process(key)] / total

    def weight_factor(self, key: str, alpha: float = 0.03) -> float:
        """Sampling weight that keeps rare keys at 1 and damps frequent ones.

        Only used to balance training examples; retrieval never reads it.
        """
        p = self.probability(key)
        if p <= 0.0:
            return 1.0
        return min(1.0, alpha / math.sqrt(p))


class AttachedMatrixProvider:
    """`DocumentMatrixProvider` reading the matrices attached to each Document."""

    def matrix_for(self, doc: Document, kind: EncoderKind) -> np.ndarray:
        matrix = doc.matrices.get(kind)
        if matrix is None:
            raise MatrixUnavailableError(f"Document '{doc.doc_id}' has no {kind.value} matrix")
        matrix = np.asarray(matrix)
        if matrix.ndim != 2 or matrix.shape[1] != len(doc.sentences):
            raise ProjectionError(
                f"Document '{doc.doc_id}' {kind.value} matrix has shape {matrix.shape} "
                f"for {len(doc.sentences)} sentences"
            )
        return matrix


@dataclass(frozen=True, slots=True)
class QueryVectors:
    """Resolved query vectors; a side is `None` when the query or index lacks it."""

    entity: np.ndarray | None = None
    aspect: np.ndarray | None = None

    @property
    def is_empty(self) -> bool:
        return self.entity is None and self.aspect is None


def resolve_query_vectors(
    query: Query,
    entity_index: VectorIndex | None,
    aspect_index: VectorIndex | None,
) -> QueryVectors:
    """Look up entity and aspect vectors for a query, encoding on a lookup miss.

    The entity is looked up by `entity_id` when present, otherwise by mention.
    The aspect label is normalized with the aspect index's key preprocessor
    first, so multi-word headings resolve to a single key.
    """
    entity_vector = None
    if entity_index is not None and query.has_entity:
        key = query.entity_id if query.entity_id is not None else query.entity
        entity_vector = entity_index.lookup(key)
        if entity_vector is None:
            logger.debug("fallback encoding entity '%s'", query.entity)
            entity_vector = entity_index.encode(query.entity)

    aspect_vector = None
    if aspect_index is not None and query.has_aspect:
        aspect_vector = aspect_index.lookup(aspect_index.key_preprocessor.pre_process(query.aspect))
        if aspect_vector is None:
            logger.warning("fallback encoding aspect '%s'", query.aspect)
            aspect_vector = aspect_index.encode(query.aspect)

    return QueryVectors(entity=entity_vector, aspect=aspect_vector)
