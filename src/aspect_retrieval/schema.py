from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
import threading

import numpy as np


class Source(str, Enum):
    """Provenance of a Result attached to a Query."""

    GOLD = "GOLD"
    SILVER = "SILVER"
    PRED = "PRED"
    USER = "USER"


class EncoderKind(str, Enum):
    """Embedding space of a per-sentence document matrix."""

    ENTITY = "entity"
    ASPECT = "aspect"


@dataclass(frozen=True, slots=True)
class Sentence:
    """Sentence span `[begin, end)` in document character offsets."""

    begin: int
    end: int
    text: str = ""


@dataclass(frozen=True, slots=True)
class Passage:
    """Candidate passage span, optionally carrying a stable id."""

    doc_id: str | None
    begin: int
    end: int
    passage_id: str | None = None


@dataclass(frozen=True, slots=True)
class Document:
    """Ordered sentences of one corpus document plus attached sentence matrices.

    `matrices` maps an `EncoderKind` to an `embedding_size x num_sentences`
    matrix of per-sentence vectors produced outside this package.
    """

    doc_id: str
    sentences: tuple[Sentence, ...]
    title: str = ""
    passages: tuple[Passage, ...] = ()
    matrices: dict[EncoderKind, np.ndarray] = field(default_factory=dict, compare=False, repr=False)
    _begins: tuple[int, ...] = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sentences", tuple(self.sentences))
        object.__setattr__(self, "passages", tuple(self.passages))
        object.__setattr__(self, "_begins", tuple(sentence.begin for sentence in self.sentences))

    @property
    def is_empty(self) -> bool:
        return not self.sentences

    @property
    def text(self) -> str:
        return " ".join(sentence.text for sentence in self.sentences)

    def sentence_index_at(self, position: int) -> int | None:
        """Return the index of the sentence covering `position`, if any."""
        idx = bisect_right(self._begins, position) - 1
        if idx >= 0 and position < self.sentences[idx].end:
            return idx
        return None

    def sentences_in_range(self, begin: int, end: int) -> list[int]:
        """Return indices of sentences fully enclosed in `[begin, end)`."""
        return [
            idx
            for idx, sentence in enumerate(self.sentences)
            if sentence.begin >= begin and sentence.end <= end
        ]


# --- judgments -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Scored:
    """Scored judgment, always relevant, highest score first."""

    score: float


@dataclass(frozen=True, slots=True)
class Relevance:
    """Graded judgment, relevant iff `grade > 0`, highest grade first."""

    grade: int


@dataclass(frozen=True, slots=True)
class Ranking:
    """Rank position 1..N, lowest rank first."""

    rank: int


Judgment = Scored | Relevance | Ranking


def relevance_grade(judgment: Judgment) -> int:
    if isinstance(judgment, Relevance):
        return judgment.grade
    if isinstance(judgment, (Scored, Ranking)):
        return 1
    raise TypeError(f"Unknown judgment type: {type(judgment).__name__}")


def is_relevant(judgment: Judgment) -> bool:
    if isinstance(judgment, Relevance):
        return judgment.grade > 0
    if isinstance(judgment, (Scored, Ranking)):
        return True
    raise TypeError(f"Unknown judgment type: {type(judgment).__name__}")


def sort_key(judgment: Judgment) -> tuple[int, float]:
    """Ordering key: ranked results first, then scored, then graded."""
    if isinstance(judgment, Ranking):
        return (0, judgment.rank)
    if isinstance(judgment, Scored):
        return (1, -judgment.score)
    if isinstance(judgment, Relevance):
        return (2, -judgment.grade)
    raise TypeError(f"Unknown judgment type: {type(judgment).__name__}")


@dataclass(frozen=True, slots=True)
class Result:
    """Judgment over the span `[begin, end)` of one document."""

    source: Source
    doc_id: str | None
    judgment: Judgment
    begin: int = 0
    end: int = 0
    passage: Passage | None = None
    result_id: str | None = None

    def __post_init__(self) -> None:
        if self.begin > self.end:
            raise ValueError(f"Result span must satisfy begin <= end, got [{self.begin}, {self.end})")

    @classmethod
    def scored(cls, source: Source, doc_id: str, score: float, begin: int = 0, end: int = 0, **kwargs) -> Result:
        return cls(source=source, doc_id=doc_id, judgment=Scored(float(score)), begin=begin, end=end, **kwargs)

    @classmethod
    def graded(cls, source: Source, doc_id: str, grade: int, begin: int = 0, end: int = 0, **kwargs) -> Result:
        return cls(source=source, doc_id=doc_id, judgment=Relevance(int(grade)), begin=begin, end=end, **kwargs)

    @classmethod
    def ranked(cls, source: Source, doc_id: str, rank: int, begin: int = 0, end: int = 0, **kwargs) -> Result:
        return cls(source=source, doc_id=doc_id, judgment=Ranking(int(rank)), begin=begin, end=end, **kwargs)

    @property
    def relevance(self) -> int:
        return relevance_grade(self.judgment)

    @property
    def is_relevant(self) -> bool:
        return is_relevant(self.judgment)

    def matches(self, other: Result) -> bool:
        """True iff both results point at the same document span."""
        return self.doc_id == other.doc_id and self.begin == other.begin and self.end == other.end

    def as_passage(self) -> Passage:
        if self.passage is not None:
            return self.passage
        return Passage(doc_id=self.doc_id, begin=self.begin, end=self.end, passage_id=self.result_id)


# --- queries -------------------------------------------------------------------


def _present(value: str | None) -> bool:
    return value is not None and bool(value.strip())


@dataclass(slots=True, eq=False)
class Query:
    """Entity/aspect query holding append-only Result collections per Source."""

    query_id: str
    entity: str | None = None
    aspect: str | None = None
    entity_id: str | None = None
    _results: dict[Source, list[Result]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def has_entity(self) -> bool:
        return _present(self.entity)

    @property
    def has_aspect(self) -> bool:
        return _present(self.aspect)

    @property
    def text(self) -> str:
        if self.has_entity and self.has_aspect:
            return f"[{self.aspect}] for [{self.entity}]"
        if self.has_entity:
            return f"entity: [{self.entity}]"
        if self.has_aspect:
            return f"aspect: [{self.aspect}]"
        return ""

    def add_result(self, result: Result) -> None:
        self.add_results([result])

    def add_results(self, results: list[Result]) -> None:
        """Append results under one lock acquisition, keeping their order."""
        for result in results:
            if result.doc_id is None:
                raise ValueError("Result must reference a document before it is added to a query")
        with self._lock:
            for result in results:
                self._results.setdefault(result.source, []).append(result)

    def get_results(self, source: Source, kind: type | None = None) -> list[Result]:
        """Return a sorted snapshot of results for `source`, optionally of one judgment type."""
        with self._lock:
            snapshot = list(self._results.get(source, ()))
        if kind is not None:
            snapshot = [result for result in snapshot if isinstance(result.judgment, kind)]
        return sorted(snapshot, key=lambda result: sort_key(result.judgment))

    def results_for_document(self, doc_id: str, source: Source) -> list[Result]:
        return [result for result in self.get_results(source) if result.doc_id == doc_id]

    def count_results(self, source: Source) -> int:
        with self._lock:
            return len(self._results.get(source, ()))
