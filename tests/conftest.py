"""Shared pytest fixtures for aspect_retrieval unit tests."""
from __future__ import annotations

import numpy as np
import pytest

from aspect_retrieval.schema import Document, EncoderKind, Passage, Query, Sentence
from aspect_retrieval.vectors import AspectPreprocessor, InMemoryVectorIndex

ASPIRIN = [1.0, 0.0, 0.0]
IBUPROFEN = [0.0, 1.0, 0.0]
OTHER = [0.0, 0.0, 1.0]

SIDE_EFFECTS = [1.0, 0.0]
DOSAGE = [0.0, 1.0]


def make_sentences(count: int, width: int = 10) -> list[Sentence]:
    """Sentences at offsets `[i * width, i * width + width - 1)`."""
    return [Sentence(begin=i * width, end=i * width + width - 1, text=f"sentence {i}") for i in range(count)]


def make_document(
    doc_id: str,
    entity_columns: list[list[float]] | None = None,
    aspect_columns: list[list[float]] | None = None,
    texts: list[str] | None = None,
    passages: list[Passage] | None = None,
) -> Document:
    """Build a document whose sentence matrices are given column by column."""
    columns = entity_columns if entity_columns is not None else aspect_columns
    count = len(columns) if columns is not None else len(texts or [])
    sentences = make_sentences(count)
    if texts is not None:
        sentences = [
            Sentence(begin=s.begin, end=s.end, text=text) for s, text in zip(sentences, texts, strict=True)
        ]
    matrices = {}
    if entity_columns is not None:
        matrices[EncoderKind.ENTITY] = np.array(entity_columns, dtype=np.float64).T.reshape(3, count)
    if aspect_columns is not None:
        matrices[EncoderKind.ASPECT] = np.array(aspect_columns, dtype=np.float64).T.reshape(2, count)
    return Document(
        doc_id=doc_id,
        sentences=tuple(sentences),
        passages=tuple(passages or ()),
        matrices=matrices,
    )


@pytest.fixture()
def entity_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex(
        vectors={"aspirin": np.array(ASPIRIN), "Q18216": np.array(ASPIRIN), "ibuprofen": np.array(IBUPROFEN)},
        encoder=lambda text: np.array(OTHER),
    )


@pytest.fixture()
def aspect_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex(
        vectors={"side effects": np.array(SIDE_EFFECTS), "dosage": np.array(DOSAGE)},
        encoder=lambda text: np.array([0.5, 0.5]),
        key_preprocessor=AspectPreprocessor(),
    )


@pytest.fixture()
def aspirin_document() -> Document:
    # entity histogram: 1, 1, 0, 1
    return make_document(
        "DOC-aspirin",
        entity_columns=[ASPIRIN, ASPIRIN, OTHER, ASPIRIN],
        aspect_columns=[SIDE_EFFECTS, DOSAGE, DOSAGE, SIDE_EFFECTS],
        texts=[
            "Aspirin is an anti-inflammatory drug.",
            "Aspirin is taken twice a day.",
            "The weather is fine.",
            "Aspirin may cause stomach bleeding.",
        ],
    )


@pytest.fixture()
def ibuprofen_document() -> Document:
    return make_document(
        "DOC-ibuprofen",
        entity_columns=[IBUPROFEN, IBUPROFEN, IBUPROFEN],
        aspect_columns=[SIDE_EFFECTS, SIDE_EFFECTS, DOSAGE],
        texts=[
            "Ibuprofen relieves pain.",
            "Ibuprofen may cause nausea.",
            "Take ibuprofen with food.",
        ],
    )


@pytest.fixture()
def empty_document() -> Document:
    return Document(doc_id="DOC-empty", sentences=())


@pytest.fixture()
def corpus(aspirin_document, ibuprofen_document, empty_document) -> list[Document]:
    return [aspirin_document, ibuprofen_document, empty_document]


@pytest.fixture()
def aspirin_query() -> Query:
    return Query(query_id="Q-0001", entity="aspirin")


@pytest.fixture()
def aspirin_side_effects_query() -> Query:
    return Query(query_id="Q-0002", entity="aspirin", aspect="Side Effects")
