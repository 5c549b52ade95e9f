import logging

import numpy as np

from aspect_retrieval.evaluation import RetrievalEvaluator
from aspect_retrieval.runner import CandidateStrategy, QueryRunner
from aspect_retrieval.schema import Document, EncoderKind, Query, Result, Sentence, Source
from aspect_retrieval.segmentation import SegmentationStrategy
from aspect_retrieval.settings import load_settings
from aspect_retrieval.vectors import AspectPreprocessor, InMemoryVectorIndex

ENTITIES = ["aspirin", "ibuprofen", "paracetamol"]
ASPECTS = ["side effects", "dosage", "history"]


def _one_hot(size: int, idx: int) -> np.ndarray:
    vector = np.zeros(size)
    vector[idx] = 1.0
    return vector


def build_corpus(doc_count: int = 12, sentences_per_doc: int = 8, seed: int = 13) -> list[Document]:
    """Build documents whose sentences each talk about one entity and one aspect."""
    rng = np.random.default_rng(seed)
    corpus = []
    for d in range(doc_count):
        entity_ids = rng.integers(0, len(ENTITIES), size=sentences_per_doc)
        aspect_ids = rng.integers(0, len(ASPECTS), size=sentences_per_doc)
        sentences = [
            Sentence(begin=i * 40, end=i * 40 + 39, text=f"The {ASPECTS[a]} of {ENTITIES[e]} are described here.")
            for i, (e, a) in enumerate(zip(entity_ids, aspect_ids))
        ]
        noise = rng.normal(scale=0.05, size=(len(ENTITIES), sentences_per_doc))
        entity_matrix = np.stack([_one_hot(len(ENTITIES), e) for e in entity_ids], axis=1) + noise
        aspect_matrix = np.stack([_one_hot(len(ASPECTS), a) for a in aspect_ids], axis=1)
        corpus.append(
            Document(
                doc_id=f"DOC-{d:03d}",
                sentences=sentences,
                matrices={EncoderKind.ENTITY: entity_matrix, EncoderKind.ASPECT: aspect_matrix},
            )
        )
    return corpus


def build_queries(corpus: list[Document]) -> list[Query]:
    """One query per entity/aspect pair, with every matching sentence as GOLD."""
    queries = []
    for e, entity in enumerate(ENTITIES):
        for a, aspect in enumerate(ASPECTS):
            query = Query(query_id=f"Q-{e}{a}", entity=entity, aspect=aspect)
            for doc in corpus:
                entity_hits = doc.matrices[EncoderKind.ENTITY].argmax(axis=0) == e
                aspect_hits = doc.matrices[EncoderKind.ASPECT].argmax(axis=0) == a
                for idx in np.flatnonzero(entity_hits & aspect_hits):
                    sentence = doc.sentences[idx]
                    query.add_result(Result.graded(Source.GOLD, doc.doc_id, 1, sentence.begin, sentence.end))
            queries.append(query)
    return queries


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    corpus = build_corpus()
    queries = build_queries(corpus)
    entity_index = InMemoryVectorIndex(
        {name: _one_hot(len(ENTITIES), i) for i, name in enumerate(ENTITIES)},
        encoder=lambda text: np.ones(len(ENTITIES)),
    )
    aspect_index = InMemoryVectorIndex(
        {name: _one_hot(len(ASPECTS), i) for i, name in enumerate(ASPECTS)},
        encoder=lambda text: np.ones(len(ASPECTS)),
        key_preprocessor=AspectPreprocessor(),
    )
    runner = QueryRunner(corpus, entity_index, aspect_index, settings=load_settings())
    stats = runner.retrieve_all_queries(
        queries, candidates=CandidateStrategy.GIVEN, strategy=SegmentationStrategy.PASSAGE_RANK
    )
    metrics = RetrievalEvaluator("smoke").evaluate(queries)
    print(stats)
    print(metrics.format_stats())


if __name__ == "__main__":
    main()
