from __future__ import annotations

import logging
from typing import Protocol, Sequence

from rank_bm25 import BM25Okapi

from .schema import Document

logger = logging.getLogger(__name__)


class LexicalDocumentIndex(Protocol):
    def search(self, text: str, k: int) -> list[tuple[str, float]]: ...


def _tokenize(text: str) -> list[str]:
    return text.lower().split()


class BM25DocumentIndex:
    """In-memory BM25 index over whole documents, used for candidate selection."""

    def __init__(self, documents: Sequence[Document]):
        """Build the index from the concatenated sentence text of each document.

        Args:
            documents: Corpus documents to index.
        """
        self.doc_ids = [doc.doc_id for doc in documents]
        tokenized = [_tokenize(doc.text) for doc in documents]
        self._vocabularies = [set(tokens) for tokens in tokenized]
        # BM25Okapi cannot be built over a corpus without any token
        self._index = BM25Okapi(tokenized) if any(tokenized) else None
        logger.info("%d documents written to lexical index", len(self.doc_ids))

    def search(self, text: str, k: int) -> list[tuple[str, float]]:
        """Return up to `k` `(doc_id, score)` pairs sorted by BM25 score.

        Documents without any query term are not returned.
        """
        if self._index is None or k <= 0:
            return []
        terms = _tokenize(text)
        scores = self._index.get_scores(terms)
        matching = [idx for idx, vocabulary in enumerate(self._vocabularies) if vocabulary.intersection(terms)]
        ranked = sorted(matching, key=lambda idx: scores[idx], reverse=True)[:k]
        return [(self.doc_ids[idx], float(scores[idx])) for idx in ranked]
