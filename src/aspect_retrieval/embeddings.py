from __future__ import annotations

import numpy as np
from openai import OpenAI

from .settings import RetrievalSettings


def embed_texts(texts: list[str], model: str = "text-embedding-3-small") -> np.ndarray:
    """Generate embedding vectors for input texts using OpenAI embeddings API.

    Args:
        texts: Input strings to embed.
        model: Embedding model name.

    Returns:
        A `float32` NumPy matrix shaped `(len(texts), embedding_dim)`.
    """
    client = OpenAI()
    response = client.embeddings.create(model=model, input=texts)
    vectors = [row.embedding for row in response.data]
    return np.array(vectors, dtype=np.float32)


class OpenAITextEncoder:
    """Single-text encoder used as the out-of-vocabulary fallback of a vector index."""

    def __init__(self, model: str = "text-embedding-3-small"):
        self.model = model

    @classmethod
    def from_settings(cls, settings: RetrievalSettings) -> OpenAITextEncoder:
        """Encoder for the embedding model configured via `OPENAI_EMBEDDING_MODEL`."""
        return cls(model=settings.embedding_model)

    def __call__(self, text: str) -> np.ndarray:
        return embed_texts([text], model=self.model)[0]
