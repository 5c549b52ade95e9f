from __future__ import annotations

import numpy as np


class ProjectionError(RuntimeError):
    """Raised when a document matrix cannot be projected onto a query."""


class MatrixUnavailableError(ProjectionError):
    """Raised when a document has no matrix for the requested encoder."""


def unit_vec(vector: np.ndarray) -> np.ndarray:
    """Scale a vector to unit length, leaving all-zero vectors at zero."""
    vector = np.asarray(vector, dtype=np.float64).ravel()
    return vector / max(float(np.linalg.norm(vector)), 1e-12)


def unit_columns(matrix: np.ndarray) -> np.ndarray:
    """Scale every column of an `embedding_size x num_sentences` matrix to unit length."""
    norms = np.linalg.norm(matrix, axis=0)
    return matrix / np.maximum(norms, 1e-12)


def _as_matrix(matrix: np.ndarray, dimension: int) -> np.ndarray:
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2:
        raise ProjectionError(f"Document matrix must be 2-dimensional, got shape {matrix.shape}")
    if matrix.shape[0] != dimension:
        raise ProjectionError(
            f"Document matrix has embedding size {matrix.shape[0]}, query vector has {dimension}"
        )
    return matrix


def _project(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    matrix = _as_matrix(matrix, query.shape[0])
    if matrix.shape[1] == 0:
        return np.zeros(0, dtype=np.float64)
    scores = unit_vec(query) @ unit_columns(matrix)
    return np.clip(scores, -1.0, 1.0)


def project_query(
    entity_matrix: np.ndarray | None,
    aspect_matrix: np.ndarray | None,
    entity_query: np.ndarray | None,
    aspect_query: np.ndarray | None,
) -> np.ndarray | None:
    """Project entity and/or aspect query vectors onto per-sentence document vectors.

    With a single query side, each histogram value is the cosine similarity of
    the query with one sentence column. With both sides, the unit query vectors
    are concatenated and the two document matrices stacked per sentence, so
    each value is the cosine similarity in the joint space.

    Args:
        entity_matrix: Entity-space matrix shaped `(embedding_size, num_sentences)`.
        aspect_matrix: Aspect-space matrix shaped `(embedding_size, num_sentences)`.
        entity_query: Entity query vector, or `None` when the query has no entity.
        aspect_query: Aspect query vector, or `None` when the query has no aspect.

    Returns:
        Histogram of length `num_sentences` with values in `[-1, 1]`, or `None`
        when no query side is present or a present side has no matrix.
    """
    if entity_query is not None and aspect_query is not None:
        if entity_matrix is None or aspect_matrix is None:
            return None
        entity_query = unit_vec(entity_query)
        aspect_query = unit_vec(aspect_query)
        entity_matrix = _as_matrix(entity_matrix, entity_query.shape[0])
        aspect_matrix = _as_matrix(aspect_matrix, aspect_query.shape[0])
        if entity_matrix.shape[1] != aspect_matrix.shape[1]:
            raise ProjectionError(
                f"Entity matrix covers {entity_matrix.shape[1]} sentences, "
                f"aspect matrix covers {aspect_matrix.shape[1]}"
            )
        query = np.concatenate([entity_query, aspect_query])
        return _project(query, np.vstack([entity_matrix, aspect_matrix]))

    if entity_query is not None:
        if entity_matrix is None:
            return None
        return _project(unit_vec(entity_query), entity_matrix)

    if aspect_query is not None:
        if aspect_matrix is None:
            return None
        return _project(unit_vec(aspect_query), aspect_matrix)

    return None
