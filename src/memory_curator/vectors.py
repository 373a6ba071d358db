"""Vector math and the on-disk embedding format.

Cosine similarity of a zero-norm vector is defined as 0.0 rather than an
error: a degenerate embedding is simply similar to nothing. Comparing vectors
of different lengths is always a caller error.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

from memory_curator.errors import DimensionMismatchError, EmbeddingParseError

Vector = np.ndarray


def as_vector(values: Sequence[float] | np.ndarray) -> Vector:
    """Coerce a sequence of floats to a 1-D float64 array."""
    return np.asarray(values, dtype=np.float64).reshape(-1)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Calculate cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: if the vectors differ in length
    """
    a = as_vector(a)
    b = as_vector(b)
    if a.shape != b.shape:
        raise DimensionMismatchError(a.shape[0], b.shape[0])

    a_norm = np.linalg.norm(a)
    b_norm = np.linalg.norm(b)
    if a_norm == 0.0 or b_norm == 0.0:
        return 0.0

    similarity = float(np.dot(a, b) / (a_norm * b_norm))
    # Rounding can push |v.v| / |v|^2 a hair past 1
    return max(-1.0, min(1.0, similarity))


def centroid(vectors: Sequence[Sequence[float] | np.ndarray]) -> Vector:
    """Elementwise mean of the vectors; empty input gives an empty vector."""
    if len(vectors) == 0:
        return np.zeros(0, dtype=np.float64)

    stacked = [as_vector(v) for v in vectors]
    dim = stacked[0].shape[0]
    for v in stacked[1:]:
        if v.shape[0] != dim:
            raise DimensionMismatchError(dim, v.shape[0])
    return np.mean(np.vstack(stacked), axis=0)


def unit_rows(matrix: np.ndarray) -> np.ndarray:
    """Normalize each row to unit length. Zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    safe = np.where(norms == 0.0, 1.0, norms)
    return matrix / safe


def serialize_embedding(vector: Sequence[float] | np.ndarray) -> str:
    """Encode an embedding as comma-separated decimals."""
    return ",".join(repr(float(x)) for x in as_vector(vector))


def parse_embedding(text: str | None) -> Vector:
    """Decode a comma-separated embedding.

    Raises:
        EmbeddingParseError: if the text is blank, has an unreadable element,
            or contains a non-finite number
    """
    if text is None or not text.strip():
        raise EmbeddingParseError("Embedding is empty")

    values = []
    for position, part in enumerate(text.split(",")):
        try:
            value = float(part.strip())
        except ValueError as e:
            raise EmbeddingParseError(
                f"Unreadable value {part.strip()!r} at position {position}"
            ) from e
        if not math.isfinite(value):
            raise EmbeddingParseError(f"Non-finite value at position {position}")
        values.append(value)

    return np.asarray(values, dtype=np.float64)
