"""Hybrid similarity: embedding cosine plus a bounded keyword-overlap boost.

The keyword term is added on top of the embedding similarity and the sum is
clamped to [0, 1]. It is not a weighted average, so near the ceiling the
clamp decides outcomes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import numpy as np

from memory_curator.errors import DimensionMismatchError
from memory_curator.tokenizer import Tokenizer, jaccard
from memory_curator.vectors import as_vector, cosine_similarity, unit_rows

KEYWORD_BOOST_WEIGHT = 0.2


class TextWithEmbedding(Protocol):
    @property
    def text(self) -> str: ...

    @property
    def embedding(self) -> np.ndarray: ...


def combine(embedding_similarities: Sequence[float], keyword_overlaps: Sequence[float]) -> float:
    """Mean cosine plus 0.2 x mean Jaccard, clamped to [0, 1]."""
    if len(embedding_similarities) == 0:
        return 0.0
    emb_sim = float(np.mean(embedding_similarities))
    kw_boost = float(np.mean(keyword_overlaps)) * KEYWORD_BOOST_WEIGHT if len(keyword_overlaps) else 0.0
    return min(1.0, max(0.0, emb_sim + kw_boost))


def hybrid_similarity(
    candidate: TextWithEmbedding,
    group: Sequence[TextWithEmbedding],
    tokenizer: Tokenizer,
) -> float:
    """Score a candidate against every member of a group.

    An empty group scores 0.0.
    """
    if not group:
        return 0.0
    candidate_tokens = tokenizer.tokenize(candidate.text)
    return combine(
        [cosine_similarity(candidate.embedding, member.embedding) for member in group],
        [jaccard(candidate_tokens, tokenizer.tokenize(member.text)) for member in group],
    )


class HybridScorer:
    """Hybrid similarity over a fixed, indexed corpus.

    Embeddings are normalized and texts tokenized once up front; scoring a
    candidate against a group then costs one matrix-vector product and one
    Jaccard per member. Results equal hybrid_similarity() on the same items.
    """

    def __init__(self, items: Sequence[TextWithEmbedding], tokenizer: Tokenizer):
        self.size = len(items)
        self.tokens = [tokenizer.tokenize(item.text) for item in items]
        if items:
            vectors = [as_vector(item.embedding) for item in items]
            dim = vectors[0].shape[0]
            for v in vectors[1:]:
                if v.shape[0] != dim:
                    raise DimensionMismatchError(dim, v.shape[0])
            self.unit = unit_rows(np.vstack(vectors))
        else:
            self.unit = np.zeros((0, 0))

    def score(self, candidate: int, group: Sequence[int]) -> float:
        """Similarity of item `candidate` to the items at indices `group`."""
        if not group:
            return 0.0
        members = list(group)
        cosines = np.clip(self.unit[members] @ self.unit[candidate], -1.0, 1.0)
        candidate_tokens = self.tokens[candidate]
        overlaps = [jaccard(candidate_tokens, self.tokens[m]) for m in members]
        return combine(cosines, overlaps)
