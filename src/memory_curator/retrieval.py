"""Query-time semantic retrieval.

Ranks candidates by cosine similarity to a query embedding. Equal scores keep
the candidates' input order. A candidate that cannot be scored (no embedding,
or an embedding of another dimensionality) is skipped and logged; it never
fails the query.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

import numpy as np
from structlog import get_logger

from memory_curator.errors import DimensionMismatchError
from memory_curator.time_service import SECONDS_PER_DAY, TimeService
from memory_curator.vectors import as_vector, cosine_similarity

logger = get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class Candidate(Generic[T]):
    item: T
    embedding: np.ndarray | None
    created_at: datetime


@dataclass(frozen=True)
class ScoredCandidate(Generic[T]):
    item: T
    score: float


def is_old_enough(created_at: datetime, min_age_days: int, now: datetime | None = None) -> bool:
    """True when at least min_age_days full days have passed since created_at."""
    if min_age_days <= 0:
        return True
    age = TimeService.parse(now) - TimeService.parse(created_at)
    return age.total_seconds() >= min_age_days * SECONDS_PER_DAY


def find_similar(
    query_embedding: Any,
    candidates: Iterable[Candidate[T]],
    k: int,
    min_age_days: int = 0,
    now: datetime | None = None,
) -> list[ScoredCandidate[T]]:
    """Return the top k candidates by cosine similarity to the query.

    Args:
        query_embedding: Query vector
        candidates: Items with their embedding and creation time
        k: Maximum number of results; zero or less gives an empty list
        min_age_days: Only consider candidates at least this many days old
        now: Reference time for the age filter (defaults to now)

    Returns:
        Up to k scored candidates, best first
    """
    if k <= 0:
        return []

    query = as_vector(query_embedding)
    current = TimeService.parse(now)
    scored: list[ScoredCandidate[T]] = []
    skipped = 0

    for position, candidate in enumerate(candidates):
        if not is_old_enough(candidate.created_at, min_age_days, current):
            continue
        if candidate.embedding is None:
            logger.warning("Candidate has no embedding, skipping", position=position)
            skipped += 1
            continue
        try:
            score = cosine_similarity(query, candidate.embedding)
        except DimensionMismatchError as e:
            logger.warning("Candidate embedding not comparable, skipping", position=position, error=str(e))
            skipped += 1
            continue
        scored.append(ScoredCandidate(item=candidate.item, score=score))

    # sorted() is stable, so ties stay in input order
    ranked = sorted(scored, key=lambda s: s.score, reverse=True)[:k]

    logger.debug("Retrieval ranked", scored=len(scored), skipped=skipped, returned=len(ranked))
    return ranked
