"""Per-cluster review metrics: density, diversity, age and priority."""

from __future__ import annotations

import math
from collections.abc import Sequence
from itertools import combinations

import numpy as np

from memory_curator.models import (
    OUTLIER_CLUSTER_ID,
    ClusteringResult,
    MemoryCluster,
    MemoryWithAge,
)
from memory_curator.vectors import centroid, cosine_similarity

# Age at which a cluster counts as fully "old" for prioritization
AGE_SATURATION_DAYS = 90

OLD_SPARSE_WEIGHT = 0.6
FRESH_DENSE_WEIGHT = 0.4


def calculate_density(embeddings: Sequence[np.ndarray], center: np.ndarray) -> float:
    """Mean cosine of each member to the centroid."""
    if not embeddings:
        return 0.0
    return float(np.mean([cosine_similarity(e, center) for e in embeddings]))


def calculate_diversity(embeddings: Sequence[np.ndarray]) -> float:
    """1 - mean pairwise cosine. Not clamped, so the range is [0, 2]."""
    if len(embeddings) <= 1:
        return 0.0
    pairwise = [cosine_similarity(a, b) for a, b in combinations(embeddings, 2)]
    return 1.0 - float(np.mean(pairwise))


def average_age(ages: Sequence[int]) -> int:
    """Mean age in days, rounded half up."""
    if not ages:
        return 0
    return math.floor(sum(ages) / len(ages) + 0.5)


def calculate_priority(density: float, avg_age_days: int) -> float:
    """Review priority in [0, 1].

    Old, loose clusters score highest; young, tight clusters get a smaller
    contribution from their density.
    """
    age_factor = min(avg_age_days / AGE_SATURATION_DAYS, 1.0)
    score = (
        age_factor * (1.0 - density) * OLD_SPARSE_WEIGHT
        + (1.0 - age_factor) * density * FRESH_DENSE_WEIGHT
    )
    return min(1.0, max(0.0, score))


def build_cluster(cluster_id: int, members: Sequence[MemoryWithAge]) -> MemoryCluster:
    """Compute metrics for a group and wrap it as a MemoryCluster."""
    embeddings = [m.embedding for m in members]
    center = centroid(embeddings)
    density = calculate_density(embeddings, center)
    avg_age_days = average_age([m.age_days for m in members])

    return MemoryCluster(
        id=cluster_id,
        members=list(members),
        density=density,
        avg_age_days=avg_age_days,
        diversity=calculate_diversity(embeddings),
        priority_score=calculate_priority(density, avg_age_days),
        centroid=center,
    )


def build_result(
    groups: Sequence[Sequence[MemoryWithAge]],
    outliers: Sequence[MemoryWithAge],
    total_memories: int,
) -> ClusteringResult:
    """Number the final groups from 0 and gather outliers under the reserved id."""
    return ClusteringResult(
        clusters=[build_cluster(cluster_id, group) for cluster_id, group in enumerate(groups)],
        outliers=build_cluster(OUTLIER_CLUSTER_ID, outliers) if outliers else None,
        total_memories=total_memories,
    )
