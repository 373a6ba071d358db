"""Two-stage memory clustering.

Stage 1 (coarse) is a greedy single pass in corpus order: each unassigned
memory seeds a cluster, and every later unassigned memory joins it when its
hybrid similarity to the cluster *as grown so far* reaches the threshold.
The outcome depends on input order, and that is part of the algorithm.

Stage 2 (refine) fits the coarse groups into a target size range. Oversized
groups are split round-robin by position, without looking at similarity.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from typing import TypeVar

from structlog import get_logger

from memory_curator.similarity import HybridScorer, TextWithEmbedding
from memory_curator.tokenizer import Tokenizer

logger = get_logger()

T = TypeVar("T")

UNASSIGNED = -1

DEFAULT_THRESHOLD = 0.60
DEFAULT_TARGET_SIZE = (5, 10)

ProgressCallback = Callable[[int, int], None]


def coarse_cluster(
    items: Sequence[TextWithEmbedding],
    threshold: float = DEFAULT_THRESHOLD,
    tokenizer: Tokenizer | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[int]:
    """Assign a coarse cluster label to every item.

    Args:
        items: Memories in corpus order
        threshold: Minimum hybrid similarity to join the current cluster
        tokenizer: Tokenizer for the keyword term (bundled stop words if None)
        on_progress: Called with (items processed, total) after each seed

    Returns:
        Labels, one per item, numbered from 0 in order of first appearance
    """
    n = len(items)
    scorer = HybridScorer(items, tokenizer or Tokenizer())
    labels = [UNASSIGNED] * n
    cluster_id = 0

    for i in range(n):
        if labels[i] != UNASSIGNED:
            continue

        labels[i] = cluster_id
        members = [i]

        for j in range(i + 1, n):
            if labels[j] != UNASSIGNED:
                continue
            if scorer.score(j, members) >= threshold:
                labels[j] = cluster_id
                members.append(j)

        cluster_id += 1
        if on_progress is not None:
            on_progress(i + 1, n)

    logger.debug("Coarse clustering complete", items=n, clusters=cluster_id, threshold=threshold)
    return labels


def group_by_label(items: Sequence[T], labels: Sequence[int]) -> list[list[T]]:
    """Group items by label, groups ordered by first appearance, members by position."""
    if len(items) != len(labels):
        raise ValueError(f"Got {len(labels)} labels for {len(items)} items")

    groups: dict[int, list[T]] = {}
    for item, label in zip(items, labels):
        groups.setdefault(label, []).append(item)
    return list(groups.values())


def split_round_robin(members: Sequence[T], max_size: int) -> list[list[T]]:
    """Split into ceil(len / max_size) groups, member k going to group k % count."""
    count = math.ceil(len(members) / max_size)
    subgroups: list[list[T]] = [[] for _ in range(count)]
    for index, member in enumerate(members):
        subgroups[index % count].append(member)
    return subgroups


def refine_clusters(
    items: Sequence[T],
    labels: Sequence[int],
    target_size: tuple[int, int] = DEFAULT_TARGET_SIZE,
) -> tuple[list[list[T]], list[T]]:
    """Fit coarse groups into the target size range.

    - Groups within [min, max] are kept.
    - Singletons become outliers. Groups of 2..min-1 are still kept as
      clusters, below the nominal floor.
    - Groups above max are split round-robin; pieces smaller than min become
      outliers.

    Returns:
        (final groups, outliers); together they hold every item exactly once
    """
    min_size, max_size = validate_target_size(target_size)

    clusters: list[list[T]] = []
    outliers: list[T] = []

    for group in group_by_label(items, labels):
        size = len(group)
        if min_size <= size <= max_size:
            clusters.append(group)
        elif size < min_size:
            if size == 1:
                outliers.extend(group)
            else:
                clusters.append(group)
        else:
            for subgroup in split_round_robin(group, max_size):
                if len(subgroup) >= min_size:
                    clusters.append(subgroup)
                else:
                    outliers.extend(subgroup)

    logger.debug(
        "Clusters refined",
        clusters=len(clusters),
        outliers=len(outliers),
        min_size=min_size,
        max_size=max_size,
    )
    return clusters, outliers


def validate_target_size(target_size: tuple[int, int]) -> tuple[int, int]:
    """Check a (min, max) target range and return it."""
    min_size, max_size = target_size
    if min_size < 1:
        raise ValueError(f"Minimum cluster size must be at least 1, got {min_size}")
    if max_size < min_size:
        raise ValueError(f"Maximum cluster size {max_size} is below minimum {min_size}")
    return min_size, max_size


def validate_threshold(threshold: float) -> float:
    """Check a similarity threshold lies in [0, 1] and return it."""
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"Similarity threshold must be between 0 and 1, got {threshold}")
    return threshold
