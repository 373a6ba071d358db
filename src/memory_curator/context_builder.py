"""Text blocks built from memories: conversation context and clustering reports."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from memory_curator.models import ClusteringResult
from memory_curator.schema import MemoryRecord
from memory_curator.templates import render_output
from memory_curator.time_service import TimeService

# (exclusive upper bound in days, label), newest first
AGE_BUCKETS: list[tuple[int, str]] = [
    (1, "Today"),
    (2, "1 day ago"),
    (3, "2 days ago"),
    (4, "3 days ago"),
    (5, "4 days ago"),
    (6, "5 days ago"),
    (7, "6 days ago"),
    (14, "1 week ago"),
    (21, "2 weeks ago"),
    (28, "3 weeks ago"),
    (60, "1 month ago"),
    (90, "2 months ago"),
    (120, "3 months ago"),
    (150, "4 months ago"),
    (180, "5 months ago"),
    (365, "Half a year ago"),
]
LONG_AGO = "Long ago"


def age_label(age_days: int) -> str:
    """Human label for a memory of the given age."""
    for limit, label in AGE_BUCKETS:
        if age_days < limit:
            return label
    return LONG_AGO


def group_by_age(
    memories: Sequence[MemoryRecord], now: datetime | None = None
) -> list[tuple[str, list[MemoryRecord]]]:
    """Group memories into age buckets, newest bucket first.

    Within a bucket memories keep their given (relevance) order.
    """
    now = TimeService.parse(now)
    groups: dict[str, list[MemoryRecord]] = {}
    for memory in memories:
        label = age_label(TimeService.age_in_days(memory.created_at, now))
        groups.setdefault(label, []).append(memory)

    order = [label for _, label in AGE_BUCKETS] + [LONG_AGO]
    return sorted(groups.items(), key=lambda item: order.index(item[0]))


def build_memory_context(
    memories: Sequence[MemoryRecord],
    title: str = "",
    instructions: str = "",
    now: datetime | None = None,
) -> str:
    """Render memories as a context block for a conversation.

    Returns an empty string when there are no memories.
    """
    if not memories:
        return ""
    return render_output(
        "memory_context",
        title=title.strip(),
        instructions=instructions.strip(),
        groups=group_by_age(memories, now),
    ).strip()


def build_clustering_report(result: ClusteringResult) -> str:
    """Render a clustering result for review, highest priority first."""
    return render_output(
        "clustering_report",
        result=result,
        clusters=result.top_priority_clusters(len(result.clusters)),
    ).strip()
