"""Clustering result and status models."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from memory_curator.schema import MemoryRecord

# Reserved id of the bucket holding memories without a coherent theme
OUTLIER_CLUSTER_ID = -1


@dataclass(frozen=True, eq=False)
class MemoryWithAge:
    """A memory prepared for one clustering run."""

    memory: MemoryRecord
    age_days: int
    embedding: np.ndarray

    @property
    def id(self) -> str:
        return self.memory.id

    @property
    def text(self) -> str:
        return self.memory.fact


@dataclass
class MemoryCluster:
    """A group of memories with its review metrics."""

    id: int
    members: list[MemoryWithAge]
    density: float
    avg_age_days: int
    diversity: float
    priority_score: float
    centroid: np.ndarray = field(repr=False, default_factory=lambda: np.zeros(0))

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_outliers(self) -> bool:
        return self.id == OUTLIER_CLUSTER_ID

    @property
    def memory_ids(self) -> list[str]:
        return [m.id for m in self.members]

    @property
    def priority_category(self) -> str:
        """High, Medium or Low review priority."""
        if self.priority_score > 0.7:
            return "High"
        if self.priority_score > 0.4:
            return "Medium"
        return "Low"

    @property
    def age_category(self) -> str:
        """old (> 60 days), aging (> 30 days) or fresh."""
        if self.avg_age_days > 60:
            return "old"
        if self.avg_age_days > 30:
            return "aging"
        return "fresh"


@dataclass
class ClusteringResult:
    """Final clusters plus the outliers bucket.

    Every input memory appears exactly once across clusters and outliers.
    """

    clusters: list[MemoryCluster]
    outliers: MemoryCluster | None
    total_memories: int

    def top_priority_clusters(self, limit: int = 5) -> list[MemoryCluster]:
        """Clusters most worth reviewing first."""
        return sorted(self.clusters, key=lambda c: c.priority_score, reverse=True)[:limit]

    def oldest_clusters(self, limit: int = 5) -> list[MemoryCluster]:
        return sorted(self.clusters, key=lambda c: c.avg_age_days, reverse=True)[:limit]

    @property
    def average_cluster_size(self) -> float:
        if not self.clusters:
            return 0.0
        return sum(c.size for c in self.clusters) / len(self.clusters)


# Clustering status. Each value is immutable; a change of status is a new object.


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Processing:
    progress: int
    step: str


@dataclass(frozen=True)
class Completed:
    result: ClusteringResult


@dataclass(frozen=True)
class Failed:
    error: str


ClusteringStatus = Idle | Processing | Completed | Failed

IDLE = Idle()
