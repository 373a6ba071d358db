"""Clustering service: runs the full pipeline and publishes its status.

Status is a single observable value. Each published status is an immutable
object, swapped in under a lock, so readers in any thread or task only ever
see whole states:

    Idle -> Processing(5) -> Processing(20) -> Processing(30..60)
         -> Processing(60) -> Processing(90) -> Completed | Failed

Runs are serialized: a second cluster() call waits for the first to finish.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Callable
from datetime import datetime

from structlog import get_logger

from memory_curator.clustering import (
    coarse_cluster,
    refine_clusters,
    validate_target_size,
    validate_threshold,
)
from memory_curator.errors import (
    ClusteringError,
    ClusteringFailedError,
    EmbeddingParseError,
    EmptyCorpusError,
    InvalidClusteringParametersError,
    MissingEmbeddingsError,
)
from memory_curator.memory_store import MemoryStore
from memory_curator.metrics import build_result
from memory_curator.models import (
    IDLE,
    ClusteringResult,
    ClusteringStatus,
    Completed,
    Failed,
    MemoryWithAge,
    Processing,
)
from memory_curator.schema import MemoryRecord
from memory_curator.settings import get_settings
from memory_curator.time_service import TimeService
from memory_curator.tokenizer import Tokenizer, load_stop_words
from memory_curator.vectors import parse_embedding

logger = get_logger()

COARSE_START = 30
COARSE_END = 60


class StatusFlow:
    """Thread-safe holder of the current clustering status.

    publish() may be called from worker threads; watchers are asyncio queues
    fed on their own event loop.
    """

    def __init__(self, initial: ClusteringStatus = IDLE):
        self._lock = threading.Lock()
        self._value: ClusteringStatus = initial
        self._watchers: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []

    @property
    def value(self) -> ClusteringStatus:
        with self._lock:
            return self._value

    def publish(self, status: ClusteringStatus) -> None:
        with self._lock:
            self._value = status
            watchers = list(self._watchers)
        self._notify(watchers, status)

    def compare_and_publish(self, expected: ClusteringStatus, status: ClusteringStatus) -> bool:
        """Publish only if the current value is still `expected` (by identity)."""
        with self._lock:
            if self._value is not expected:
                return False
            self._value = status
            watchers = list(self._watchers)
        self._notify(watchers, status)
        return True

    def _notify(self, watchers, status: ClusteringStatus) -> None:
        for loop, queue in watchers:
            if loop.is_closed():
                self._remove(loop, queue)
                continue
            loop.call_soon_threadsafe(queue.put_nowait, status)

    def _remove(self, loop, queue) -> None:
        with self._lock:
            if (loop, queue) in self._watchers:
                self._watchers.remove((loop, queue))

    async def watch(self) -> AsyncIterator[ClusteringStatus]:
        """Yield the current status, then every later change, in order."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._watchers.append((loop, queue))
            current = self._value
        try:
            yield current
            while True:
                yield await queue.get()
        finally:
            self._remove(loop, queue)


class ClusteringService:
    """Service for clustering the memory corpus into reviewable groups."""

    def __init__(
        self,
        store: MemoryStore,
        clock: Callable[[], datetime] | None = None,
        tokenizer: Tokenizer | None = None,
        status_reset_delay: float | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.clock = clock or TimeService.now
        self.tokenizer = tokenizer or Tokenizer(load_stop_words(settings.stop_words_path))
        self.status_reset_delay = (
            status_reset_delay if status_reset_delay is not None else settings.status_reset_delay
        )
        self.status = StatusFlow()
        self._lock = asyncio.Lock()
        self._reset_handle: asyncio.TimerHandle | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def reset_status(self) -> None:
        """Return to Idle, e.g. once a caller has shown the result."""
        self._cancel_reset()
        self.status.publish(IDLE)

    async def cluster(
        self,
        target_size: tuple[int, int] | None = None,
        threshold: float | None = None,
    ) -> ClusteringResult:
        """
        Cluster every stored memory.

        A started run cannot be cancelled. If the awaiting task is cancelled,
        the run still finishes and publishes Completed or Failed, the run lock
        stays held until then, and only afterwards is CancelledError raised.

        Args:
            target_size: (min, max) cluster size, default from settings (5, 10)
            threshold: Hybrid similarity needed to join a cluster (default 0.60)

        Returns:
            The clustering result, also published as Completed

        Raises:
            InvalidClusteringParametersError: target_size or threshold out of bounds
            EmptyCorpusError: nothing is stored
            MissingEmbeddingsError: any memory lacks a readable embedding
            ClusteringFailedError: anything else went wrong
        """
        settings = get_settings()
        if target_size is None:
            target_size = (settings.cluster_min_size, settings.cluster_max_size)
        if threshold is None:
            threshold = settings.similarity_threshold

        async with self._lock:
            self._cancel_reset()
            run = asyncio.ensure_future(self._run_and_publish(target_size, threshold))
            cancelled = False
            while not run.done():
                try:
                    await asyncio.wait({run})
                except asyncio.CancelledError:
                    cancelled = True
                    logger.warning("Clustering run cannot be cancelled, waiting for it to finish")

            if cancelled:
                if not run.cancelled():
                    run.exception()
                raise asyncio.CancelledError()
            return run.result()

    async def _run_and_publish(
        self, target_size: tuple[int, int], threshold: float
    ) -> ClusteringResult:
        try:
            result = await self._run(target_size, threshold)
        except ClusteringError as e:
            logger.error("Clustering failed", error=str(e))
            self._finish(Failed(str(e)))
            raise
        except Exception as e:
            logger.exception("Clustering failed unexpectedly")
            message = str(e) or type(e).__name__
            self._finish(Failed(message))
            raise ClusteringFailedError(message) from e

        self._finish(Completed(result))
        return result

    async def _run(self, target_size: tuple[int, int], threshold: float) -> ClusteringResult:
        try:
            validate_target_size(target_size)
            validate_threshold(threshold)
        except (TypeError, ValueError) as e:
            raise InvalidClusteringParametersError(str(e)) from e

        self.status.publish(Processing(5, "Loading memories..."))
        memories = await self.store.get_all()
        if not memories:
            raise EmptyCorpusError()

        self.status.publish(Processing(20, f"Processing {len(memories)} memories..."))
        prepared = prepare_memories(memories, self.clock())

        self.status.publish(Processing(COARSE_START, "Stage 1: Finding main themes..."))
        labels = await asyncio.to_thread(
            coarse_cluster, prepared, threshold, self.tokenizer, self._coarse_progress()
        )

        self.status.publish(Processing(COARSE_END, "Stage 2: Refining clusters..."))
        groups, outliers = refine_clusters(prepared, labels, target_size)

        self.status.publish(Processing(90, "Calculating metrics..."))
        result = await asyncio.to_thread(build_result, groups, outliers, len(prepared))

        logger.info(
            "Clustering complete",
            memories=result.total_memories,
            clusters=len(result.clusters),
            outliers=result.outliers.size if result.outliers else 0,
            threshold=threshold,
            target_size=target_size,
        )
        return result

    def _coarse_progress(self) -> Callable[[int, int], None]:
        last = COARSE_START

        def report(done: int, total: int) -> None:
            nonlocal last
            progress = COARSE_START + (COARSE_END - COARSE_START) * done // total
            if progress > last and progress < COARSE_END:
                last = progress
                self.status.publish(Processing(progress, "Stage 1: Finding main themes..."))

        return report

    def _finish(self, status: ClusteringStatus) -> None:
        self.status.publish(status)
        if self.status_reset_delay is None:
            return
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(
            self.status_reset_delay, self.status.compare_and_publish, status, IDLE
        )

    def _cancel_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None


def prepare_memories(memories: list[MemoryRecord], now: datetime) -> list[MemoryWithAge]:
    """Parse embeddings and compute ages for one run.

    Raises:
        MissingEmbeddingsError: if any memory has no readable embedding
    """
    prepared = []
    missing = 0
    for memory in memories:
        try:
            embedding = parse_embedding(memory.embedding)
        except EmbeddingParseError as e:
            logger.warning("Memory has no usable embedding", memory_id=memory.id, error=str(e))
            missing += 1
            continue
        prepared.append(
            MemoryWithAge(
                memory=memory,
                age_days=TimeService.age_in_days(memory.created_at, now),
                embedding=embedding,
            )
        )

    if missing:
        raise MissingEmbeddingsError(missing)
    return prepared
