"""Memory service for saving, embedding and retrieving memories."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Literal

import numpy as np
from structlog import get_logger

from memory_curator.embeddings import EmbeddingProvider, get_embedding_service
from memory_curator.errors import EmbeddingParseError, EmbeddingProviderError
from memory_curator.memory_store import MemoryStore
from memory_curator.retrieval import Candidate, find_similar
from memory_curator.schema import MemoryRecord
from memory_curator.settings import get_settings
from memory_curator.time_service import TimeService
from memory_curator.vectors import parse_embedding, serialize_embedding

logger = get_logger()

SearchScope = Literal["all", "persona", "global"]
Clock = Callable[[], datetime]


class MemoryService:
    """Service for managing memories."""

    def __init__(
        self,
        store: MemoryStore,
        embedding_service: EmbeddingProvider | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.embedding_service = embedding_service or get_embedding_service()
        self.clock = clock or TimeService.now

    async def _embed_or_none(self, text: str, **context) -> np.ndarray | None:
        try:
            return await self.embedding_service.embed(text)
        except EmbeddingProviderError as e:
            logger.warning("Embedding failed", error=str(e), **context)
            return None

    async def remember(
        self,
        fact: str,
        persona_id: str | None = None,
        conversation_id: str | None = None,
        category: str | None = None,
    ) -> MemoryRecord:
        """
        Store a new memory, embedding it at save time.

        A provider failure stores the memory without an embedding; it can be
        filled in later with backfill_embeddings().
        """
        fact = fact.strip()
        if not fact:
            raise ValueError("Memory fact must not be empty")

        embedding = await self._embed_or_none(fact, fact_preview=fact[:100])
        memory = MemoryRecord(
            fact=fact,
            embedding=serialize_embedding(embedding) if embedding is not None else None,
            created_at=self.clock(),
            persona_id=persona_id,
            conversation_id=conversation_id,
            category=category,
        )
        await self.store.add(memory)

        logger.info(
            "Memory stored",
            memory_id=memory.id,
            has_embedding=memory.embedding is not None,
            persona_id=persona_id,
        )
        return memory

    async def update_fact(self, memory_id: str, fact: str) -> MemoryRecord:
        """Rewrite a memory's fact and re-embed it."""
        memory = await self.store.get(memory_id)
        if memory is None:
            raise KeyError(memory_id)

        embedding = await self._embed_or_none(fact, memory_id=memory_id)
        updated = memory.model_copy(
            update={
                "fact": fact,
                "embedding": serialize_embedding(embedding) if embedding is not None else None,
            }
        )
        await self.store.update(updated)
        logger.info("Memory updated", memory_id=memory_id)
        return updated

    async def backfill_embeddings(
        self,
        only_missing: bool = True,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> int:
        """
        (Re)compute embeddings, one batch request at a time.

        Args:
            only_missing: Skip memories that already have a readable embedding
            on_progress: Called with (current, total) after each batch

        Returns:
            Number of memories updated
        """
        memories = await self.store.get_all()
        if only_missing:
            memories = [m for m in memories if _stored_embedding(m) is None]

        total = len(memories)
        batch_size = get_settings().embedding_batch_size
        updated = 0
        for start in range(0, total, batch_size):
            batch = memories[start : start + batch_size]
            embeddings = await self._embed_batch(batch)
            for memory, embedding in zip(batch, embeddings):
                if embedding is None:
                    continue
                await self.store.update(
                    memory.model_copy(update={"embedding": serialize_embedding(embedding)})
                )
                updated += 1
            if on_progress is not None:
                on_progress(start + len(batch), total)

        logger.info("Embeddings recalculated", updated=updated, total=total)
        return updated

    async def _embed_batch(self, memories: list[MemoryRecord]) -> list[np.ndarray | None]:
        """Embed a batch in one request, or one by one if the batch request fails."""
        try:
            return list(await self.embedding_service.embed_batch([m.fact for m in memories]))
        except EmbeddingProviderError as e:
            logger.warning("Batch embedding failed, embedding one by one", error=str(e))
        return [await self._embed_or_none(m.fact, memory_id=m.id) for m in memories]

    async def _load_scope(self, scope: SearchScope, persona_id: str | None) -> list[MemoryRecord]:
        if scope == "persona":
            if persona_id is None:
                raise ValueError("Persona scope needs a persona_id")
            return await self.store.get_by_persona(persona_id)
        if scope == "global":
            return await self.store.get_global()
        return await self.store.get_all()

    async def _candidate(self, memory: MemoryRecord, embed_missing: bool) -> Candidate[MemoryRecord]:
        embedding = _stored_embedding(memory)
        if embedding is None and embed_missing:
            logger.warning("Missing embedding for memory, generating", memory_id=memory.id)
            embedding = await self._embed_or_none(memory.fact, memory_id=memory.id)
        return Candidate(item=memory, embedding=embedding, created_at=memory.created_at)

    async def find_similar_memories(
        self,
        query: str,
        limit: int | None = None,
        min_age_days: int | None = None,
        persona_id: str | None = None,
        scope: SearchScope = "all",
        embed_missing: bool | None = None,
    ) -> list[MemoryRecord]:
        """
        Find the memories most relevant to a query.

        Retrieval only adds context to a conversation, so every failure here
        is logged and answered with an empty list.

        Args:
            query: The user's current message
            limit: Maximum number of memories (default from settings)
            min_age_days: Only memories at least this old (default from settings)
            persona_id: Persona for scope="persona"
            scope: "all", "persona" or "global" (memories without a persona)
            embed_missing: Embed candidates lacking an embedding on the fly

        Returns:
            Memories, most similar first
        """
        settings = get_settings()
        limit = settings.memory_limit if limit is None else limit
        min_age_days = settings.memory_min_age_days if min_age_days is None else min_age_days
        embed_missing = settings.embed_missing_on_search if embed_missing is None else embed_missing

        try:
            memories = await self._load_scope(scope, persona_id)
            if not memories:
                return []

            now = self.clock()
            query_embedding = await self._embed_or_none(query, query_preview=query[:100])
            if query_embedding is None:
                return []

            candidates = []
            for memory in memories:
                # Age first, so memories that would be filtered out are never embedded
                if min_age_days > 0 and TimeService.age_in_days(memory.created_at, now) < min_age_days:
                    continue
                candidates.append(await self._candidate(memory, embed_missing))

            results = find_similar(query_embedding, candidates, limit, min_age_days=min_age_days, now=now)
        except Exception:
            logger.exception("Error finding similar memories", scope=scope, persona_id=persona_id)
            return []

        logger.info("Similar memories found", count=len(results), scope=scope)
        return [r.item for r in results]

    async def find_context_memories(
        self,
        query: str,
        persona_id: str | None = None,
        persona_only: bool = False,
        limit: int | None = None,
        min_age_days: int | None = None,
    ) -> list[MemoryRecord]:
        """
        Memories to inject into a conversation.

        With a persona: that persona's memories first, then global ones
        (unless persona_only), de-duplicated and cut to limit. Without a
        persona: global memories only.
        """
        limit = get_settings().memory_limit if limit is None else limit

        if persona_id is None:
            return await self.find_similar_memories(
                query, limit=limit, min_age_days=min_age_days, scope="global"
            )

        memories = await self.find_similar_memories(
            query, limit=limit, min_age_days=min_age_days, persona_id=persona_id, scope="persona"
        )
        if not persona_only:
            memories += await self.find_similar_memories(
                query, limit=limit, min_age_days=min_age_days, scope="global"
            )

        seen: set[str] = set()
        unique = []
        for memory in memories:
            if memory.id not in seen:
                seen.add(memory.id)
                unique.append(memory)
        return unique[:limit]


def _stored_embedding(memory: MemoryRecord) -> np.ndarray | None:
    """Parsed stored embedding, or None when absent or unreadable."""
    if not memory.has_embedding:
        return None
    try:
        return parse_embedding(memory.embedding)
    except EmbeddingParseError as e:
        logger.warning("Unreadable embedding", memory_id=memory.id, error=str(e))
        return None
