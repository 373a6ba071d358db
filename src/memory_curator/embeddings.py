"""Embedding provider used for saving, backfilling and searching memories."""

from typing import Protocol

import numpy as np
from structlog import get_logger

from .embeddings_client import EmbeddingServiceClient, get_embedding_client

logger = get_logger()


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> np.ndarray: ...

    async def embed_batch(self, texts: list[str]) -> np.ndarray: ...


class EmbeddingService:
    """Service for generating memory embeddings."""

    def __init__(self, client: EmbeddingServiceClient | None = None):
        """Initialize embedding service."""
        self.client = client or get_embedding_client()
        logger.info("Using embedding service")

    async def embed(self, text: str) -> np.ndarray:
        """
        Generate the embedding for a text.

        Raises:
            EmbeddingProviderError: if the service cannot produce one
        """
        return await self.client.embed(text)

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.array([])

        return await self.client.embed_batch(texts)


# Global instance
_embedding_service = None


def get_embedding_service() -> EmbeddingService:
    """Get the global embedding service instance."""
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
