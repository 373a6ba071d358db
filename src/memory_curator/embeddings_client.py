"""Client for the embedding service."""

import asyncio

import httpx
import numpy as np
from structlog import get_logger

from memory_curator.errors import EmbeddingProviderError
from memory_curator.settings import get_settings

logger = get_logger()


class EmbeddingServiceClient:
    """Client for the embedding microservice."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize embedding service client."""
        self.transport = transport
        settings = get_settings()
        self.base_url = (base_url or settings.embedding_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        logger.info("Embedding service client initialized", base_url=self.base_url)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, f"{self.base_url}{path}", **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise EmbeddingProviderError(
                f"Embedding service returned {e.response.status_code} for {path}"
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingProviderError(f"Embedding service unreachable: {e}") from e
        except ValueError as e:
            raise EmbeddingProviderError(f"Embedding service sent invalid JSON for {path}") from e

    async def health_check(self) -> dict:
        """Check if embedding service is healthy."""
        return await self._request("GET", "/health")

    async def embed(self, text: str) -> np.ndarray:
        """
        Generate the embedding for a text.

        Args:
            text: The text to embed

        Returns:
            1-D float array
        """
        data = await self._request("POST", "/embed", json={"text": text})
        try:
            vector = np.asarray(data["embedding"], dtype=np.float64)
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingProviderError("Malformed /embed response") from e
        if vector.ndim != 1 or vector.size == 0:
            raise EmbeddingProviderError("Malformed /embed response")
        return vector

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed

        Returns:
            Array of shape (len(texts), dim)
        """
        if not texts:
            return np.array([])

        data = await self._request("POST", "/embed_batch", json=texts)
        try:
            vectors = np.asarray(data["embeddings"], dtype=np.float64)
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingProviderError("Malformed /embed_batch response") from e
        if vectors.ndim != 2 or vectors.shape[0] != len(texts):
            raise EmbeddingProviderError(
                f"Expected {len(texts)} embeddings, got shape {vectors.shape}"
            )
        return vectors

    async def wait_until_ready(self, max_attempts: int = 30, delay: float = 1.0):
        """Wait for embedding service to be ready."""
        for attempt in range(max_attempts):
            try:
                health = await self.health_check()
                if health.get("status") == "ok" or health.get("models_loaded"):
                    logger.info("Embedding service is ready", health=health)
                    return
            except EmbeddingProviderError as e:
                logger.debug("Embedding service not ready", attempt=attempt + 1, error=str(e))

            if attempt < max_attempts - 1:
                await asyncio.sleep(delay)

        raise EmbeddingProviderError("Embedding service failed to become ready")


# Global instance
_embedding_client = None


def get_embedding_client() -> EmbeddingServiceClient:
    """Get the global embedding client instance."""
    global _embedding_client
    if _embedding_client is None:
        _embedding_client = EmbeddingServiceClient()
    return _embedding_client
