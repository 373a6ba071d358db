"""Shared test fixtures and configuration."""

import sys
from pathlib import Path

# Add src to path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np  # noqa: E402
import pendulum  # noqa: E402
import pytest  # noqa: E402

from memory_curator.errors import EmbeddingProviderError  # noqa: E402
from memory_curator.schema import MemoryRecord  # noqa: E402
from memory_curator.settings import reset_settings  # noqa: E402
from memory_curator.vectors import serialize_embedding  # noqa: E402

NOW = pendulum.datetime(2024, 6, 1, 12, 0, 0, tz="UTC")

DIM = 16


def unit(index: int, dim: int = DIM) -> np.ndarray:
    """Basis vector e_index."""
    v = np.zeros(dim)
    v[index] = 1.0
    return v


def make_memory(
    fact: str,
    embedding=None,
    age_days: float = 0,
    persona_id: str | None = None,
    memory_id: str | None = None,
) -> MemoryRecord:
    """A memory created age_days before NOW, with a serialized embedding."""
    fields = {
        "fact": fact,
        "embedding": serialize_embedding(embedding) if embedding is not None else None,
        "created_at": NOW.subtract(seconds=int(age_days * 86400)),
        "persona_id": persona_id,
    }
    if memory_id is not None:
        fields["id"] = memory_id
    return MemoryRecord(**fields)


class FakeEmbeddingProvider:
    """Deterministic embeddings looked up by text."""

    def __init__(self, vectors: dict[str, np.ndarray] | None = None, fail: bool = False):
        self.vectors = dict(vectors or {})
        self.fail = fail
        self.calls: list[str] = []
        self.batches: list[list[str]] = []

    async def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingProviderError("provider offline")
        if text not in self.vectors:
            raise EmbeddingProviderError(f"no embedding for {text!r}")
        return np.asarray(self.vectors[text], dtype=np.float64)

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        self.batches.append(list(texts))
        return np.vstack([await self.embed(t) for t in texts])


@pytest.fixture(autouse=True)
def fresh_settings():
    """Every test starts from freshly read settings."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock():
    return lambda: NOW
