"""Exceptions raised by Memory Curator."""


class MemoryCuratorError(Exception):
    """Base class for all Memory Curator errors."""


class EmbeddingProviderError(MemoryCuratorError):
    """The embedding provider could not produce an embedding."""


class EmbeddingParseError(MemoryCuratorError):
    """A serialized embedding is blank or malformed."""


class DimensionMismatchError(MemoryCuratorError, ValueError):
    """Two vectors of different dimensionality were compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vector dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class ClusteringError(MemoryCuratorError):
    """A clustering run failed. The message is shown to the user as-is."""


class EmptyCorpusError(ClusteringError):
    """There is nothing to cluster."""

    def __init__(self):
        super().__init__("No memories found")


class MissingEmbeddingsError(ClusteringError):
    """Some memories have no usable embedding, so the whole run is refused."""

    def __init__(self, count: int):
        noun = "memory" if count == 1 else "memories"
        super().__init__(
            f"Missing embeddings for {count} {noun}. "
            "Recalculate embeddings before clustering."
        )
        self.count = count


class ClusteringFailedError(ClusteringError):
    """Any other failure during a clustering run."""


class InvalidClusteringParametersError(ClusteringError, ValueError):
    """The target size range or similarity threshold is out of bounds."""
