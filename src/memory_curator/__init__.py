"""Memory Curator: thematic clustering and semantic retrieval over user memories."""

__version__ = "0.1.0"
