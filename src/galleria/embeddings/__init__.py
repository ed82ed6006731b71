"""Embedding provider interface and implementations."""

from galleria.embeddings.providers import (
    ClipEmbeddingProvider,
    EmbeddingProvider,
    MiniLMTextEmbeddingProvider,
    get_embedding_provider,
    normalize_vector,
    open_query_image,
)

__all__ = [
    "ClipEmbeddingProvider",
    "EmbeddingProvider",
    "MiniLMTextEmbeddingProvider",
    "get_embedding_provider",
    "normalize_vector",
    "open_query_image",
]
