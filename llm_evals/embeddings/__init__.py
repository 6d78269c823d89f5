"""
Embeddings

Vector embeddings for semantic-similarity grading, with swappable hosted
and local backends behind one service.
"""

from .providers import (
    EMBEDDINGS_PROVIDERS,
    LocalEmbeddingsProvider,
    OllamaEmbeddingsProvider,
    OpenAIEmbeddingsProvider,
    create_embeddings_provider,
)
from .service import (
    EmbeddingsProvider,
    EmbeddingsService,
    EmbeddingVector,
    cosine_similarity,
    to_vector,
)

__all__ = [
    "EmbeddingsProvider",
    "EmbeddingsService",
    "EmbeddingVector",
    "cosine_similarity",
    "to_vector",
    "EMBEDDINGS_PROVIDERS",
    "OpenAIEmbeddingsProvider",
    "OllamaEmbeddingsProvider",
    "LocalEmbeddingsProvider",
    "create_embeddings_provider",
]
