"""
Embeddings Service

Turns text into vectors through a pluggable EmbeddingsProvider and caches
them per (model, text) in an injected MemoryCache. All provider failures
surface as EmbeddingError so callers can degrade per sample.

Usage:
    from llm_evals.embeddings import EmbeddingsService, create_embeddings_provider

    service = EmbeddingsService(create_embeddings_provider("openai"))
    sim = await service.similarity("Good morning", "Hello")
    index, text, best = await service.best_match("Good morning", ["Hi", "Hey"])
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from utils.exceptions import EmbeddingError

from ..caching import MemoryCache, NullCache

logger = logging.getLogger(__name__)

EmbeddingVector = np.ndarray


class EmbeddingsProvider(ABC):
    """Produces fixed-length embedding vectors for text."""

    name: str = ""
    default_model: str = ""

    def __init__(self, model: Optional[str] = None):
        self.model = model or self.default_model

    @abstractmethod
    async def embed_many(self, texts: Sequence[str]) -> List[Sequence[float]]:
        """Embed a batch of texts, preserving order."""
        ...

    async def embed(self, text: str) -> Sequence[float]:
        vectors = await self.embed_many([text])
        return vectors[0]


def to_vector(raw: Any) -> EmbeddingVector:
    """Validate and convert a provider vector to a 1-D float array.

    Raises:
        EmbeddingError: If the vector is empty, not 1-D, or not finite.
    """
    try:
        vector = np.asarray(raw, dtype=float)
    except (TypeError, ValueError) as e:
        raise EmbeddingError(f"Malformed embedding vector: {e}") from e
    if vector.ndim != 1 or vector.size == 0:
        raise EmbeddingError(f"Malformed embedding vector with shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise EmbeddingError("Embedding vector contains non-finite values")
    return vector


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """(a·b) / (|a||b|). Zero-magnitude vectors have similarity 0.0.

    Raises:
        EmbeddingError: If the vectors differ in dimension.
    """
    u = np.asarray(a, dtype=float)
    v = np.asarray(b, dtype=float)
    if u.shape != v.shape:
        raise EmbeddingError(f"Vector dimensions don't match: {u.shape[0]} vs {v.shape[0]}")
    norm = float(np.linalg.norm(u) * np.linalg.norm(v))
    if norm == 0.0:
        return 0.0
    return float(np.dot(u, v) / norm)


class EmbeddingsService:
    """Cached embedding lookups and similarity helpers."""

    def __init__(
        self,
        provider: EmbeddingsProvider,
        cache: Optional[MemoryCache] = None,
        cache_enabled: bool = True,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            provider: Backend that produces vectors.
            cache: Shared vector cache; a private one is created if omitted.
            cache_enabled: When False, every lookup goes to the provider.
            timeout: Per-call timeout for provider requests, in seconds.
        """
        self.provider = provider
        if not cache_enabled:
            self._cache: MemoryCache = NullCache()
        else:
            self._cache = cache if cache is not None else MemoryCache(ttl_seconds=None)
        self.timeout = timeout

    @property
    def model(self) -> str:
        return self.provider.model

    def _key(self, text: str) -> str:
        return f"{self.provider.model}:{text}"

    async def _fetch(self, texts: Sequence[str]) -> List[EmbeddingVector]:
        try:
            raw = await asyncio.wait_for(self.provider.embed_many(list(texts)), timeout=self.timeout)
        except EmbeddingError:
            raise
        except asyncio.TimeoutError as e:
            raise EmbeddingError(
                f"{self.provider.name} embedding request timed out after {self.timeout}s"
            ) from e
        except Exception as e:
            raise EmbeddingError(f"{self.provider.name} embedding request failed: {e}") from e

        if len(raw) != len(texts):
            raise EmbeddingError(
                f"Provider returned {len(raw)} embeddings for {len(texts)} texts"
            )
        return [to_vector(v) for v in raw]

    async def get_embedding(self, text: str) -> EmbeddingVector:
        vectors = await self.get_embeddings([text])
        return vectors[0]

    async def get_embeddings(self, texts: Sequence[str]) -> List[EmbeddingVector]:
        """Embed texts, serving cached vectors and fetching only the missing ones."""
        found: Dict[int, EmbeddingVector] = {}
        missing: List[str] = []
        for i, text in enumerate(texts):
            cached = self._cache.get(self._key(text))
            if cached is not None:
                found[i] = cached
            elif text not in missing:
                missing.append(text)

        if missing:
            fetched = dict(zip(missing, await self._fetch(missing)))
            for text, vector in fetched.items():
                self._cache.set(self._key(text), vector)
            for i, text in enumerate(texts):
                if i not in found:
                    found[i] = fetched[text]

        return [found[i] for i in range(len(texts))]

    async def similarity(self, a: str, b: str) -> float:
        vec_a, vec_b = await self.get_embeddings([a, b])
        return cosine_similarity(vec_a, vec_b)

    async def similarities(self, text: str, candidates: Sequence[str]) -> List[float]:
        """Cosine similarity between text and each candidate, in candidate order."""
        if not candidates:
            return []
        vectors = await self.get_embeddings([text, *candidates])
        base = vectors[0]
        return [cosine_similarity(base, v) for v in vectors[1:]]

    async def best_match(self, text: str, candidates: Sequence[str]) -> Tuple[int, str, float]:
        """Return (index, candidate, similarity) of the closest candidate."""
        if not candidates:
            raise ValueError("best_match requires at least one candidate")
        sims = await self.similarities(text, candidates)
        index = int(np.argmax(sims))
        return index, candidates[index], sims[index]

    async def precompute(self, texts: Iterable[str], batch_size: int = 10) -> int:
        """Warm the cache for texts in batches. Returns how many were embedded."""
        pending = [t for t in dict.fromkeys(texts) if self._cache.get(self._key(t)) is None]
        for start in range(0, len(pending), batch_size):
            batch = pending[start:start + batch_size]
            vectors = await self._fetch(batch)
            for text, vector in zip(batch, vectors):
                self._cache.set(self._key(text), vector)
            logger.debug(f"Precomputed {start + len(batch)}/{len(pending)} embeddings")
        return len(pending)

    def cache_stats(self) -> Dict[str, Any]:
        return self._cache.stats().to_dict()

    def clear_cache(self) -> None:
        self._cache.clear()
