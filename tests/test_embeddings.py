"""Tests for the embeddings service and providers."""

import asyncio

import numpy as np
import pytest

from llm_evals.caching import MemoryCache
from llm_evals.embeddings import (
    EmbeddingsService,
    LocalEmbeddingsProvider,
    OpenAIEmbeddingsProvider,
    cosine_similarity,
    create_embeddings_provider,
)
from llm_evals.embeddings.service import to_vector
from utils.exceptions import ConfigError, EmbeddingError

from .fakes import FakeEmbeddingsProvider

VECTORS = {
    "cat": [1.0, 0.0, 0.0],
    "kitten": [0.9, 0.1, 0.0],
    "car": [0.0, 1.0, 0.0],
}


class TestCosineSimilarity:
    def test_identical(self) -> None:
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)

    def test_orthogonal(self) -> None:
        assert cosine_similarity([1, 0], [0, 1]) == 0.0

    def test_opposite(self) -> None:
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_zero_vector(self) -> None:
        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_dimension_mismatch(self) -> None:
        with pytest.raises(EmbeddingError, match="dimensions"):
            cosine_similarity([1, 0], [1, 0, 0])


class TestToVector:
    def test_converts(self) -> None:
        vector = to_vector([1, 2])
        assert isinstance(vector, np.ndarray)
        assert vector.dtype == float

    @pytest.mark.parametrize("raw", [[], [[1, 2]], [1.0, float("nan")], ["a", "b"]])
    def test_rejects_malformed(self, raw) -> None:
        with pytest.raises(EmbeddingError):
            to_vector(raw)


class TestEmbeddingsService:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_provider(self) -> None:
        provider = FakeEmbeddingsProvider(VECTORS)
        service = EmbeddingsService(provider)
        first = await service.get_embedding("cat")
        second = await service.get_embedding("cat")
        assert np.array_equal(first, second)
        assert provider.embedded_texts == ["cat"]
        assert service.cache_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_only_missing_texts_fetched(self) -> None:
        provider = FakeEmbeddingsProvider(VECTORS)
        service = EmbeddingsService(provider)
        await service.get_embedding("cat")
        vectors = await service.get_embeddings(["cat", "car", "car"])
        assert len(vectors) == 3
        assert provider.calls[-1] == ["car"]

    @pytest.mark.asyncio
    async def test_cache_disabled(self) -> None:
        provider = FakeEmbeddingsProvider(VECTORS)
        service = EmbeddingsService(provider, cache_enabled=False)
        await service.get_embedding("cat")
        await service.get_embedding("cat")
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_shared_cache_keyed_by_model(self) -> None:
        cache = MemoryCache(ttl_seconds=None)
        a = FakeEmbeddingsProvider(VECTORS, model="model-a")
        b = FakeEmbeddingsProvider(VECTORS, model="model-b")
        await EmbeddingsService(a, cache=cache).get_embedding("cat")
        await EmbeddingsService(b, cache=cache).get_embedding("cat")
        assert len(b.calls) == 1
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self) -> None:
        service = EmbeddingsService(FakeEmbeddingsProvider(error=RuntimeError("quota")))
        with pytest.raises(EmbeddingError, match="quota"):
            await service.get_embedding("cat")

    @pytest.mark.asyncio
    async def test_wrong_vector_count(self) -> None:
        class ShortProvider(FakeEmbeddingsProvider):
            async def embed_many(self, texts):
                return [[1.0, 0.0]]

        service = EmbeddingsService(ShortProvider())
        with pytest.raises(EmbeddingError, match="2 texts"):
            await service.get_embeddings(["a", "b"])

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        class SlowProvider(FakeEmbeddingsProvider):
            async def embed_many(self, texts):
                await asyncio.sleep(1)
                return [[1.0] for _ in texts]

        service = EmbeddingsService(SlowProvider(), timeout=0.01)
        with pytest.raises(EmbeddingError, match="timed out"):
            await service.get_embedding("cat")

    @pytest.mark.asyncio
    async def test_similarity_and_best_match(self) -> None:
        service = EmbeddingsService(FakeEmbeddingsProvider(VECTORS))
        assert await service.similarity("cat", "car") == 0.0
        index, text, score = await service.best_match("cat", ["car", "kitten"])
        assert (index, text) == (1, "kitten")
        assert score > 0.9

    @pytest.mark.asyncio
    async def test_best_match_requires_candidates(self) -> None:
        service = EmbeddingsService(FakeEmbeddingsProvider(VECTORS))
        with pytest.raises(ValueError):
            await service.best_match("cat", [])

    @pytest.mark.asyncio
    async def test_precompute_batches(self) -> None:
        provider = FakeEmbeddingsProvider(VECTORS)
        service = EmbeddingsService(provider)
        await service.get_embedding("cat")
        warmed = await service.precompute(["cat", "kitten", "car", "kitten"], batch_size=1)
        assert warmed == 2
        assert provider.calls[1:] == [["kitten"], ["car"]]

    @pytest.mark.asyncio
    async def test_clear_cache(self) -> None:
        provider = FakeEmbeddingsProvider(VECTORS)
        service = EmbeddingsService(provider)
        await service.get_embedding("cat")
        service.clear_cache()
        await service.get_embedding("cat")
        assert len(provider.calls) == 2


class TestCreateEmbeddingsProvider:
    def test_openai_default_model(self) -> None:
        provider = create_embeddings_provider("openai", api_key="sk-test")
        assert isinstance(provider, OpenAIEmbeddingsProvider)
        assert provider.model == "text-embedding-3-small"

    def test_openai_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("config.OPENAI_API_KEY", None)
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            create_embeddings_provider("openai")

    def test_local_is_lazy(self) -> None:
        provider = create_embeddings_provider("LOCAL", model="custom-model")
        assert isinstance(provider, LocalEmbeddingsProvider)
        assert provider.model == "custom-model"
        assert provider._model is None

    def test_unknown(self) -> None:
        with pytest.raises(ConfigError, match="Unknown embeddings provider"):
            create_embeddings_provider("cohere")
