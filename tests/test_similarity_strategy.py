"""Tests for the semantic-similarity scorer."""

import pytest

from llm_evals.embeddings import EmbeddingsService
from llm_evals.grading import SimilarityStrategy, parse_strategy_config

from .fakes import FakeEmbeddingsProvider, build_similarity_vectors, make_completion, make_sample

IDEALS = ["Hello", "Hi", "Hey", "Greetings"]
SIMILARITIES = [0.73, 0.71, 0.68, 0.81]


def _strategy(provider: FakeEmbeddingsProvider, **args) -> SimilarityStrategy:
    config = parse_strategy_config("semantic_similarity", args)
    return SimilarityStrategy(config, embeddings=EmbeddingsService(provider))


@pytest.fixture
def greetings_provider() -> FakeEmbeddingsProvider:
    return FakeEmbeddingsProvider(build_similarity_vectors("Good morning", IDEALS, SIMILARITIES))


class TestMatchModes:
    @pytest.mark.asyncio
    async def test_best_mode(self, greetings_provider: FakeEmbeddingsProvider) -> None:
        strategy = _strategy(greetings_provider, threshold=0.8, match_mode="best")
        result = await strategy.evaluate(make_sample(IDEALS), make_completion("Good morning"))
        assert result.score == pytest.approx(0.81)
        assert result.passed is True
        assert result.metadata["best_match"] == "Greetings"
        assert result.metadata["all_similarities"] == pytest.approx(SIMILARITIES)
        assert result.metadata["passing_answers"] == ["Greetings"]

    @pytest.mark.asyncio
    async def test_all_mode(self, greetings_provider: FakeEmbeddingsProvider) -> None:
        strategy = _strategy(greetings_provider, threshold=0.8, match_mode="all")
        result = await strategy.evaluate(make_sample(IDEALS), make_completion("Good morning"))
        assert result.score == pytest.approx(0.7325)
        assert result.passed is False

    @pytest.mark.asyncio
    async def test_threshold_mode(self, greetings_provider: FakeEmbeddingsProvider) -> None:
        strategy = _strategy(greetings_provider, threshold=0.7, match_mode="threshold")
        result = await strategy.evaluate(make_sample(IDEALS), make_completion("Good morning"))
        assert result.score == pytest.approx(0.81)
        assert result.passed is True
        assert result.metadata["passing_answers"] == ["Hello", "Hi", "Greetings"]

    @pytest.mark.asyncio
    async def test_best_mode_below_threshold(self, greetings_provider: FakeEmbeddingsProvider) -> None:
        strategy = _strategy(greetings_provider, threshold=0.9)
        result = await strategy.evaluate(make_sample(IDEALS), make_completion("Good morning"))
        assert result.passed is False
        assert result.metadata["passing_answers"] == []


class TestEdgeCases:
    @pytest.mark.asyncio
    async def test_negative_similarity_clamped(self) -> None:
        provider = FakeEmbeddingsProvider(build_similarity_vectors("up", ["down"], [-0.6]))
        result = await _strategy(provider).evaluate(make_sample("down"), make_completion("up"))
        assert result.score == 0.0
        assert result.metadata["best_similarity"] == pytest.approx(-0.6)

    @pytest.mark.asyncio
    async def test_empty_completion(self) -> None:
        provider = FakeEmbeddingsProvider({})
        result = await _strategy(provider).evaluate(make_sample("Hello"), make_completion("  "))
        assert result.score == 0.0
        assert result.passed is False
        assert result.metadata["empty_completion"] is True
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure_is_grading_error(self) -> None:
        provider = FakeEmbeddingsProvider(error=ConnectionError("refused"))
        result = await _strategy(provider).evaluate(make_sample("Hello"), make_completion("Hi"))
        assert result.metadata["grading_error"] is True
        assert result.metadata["error_type"] == "EmbeddingError"
        assert result.metadata["match_mode"] == "best"
        assert result.score == 0.0

    @pytest.mark.asyncio
    async def test_ideal_embeddings_cached_across_samples(
        self, greetings_provider: FakeEmbeddingsProvider
    ) -> None:
        strategy = _strategy(greetings_provider)
        sample = make_sample(IDEALS)
        await strategy.evaluate(sample, make_completion("Good morning"))
        await strategy.evaluate(sample, make_completion("Good morning"))
        assert len(greetings_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_precompute(self, greetings_provider: FakeEmbeddingsProvider) -> None:
        strategy = _strategy(greetings_provider)
        warmed = await strategy.precompute([make_sample(IDEALS), make_sample(["Hi", "Hello"])])
        assert warmed == 4
        await strategy.evaluate(make_sample(IDEALS), make_completion("Good morning"))
        assert greetings_provider.calls[-1] == ["Good morning"]
