"""Tests for the exact/fuzzy match strategy."""

import pytest

from llm_evals.grading import MatchStrategy, parse_strategy_config

from .fakes import make_completion, make_sample


def _strategy(**args) -> MatchStrategy:
    return MatchStrategy(parse_strategy_config("match", args))


class TestExactMatch:
    @pytest.mark.asyncio
    async def test_exact_hit(self) -> None:
        result = await _strategy().evaluate(make_sample("42"), make_completion("42"))
        assert result.passed is True
        assert result.score == 1.0
        assert result.metadata["matched_ideal"] == "42"
        assert result.metadata["grading_error"] is False
        assert result.reasoning == 'Matched ideal answer: "42"'

    @pytest.mark.asyncio
    async def test_exact_miss_on_extra_text(self) -> None:
        result = await _strategy().evaluate(make_sample("42"), make_completion("The answer is 42"))
        assert result.passed is False
        assert result.score == 0.0
        assert result.metadata["matched_ideal"] is None
        assert 'Expected one of: ["42"]' in result.reasoning
        assert 'Got: "The answer is 42"' in result.reasoning

    @pytest.mark.asyncio
    async def test_includes_mode(self) -> None:
        strategy = _strategy(match_type="includes")
        result = await strategy.evaluate(make_sample("42"), make_completion("The answer is 42"))
        assert result.passed is True

    @pytest.mark.asyncio
    async def test_case_insensitive_multi_ideal(self) -> None:
        strategy = _strategy(match_type="exact", case_sensitive=False)
        result = await strategy.evaluate(
            make_sample(["4", "four", "Four"]), make_completion("four")
        )
        assert result.passed is True
        assert result.metadata["matched_ideal"] == "four"

    @pytest.mark.asyncio
    async def test_case_sensitive_by_default(self) -> None:
        result = await _strategy().evaluate(make_sample("Paris"), make_completion("paris"))
        assert result.passed is False

    @pytest.mark.asyncio
    async def test_whitespace_normalized(self) -> None:
        result = await _strategy().evaluate(
            make_sample("New  York"), make_completion("  New York\n")
        )
        assert result.passed is True

    @pytest.mark.asyncio
    async def test_first_matching_ideal_reported(self) -> None:
        strategy = _strategy(match_type="includes")
        result = await strategy.evaluate(
            make_sample(["seven", "7"]), make_completion("It is 7, i.e. seven")
        )
        assert result.metadata["matched_ideal"] == "seven"


class TestRegexMatch:
    @pytest.mark.asyncio
    async def test_regex_search(self) -> None:
        strategy = _strategy(match_type="regex")
        result = await strategy.evaluate(
            make_sample(r"\b4[0-9]\b"), make_completion("I think 42 is right")
        )
        assert result.passed is True

    @pytest.mark.asyncio
    async def test_invalid_pattern_is_no_match(self) -> None:
        strategy = _strategy(match_type="regex")
        result = await strategy.evaluate(make_sample(["(unclosed", "ok"]), make_completion("ok"))
        assert result.passed is True
        assert result.metadata["invalid_patterns"] == ["(unclosed"]
        assert result.metadata["grading_error"] is False

    @pytest.mark.asyncio
    async def test_regex_case_insensitive(self) -> None:
        strategy = _strategy(match_type="regex", case_sensitive=False)
        result = await strategy.evaluate(make_sample("^yes"), make_completion("YES indeed"))
        assert result.passed is True


class TestFuzzyMatch:
    @pytest.mark.asyncio
    async def test_fuzzy_pass(self) -> None:
        strategy = _strategy(match_type="fuzzy", fuzzy_threshold=0.6)
        result = await strategy.evaluate(
            make_sample("the capital is Paris"), make_completion("The capital is Paris!")
        )
        assert result.passed is True

    @pytest.mark.asyncio
    async def test_fuzzy_fail_below_threshold(self) -> None:
        strategy = _strategy(match_type="fuzzy", fuzzy_threshold=0.9)
        result = await strategy.evaluate(
            make_sample("the capital is Paris"), make_completion("Paris")
        )
        assert result.passed is False
