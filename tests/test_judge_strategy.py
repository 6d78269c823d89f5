"""Tests for the free-text LLM judge."""

import pytest

from llm_evals.grading import ModelGradedStrategy, parse_grading_reply, parse_strategy_config
from llm_evals.grading.judge import CLASSIFY_FORMAT, COT_FORMAT
from utils.exceptions import ProviderError

from .fakes import FakeCompletionClient, make_completion, make_sample


def _strategy(client: FakeCompletionClient, **args) -> ModelGradedStrategy:
    return ModelGradedStrategy(parse_strategy_config("model_graded", args), grading_client=client)


class TestParseGradingReply:
    def test_classify_uses_whole_reply(self) -> None:
        reply = "SCORE: 0.8\nREASONING: Mostly right"
        score, reasoning, found = parse_grading_reply(reply, "classify")
        assert score == 0.8
        assert found is True
        assert reasoning == reply

    def test_cot_extracts_reasoning_block(self) -> None:
        reply = "REASONING: The answer matches exactly.\nSCORE: 0.9"
        score, reasoning, found = parse_grading_reply(reply, "cot_classify")
        assert score == 0.9
        assert reasoning == "The answer matches exactly."

    def test_cot_without_reasoning_label_falls_back_to_reply(self) -> None:
        score, reasoning, _ = parse_grading_reply("Looks fine. SCORE: 1", "cot_classify")
        assert score == 1.0
        assert reasoning == "Looks fine. SCORE: 1"

    def test_missing_score(self) -> None:
        score, _, found = parse_grading_reply("I think it is fine", "classify")
        assert score == 0.0
        assert found is False

    @pytest.mark.parametrize("reply", ["SCORE: 1.5", "SCORE: 7", "SCORE: -0.3"])
    def test_out_of_range_score_is_zero(self, reply: str) -> None:
        score, _, found = parse_grading_reply(reply, "classify")
        assert score == 0.0
        assert found is False

    def test_first_score_wins(self) -> None:
        score, _, _ = parse_grading_reply("SCORE: 0.2 ... later SCORE: 0.9", "classify")
        assert score == 0.2

    def test_case_insensitive_and_leading_dot(self) -> None:
        score, _, found = parse_grading_reply("score: .5", "classify")
        assert score == 0.5
        assert found is True


class TestModelGradedStrategy:
    @pytest.mark.asyncio
    async def test_passes_at_threshold(self) -> None:
        client = FakeCompletionClient(["SCORE: 0.5\nREASONING: half right"], model="judge")
        result = await _strategy(client).evaluate(make_sample("Paris"), make_completion("Paris?"))
        assert result.score == 0.5
        assert result.passed is True
        assert result.metadata["score_parsed"] is True
        assert result.metadata["grading_model"] == "judge"
        assert result.metadata["grading_usage"]["total_tokens"] == 15

    @pytest.mark.asyncio
    async def test_custom_pass_threshold(self) -> None:
        client = FakeCompletionClient(["SCORE: 0.7"])
        strategy = _strategy(client, pass_threshold=0.8)
        result = await strategy.evaluate(make_sample("a"), make_completion("b"))
        assert result.score == 0.7
        assert result.passed is False

    @pytest.mark.asyncio
    async def test_unparseable_reply_scores_zero_without_error(self) -> None:
        client = FakeCompletionClient(["Can't tell."])
        result = await _strategy(client).evaluate(make_sample("a"), make_completion("b"))
        assert result.score == 0.0
        assert result.passed is False
        assert result.metadata["grading_error"] is False
        assert result.metadata["score_parsed"] is False

    @pytest.mark.asyncio
    async def test_empty_reply_is_grading_error(self) -> None:
        client = FakeCompletionClient(["   "])
        result = await _strategy(client).evaluate(make_sample("a"), make_completion("b"))
        assert result.score == 0.0
        assert result.metadata["grading_error"] is True
        assert result.reasoning.startswith("Grading failed")

    @pytest.mark.asyncio
    async def test_client_failure_is_grading_error(self) -> None:
        client = FakeCompletionClient([ProviderError("boom", provider="openai")])
        result = await _strategy(client).evaluate(make_sample("a"), make_completion("b"))
        assert result.passed is False
        assert result.metadata["grading_error"] is True
        assert result.metadata["error_type"] == "ProviderError"
        assert result.metadata["eval_type"] == "classify"
        assert "boom" in result.reasoning

    @pytest.mark.asyncio
    async def test_prompt_contains_question_ideal_and_response(self) -> None:
        client = FakeCompletionClient(["SCORE: 1"])
        sample = make_sample(["4", "four"], user="What is 2+2?", system="Be brief.")
        await _strategy(client).evaluate(sample, make_completion("four"))

        system, user = client.calls[0]
        assert system.role == "system"
        assert CLASSIFY_FORMAT.strip() in system.content
        assert "CONTEXT:\nBe brief." in user.content
        assert "What is 2+2?" in user.content
        assert "4 OR four" in user.content
        assert "MODEL'S RESPONSE:\nfour" in user.content

    def test_cot_system_prompt(self) -> None:
        strategy = _strategy(FakeCompletionClient(), eval_type="cot_classify")
        assert COT_FORMAT.strip() in strategy.system_prompt()

    def test_grading_prompt_override(self) -> None:
        strategy = _strategy(FakeCompletionClient(), grading_prompt="Grade harshly.")
        assert strategy.system_prompt() == "Grade harshly."
