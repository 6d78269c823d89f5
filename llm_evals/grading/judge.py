"""
Free-Text Judge

Asks a grading model to score a completion against the ideal answer(s) on
a 0.0-1.0 rubric and parses the ``SCORE:`` token out of its free-text reply.

Usage:
    strategy = ModelGradedStrategy(config, grading_client=judge_provider)
    result = await strategy.evaluate(sample, completion)

    score, reasoning, found = parse_grading_reply(reply_text, "cot_classify")
"""

import logging
import re
from typing import Any, Dict, List, Tuple

from utils.exceptions import GradingError

from ..models import ChatMessage, CompletionResult, Sample
from ..providers.base import CompletionClient, CompletionOptions
from .base import Grade, GradingStrategy
from .config import ModelGradedArgs, StrategyKind

logger = logging.getLogger(__name__)

# =============================================================================
# Prompt Templates
# =============================================================================

RUBRIC = """You are an expert evaluator tasked with grading the quality of responses from a language model.

Your job is to:
1. Compare the model's response to the ideal/expected answer
2. Consider correctness, completeness, and accuracy
3. Provide a score from 0.0 to 1.0 where:
   - 1.0 = Perfect match or equivalent correct answer
   - 0.8-0.9 = Mostly correct with minor issues
   - 0.6-0.7 = Partially correct but missing key elements
   - 0.4-0.5 = Some correct elements but significant problems
   - 0.0-0.3 = Incorrect or completely off-target
"""

COT_FORMAT = """
Think step by step and give your reasoning before the final score.

Format your response as:
REASONING: [Your detailed analysis]
SCORE: [Your numeric score from 0.0 to 1.0]
"""

CLASSIFY_FORMAT = """
Format your response as:
SCORE: [Your numeric score from 0.0 to 1.0]
REASONING: [Brief explanation]
"""

USER_PROMPT = """Please evaluate this language model response:

{context}QUESTION:
{question}

EXPECTED ANSWER:
{ideal}

MODEL'S RESPONSE:
{response}

Please evaluate how well the model's response matches the expected answer."""

# =============================================================================
# Reply Parsing
# =============================================================================

_SCORE_RE = re.compile(r"SCORE:\s*([0-9]*\.?[0-9]+)", re.IGNORECASE)
_REASONING_RE = re.compile(r"REASONING:\s*(.*?)(?:\s*SCORE:|$)", re.IGNORECASE | re.DOTALL)


def parse_grading_reply(reply: str, eval_type: str = "classify") -> Tuple[float, str, bool]:
    """Extract (score, reasoning, score_found) from a judge reply.

    Only the first ``SCORE:`` token counts. A score outside [0, 1] or a
    missing score yields 0.0 with score_found False. For ``cot_classify``
    the ``REASONING:`` block before the score becomes the reasoning;
    otherwise the whole reply does.
    """
    text = reply.strip()

    score = 0.0
    found = False
    match = _SCORE_RE.search(text)
    if match:
        value = float(match.group(1))
        if 0.0 <= value <= 1.0:
            score = value
            found = True

    reasoning = text
    if eval_type == "cot_classify":
        reasoning_match = _REASONING_RE.search(text)
        if reasoning_match and reasoning_match.group(1).strip():
            reasoning = reasoning_match.group(1).strip()

    return score, reasoning, found


def _join_ideals(sample: Sample) -> str:
    return " OR ".join(sample.ideal_answers)


class ModelGradedStrategy(GradingStrategy):
    """LLM-as-judge scoring of open-ended answers."""

    kind = StrategyKind.MODEL_GRADED
    args: ModelGradedArgs

    def __init__(self, config, grading_client: CompletionClient):
        super().__init__(config)
        self.grading_client = grading_client

    @property
    def grading_model(self) -> str:
        return getattr(self.grading_client, "model", "") or ""

    def system_prompt(self) -> str:
        if self.args.grading_prompt:
            return self.args.grading_prompt
        fmt = COT_FORMAT if self.args.eval_type == "cot_classify" else CLASSIFY_FORMAT
        return RUBRIC + fmt

    def build_messages(self, sample: Sample, completion: CompletionResult) -> List[ChatMessage]:
        system_context = "\n".join(m.content for m in sample.messages_with_role("system"))
        question = "\n".join(m.content for m in sample.messages_with_role("user"))
        user_prompt = USER_PROMPT.format(
            context=f"CONTEXT:\n{system_context}\n\n" if system_context else "",
            question=question,
            ideal=_join_ideals(sample),
            response=completion.content,
        )
        return [
            ChatMessage("system", self.system_prompt()),
            ChatMessage("user", user_prompt),
        ]

    async def _grade(self, sample: Sample, completion: CompletionResult) -> Grade:
        reply = await self.grading_client.complete(
            self.build_messages(sample, completion),
            CompletionOptions(temperature=0.0, max_tokens=self.args.max_tokens),
        )
        if not reply.content or not reply.content.strip():
            raise GradingError("Grading model returned an empty reply")

        score, reasoning, found = parse_grading_reply(reply.content, self.args.eval_type)
        if not found:
            logger.debug(f"No valid SCORE in judge reply for sample {sample.sample_id[:8]}")

        metadata: Dict[str, Any] = {
            "eval_type": self.args.eval_type,
            "grading_model": self.grading_model,
            "score_parsed": found,
        }
        if reply.usage:
            metadata["grading_usage"] = reply.usage.to_dict()
        return Grade(score, score >= self.args.pass_threshold, reasoning, metadata)

    def error_metadata(self) -> Dict[str, Any]:
        return {"eval_type": self.args.eval_type, "grading_model": self.grading_model}
