"""
Constrained-Choice Judge

Fills a prompt template with the question, ideal answer and completion,
asks the grading model to answer with one of a fixed set of labels, and
maps the chosen label to a score.

When the reply names none of the labels the first configured label is
used (``choice_fallback`` is recorded in metadata), unless the config sets
``on_no_match: error``.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from utils.exceptions import GradingError

from ..models import ChatMessage, CompletionResult, Sample
from ..providers.base import CompletionClient, CompletionOptions
from .base import Grade, GradingStrategy
from .config import ChoiceArgs, StrategyKind

logger = logging.getLogger(__name__)

CHOICE_INSTRUCTION = (
    "You are evaluating responses. You must respond with exactly one of these choices: "
    "{choices}. Provide your reasoning first, then state your choice clearly."
)


def find_choice(reply: str, labels: List[str]) -> Optional[str]:
    """First label (in configured order) present in reply as a whole word."""
    for label in labels:
        pattern = rf"(?<!\w){re.escape(label)}(?!\w)"
        if re.search(pattern, reply, re.IGNORECASE):
            return label
    return None


class ChoiceStrategy(GradingStrategy):
    """LLM-as-judge restricted to an enumerated set of labels."""

    kind = StrategyKind.CHOICE
    args: ChoiceArgs

    def __init__(self, config, grading_client: CompletionClient):
        super().__init__(config)
        self.grading_client = grading_client

    @property
    def grading_model(self) -> str:
        return getattr(self.grading_client, "model", "") or ""

    @staticmethod
    def _input_text(sample: Sample) -> str:
        users = sample.messages_with_role("user")
        if users:
            return users[0].content
        return json.dumps([m.to_dict() for m in sample.input])

    def render_prompt(self, sample: Sample, completion: CompletionResult) -> str:
        # Literal replacement; str.format would choke on other braces in the template
        return (
            self.args.prompt.replace("{input}", self._input_text(sample))
            .replace("{ideal}", " OR ".join(sample.ideal_answers))
            .replace("{completion}", completion.content)
        )

    def build_messages(self, sample: Sample, completion: CompletionResult) -> List[ChatMessage]:
        return [
            ChatMessage(
                "system",
                CHOICE_INSTRUCTION.format(choices=", ".join(self.args.choice_strings)),
            ),
            ChatMessage("user", self.render_prompt(sample, completion)),
        ]

    async def _grade(self, sample: Sample, completion: CompletionResult) -> Grade:
        reply = await self.grading_client.complete(
            self.build_messages(sample, completion),
            CompletionOptions(temperature=0.0, max_tokens=self.args.max_tokens),
        )
        text = (reply.content or "").strip()
        labels = list(self.args.choice_strings)

        chosen = find_choice(text, labels)
        fallback = chosen is None
        if fallback:
            if self.args.on_no_match == "error":
                raise GradingError(
                    f"No valid choice found in grading reply. Expected one of: {', '.join(labels)}"
                )
            logger.warning(
                f"No valid choice in reply for sample {sample.sample_id[:8]}, "
                f"falling back to '{labels[0]}': {text[:100]!r}"
            )
            chosen = labels[0]

        score = float(self.args.choice_scores.get(chosen, 0.0))
        metadata: Dict[str, Any] = {
            "chosen_option": chosen,
            "choice_fallback": fallback,
            "available_choices": labels,
            "grading_model": self.grading_model,
            "template_type": "choice_based",
        }
        reasoning = text or f"Grading model gave no reply; defaulted to '{chosen}'"
        return Grade(score, score >= self.args.pass_threshold, reasoning, metadata)

    def error_metadata(self) -> Dict[str, Any]:
        return {"grading_model": self.grading_model, "template_type": "choice_based"}
