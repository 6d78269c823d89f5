"""
Grading Strategy Contract

Every strategy turns (sample, completion) into an EvalResult through
``evaluate``. Subclasses implement ``_grade``; any exception it raises is
converted into a failed result (score 0, ``grading_error`` set) so a single
sample can never abort a run.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

from ..models import CompletionResult, EvalResult, Sample
from .config import StrategyConfig, StrategyKind

logger = logging.getLogger(__name__)


@dataclass
class Grade:
    """Outcome of a strategy's scoring step, before it becomes an EvalResult."""

    score: float
    passed: bool
    reasoning: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class GradingStrategy(ABC):
    """Base class for the grading strategies."""

    kind: StrategyKind

    def __init__(self, config: StrategyConfig):
        if config.kind is not self.kind:
            raise ValueError(
                f"{type(self).__name__} expects a {self.kind.value} config, got {config.kind.value}"
            )
        self.config = config
        self.args = config.args

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    async def _grade(self, sample: Sample, completion: CompletionResult) -> Grade:
        """Score a completion. May raise; evaluate() converts failures."""
        ...

    async def evaluate(self, sample: Sample, completion: CompletionResult) -> EvalResult:
        """Grade one completion. Never raises."""
        try:
            grade = await self._grade(sample, completion)
            score = min(max(float(grade.score), 0.0), 1.0)
            metadata = {"grading_error": False, **grade.metadata}
            return EvalResult.for_sample(
                sample,
                completion,
                score=score,
                passed=bool(grade.passed),
                reasoning=grade.reasoning.strip() or f"{self.name} grading produced no reasoning",
                metadata=metadata,
            )
        except Exception as e:
            logger.warning(
                f"{self.name} grading failed for sample {sample.sample_id[:8]}: {e}"
            )
            return self.error_result(sample, completion, e)

    def error_result(
        self, sample: Sample, completion: CompletionResult, error: BaseException
    ) -> EvalResult:
        metadata: Dict[str, Any] = {
            "grading_error": True,
            "error": str(error) or type(error).__name__,
            "error_type": type(error).__name__,
            "strategy": self.name,
        }
        metadata.update(self.error_metadata())
        return EvalResult.for_sample(
            sample,
            completion,
            score=0.0,
            passed=False,
            reasoning=f"Grading failed: {str(error) or type(error).__name__}",
            metadata=metadata,
        )

    def error_metadata(self) -> Dict[str, Any]:
        """Strategy-specific context attached to error results."""
        return {}
