"""
Sample and Result Model

Immutable records passed between the dataset loader, grading strategies and
the evaluation runner, plus the aggregate EvalReport.

Usage:
    from llm_evals.models import ChatMessage, Sample

    sample = Sample(
        input=[ChatMessage("user", "What is 2+2?")],
        ideal=["4", "four"],
    )
    print(sample.sample_id, sample.ideal_answers)
"""

import hashlib
import json
import logging
import math
import random
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

VALID_ROLES = ("system", "user", "assistant")

Ideal = Union[str, Tuple[str, ...]]


@dataclass(frozen=True)
class ChatMessage:
    """A single chat message in a sample's input."""

    role: str  # "system", "user", "assistant"
    content: str

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ValueError(
                f"Invalid message role '{self.role}'. Must be one of: {', '.join(VALID_ROLES)}"
            )
        if not isinstance(self.content, str):
            raise ValueError("Message content must be a string")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(role=data.get("role", ""), content=data.get("content"))


def _canonical_ideal(ideal: Ideal) -> Union[str, List[str]]:
    return ideal if isinstance(ideal, str) else list(ideal)


def compute_sample_id(input: Sequence[ChatMessage], ideal: Ideal) -> str:
    """Content hash of (input, ideal).

    SHA-256 over canonical JSON, truncated to 128 bits (32 hex chars).
    Metadata does not participate, so re-annotated datasets keep their ids.
    """
    payload = json.dumps(
        {
            "input": [m.to_dict() for m in input],
            "ideal": _canonical_ideal(ideal),
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]


@dataclass(frozen=True)
class Sample:
    """One question/reference-answer pair to be evaluated."""

    input: Tuple[ChatMessage, ...]
    ideal: Ideal
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        messages = tuple(self.input)
        if not messages:
            raise ValueError("Sample input must contain at least one message")
        object.__setattr__(self, "input", messages)

        if isinstance(self.ideal, str):
            return
        ideals = tuple(self.ideal)
        if not ideals:
            raise ValueError("Sample ideal list must not be empty")
        if not all(isinstance(i, str) for i in ideals):
            raise ValueError("Sample ideal answers must be strings")
        object.__setattr__(self, "ideal", ideals)

    @property
    def ideal_answers(self) -> List[str]:
        """Ideal answers as a list (single ideal becomes a one-element list)."""
        if isinstance(self.ideal, str):
            return [self.ideal]
        return list(self.ideal)

    @property
    def sample_id(self) -> str:
        return compute_sample_id(self.input, self.ideal)

    def messages_with_role(self, role: str) -> List[ChatMessage]:
        return [m for m in self.input if m.role == role]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "input": [m.to_dict() for m in self.input],
            "ideal": _canonical_ideal(self.ideal),
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sample":
        """Build a Sample from its JSONL representation.

        Raises:
            ValueError: If the record does not have the expected shape.
        """
        raw_input = data.get("input")
        if not isinstance(raw_input, list):
            raise ValueError("'input' must be a list of messages")
        messages = []
        for msg in raw_input:
            if not isinstance(msg, dict):
                raise ValueError("Each input message must be an object")
            messages.append(ChatMessage.from_dict(msg))

        ideal = data.get("ideal")
        if isinstance(ideal, list):
            ideal = tuple(ideal)
        elif not isinstance(ideal, str):
            raise ValueError("'ideal' must be a string or a list of strings")

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("'metadata' must be an object")
        return cls(input=tuple(messages), ideal=ideal, metadata=metadata)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a completion call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class CompletionResult:
    """Text produced by a model for one prompt."""

    content: str
    model: str = ""
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "usage": self.usage.to_dict() if self.usage else None,
            "finish_reason": self.finish_reason,
        }


@dataclass(frozen=True)
class EvalResult:
    """Graded outcome for one sample. Created once, never mutated."""

    sample_id: str
    input: Tuple[ChatMessage, ...]
    ideal: Ideal
    completion: CompletionResult
    score: float
    passed: bool
    reasoning: str
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if isinstance(self.score, bool) or not isinstance(self.score, (int, float)):
            raise ValueError(f"Score must be a number, got {type(self.score).__name__}")
        if math.isnan(self.score) or not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Score must be within [0.0, 1.0], got {self.score}")
        if not self.reasoning or not self.reasoning.strip():
            raise ValueError("Reasoning must not be empty")
        object.__setattr__(self, "score", float(self.score))
        object.__setattr__(self, "input", tuple(self.input))

    @classmethod
    def for_sample(
        cls,
        sample: Sample,
        completion: CompletionResult,
        score: float,
        passed: bool,
        reasoning: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "EvalResult":
        return cls(
            sample_id=sample.sample_id,
            input=sample.input,
            ideal=sample.ideal,
            completion=completion,
            score=score,
            passed=passed,
            reasoning=reasoning,
            metadata=metadata or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_id": self.sample_id,
            "input": [m.to_dict() for m in self.input],
            "ideal": _canonical_ideal(self.ideal),
            "completion": self.completion.to_dict(),
            "score": self.score,
            "passed": self.passed,
            "reasoning": self.reasoning,
            "metadata": self.metadata,
        }


def new_run_id(now: Optional[datetime] = None) -> str:
    """14-digit timestamp followed by 6 random uppercase alphanumerics."""
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"{stamp}{suffix}"


def summarize_token_usage(results: Sequence[EvalResult]) -> Dict[str, Any]:
    """Aggregate completion token usage across results that reported it."""
    usages = [r.completion.usage for r in results if r.completion.usage is not None]
    if not usages:
        return {"samples_with_usage": 0}

    totals = np.array([u.total_tokens for u in usages], dtype=float)
    return {
        "samples_with_usage": len(usages),
        "prompt_tokens": int(sum(u.prompt_tokens for u in usages)),
        "completion_tokens": int(sum(u.completion_tokens for u in usages)),
        "total_tokens": int(totals.sum()),
        "avg_tokens_per_sample": float(np.mean(totals)),
        "max_tokens_per_sample": int(np.max(totals)),
        "min_tokens_per_sample": int(np.min(totals)),
    }


@dataclass
class EvalReport:
    """Aggregate outcome of one evaluation run."""

    eval_name: str
    model: str
    run_id: str
    total_samples: int = 0
    correct: int = 0
    incorrect: int = 0
    score: float = 0.0
    results: List[EvalResult] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    duration_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
    token_usage: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_results(
        cls,
        eval_name: str,
        model: str,
        results: Sequence[EvalResult],
        run_id: Optional[str] = None,
        duration_ms: float = 0.0,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> "EvalReport":
        """Reduce an ordered list of results into a report."""
        results = list(results)
        total = len(results)
        correct = sum(1 for r in results if r.passed)
        return cls(
            eval_name=eval_name,
            model=model,
            run_id=run_id or new_run_id(),
            total_samples=total,
            correct=correct,
            incorrect=total - correct,
            score=correct / total if total else 0.0,
            results=results,
            created_at=created_at or datetime.now(),
            duration_ms=duration_ms,
            metadata=metadata or {},
            token_usage=summarize_token_usage(results),
        )

    @property
    def average_score(self) -> float:
        """Mean per-sample score (distinct from the pass-rate `score`)."""
        if not self.results:
            return 0.0
        return float(np.mean([r.score for r in self.results]))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "eval_name": self.eval_name,
            "model": self.model,
            "run_id": self.run_id,
            "created_at": self.created_at.isoformat(),
            "duration_ms": self.duration_ms,
            "total_samples": self.total_samples,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "score": self.score,
            "average_score": self.average_score,
            "token_usage": self.token_usage,
            "metadata": self.metadata,
            "results": [r.to_dict() for r in self.results],
        }
