"""
Grading Strategy Configuration

A closed tagged variant: StrategyKind names one of the four grading
strategies and each kind carries its own argument dataclass. Configs are
parsed once from the registry's ``class`` + ``args`` pair and stay
immutable for the life of a run.

Usage:
    config = parse_strategy_config("match", {"match_type": "includes"})
    config.kind        # StrategyKind.MATCH
    config.args        # MatchArgs(match_type='includes', ...)
    config.fingerprint()
"""

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from utils.exceptions import ConfigError

logger = logging.getLogger(__name__)


class StrategyKind(Enum):
    """Supported grading strategies."""

    MATCH = "match"
    MODEL_GRADED = "model_graded"
    CHOICE = "choice"
    SEMANTIC_SIMILARITY = "semantic_similarity"


# Class names accepted in registry files, in addition to the kind values
STRATEGY_ALIASES: Dict[str, StrategyKind] = {
    "basiceval": StrategyKind.MATCH,
    "exact": StrategyKind.MATCH,
    "modelgradedeval": StrategyKind.MODEL_GRADED,
    "judge": StrategyKind.MODEL_GRADED,
    "choicebasedeval": StrategyKind.CHOICE,
    "semanticsimilarityeval": StrategyKind.SEMANTIC_SIMILARITY,
    "semantic": StrategyKind.SEMANTIC_SIMILARITY,
}

MATCH_TYPES = ("exact", "includes", "fuzzy", "regex")
EVAL_TYPES = ("classify", "cot_classify")
MATCH_MODES = ("best", "threshold", "all")
EMBEDDINGS_PROVIDERS = ("openai", "ollama", "local")
NO_MATCH_POLICIES = ("first_choice", "error")

DEFAULT_PASS_THRESHOLD = 0.5


@dataclass(frozen=True)
class MatchArgs:
    match_type: str = "exact"
    case_sensitive: bool = True
    fuzzy_threshold: float = 0.8


@dataclass(frozen=True)
class ModelGradedArgs:
    eval_type: str = "classify"
    grading_model: Optional[str] = None
    grading_prompt: Optional[str] = None
    pass_threshold: float = DEFAULT_PASS_THRESHOLD
    max_tokens: int = 1000


@dataclass(frozen=True)
class ChoiceArgs:
    prompt: str = ""
    choice_strings: Tuple[str, ...] = ()
    choice_scores: Dict[str, float] = field(default_factory=dict, hash=False)
    grading_model: Optional[str] = None
    pass_threshold: float = DEFAULT_PASS_THRESHOLD
    on_no_match: str = "first_choice"
    max_tokens: int = 1000


@dataclass(frozen=True)
class SimilarityArgs:
    threshold: float = 0.8
    embeddings_provider: str = "openai"
    embeddings_model: Optional[str] = None
    match_mode: str = "best"
    cache_embeddings: bool = True


StrategyArgs = Union[MatchArgs, ModelGradedArgs, ChoiceArgs, SimilarityArgs]

ARGS_TYPES: Dict[StrategyKind, type] = {
    StrategyKind.MATCH: MatchArgs,
    StrategyKind.MODEL_GRADED: ModelGradedArgs,
    StrategyKind.CHOICE: ChoiceArgs,
    StrategyKind.SEMANTIC_SIMILARITY: SimilarityArgs,
}


@dataclass(frozen=True)
class StrategyConfig:
    """Which strategy to build plus its arguments."""

    kind: StrategyKind
    args: StrategyArgs

    def to_dict(self) -> Dict[str, Any]:
        args = asdict(self.args)
        if "choice_strings" in args:
            args["choice_strings"] = list(args["choice_strings"])
        return {"kind": self.kind.value, "args": args}

    def fingerprint(self) -> str:
        """Stable hash of the config, used in result cache keys."""
        payload = json.dumps(self.to_dict(), sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def resolve_strategy_kind(name: str) -> StrategyKind:
    """Map a declared strategy name to its kind.

    Accepts kind values ("match"), class names ("BasicEval") and
    module-qualified class names ("templates.basic:BasicEval").

    Raises:
        ConfigError: If the name is not a known strategy.
    """
    if not name or not isinstance(name, str):
        raise ConfigError("Strategy name must be a non-empty string")

    key = name.split(":")[-1].strip().lower().replace("-", "_")
    for kind in StrategyKind:
        if key == kind.value:
            return kind

    kind = STRATEGY_ALIASES.get(key.replace("_", ""))
    if kind is None:
        available = ", ".join([k.value for k in StrategyKind])
        raise ConfigError(f"Unknown grading strategy '{name}'. Available: {available}")
    return kind


def _require_choice(name: str, value: Any, options: Tuple[str, ...]) -> None:
    if value not in options:
        raise ConfigError(f"Invalid {name} '{value}'. Must be one of: {', '.join(options)}")


def _require_unit_interval(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be a number within [0.0, 1.0], got {value!r}")


def _validate_match(args: MatchArgs) -> None:
    _require_choice("match_type", args.match_type, MATCH_TYPES)
    _require_unit_interval("fuzzy_threshold", args.fuzzy_threshold)


def _validate_model_graded(args: ModelGradedArgs) -> None:
    _require_choice("eval_type", args.eval_type, EVAL_TYPES)
    _require_unit_interval("pass_threshold", args.pass_threshold)
    if args.max_tokens <= 0:
        raise ConfigError("max_tokens must be positive")


def _validate_choice(args: ChoiceArgs) -> None:
    if not args.prompt:
        raise ConfigError("Choice strategy requires a 'prompt' template")
    if not args.choice_strings:
        raise ConfigError("Choice strategy requires at least one entry in 'choice_strings'")
    if not all(isinstance(c, str) and c.strip() for c in args.choice_strings):
        raise ConfigError("choice_strings entries must be non-empty strings")
    for label, score in args.choice_scores.items():
        _require_unit_interval(f"choice_scores['{label}']", score)
    unknown = [label for label in args.choice_scores if label not in args.choice_strings]
    if unknown:
        logger.warning(f"choice_scores has labels not in choice_strings: {unknown}")
    _require_unit_interval("pass_threshold", args.pass_threshold)
    _require_choice("on_no_match", args.on_no_match, NO_MATCH_POLICIES)


def _validate_similarity(args: SimilarityArgs) -> None:
    _require_unit_interval("threshold", args.threshold)
    _require_choice("embeddings_provider", args.embeddings_provider, EMBEDDINGS_PROVIDERS)
    _require_choice("match_mode", args.match_mode, MATCH_MODES)


_VALIDATORS = {
    StrategyKind.MATCH: _validate_match,
    StrategyKind.MODEL_GRADED: _validate_model_graded,
    StrategyKind.CHOICE: _validate_choice,
    StrategyKind.SEMANTIC_SIMILARITY: _validate_similarity,
}


def parse_strategy_config(name: str, args: Optional[Dict[str, Any]] = None) -> StrategyConfig:
    """Parse a registry ``class`` + ``args`` pair into a StrategyConfig.

    Keys the strategy does not use (e.g. ``samples_jsonl``) are ignored.

    Raises:
        ConfigError: Unknown strategy or invalid arguments.
    """
    kind = resolve_strategy_kind(name)
    args = dict(args or {})
    args_type = ARGS_TYPES[kind]

    known = {f.name for f in fields(args_type)}
    kwargs = {k: v for k, v in args.items() if k in known}

    if kind is StrategyKind.CHOICE:
        choices = kwargs.get("choice_strings", ())
        if isinstance(choices, str):
            choices = [c.strip() for c in choices.split(",")]
        kwargs["choice_strings"] = tuple(choices or ())
        scores = kwargs.get("choice_scores") or {}
        if not isinstance(scores, dict):
            raise ConfigError("choice_scores must be a mapping of label to score")
        kwargs["choice_scores"] = dict(scores)

    try:
        parsed = args_type(**kwargs)
    except TypeError as e:
        raise ConfigError(f"Invalid arguments for strategy '{name}': {e}") from e

    _VALIDATORS[kind](parsed)
    return StrategyConfig(kind=kind, args=parsed)
