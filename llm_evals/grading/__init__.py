"""
Grading Strategies

Four interchangeable ways to score a completion against a sample's ideal
answers, selected by a StrategyConfig:

- match: exact / includes / regex / fuzzy text matching
- model_graded: free-text LLM judge with a 0-1 score
- choice: LLM judge constrained to labelled choices
- semantic_similarity: embedding cosine similarity

Usage:
    from llm_evals.grading import create_strategy, parse_strategy_config

    config = parse_strategy_config("match", {"match_type": "includes"})
    strategy = create_strategy(config)
    result = await strategy.evaluate(sample, completion)
"""

from .base import Grade, GradingStrategy
from .choice import ChoiceStrategy, find_choice
from .config import (
    ChoiceArgs,
    MatchArgs,
    ModelGradedArgs,
    SimilarityArgs,
    StrategyConfig,
    StrategyKind,
    parse_strategy_config,
    resolve_strategy_kind,
)
from .judge import ModelGradedStrategy, parse_grading_reply
from .match import MatchStrategy
from .registry import (
    STRATEGY_REGISTRY,
    available_strategies,
    build_embeddings_service,
    create_strategy,
    requires_grading_client,
)
from .similarity import SimilarityStrategy

__all__ = [
    # Config
    "StrategyKind",
    "StrategyConfig",
    "MatchArgs",
    "ModelGradedArgs",
    "ChoiceArgs",
    "SimilarityArgs",
    "parse_strategy_config",
    "resolve_strategy_kind",
    # Strategies
    "Grade",
    "GradingStrategy",
    "MatchStrategy",
    "ModelGradedStrategy",
    "ChoiceStrategy",
    "SimilarityStrategy",
    "parse_grading_reply",
    "find_choice",
    # Registry
    "STRATEGY_REGISTRY",
    "available_strategies",
    "build_embeddings_service",
    "create_strategy",
    "requires_grading_client",
]
