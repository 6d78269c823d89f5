"""
Strategy Registry

Maps each StrategyKind to its constructor and wires in the collaborators it
needs: a grading client for the judge strategies, an embeddings service for
the similarity scorer. All failures raise ConfigError so a run can stop
before touching any sample.

Usage:
    config = parse_strategy_config("ModelGradedEval", {"eval_type": "cot_classify"})
    strategy = create_strategy(config, grading_client=judge)
"""

import logging
from typing import Callable, Dict, List, Optional

from utils.exceptions import ConfigError

from ..caching import MemoryCache
from ..embeddings.providers import create_embeddings_provider
from ..embeddings.service import EmbeddingsService
from ..providers.base import CompletionClient
from .base import GradingStrategy
from .choice import ChoiceStrategy
from .config import StrategyConfig, StrategyKind
from .judge import ModelGradedStrategy
from .match import MatchStrategy
from .similarity import SimilarityStrategy

logger = logging.getLogger(__name__)

StrategyBuilder = Callable[
    [StrategyConfig, Optional[CompletionClient], Optional[EmbeddingsService]],
    GradingStrategy,
]


def _require_client(config: StrategyConfig, client: Optional[CompletionClient]) -> CompletionClient:
    if client is None:
        raise ConfigError(f"Strategy '{config.kind.value}' requires a grading model client")
    return client


def _build_match(config, client, embeddings) -> GradingStrategy:
    return MatchStrategy(config)


def _build_model_graded(config, client, embeddings) -> GradingStrategy:
    return ModelGradedStrategy(config, grading_client=_require_client(config, client))


def _build_choice(config, client, embeddings) -> GradingStrategy:
    return ChoiceStrategy(config, grading_client=_require_client(config, client))


def _build_similarity(config, client, embeddings) -> GradingStrategy:
    if embeddings is None:
        embeddings = build_embeddings_service(config)
    return SimilarityStrategy(config, embeddings=embeddings)


STRATEGY_REGISTRY: Dict[StrategyKind, StrategyBuilder] = {
    StrategyKind.MATCH: _build_match,
    StrategyKind.MODEL_GRADED: _build_model_graded,
    StrategyKind.CHOICE: _build_choice,
    StrategyKind.SEMANTIC_SIMILARITY: _build_similarity,
}


def requires_grading_client(config: StrategyConfig) -> bool:
    return config.kind in (StrategyKind.MODEL_GRADED, StrategyKind.CHOICE)


def create_strategy(
    config: StrategyConfig,
    grading_client: Optional[CompletionClient] = None,
    embeddings: Optional[EmbeddingsService] = None,
) -> GradingStrategy:
    """Instantiate the strategy a config describes.

    Raises:
        ConfigError: Unknown kind or a missing collaborator.
    """
    builder = STRATEGY_REGISTRY.get(config.kind)
    if builder is None:
        available = ", ".join(k.value for k in STRATEGY_REGISTRY)
        raise ConfigError(f"Unknown strategy '{config.kind}'. Available: {available}")
    try:
        strategy = builder(config, grading_client, embeddings)
    except ConfigError:
        raise
    except (ValueError, ImportError) as e:
        raise ConfigError(f"Could not create strategy '{config.kind.value}': {e}") from e
    logger.debug(f"Created {type(strategy).__name__}")
    return strategy


def build_embeddings_service(
    config: StrategyConfig,
    cache: Optional[MemoryCache] = None,
    timeout: Optional[float] = None,
) -> EmbeddingsService:
    """Embeddings service for a semantic-similarity config, sharing a vector cache."""
    if config.kind is not StrategyKind.SEMANTIC_SIMILARITY:
        raise ConfigError("Embeddings are only used by the semantic_similarity strategy")
    provider = create_embeddings_provider(
        config.args.embeddings_provider, config.args.embeddings_model
    )
    return EmbeddingsService(
        provider,
        cache=cache,
        cache_enabled=config.args.cache_embeddings,
        timeout=timeout,
    )


def available_strategies() -> List[str]:
    return [k.value for k in STRATEGY_REGISTRY]
