"""
Semantic-Similarity Scorer

Scores a completion by cosine similarity between its embedding and the
embeddings of the ideal answers.

Match modes:
- best: score = max similarity, passed when score >= threshold
- threshold: score = max similarity, passed when any ideal >= threshold
- all: score = mean similarity, passed only when every ideal >= threshold
"""

import logging
from typing import Any, Dict, List

import numpy as np

from ..embeddings.service import EmbeddingsService
from ..models import CompletionResult, Sample
from .base import Grade, GradingStrategy
from .config import SimilarityArgs, StrategyKind

logger = logging.getLogger(__name__)


class SimilarityStrategy(GradingStrategy):
    kind = StrategyKind.SEMANTIC_SIMILARITY
    args: SimilarityArgs

    def __init__(self, config, embeddings: EmbeddingsService):
        super().__init__(config)
        self.embeddings = embeddings

    def _base_metadata(self) -> Dict[str, Any]:
        return {
            "embeddings_provider": self.args.embeddings_provider,
            "embeddings_model": self.embeddings.model,
            "match_mode": self.args.match_mode,
            "threshold": self.args.threshold,
        }

    async def _grade(self, sample: Sample, completion: CompletionResult) -> Grade:
        text = completion.content.strip()
        ideals = sample.ideal_answers
        metadata = self._base_metadata()

        if not text:
            metadata["empty_completion"] = True
            return Grade(0.0, False, "Empty completion; nothing to compare", metadata)

        similarities: List[float] = await self.embeddings.similarities(text, ideals)
        threshold = self.args.threshold
        mode = self.args.match_mode

        best_index = int(np.argmax(similarities))
        best = similarities[best_index]
        passing = [ideal for ideal, sim in zip(ideals, similarities) if sim >= threshold]

        if mode == "all":
            score = float(np.mean(similarities))
            passed = len(passing) == len(ideals)
        elif mode == "threshold":
            score = best
            passed = bool(passing)
        else:
            score = best
            passed = score >= threshold

        # Cosine can be negative; scores live in [0, 1]
        score = min(max(score, 0.0), 1.0)

        metadata.update(
            {
                "best_match": ideals[best_index],
                "best_similarity": best,
                "all_similarities": similarities,
                "passing_answers": passing,
            }
        )

        verdict = "passes" if passed else "does not pass"
        if mode == "all":
            reasoning = (
                f"Mean similarity {score:.4f} across {len(ideals)} ideal answers; "
                f"{len(passing)}/{len(ideals)} at or above threshold {threshold} ({verdict})"
            )
        else:
            reasoning = (
                f'Best similarity {best:.4f} with "{ideals[best_index]}" '
                f"against threshold {threshold} ({verdict}, mode={mode})"
            )
        return Grade(score, passed, reasoning, metadata)

    def error_metadata(self) -> Dict[str, Any]:
        return self._base_metadata()

    async def precompute(self, samples: List[Sample], batch_size: int = 10) -> int:
        """Warm the embeddings cache with every ideal answer in samples."""
        texts = [ideal for sample in samples for ideal in sample.ideal_answers]
        return await self.embeddings.precompute(texts, batch_size=batch_size)
