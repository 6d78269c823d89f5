"""
Exact/Fuzzy Matcher

Binary scoring against the ideal answers: exact equality, substring
containment, regex search, or word-overlap (Jaccard) similarity. The first
ideal that matches wins.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ..models import CompletionResult, Sample
from .base import Grade, GradingStrategy
from .config import MatchArgs, StrategyKind
from .text import jaccard_similarity, normalize_whitespace

logger = logging.getLogger(__name__)


class MatchStrategy(GradingStrategy):
    kind = StrategyKind.MATCH
    args: MatchArgs

    def _compare(self, completion: str, ideal: str, invalid_patterns: List[str]) -> bool:
        match_type = self.args.match_type
        case_sensitive = self.args.case_sensitive

        if match_type == "regex":
            flags = 0 if case_sensitive else re.IGNORECASE
            try:
                return re.search(ideal, completion, flags) is not None
            except re.error as e:
                logger.debug(f"Invalid regex pattern {ideal!r}: {e}")
                invalid_patterns.append(ideal)
                return False

        if match_type == "fuzzy":
            return jaccard_similarity(completion, ideal) >= self.args.fuzzy_threshold

        if not case_sensitive:
            completion = completion.lower()
            ideal = ideal.lower()
        if match_type == "includes":
            return ideal in completion
        return completion == ideal

    async def _grade(self, sample: Sample, completion: CompletionResult) -> Grade:
        text = normalize_whitespace(completion.content)
        ideals = sample.ideal_answers
        invalid_patterns: List[str] = []

        matched: Optional[str] = None
        for ideal in ideals:
            if self._compare(text, normalize_whitespace(ideal), invalid_patterns):
                matched = ideal
                break

        metadata: Dict[str, Any] = {
            "match_type": self.args.match_type,
            "case_sensitive": self.args.case_sensitive,
            "matched_ideal": matched,
        }
        if invalid_patterns:
            metadata["invalid_patterns"] = invalid_patterns

        if matched is not None:
            return Grade(1.0, True, f'Matched ideal answer: "{matched}"', metadata)

        expected = ", ".join(f'"{i}"' for i in ideals)
        return Grade(
            0.0,
            False,
            f'No match found. Expected one of: [{expected}]. Got: "{text}"',
            metadata,
        )
