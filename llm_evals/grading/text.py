"""Text normalization and word-overlap similarity used by the match strategy."""

import re
from typing import Set

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def normalize_whitespace(text: str) -> str:
    """Trim and collapse internal whitespace runs to a single space."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def tokenize(text: str) -> Set[str]:
    """Lowercase word set with punctuation replaced by spaces."""
    cleaned = _PUNCTUATION_RE.sub(" ", text.lower())
    return {token for token in cleaned.split() if token}


def jaccard_similarity(a: str, b: str) -> float:
    """|A ∩ B| / |A ∪ B| over the word sets of a and b.

    Two strings with no words at all have similarity 0.0.
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def fuzzy_match(a: str, b: str, threshold: float = 0.8) -> bool:
    return jaccard_similarity(a, b) >= threshold
