"""
Lexical similarity metrics for cross-document entity alignment.

Three independent metrics plus a weighted combination:
- Jaccard: overlap of word sets (ignores order and frequency)
- Cosine: angle between term-frequency vectors (respects repetition)
- Levenshtein: character edit distance (robust to small typos)

All scores are in [0, 1]. Identical strings score 1.0 and two empty strings
score 1.0 by definition. Stopwords are ignored unless both texts consist
of nothing else, in which case the stopwords themselves are compared.

Usage:
    from crossdoc_analyzer.alignment.similarity import combined_similarity, find_best_match

    score = combined_similarity("To evaluate efficacy", "To evaluate the efficacy")
    match = find_best_match(query, candidates, lambda c: c.description)
"""

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

DEFAULT_WEIGHTS: Tuple[float, float, float] = (0.3, 0.3, 0.4)
DEFAULT_THRESHOLD = 0.75

STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "should", "could", "may", "might", "must", "can", "this", "that",
    "these", "those",
})

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# TEXT PREPARATION
# =============================================================================


def normalize_text(text: Optional[str]) -> str:
    """Lower-case, replace punctuation with spaces and collapse whitespace."""
    if not text:
        return ""
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(text: Optional[str], remove_stopwords: bool = True) -> List[str]:
    """Split normalized text into words, optionally dropping stopwords."""
    words = normalize_text(text).split()
    if remove_stopwords:
        return [w for w in words if w not in STOPWORDS]
    return words


# =============================================================================
# METRICS
# =============================================================================


def _comparable_tokens(a: Optional[str], b: Optional[str]) -> Tuple[List[str], List[str]]:
    """Content words of both texts, or all words when neither has content words."""
    tokens_a, tokens_b = tokenize(a), tokenize(b)
    if not tokens_a and not tokens_b:
        return tokenize(a, remove_stopwords=False), tokenize(b, remove_stopwords=False)
    return tokens_a, tokens_b


def jaccard_similarity(a: Optional[str], b: Optional[str]) -> float:
    """|intersection| / |union| of the two word sets."""
    tokens_a, tokens_b = _comparable_tokens(a, b)
    set_a, set_b = set(tokens_a), set(tokens_b)

    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0

    return len(set_a & set_b) / len(set_a | set_b)


def cosine_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Cosine of the angle between the term-frequency vectors."""
    tokens_a, tokens_b = _comparable_tokens(a, b)
    freq_a, freq_b = Counter(tokens_a), Counter(tokens_b)

    if not freq_a and not freq_b:
        return 1.0
    if not freq_a or not freq_b:
        return 0.0

    dot = sum(count * freq_b[word] for word, count in freq_a.items())
    magnitude_a = sum(count * count for count in freq_a.values())
    magnitude_b = sum(count * count for count in freq_b.values())

    # Float rounding can push identical vectors a hair above 1.0
    return min(1.0, dot / math.sqrt(magnitude_a * magnitude_b))


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum single-character edits turning a into b."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def levenshtein_similarity(a: Optional[str], b: Optional[str]) -> float:
    """1 - distance / max length, over normalized text."""
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)

    max_length = max(len(norm_a), len(norm_b))
    if max_length == 0:
        return 1.0

    return 1.0 - levenshtein_distance(norm_a, norm_b) / max_length


def combined_similarity(
    a: Optional[str],
    b: Optional[str],
    weights: Sequence[float] = DEFAULT_WEIGHTS,
) -> float:
    """
    Weighted average of Jaccard, cosine and Levenshtein similarity.

    Args:
        a, b: Texts to compare
        weights: (jaccard, cosine, levenshtein) weights; normalized by their sum

    Returns:
        Score in [0, 1]
    """
    if len(weights) != 3:
        raise ValueError(f"Expected 3 weights, got {len(weights)}")
    total = sum(weights)
    if total <= 0:
        raise ValueError("Similarity weights must sum to a positive value")

    w_jaccard, w_cosine, w_levenshtein = weights
    score = (
        w_jaccard * jaccard_similarity(a, b)
        + w_cosine * cosine_similarity(a, b)
        + w_levenshtein * levenshtein_similarity(a, b)
    ) / total

    return max(0.0, min(1.0, score))


def are_similar(a: Optional[str], b: Optional[str], threshold: float = DEFAULT_THRESHOLD) -> bool:
    return combined_similarity(a, b) >= threshold


# =============================================================================
# BEST MATCH
# =============================================================================


@dataclass(frozen=True)
class BestMatch(Generic[T]):
    """Winning candidate, its position in the input and its score."""
    candidate: T
    index: int
    score: float


def find_best_scored(
    candidates: Sequence[T],
    scorer: Callable[[T], float],
    threshold: float = DEFAULT_THRESHOLD,
) -> Optional[BestMatch[T]]:
    """
    Highest-scoring candidate whose score clears the threshold.

    Linear scan in input order; on equal scores the earlier candidate wins.
    Returns None when no candidate reaches the threshold.
    """
    best: Optional[BestMatch[T]] = None

    for index, candidate in enumerate(candidates):
        score = scorer(candidate)
        if score < threshold:
            continue
        if best is None or score > best.score:
            best = BestMatch(candidate=candidate, index=index, score=score)

    return best


def find_best_match(
    query: str,
    candidates: Sequence[T],
    text_accessor: Callable[[T], str],
    threshold: float = DEFAULT_THRESHOLD,
) -> Optional[BestMatch[T]]:
    """Best candidate by combined similarity between query and its text."""
    return find_best_scored(
        candidates,
        lambda candidate: combined_similarity(query, text_accessor(candidate)),
        threshold=threshold,
    )
