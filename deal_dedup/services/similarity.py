"""Similarity scoring between two deals.

Composite duplicate-confidence score:
- Title similarity (edit distance on normalized titles)   × 0.6
- Feature overlap (Jaccard on extracted keywords)        × 0.3
- Price proximity (banded percent difference)            × 0.1

Every signal is symmetric, so score(a, b) == score(b, a).
"""

import math
from collections.abc import Iterable

from rapidfuzz.distance import Levenshtein

from deal_dedup.domain.deduplication_constants import (
    FEATURE_WEIGHT,
    PRICE_CLOSE_PERCENT,
    PRICE_CLOSE_SIMILARITY,
    PRICE_NEAR_PERCENT,
    PRICE_NEAR_SIMILARITY,
    PRICE_WEIGHT,
    TITLE_WEIGHT,
)
from deal_dedup.domain.models import SimilarityBreakdown
from deal_dedup.services.text_normalizer import extract_features, normalize_title


def levenshtein_similarity(first: str, second: str) -> float:
    """Edit-distance similarity of two normalized strings.

    Args:
        first: Normalized title
        second: Normalized title

    Returns:
        ``1 - distance / max(len)``; 1.0 when both are empty

    Example:
        >>> levenshtein_similarity("kitten", "sitting")
        0.5714285714285714
    """
    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(first, second) / longest


def jaccard_similarity(first: Iterable[str], second: Iterable[str]) -> float:
    """Jaccard similarity of two token collections treated as sets.

    Two empty collections have undefined overlap and score 0.0 so that
    titles made only of noise never look alike.

    Example:
        >>> jaccard_similarity(["sony", "headphones"], ["sony", "speaker"])
        0.3333333333333333
    """
    first_set = set(first)
    second_set = set(second)
    union = first_set | second_set
    if not union:
        return 0.0
    return len(first_set & second_set) / len(union)


def price_difference_percent(first: int, second: int) -> float:
    """Absolute price difference relative to the mean price, in percent."""
    if first == second:
        return 0.0
    mean = (first + second) / 2
    if mean <= 0:
        return math.inf
    return abs(first - second) / mean * 100


def price_proximity(first: int | None, second: int | None) -> float:
    """Banded price similarity.

    Args:
        first: Price of one deal (None = unknown)
        second: Price of the other deal (None = unknown)

    Returns:
        1.0 within 10%, 0.5 within 20%, otherwise 0.0. Unknown prices
        never match.

    Example:
        >>> price_proximity(1799, 1850)
        1.0
    """
    if first is None or second is None:
        return 0.0

    percent = price_difference_percent(first, second)
    if percent <= PRICE_CLOSE_PERCENT:
        return PRICE_CLOSE_SIMILARITY
    if percent <= PRICE_NEAR_PERCENT:
        return PRICE_NEAR_SIMILARITY
    return 0.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_pair(
    first_title: str,
    first_price: int | None,
    second_title: str,
    second_price: int | None,
) -> SimilarityBreakdown:
    """Score how likely two deals are the same product.

    Args:
        first_title: Raw title of the first deal
        first_price: Price of the first deal
        second_title: Raw title of the second deal
        second_price: Price of the second deal

    Returns:
        Per-signal similarities and the weighted 0-100 score
    """
    first_norm = normalize_title(first_title)
    second_norm = normalize_title(second_title)

    title_sim = levenshtein_similarity(first_norm, second_norm)
    feature_sim = jaccard_similarity(
        extract_features(first_norm), extract_features(second_norm)
    )
    price_sim = price_proximity(first_price, second_price)

    weighted = (
        title_sim * TITLE_WEIGHT + feature_sim * FEATURE_WEIGHT + price_sim * PRICE_WEIGHT
    )
    score = min(100, max(0, _round_half_up(weighted * 100)))

    return SimilarityBreakdown(
        title_similarity=title_sim,
        feature_similarity=feature_sim,
        price_similarity=price_sim,
        score=score,
    )


def similarity_score(
    first_title: str,
    first_price: int | None,
    second_title: str,
    second_price: int | None,
) -> int:
    """Weighted duplicate-confidence score (0-100) for two deals."""
    return score_pair(first_title, first_price, second_title, second_price).score
