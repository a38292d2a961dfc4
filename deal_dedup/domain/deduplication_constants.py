"""Business rules and constants for deal deduplication.

This module defines the thresholds and weights used to decide whether a
newly scraped deal duplicates one that is already stored. All values are
defaults; production values come from Settings (see config/main.yaml).
"""

from typing import Final

DEFAULT_DUPLICATE_THRESHOLD: Final[int] = 75
"""Minimum composite score (0-100) at which a candidate is a duplicate.

Example:
    - Candidate vs best window match scores 81 → duplicate (>= 75)
    - Candidate vs best window match scores 62 → unique
"""

DEFAULT_WINDOW_DAYS: Final[int] = 7
"""Trailing period, in days, of stored deals compared against a candidate."""

DEFAULT_WINDOW_LIMIT: Final[int] = 50
"""Maximum number of stored deals compared against a single candidate.

Business rule: comparison cost stays linear and predictable no matter how
much history a merchant has accumulated.
"""

# Composite score weights (sum to 1.0)
TITLE_WEIGHT: Final[float] = 0.6
FEATURE_WEIGHT: Final[float] = 0.3
PRICE_WEIGHT: Final[float] = 0.1

# Price proximity bands (percent difference relative to the mean price)
PRICE_CLOSE_PERCENT: Final[float] = 10.0
PRICE_NEAR_PERCENT: Final[float] = 20.0
PRICE_CLOSE_SIMILARITY: Final[float] = 1.0
PRICE_NEAR_SIMILARITY: Final[float] = 0.5

EXACT_MATCH_SCORE: Final[int] = 100

CLEANUP_PRICE_GAP_PERCENT: Final[float] = 20.0
"""Cleanup skips pairs whose price differs by more than this share of the larger price."""

MIN_FEATURE_LENGTH: Final[int] = 3
"""Shortest token kept by feature extraction (tokens of length <= 2 are dropped)."""

FEATURE_STOPWORDS: Final[frozenset[str]] = frozenset(
    {
        "deal",
        "price",
        "buy",
        "here",
        "flat",
        "off",
        "save",
        "now",
        "get",
        "offer",
        "sale",
        "discount",
        "limited",
        "time",
        "only",
        "use",
        "code",
        "coupon",
        "order",
        "value",
        "min",
        "max",
    }
)
"""Deal-marketing boilerplate that appears across unrelated deals."""
