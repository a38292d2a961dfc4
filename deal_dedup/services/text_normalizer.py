"""Text normalization service for scraped deal titles.

Handles:
- Emoji and pictograph removal
- Punctuation/symbol removal
- Unicode compatibility folding and lowercasing
- Whitespace normalization
- Keyword (feature) extraction for set-based comparison
"""

import re
import unicodedata
from typing import Final

from deal_dedup.domain.deduplication_constants import (
    FEATURE_STOPWORDS,
    MIN_FEATURE_LENGTH,
)

EMOJI_PATTERN: Final[re.Pattern[str]] = re.compile(
    "["
    "\U0001f600-\U0001f64f"  # emoticons
    "\U0001f300-\U0001f5ff"  # symbols & pictographs
    "\U0001f680-\U0001f6ff"  # transport & map
    "\U0001f900-\U0001f9ff"  # supplemental symbols & pictographs
    "\U0001fa70-\U0001faff"  # symbols & pictographs extended-A
    "\u2600-\u26ff"  # misc symbols
    "\u2700-\u27bf"  # dingbats
    "\ufe0e\ufe0f\u200d"  # variation selectors, zero-width joiner
    "]+"
)
"""Emoji ranges removed without leaving a gap ("🔥🔥Havells" → "Havells")."""

NON_WORD_PATTERN: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9\s]")
WHITESPACE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\s+")


def normalize_title(text: str) -> str:
    """Normalize a raw deal title for comparison.

    Args:
        text: Raw title (any unicode, any length)

    Returns:
        Lowercase ``[a-z0-9]`` words separated by single spaces, trimmed

    Example:
        >>> normalize_title("🔥🔥Havells MIXWELL 500 W - Best Deal!")
        'havells mixwell 500 w best deal'
    """
    if not text:
        return ""

    text = EMOJI_PATTERN.sub("", text)

    # Fold compatibility forms (full-width, ligatures, accents) before lowercasing
    text = unicodedata.normalize("NFKD", text).lower()
    # Accents decompose into combining marks; drop them so "crème" stays one word
    text = "".join(char for char in text if not unicodedata.combining(char))

    text = NON_WORD_PATTERN.sub(" ", text)
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def extract_features(normalized: str) -> list[str]:
    """Extract content-bearing keywords from a normalized title.

    Tokens of length <= 2 and marketing stopwords are dropped. Order and
    repeated tokens are preserved; similarity treats the result as a set.

    Args:
        normalized: Output of normalize_title

    Returns:
        Keyword tokens in input order

    Example:
        >>> extract_features("havells mixwell 500 w 3 jar mixer grinder best deal")
        ['havells', 'mixwell', '500', 'jar', 'mixer', 'grinder', 'best']
    """
    return [
        token
        for token in normalized.split()
        if len(token) >= MIN_FEATURE_LENGTH and token not in FEATURE_STOPWORDS
    ]


def title_features(title: str) -> list[str]:
    """Normalize a raw title and extract its keywords."""
    return extract_features(normalize_title(title))
