"""Tests for pairwise deal similarity scoring."""

import pytest

from deal_dedup.services import similarity
from deal_dedup.services.text_normalizer import normalize_title
from tests.conftest import HAVELLS_SCRAPED_TITLE, HAVELLS_STORED_TITLE, SONY_TITLE


def test_levenshtein_similarity_identical_and_empty() -> None:
    assert similarity.levenshtein_similarity("mixer grinder", "mixer grinder") == 1.0
    assert similarity.levenshtein_similarity("", "") == 1.0
    assert similarity.levenshtein_similarity("abc", "") == 0.0


def test_levenshtein_similarity_classic_pair() -> None:
    assert similarity.levenshtein_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


def test_jaccard_similarity_treats_input_as_sets() -> None:
    assert similarity.jaccard_similarity(["usb", "usb", "cable"], ["usb", "cable"]) == 1.0
    assert similarity.jaccard_similarity(["sony", "headphones"], ["sony", "speaker"]) == (
        pytest.approx(1 / 3)
    )


def test_jaccard_similarity_empty_is_zero() -> None:
    """Empty feature sets never count as overlapping."""
    assert similarity.jaccard_similarity([], []) == 0.0
    assert similarity.jaccard_similarity(["sony"], []) == 0.0


@pytest.mark.parametrize(
    ("first", "second", "expected"),
    [
        (1799, 1850, 1.0),
        (100, 110, 1.0),
        (100, 120, 0.5),
        (100, 125, 0.0),
        (0, 0, 1.0),
        (0, 10, 0.0),
        (None, 1850, 0.0),
        (1850, None, 0.0),
        (None, None, 0.0),
    ],
)
def test_price_proximity_bands(first: int | None, second: int | None, expected: float) -> None:
    assert similarity.price_proximity(first, second) == expected


def test_price_difference_percent_uses_mean() -> None:
    assert similarity.price_difference_percent(90, 110) == pytest.approx(20.0)
    assert similarity.price_difference_percent(500, 500) == 0.0


def test_identical_deals_score_100() -> None:
    assert similarity.similarity_score(SONY_TITLE, 24990, SONY_TITLE, 24990) == 100


def test_score_is_symmetric() -> None:
    pairs = [
        (HAVELLS_SCRAPED_TITLE, 1799, HAVELLS_STORED_TITLE, 1850),
        (SONY_TITLE, 24990, HAVELLS_SCRAPED_TITLE, 1799),
        ("Boat Airdopes 141", None, "boAt Airdopes 141 TWS", 999),
    ]
    for first_title, first_price, second_title, second_price in pairs:
        forward = similarity.similarity_score(first_title, first_price, second_title, second_price)
        backward = similarity.similarity_score(second_title, second_price, first_title, first_price)
        assert forward == backward


def test_havells_pair_breakdown() -> None:
    """Same product reposted with new marketing text scores about 63, below the default 75."""
    breakdown = similarity.score_pair(HAVELLS_SCRAPED_TITLE, 1799, HAVELLS_STORED_TITLE, 1850)

    assert breakdown.feature_similarity == pytest.approx(0.5)
    assert breakdown.price_similarity == 1.0
    assert breakdown.title_similarity >= 1 - 17 / len(normalize_title(HAVELLS_STORED_TITLE))
    assert breakdown.score >= 62


def test_unrelated_products_score_low() -> None:
    score = similarity.similarity_score(SONY_TITLE, 24990, HAVELLS_SCRAPED_TITLE, 1799)
    assert score < 40


def test_noise_only_titles_do_not_reach_default_threshold() -> None:
    """Titles that reduce to stopwords rely on edit distance alone."""
    breakdown = similarity.score_pair("Deal!!!", None, "🔥 DEAL 🔥", None)

    assert breakdown.title_similarity == 1.0
    assert breakdown.feature_similarity == 0.0
    assert breakdown.score == 60


def test_score_within_bounds() -> None:
    for first, second in [("", ""), ("a", "zzzz"), (SONY_TITLE, SONY_TITLE.upper())]:
        score = similarity.similarity_score(first, 10, second, 10_000)
        assert 0 <= score <= 100


def test_empty_titles_score_title_weight_only() -> None:
    breakdown = similarity.score_pair("", None, "", None)
    assert breakdown.title_similarity == 1.0
    assert breakdown.score == 60


@pytest.mark.parametrize(
    ("first_title", "second_title"),
    [
        ("Philips Trimmer BT3221", "Nivea Body Lotion"),
        ("Redmi Note 13", "Realme Narzo 60"),
        (SONY_TITLE, HAVELLS_STORED_TITLE),
    ],
)
def test_disjoint_keywords_and_far_prices_stay_below_threshold(
    first_title: str, second_title: str
) -> None:
    """Without shared keywords or close prices only edit distance can contribute."""
    breakdown = similarity.score_pair(first_title, 1000, second_title, 1500)

    assert breakdown.price_similarity == 0.0
    assert breakdown.feature_similarity == 0.0
    assert breakdown.score < 75
