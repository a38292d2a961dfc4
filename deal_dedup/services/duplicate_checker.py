"""Duplicate resolution policy for scraped deal candidates.

A candidate is compared only against a bounded window of recent deals from
the same merchant:

1. Exact URL match (same merchant) → duplicate, score 100, no scoring
2. Window = newest ``window_limit`` deals created within ``window_days``
3. Highest similarity score wins; ties keep the newest deal
4. ``score >= threshold`` → duplicate, otherwise unique

Storage failures propagate as RepositoryError. The checker never reports a
candidate as unique when the window could not be read.
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from time import perf_counter

import pytz
from pydantic import ValidationError as PydanticValidationError

from deal_dedup.config.logging_config import get_logger
from deal_dedup.config.settings import Settings
from deal_dedup.domain.deduplication_constants import (
    DEFAULT_DUPLICATE_THRESHOLD,
    DEFAULT_WINDOW_DAYS,
    DEFAULT_WINDOW_LIMIT,
    EXACT_MATCH_SCORE,
)
from deal_dedup.domain.exceptions import RepositoryError, ValidationError
from deal_dedup.domain.models import DealCandidate, DedupPolicy, SimilarityVerdict, WindowDeal
from deal_dedup.domain.protocols import DealWindowSource
from deal_dedup.observability.metrics import (
    DEDUP_CHECK_DURATION_SECONDS,
    DEDUP_VERDICTS_TOTAL,
)
from deal_dedup.services.similarity import similarity_score

logger = get_logger(__name__)

EXACT_URL_REASON = "exact URL match"
EMPTY_WINDOW_REASON = "No recent deals from this merchant"


def _utcnow() -> datetime:
    return datetime.now(tz=pytz.UTC)


class DuplicateChecker:
    """Decide whether a candidate duplicates a recently stored deal.

    Read-only: the checker queries the repository but never writes to it.
    Callers that insert after a unique verdict must serialize check-then-insert
    per merchant (see MerchantLockRegistry).

    Example:
        >>> checker = DuplicateChecker(repo, threshold=75)
        >>> verdict = checker.check_for_duplicate(
        ...     DealCandidate(title="Sony WH-1000XM5", price=24990, merchant="Amazon")
        ... )
        >>> verdict.is_duplicate
        False
    """

    def __init__(
        self,
        repository: DealWindowSource,
        *,
        threshold: int = DEFAULT_DUPLICATE_THRESHOLD,
        window_days: int = DEFAULT_WINDOW_DAYS,
        window_limit: int = DEFAULT_WINDOW_LIMIT,
        merchant_overrides: Mapping[str, DedupPolicy] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize checker.

        Args:
            repository: Window source (any repository implementation)
            threshold: Minimum score (0-100) for a duplicate verdict
            window_days: Age bound of the candidate window
            window_limit: Size bound of the candidate window
            merchant_overrides: Per-merchant policies (case-insensitive keys)
            clock: Returns the current UTC time; injectable for tests

        Raises:
            ValidationError: If a tunable is out of range
        """
        try:
            self._default_policy = DedupPolicy(
                threshold=threshold,
                window_days=window_days,
                window_limit=window_limit,
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid duplicate policy: {exc}") from exc

        self._repository = repository
        self._overrides = {
            name.casefold(): policy for name, policy in (merchant_overrides or {}).items()
        }
        self._clock = clock or _utcnow

    @property
    def default_policy(self) -> DedupPolicy:
        return self._default_policy

    def policy_for(self, merchant: str) -> DedupPolicy:
        """Effective policy for a merchant (override or default)."""
        return self._overrides.get(merchant.casefold(), self._default_policy)

    def check_for_duplicate(self, candidate: DealCandidate) -> SimilarityVerdict:
        """Evaluate one candidate against the merchant's recent deals.

        Args:
            candidate: Validated candidate

        Returns:
            Verdict with score, reason and matched deal

        Raises:
            RepositoryError: If the window or URL lookup fails
        """
        started = perf_counter()
        try:
            verdict, outcome = self._evaluate(candidate)
        except RepositoryError as exc:
            logger.error(
                "dedup_check_failed",
                merchant=candidate.merchant,
                title=candidate.title,
                error=str(exc),
            )
            raise
        finally:
            DEDUP_CHECK_DURATION_SECONDS.observe(perf_counter() - started)

        DEDUP_VERDICTS_TOTAL.labels(outcome=outcome).inc()
        logger.debug(
            "dedup_verdict",
            merchant=candidate.merchant,
            title=candidate.title,
            outcome=outcome,
            is_duplicate=verdict.is_duplicate,
            similarity_score=verdict.similarity_score,
            matched_deal_id=verdict.matched_deal_id,
        )
        return verdict

    def check_batch(self, candidates: Iterable[DealCandidate]) -> list[SimilarityVerdict]:
        """Evaluate candidates one after another, in input order."""
        return [self.check_for_duplicate(candidate) for candidate in candidates]

    def _evaluate(self, candidate: DealCandidate) -> tuple[SimilarityVerdict, str]:
        if candidate.url:
            matched_id = self._repository.query_exact_url_match(
                candidate.merchant, candidate.url
            )
            if matched_id is not None:
                return (
                    SimilarityVerdict(
                        is_duplicate=True,
                        similarity_score=EXACT_MATCH_SCORE,
                        reason=EXACT_URL_REASON,
                        matched_deal_id=matched_id,
                        exact_url_match=True,
                    ),
                    "exact_url",
                )

        policy = self.policy_for(candidate.merchant)
        since = self._clock() - timedelta(days=policy.window_days)
        window = self._repository.query_recent_deals_by_merchant(
            candidate.merchant, since, policy.window_limit
        )[: policy.window_limit]

        if not window:
            return (
                SimilarityVerdict(
                    is_duplicate=False,
                    similarity_score=0,
                    reason=EMPTY_WINDOW_REASON,
                ),
                "empty_window",
            )

        best_deal, best_score = self._best_match(candidate, window)

        if best_score >= policy.threshold:
            return (
                SimilarityVerdict(
                    is_duplicate=True,
                    similarity_score=best_score,
                    reason=f"Similar to deal {best_deal.id} ({best_score}% match)",
                    matched_deal_id=best_deal.id,
                    matched_deal_price=best_deal.price,
                ),
                "similar",
            )

        return (
            SimilarityVerdict(
                is_duplicate=False,
                similarity_score=best_score,
                reason=f"Unique deal (highest similarity: {best_score}%)",
            ),
            "unique",
        )

    @staticmethod
    def _best_match(
        candidate: DealCandidate, window: list[WindowDeal]
    ) -> tuple[WindowDeal, int]:
        """Highest-scoring window deal; the first (newest) one wins ties."""
        best_deal = window[0]
        best_score = -1
        for deal in window:
            score = similarity_score(candidate.title, candidate.price, deal.title, deal.price)
            if score > best_score:
                best_deal, best_score = deal, score
            if score >= EXACT_MATCH_SCORE:
                break
        return best_deal, best_score


def create_duplicate_checker(
    repository: DealWindowSource,
    settings: Settings,
    *,
    clock: Callable[[], datetime] | None = None,
) -> DuplicateChecker:
    """Build a checker from the deduplication settings.

    Args:
        repository: Window source
        settings: Application settings
        clock: Optional clock override

    Returns:
        Configured DuplicateChecker
    """
    overrides = {
        merchant: settings.policy_for(merchant)
        for merchant in settings.dedup_merchant_overrides
    }
    return DuplicateChecker(
        repository,
        threshold=settings.dedup_threshold,
        window_days=settings.dedup_window_days,
        window_limit=settings.dedup_window_limit,
        merchant_overrides=overrides,
        clock=clock,
    )
