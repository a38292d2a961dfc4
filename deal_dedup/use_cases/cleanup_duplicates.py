"""Cleanup duplicates use case.

Sweeps already stored deals and removes duplicates the import-time check
missed (deals imported before the check existed, or in parallel). The
oldest deal of every duplicate group is kept.
"""

from time import perf_counter

from deal_dedup.config.logging_config import get_logger
from deal_dedup.domain.deduplication_constants import (
    CLEANUP_PRICE_GAP_PERCENT,
    DEFAULT_DUPLICATE_THRESHOLD,
)
from deal_dedup.domain.models import CleanupResult, Deal
from deal_dedup.domain.protocols import DealRepositoryProtocol
from deal_dedup.observability.metrics import CLEANUP_REMOVED_TOTAL, USE_CASE_DURATION_SECONDS
from deal_dedup.observability.tracing import correlation_scope
from deal_dedup.services.similarity import similarity_score

logger = get_logger(__name__)


def price_gap_percent(first: int | None, second: int | None) -> float | None:
    """Price difference relative to the larger price; None when unknown."""
    if first is None or second is None:
        return None
    larger = max(first, second)
    if larger == 0:
        return 0.0
    return abs(first - second) / larger * 100


def find_duplicates(
    deals: list[Deal],
    *,
    threshold: int = DEFAULT_DUPLICATE_THRESHOLD,
    price_gap_limit: float = CLEANUP_PRICE_GAP_PERCENT,
) -> tuple[list[str], list[str]]:
    """Find duplicates among one merchant's deals (oldest first).

    Each surviving deal is compared with every later one. A later deal is a
    duplicate when it has the same URL, or when prices are within
    ``price_gap_limit`` percent and the similarity score reaches
    ``threshold``.

    Returns:
        (url_duplicate_ids, similar_duplicate_ids)
    """
    removed: set[str] = set()
    url_duplicates: list[str] = []
    similar_duplicates: list[str] = []

    for index, current in enumerate(deals):
        if current.id in removed:
            continue

        for other in deals[index + 1 :]:
            if other.id in removed:
                continue

            if current.url and other.url and current.url == other.url:
                removed.add(other.id)
                url_duplicates.append(other.id)
                logger.info(
                    "cleanup_url_duplicate_found",
                    kept_deal_id=current.id,
                    deal_id=other.id,
                    title=other.title[:40],
                )
                continue

            gap = price_gap_percent(current.price, other.price)
            if gap is not None and gap > price_gap_limit:
                continue

            score = similarity_score(current.title, current.price, other.title, other.price)
            if score >= threshold:
                removed.add(other.id)
                similar_duplicates.append(other.id)
                logger.info(
                    "cleanup_similar_duplicate_found",
                    kept_deal_id=current.id,
                    deal_id=other.id,
                    title=other.title[:40],
                    similarity_score=score,
                )

    return url_duplicates, similar_duplicates


def cleanup_duplicates_use_case(
    repository: DealRepositoryProtocol,
    *,
    threshold: int = DEFAULT_DUPLICATE_THRESHOLD,
    price_gap_limit: float = CLEANUP_PRICE_GAP_PERCENT,
    dry_run: bool = False,
    correlation_id: str | None = None,
) -> CleanupResult:
    """Remove duplicate deals, keeping the oldest of each group.

    Args:
        repository: Deal repository
        threshold: Minimum similarity score for a duplicate
        price_gap_limit: Pairs whose prices differ by more than this percent
            of the larger price are never duplicates
        dry_run: Report duplicates without deleting them
        correlation_id: Correlation id for log lines

    Returns:
        CleanupResult with removed ids and counts

    Raises:
        RepositoryError: On storage errors
    """
    with correlation_scope(correlation_id) as bound_correlation_id:
        started = perf_counter()

        deals = repository.list_deals()
        by_merchant: dict[str, list[Deal]] = {}
        for deal in deals:
            by_merchant.setdefault(deal.merchant, []).append(deal)

        logger.info(
            "cleanup_started",
            correlation_id=bound_correlation_id,
            deal_count=len(deals),
            merchant_count=len(by_merchant),
            threshold=threshold,
            dry_run=dry_run,
        )

        url_ids: list[str] = []
        similar_ids: list[str] = []
        for merchant, merchant_deals in by_merchant.items():
            logger.debug("cleanup_merchant_checked", merchant=merchant, deals=len(merchant_deals))
            merchant_url_ids, merchant_similar_ids = find_duplicates(
                merchant_deals, threshold=threshold, price_gap_limit=price_gap_limit
            )
            url_ids.extend(merchant_url_ids)
            similar_ids.extend(merchant_similar_ids)

        if not dry_run:
            for deal_id in url_ids + similar_ids:
                repository.delete_deal(deal_id)
            CLEANUP_REMOVED_TOTAL.labels(kind="url").inc(len(url_ids))
            CLEANUP_REMOVED_TOTAL.labels(kind="similar").inc(len(similar_ids))

        duration = perf_counter() - started
        USE_CASE_DURATION_SECONDS.labels(use_case="cleanup_duplicates").observe(duration)

        result = CleanupResult(
            deals_checked=len(deals),
            url_duplicates_removed=len(url_ids),
            similar_duplicates_removed=len(similar_ids),
            removed_deal_ids=url_ids + similar_ids,
            dry_run=dry_run,
        )
        logger.info(
            "cleanup_finished",
            correlation_id=bound_correlation_id,
            duration_seconds=duration,
            deals_checked=result.deals_checked,
            url_duplicates=result.url_duplicates_removed,
            similar_duplicates=result.similar_duplicates_removed,
            dry_run=dry_run,
        )
        return result
