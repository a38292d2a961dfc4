"""Import deals use case.

Runs scraped Telegram deals through duplicate detection and persists the
survivors:

1. Skip messages that were already processed
2. Check the candidate against the merchant's recent deals (under lock)
3. Exact URL duplicate → skip
4. Similar duplicate → replace it when the new price is lower, else skip
5. Unique → insert
"""

from collections.abc import Iterable
from time import perf_counter

from deal_dedup.config.logging_config import get_logger
from deal_dedup.domain.exceptions import DuplicateDealError, RepositoryError
from deal_dedup.domain.models import (
    ImportResult,
    ProcessedMessage,
    ScrapedDeal,
    SimilarityVerdict,
    SkipReason,
)
from deal_dedup.domain.protocols import DealRepositoryProtocol
from deal_dedup.observability.metrics import DEAL_IMPORTS_TOTAL, USE_CASE_DURATION_SECONDS
from deal_dedup.observability.tracing import correlation_scope
from deal_dedup.services.duplicate_checker import DuplicateChecker
from deal_dedup.services.merchant_locks import MerchantLockRegistry

logger = get_logger(__name__)


def _is_better_price(scraped: ScrapedDeal, verdict: SimilarityVerdict) -> bool:
    """New deal should replace the matched one (strictly lower known price)."""
    if scraped.price_is_placeholder:
        return False
    if verdict.matched_deal_price is None:
        return True
    return scraped.price < verdict.matched_deal_price


def _record_skip(
    repository: DealRepositoryProtocol, scraped: ScrapedDeal, reason: SkipReason
) -> None:
    repository.record_processed_message(
        ProcessedMessage(
            message_id=scraped.message_id,
            channel=scraped.channel,
            skipped_reason=reason,
            posted_at=scraped.posted_at,
        )
    )


def _record_import(
    repository: DealRepositoryProtocol, scraped: ScrapedDeal, deal_id: str
) -> None:
    repository.record_processed_message(
        ProcessedMessage(
            message_id=scraped.message_id,
            channel=scraped.channel,
            deal_id=deal_id,
            posted_at=scraped.posted_at,
        )
    )


def _import_one(
    repository: DealRepositoryProtocol,
    checker: DuplicateChecker,
    scraped: ScrapedDeal,
) -> str:
    """Import a single scraped deal; caller holds the merchant lock.

    Returns:
        Outcome label (imported, replaced, duplicate, duplicate_url)

    Raises:
        RepositoryError: If the check or a write fails
    """
    verdict = checker.check_for_duplicate(scraped.to_candidate())

    if verdict.exact_url_match:
        logger.info(
            "deal_import_skipped",
            message_id=scraped.message_id,
            merchant=scraped.merchant,
            reason=SkipReason.DUPLICATE_URL.value,
            matched_deal_id=verdict.matched_deal_id,
        )
        _record_skip(repository, scraped, SkipReason.DUPLICATE_URL)
        return "duplicate_url"

    deal = scraped.to_deal()

    if verdict.is_duplicate and verdict.matched_deal_id:
        if not _is_better_price(scraped, verdict):
            logger.info(
                "deal_import_skipped",
                message_id=scraped.message_id,
                merchant=scraped.merchant,
                reason=SkipReason.DUPLICATE.value,
                similarity_score=verdict.similarity_score,
                matched_deal_id=verdict.matched_deal_id,
                existing_price=verdict.matched_deal_price,
                new_price=scraped.price,
            )
            _record_skip(repository, scraped, SkipReason.DUPLICATE)
            return "duplicate"

        deal_id = repository.replace_deal(verdict.matched_deal_id, deal)
        logger.info(
            "deal_replaced_better_price",
            message_id=scraped.message_id,
            merchant=scraped.merchant,
            deal_id=deal_id,
            replaced_deal_id=verdict.matched_deal_id,
            existing_price=verdict.matched_deal_price,
            new_price=scraped.price,
        )
        _record_import(repository, scraped, deal_id)
        return "replaced"

    deal_id = repository.save_deal(deal)
    logger.info(
        "deal_imported",
        message_id=scraped.message_id,
        merchant=scraped.merchant,
        deal_id=deal_id,
        similarity_score=verdict.similarity_score,
    )
    _record_import(repository, scraped, deal_id)
    return "imported"


def _import_or_skip_conflict(
    repository: DealRepositoryProtocol, checker: DuplicateChecker, scraped: ScrapedDeal
) -> str:
    try:
        return _import_one(repository, checker, scraped)
    except DuplicateDealError as exc:
        # Unique index caught a writer outside this process
        logger.info(
            "deal_import_skipped",
            message_id=scraped.message_id,
            merchant=exc.merchant,
            reason=SkipReason.DUPLICATE_URL.value,
            url=exc.url,
        )
        _record_skip(repository, scraped, SkipReason.DUPLICATE_URL)
        return "duplicate_url"


def import_deals_use_case(
    repository: DealRepositoryProtocol,
    checker: DuplicateChecker,
    scraped: Iterable[ScrapedDeal],
    *,
    locks: MerchantLockRegistry | None = None,
    correlation_id: str | None = None,
) -> ImportResult:
    """Import scraped deals, skipping and replacing duplicates.

    Deals are processed sequentially in input order, so an insert is
    visible to every later check in the same batch. The merchant lock is
    held across check and write.

    Args:
        repository: Deal repository
        checker: Duplicate checker reading from the same repository
        scraped: Parsed Telegram deals
        locks: Shared merchant lock registry (new one when omitted)
        correlation_id: Correlation id for log lines

    Returns:
        ImportResult with per-outcome counts

    Example:
        >>> result = import_deals_use_case(repo, checker, deals)
        >>> result.imported, result.duplicates
        (12, 3)
    """
    locks = locks or MerchantLockRegistry()

    with correlation_scope(correlation_id) as bound_correlation_id:
        started = perf_counter()
        counts = {
            "imported": 0,
            "replaced": 0,
            "duplicate": 0,
            "duplicate_url": 0,
            "already_processed": 0,
            "failed": 0,
        }
        try:
            for deal in scraped:
                if repository.is_message_processed(deal.message_id):
                    logger.debug("deal_already_processed", message_id=deal.message_id)
                    outcome = "already_processed"
                else:
                    try:
                        with locks.hold(deal.merchant):
                            outcome = _import_or_skip_conflict(repository, checker, deal)
                    except RepositoryError as exc:
                        logger.error(
                            "deal_import_failed",
                            message_id=deal.message_id,
                            merchant=deal.merchant,
                            error=str(exc),
                        )
                        outcome = "failed"

                counts[outcome] += 1
                DEAL_IMPORTS_TOTAL.labels(outcome=outcome).inc()
        finally:
            duration = perf_counter() - started
            USE_CASE_DURATION_SECONDS.labels(use_case="import_deals").observe(duration)

        result = ImportResult(
            imported=counts["imported"],
            replaced=counts["replaced"],
            duplicates=counts["duplicate"],
            url_duplicates=counts["duplicate_url"],
            already_processed=counts["already_processed"],
            failed=counts["failed"],
        )
        logger.info(
            "deal_import_finished",
            correlation_id=bound_correlation_id,
            duration_seconds=duration,
            imported=result.imported,
            replaced=result.replaced,
            duplicates=result.duplicates,
            url_duplicates=result.url_duplicates,
            already_processed=result.already_processed,
            failed=result.failed,
        )
        return result
