"""Tests for the import deals use case."""

from pytest_mock import MockerFixture

from deal_dedup.domain.exceptions import RepositoryError
from deal_dedup.domain.models import ImportResult, ProcessedMessage, SkipReason
from deal_dedup.domain.protocols import DealRepositoryProtocol
from deal_dedup.services.duplicate_checker import DuplicateChecker
from deal_dedup.services.merchant_locks import MerchantLockRegistry
from deal_dedup.use_cases.import_deals import import_deals_use_case
from tests.conftest import (
    HAVELLS_STORED_TITLE,
    SONY_TITLE,
    FailingWindowSource,
    StubWindowSource,
    create_scraped_deal,
    create_test_deal,
)


def test_unique_deal_is_inserted(repo: DealRepositoryProtocol) -> None:
    checker = DuplicateChecker(repo)

    result = import_deals_use_case(repo, checker, [create_scraped_deal()])

    assert result.imported == 1
    assert result.total == 1
    assert repo.count_deals() == 1
    assert repo.is_message_processed("dealschannel/1") is True
    stored = repo.list_deals()[0]
    assert stored.price == 1799
    assert stored.url == "https://amzn.to/havells1"


def test_already_processed_message_is_skipped(repo: DealRepositoryProtocol) -> None:
    checker = DuplicateChecker(repo)
    deals = [create_scraped_deal()]

    import_deals_use_case(repo, checker, deals)
    result = import_deals_use_case(repo, checker, deals)

    assert result == ImportResult(already_processed=1)
    assert repo.count_deals() == 1


def test_exact_url_duplicate_is_skipped(repo: DealRepositoryProtocol) -> None:
    repo.save_deal(create_test_deal(id="stored", url="https://amzn.to/havells1"))
    checker = DuplicateChecker(repo)

    result = import_deals_use_case(repo, checker, [create_scraped_deal(price=100)])

    assert result.url_duplicates == 1
    assert repo.count_deals() == 1
    assert repo.get_deal("stored") is not None
    assert repo.is_message_processed("dealschannel/1") is True


def test_similar_deal_with_higher_price_is_skipped(repo: DealRepositoryProtocol) -> None:
    repo.save_deal(create_test_deal(id="stored", price=1750))
    checker = DuplicateChecker(repo, threshold=60)

    result = import_deals_use_case(repo, checker, [create_scraped_deal(price=1799)])

    assert result.duplicates == 1
    assert [deal.id for deal in repo.list_deals()] == ["stored"]
    assert repo.is_message_processed("dealschannel/1") is True


def test_similar_deal_with_lower_price_replaces(repo: DealRepositoryProtocol) -> None:
    repo.save_deal(create_test_deal(id="stored", price=1850))
    checker = DuplicateChecker(repo, threshold=60)

    result = import_deals_use_case(repo, checker, [create_scraped_deal(price=1799)])

    assert result.replaced == 1
    assert repo.get_deal("stored") is None
    deals = repo.list_deals()
    assert len(deals) == 1
    assert deals[0].price == 1799


def test_similar_deal_with_unknown_stored_price_replaces(repo: DealRepositoryProtocol) -> None:
    repo.save_deal(create_test_deal(id="stored", price=None))
    checker = DuplicateChecker(repo)

    result = import_deals_use_case(
        repo, checker, [create_scraped_deal(title=HAVELLS_STORED_TITLE, price=1799)]
    )

    assert result.replaced == 1
    assert repo.get_deal("stored") is None


def test_placeholder_price_never_replaces(repo: DealRepositoryProtocol) -> None:
    """A link-only post does not overwrite a deal with a known price."""
    repo.save_deal(create_test_deal(id="stored", price=1850))
    checker = DuplicateChecker(repo)
    placeholder = create_scraped_deal(
        title=HAVELLS_STORED_TITLE, price=1, price_is_placeholder=True
    )

    result = import_deals_use_case(repo, checker, [placeholder])

    assert result.duplicates == 1
    assert repo.get_deal("stored") is not None
    assert repo.count_deals() == 1


def test_storage_failure_counts_as_failed(repo: DealRepositoryProtocol) -> None:
    checker = DuplicateChecker(FailingWindowSource())

    result = import_deals_use_case(repo, checker, [create_scraped_deal(url=None)])

    assert result.failed == 1
    assert repo.count_deals() == 0
    assert repo.is_message_processed("dealschannel/1") is False


def test_unique_index_conflict_counts_as_url_duplicate(repo: DealRepositoryProtocol) -> None:
    """The index catches a write the checker could not see."""
    repo.save_deal(create_test_deal(id="stored", url="https://amzn.to/havells1"))
    stale_checker = DuplicateChecker(StubWindowSource())

    result = import_deals_use_case(repo, stale_checker, [create_scraped_deal()])

    assert result.url_duplicates == 1
    assert repo.count_deals() == 1
    assert repo.is_message_processed("dealschannel/1") is True


def test_failed_conflict_bookkeeping_does_not_abort_batch(
    repo: DealRepositoryProtocol, mocker: MockerFixture
) -> None:
    repo.save_deal(create_test_deal(id="stored", url="https://amzn.to/havells1"))
    stale_checker = DuplicateChecker(StubWindowSource())
    record = repo.record_processed_message

    def _fail_conflict_skips(message: ProcessedMessage) -> None:
        if message.skipped_reason is SkipReason.DUPLICATE_URL:
            raise RepositoryError("disk I/O error")
        record(message)

    mocker.patch.object(repo, "record_processed_message", side_effect=_fail_conflict_skips)
    batch = [
        create_scraped_deal(),
        create_scraped_deal(
            message_id="dealschannel/2", title=SONY_TITLE, price=24990, url="https://amzn.to/sony1"
        ),
    ]

    result = import_deals_use_case(repo, stale_checker, batch)

    assert result.failed == 1
    assert result.imported == 1
    assert result.url_duplicates == 0
    assert repo.count_deals() == 2
    assert repo.is_message_processed("dealschannel/1") is False
    assert repo.is_message_processed("dealschannel/2") is True


def test_batch_inserts_are_visible_to_later_checks(repo: DealRepositoryProtocol) -> None:
    checker = DuplicateChecker(repo)
    batch = [
        create_scraped_deal(message_id="dealschannel/1", title=SONY_TITLE, price=24990, url=None),
        create_scraped_deal(message_id="dealschannel/2", title=SONY_TITLE, price=24990, url=None),
    ]

    result = import_deals_use_case(repo, checker, batch, locks=MerchantLockRegistry())

    assert result.imported == 1
    assert result.duplicates == 1
    assert repo.count_deals() == 1
