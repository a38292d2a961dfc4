from __future__ import annotations

from structlog.testing import capture_logs

from deal_dedup.config.logging_config import add_app_context
from deal_dedup.domain.models import DealCandidate
from deal_dedup.domain.protocols import DealRepositoryProtocol
from deal_dedup.observability.metrics import (
    DEAL_IMPORTS_TOTAL,
    DEDUP_VERDICTS_TOTAL,
    USE_CASE_DURATION_SECONDS,
)
from deal_dedup.observability.tracing import correlation_scope, current_correlation_id
from deal_dedup.services.duplicate_checker import DuplicateChecker
from deal_dedup.use_cases.cleanup_duplicates import cleanup_duplicates_use_case
from deal_dedup.use_cases.import_deals import import_deals_use_case
from tests.conftest import StubWindowSource, create_scraped_deal, fixed_clock


def test_import_emits_correlation_and_metrics(repo: DealRepositoryProtocol) -> None:
    imported_before = _counter_value(DEAL_IMPORTS_TOTAL, "outcome", "imported")
    runs_before = _histogram_count("import_deals")

    with capture_logs() as logs:
        result = import_deals_use_case(
            repo, DuplicateChecker(repo), [create_scraped_deal()], correlation_id="run-42"
        )

    assert result.imported == 1
    finished = [log for log in logs if log["event"] == "deal_import_finished"]
    assert finished[0]["correlation_id"] == "run-42"
    assert _counter_value(DEAL_IMPORTS_TOTAL, "outcome", "imported") == imported_before + 1
    assert _histogram_count("import_deals") == runs_before + 1


def test_cleanup_logs_summary(repo: DealRepositoryProtocol) -> None:
    with capture_logs() as logs:
        cleanup_duplicates_use_case(repo, dry_run=True)

    event_names = {entry["event"] for entry in logs}
    assert "cleanup_started" in event_names
    assert "cleanup_finished" in event_names


def test_verdict_counter_tracks_outcome() -> None:
    before = _counter_value(DEDUP_VERDICTS_TOTAL, "outcome", "empty_window")

    DuplicateChecker(StubWindowSource(), clock=fixed_clock).check_for_duplicate(
        DealCandidate(title="Sony Headphones WH-1000XM5", price=24990, merchant="Amazon")
    )

    assert _counter_value(DEDUP_VERDICTS_TOTAL, "outcome", "empty_window") == before + 1


def test_correlation_scope_nests_and_restores() -> None:
    assert current_correlation_id() is None

    with correlation_scope("outer") as outer:
        with correlation_scope() as inner:
            assert inner == outer == "outer"
        with correlation_scope("inner") as explicit:
            assert current_correlation_id() == explicit == "inner"
        assert current_correlation_id() == "outer"

    assert current_correlation_id() is None


def test_correlation_scope_generates_id() -> None:
    with correlation_scope() as generated:
        assert generated
        assert current_correlation_id() == generated


def test_app_context_tags_component_from_logger_name() -> None:
    tagged = add_app_context(None, "info", {"logger": "deal_dedup.services.duplicate_checker"})
    foreign = add_app_context(None, "info", {"logger": "alembic.runtime"})

    assert tagged == {
        "logger": "deal_dedup.services.duplicate_checker",
        "app": "deal_dedup",
        "component": "duplicate_checker",
    }
    assert "component" not in foreign
    assert foreign["app"] == "deal_dedup"


def _counter_value(counter, label: str, value: str) -> float:
    for metric in counter.collect():
        for sample in metric.samples:
            if sample.name.endswith("_total") and sample.labels.get(label) == value:
                return sample.value
    return 0.0


def _histogram_count(use_case: str) -> float:
    for metric in USE_CASE_DURATION_SECONDS.collect():
        for sample in metric.samples:
            if sample.name.endswith("_count") and sample.labels["use_case"] == use_case:
                return sample.value
    return 0.0
