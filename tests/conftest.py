"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import pytz

from deal_dedup.adapters.repository_factory import create_repository
from deal_dedup.config.settings import Settings
from deal_dedup.domain.exceptions import RepositoryError
from deal_dedup.domain.models import Deal, ScrapedDeal, WindowDeal
from deal_dedup.domain.protocols import DealRepositoryProtocol

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=pytz.UTC)

HAVELLS_SCRAPED_TITLE = "🔥🔥Havells MIXWELL 500 W 3 Jar Mixer Grinder"
HAVELLS_STORED_TITLE = "Havells MIXWELL 500W Mixer Grinder - Best Deal!"
SONY_TITLE = "Sony Headphones WH-1000XM5"


@pytest.fixture
def settings(
    tmp_path_factory: pytest.TempPathFactory, request: pytest.FixtureRequest
) -> Settings:
    """Create settings configured for the requested database backend."""

    base_settings = Settings()

    backend = "sqlite"
    if hasattr(request.node, "callspec"):
        backend = request.node.callspec.params.get("repo", backend)

    if request.node.get_closest_marker("postgres"):
        backend = "postgres"

    if backend == "postgres":
        if os.environ.get("TEST_POSTGRES", "0") != "1":
            pytest.skip("PostgreSQL tests disabled (TEST_POSTGRES!=1)")
        if not os.environ.get("POSTGRES_PASSWORD"):
            pytest.skip("POSTGRES_PASSWORD not set for PostgreSQL tests")
        return base_settings.model_copy(update={"database_type": "postgres"})

    temp_dir = tmp_path_factory.mktemp("db")
    db_path = temp_dir / "test.sqlite"
    return base_settings.model_copy(
        update={"database_type": "sqlite", "db_path": str(db_path)}
    )


@pytest.fixture
def repo(settings: Settings) -> Generator[DealRepositoryProtocol, None, None]:
    """Provide an empty repository for the configured backend."""

    repository = create_repository(settings)
    if settings.database_type == "postgres":
        _truncate_postgres(repository)

    try:
        yield repository
    finally:
        repository.close()

        if settings.database_type == "sqlite":
            db_path = Path(settings.db_path)
            if db_path.exists():
                db_path.unlink()


def _truncate_postgres(repository: Any) -> None:
    with repository._get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("TRUNCATE deals, processed_messages")
        conn.commit()


def fixed_clock() -> datetime:
    return FIXED_NOW


def create_test_deal(
    title: str = HAVELLS_STORED_TITLE,
    price: int | None = 1850,
    merchant: str = "Amazon",
    url: str | None = None,
    created_at: datetime | None = None,
    **overrides: Any,
) -> Deal:
    """Build a Deal with sensible defaults."""
    return Deal(
        title=title,
        price=price,
        merchant=merchant,
        url=url,
        created_at=created_at or datetime.now(tz=pytz.UTC),
        **overrides,
    )


def create_scraped_deal(
    message_id: str = "dealschannel/1",
    title: str = HAVELLS_SCRAPED_TITLE,
    price: int = 1799,
    merchant: str = "Amazon",
    url: str | None = "https://amzn.to/havells1",
    **overrides: Any,
) -> ScrapedDeal:
    """Build a ScrapedDeal with sensible defaults."""
    posted_at = overrides.pop("posted_at", FIXED_NOW)
    return ScrapedDeal(
        title=title,
        price=price,
        merchant=merchant,
        url=url,
        message_id=message_id,
        channel=message_id.split("/")[0],
        posted_at=posted_at,
        **overrides,
    )


def window_deals(count: int, *, start: datetime = FIXED_NOW) -> list[WindowDeal]:
    """Window rows newest first, one hour apart, with distinct titles."""
    return [
        WindowDeal(
            id=f"deal-{index}",
            title=f"Generic Product Model {index:03d} Edition",
            price=1000 + index,
            created_at=start - timedelta(hours=index),
        )
        for index in range(count)
    ]


class StubWindowSource:
    """In-memory window source returning canned rows (ignores ``limit``)."""

    def __init__(
        self,
        window: list[WindowDeal] | None = None,
        url_matches: dict[tuple[str, str], str] | None = None,
    ) -> None:
        self.window = window or []
        self.url_matches = url_matches or {}
        self.window_calls: list[tuple[str, datetime, int]] = []

    def query_recent_deals_by_merchant(
        self, merchant: str, since: datetime, limit: int
    ) -> list[WindowDeal]:
        self.window_calls.append((merchant, since, limit))
        return list(self.window)

    def query_exact_url_match(self, merchant: str, url: str) -> str | None:
        return self.url_matches.get((merchant, url))


class FailingWindowSource:
    """Window source whose storage is down."""

    def query_recent_deals_by_merchant(
        self, merchant: str, since: datetime, limit: int
    ) -> list[WindowDeal]:
        raise RepositoryError("connection refused")

    def query_exact_url_match(self, merchant: str, url: str) -> str | None:
        return None


@pytest.fixture
def stub_source() -> StubWindowSource:
    return StubWindowSource()
