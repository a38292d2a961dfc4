"""Tests for the Alembic schema migration (run against SQLite)."""

from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic import command
from alembic.config import Config

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def alembic_config(tmp_path: Path) -> Config:
    config = Config(str(REPO_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(REPO_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{tmp_path / 'migrated.db'}")
    config.attributes["configure_logger"] = False
    return config


def test_upgrade_creates_schema(alembic_config: Config) -> None:
    command.upgrade(alembic_config, "head")

    engine = sa.create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    try:
        inspector = sa.inspect(engine)
        assert {"deals", "processed_messages"} <= set(inspector.get_table_names())

        indexes = {index["name"]: index for index in inspector.get_indexes("deals")}
        assert indexes["idx_deals_merchant_url"]["unique"]
        assert "idx_deals_merchant_created_at" in indexes

        columns = {column["name"] for column in inspector.get_columns("deals")}
        assert {"id", "title", "price", "merchant", "url", "created_at"} <= columns
    finally:
        engine.dispose()


def test_downgrade_drops_schema(alembic_config: Config) -> None:
    command.upgrade(alembic_config, "head")
    command.downgrade(alembic_config, "base")

    engine = sa.create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    try:
        tables = set(sa.inspect(engine).get_table_names())
        assert "deals" not in tables
        assert "processed_messages" not in tables
    finally:
        engine.dispose()
