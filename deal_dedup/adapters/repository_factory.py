"""Factory for creating deal repository instances."""

from typing import cast

from deal_dedup.adapters.postgres_repository import PostgresRepository
from deal_dedup.adapters.sqlite_repository import SQLiteRepository
from deal_dedup.config.logging_config import get_logger
from deal_dedup.config.settings import Settings
from deal_dedup.domain.exceptions import ValidationError
from deal_dedup.domain.protocols import DealRepositoryProtocol

logger = get_logger(__name__)


def create_repository(settings: Settings) -> DealRepositoryProtocol:
    """Create appropriate repository based on settings.

    Args:
        settings: Application settings

    Returns:
        Repository instance (SQLite or PostgreSQL)

    Raises:
        ValidationError: If the backend is unsupported or misconfigured
        RepositoryError: On connection errors
    """
    if settings.database_type == "sqlite":
        logger.info("repository_sqlite_selected", path=settings.db_path)
        return cast(DealRepositoryProtocol, SQLiteRepository(db_path=settings.db_path))

    if settings.database_type == "postgres":
        if not settings.postgres_password:
            raise ValidationError(
                "POSTGRES_PASSWORD environment variable must be set when using PostgreSQL"
            )

        logger.info(
            "repository_postgres_selected",
            host=settings.postgres_host,
            port=settings.postgres_port,
            database=settings.postgres_database,
            user=settings.postgres_user,
        )
        return cast(
            DealRepositoryProtocol,
            PostgresRepository(
                host=settings.postgres_host,
                port=settings.postgres_port,
                database=settings.postgres_database,
                user=settings.postgres_user,
                password=settings.postgres_password.get_secret_value(),
                settings=settings,
            ),
        )

    raise ValidationError(
        f"Unsupported database type: {settings.database_type}. "
        f"Must be 'sqlite' or 'postgres'"
    )
