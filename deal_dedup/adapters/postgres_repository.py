"""PostgreSQL repository implementation using psycopg2 with connection pooling.

Schema is owned by the Alembic migrations in ``alembic/versions``.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from time import sleep
from typing import TYPE_CHECKING, Any, Final

import pytz
from psycopg2 import Error as PsycopgError
from psycopg2 import errors as psycopg_errors
from psycopg2 import extensions
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor

from deal_dedup.config.logging_config import get_logger
from deal_dedup.domain.exceptions import DuplicateDealError, RepositoryError
from deal_dedup.domain.models import Deal, ProcessedMessage, WindowDeal

if TYPE_CHECKING:
    from deal_dedup.config.settings import Settings


DEFAULT_POOL_MIN_CONNECTIONS: Final[int] = 2
DEFAULT_POOL_MAX_CONNECTIONS: Final[int] = 10
POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT: Final[int] = 5
POOL_ACQUIRE_BASE_DELAY_SECONDS: Final[float] = 0.1
POOL_ACQUIRE_MAX_DELAY_SECONDS: Final[float] = 2.0

DEALS_MERCHANT_URL_INDEX: Final[str] = "idx_deals_merchant_url"

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC)


class PostgresRepository:
    """PostgreSQL deal repository backed by a connection pool."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        settings: "Settings | None" = None,
    ):
        """Initialize PostgreSQL repository with pooled connections."""
        self._host = host
        self._port = port
        self._database = database
        self._user = user
        self._password = password

        self._statement_timeout_ms = (
            settings.postgres_statement_timeout_ms if settings else 10_000
        )
        self._connect_timeout_seconds = (
            settings.postgres_connect_timeout_seconds if settings else 10
        )
        self._application_name = (
            settings.postgres_application_name if settings else "deal_dedup"
        )
        self._pool_min_connections = (
            settings.postgres_min_connections if settings else DEFAULT_POOL_MIN_CONNECTIONS
        )
        self._pool_max_connections = (
            settings.postgres_max_connections if settings else DEFAULT_POOL_MAX_CONNECTIONS
        )
        self._ssl_mode = settings.postgres_ssl_mode if settings else None

        if self._pool_min_connections <= 0:
            raise RepositoryError("postgres_min_connections must be positive")
        if self._pool_max_connections < self._pool_min_connections:
            raise RepositoryError(
                "postgres_max_connections must be greater than or equal to postgres_min_connections"
            )

        self._pool_in_use_count = 0
        self._pool_lock = Lock()
        self._pool = self._create_pool()

    def _create_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        """Create a PostgreSQL connection pool with validation."""
        conn_kwargs: dict[str, Any] = {
            "host": self._host,
            "port": self._port,
            "database": self._database,
            "user": self._user,
            "password": self._password,
            "connect_timeout": self._connect_timeout_seconds,
            "options": (
                f"-c statement_timeout={self._statement_timeout_ms} "
                f"-c application_name={self._application_name}"
            ),
        }
        if self._ssl_mode:
            conn_kwargs["sslmode"] = self._ssl_mode

        try:
            pool = psycopg2_pool.ThreadedConnectionPool(
                self._pool_min_connections,
                self._pool_max_connections,
                **conn_kwargs,
            )
        except PsycopgError as exc:
            raise RepositoryError(f"Failed to initialize PostgreSQL pool: {exc}") from exc

        try:
            conn = pool.getconn()
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            finally:
                pool.putconn(conn)
        except PsycopgError as exc:
            pool.closeall()
            raise RepositoryError(f"PostgreSQL validation query failed: {exc}") from exc

        logger.info(
            "postgres_pool_initialized",
            host=self._host,
            port=self._port,
            database=self._database,
            min_connections=self._pool_min_connections,
            max_connections=self._pool_max_connections,
        )
        return pool

    def _acquire_connection_with_retry(self) -> extensions.connection:
        """Acquire a connection from the pool with exponential backoff."""
        attempt = 0
        delay = POOL_ACQUIRE_BASE_DELAY_SECONDS
        while True:
            attempt += 1
            try:
                conn = self._pool.getconn()
            except psycopg2_pool.PoolError as exc:
                if attempt >= POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT:
                    logger.error(
                        "postgres_pool_acquire_failed",
                        attempts=attempt,
                        max_connections=self._pool_max_connections,
                        in_use=self._pool_in_use_count,
                    )
                    raise RepositoryError(
                        "Failed to acquire PostgreSQL connection from pool"
                    ) from exc

                logger.warning(
                    "postgres_pool_exhausted_retry",
                    attempt=attempt,
                    wait_seconds=delay,
                    in_use=self._pool_in_use_count,
                )
                sleep(delay)
                delay = min(delay * 2, POOL_ACQUIRE_MAX_DELAY_SECONDS)
                continue

            with self._pool_lock:
                self._pool_in_use_count += 1
            return conn

    def _release_connection(self, conn: extensions.connection, *, close: bool) -> None:
        try:
            self._pool.putconn(conn, close=close)
        except PsycopgError:
            logger.warning("postgres_putconn_failed", database=self._database, exc_info=True)
        finally:
            with self._pool_lock:
                if self._pool_in_use_count > 0:
                    self._pool_in_use_count -= 1

    @contextmanager
    def _get_connection(self) -> Iterator[extensions.connection]:
        """Borrow a connection from the pool and ensure cleanup."""
        conn: extensions.connection | None = None
        try:
            conn = self._acquire_connection_with_retry()
            conn.autocommit = False
            yield conn
        except PsycopgError as exc:
            if conn is not None:
                try:
                    conn.rollback()
                except PsycopgError:
                    logger.warning(
                        "postgres_connection_rollback_failed",
                        database=self._database,
                        exc_info=True,
                    )
                finally:
                    self._release_connection(conn, close=True)
                    conn = None
            raise RepositoryError(f"PostgreSQL connection error: {exc}") from exc
        finally:
            if conn is not None:
                try:
                    status = conn.get_transaction_status()
                    if status in (
                        extensions.TRANSACTION_STATUS_INTRANS,
                        extensions.TRANSACTION_STATUS_INERROR,
                    ):
                        conn.rollback()
                except PsycopgError:
                    logger.warning(
                        "postgres_connection_cleanup_failed",
                        database=self._database,
                        exc_info=True,
                    )
                    self._release_connection(conn, close=True)
                else:
                    self._release_connection(conn, close=False)

    def close(self) -> None:
        """Close all connections in the pool."""
        self._pool.closeall()
        with self._pool_lock:
            self._pool_in_use_count = 0
        logger.info("postgres_pool_closed", database=self._database)

    @staticmethod
    def _row_to_deal(row: dict[str, Any]) -> Deal:
        return Deal(
            id=str(row["id"]),
            title=row["title"],
            price=row["price"],
            original_price=row["original_price"],
            discount_percentage=row["discount_percentage"],
            merchant=row["merchant"],
            url=row["url"],
            description=row["description"],
            image_url=row["image_url"],
            category=row["category"],
            is_expired=row["is_expired"],
            ai_score=row["ai_score"],
            created_at=_as_utc(row["created_at"]),
        )

    @staticmethod
    def _insert_deal(cur: extensions.cursor, deal: Deal) -> None:
        try:
            cur.execute(
                """
                INSERT INTO deals (
                    id, title, price, original_price, discount_percentage,
                    merchant, url, description, image_url, category,
                    is_expired, ai_score, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    deal.id,
                    deal.title,
                    deal.price,
                    deal.original_price,
                    deal.discount_percentage,
                    deal.merchant,
                    deal.url,
                    deal.description,
                    deal.image_url,
                    deal.category,
                    deal.is_expired,
                    deal.ai_score,
                    _as_utc(deal.created_at),
                ),
            )
        except psycopg_errors.UniqueViolation as exc:
            if exc.diag.constraint_name == DEALS_MERCHANT_URL_INDEX:
                raise DuplicateDealError(deal.merchant, deal.url) from exc
            raise

    def query_recent_deals_by_merchant(
        self, merchant: str, since: datetime, limit: int
    ) -> list[WindowDeal]:
        """Get recent deals from one merchant, newest first.

        Raises:
            RepositoryError: On storage errors
        """
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, title, price, url, created_at FROM deals
                    WHERE merchant = %s AND created_at >= %s
                    ORDER BY created_at DESC, id
                    LIMIT %s
                    """,
                    (merchant, _as_utc(since), limit),
                )
                rows = cur.fetchall()

        return [
            WindowDeal(
                id=str(row["id"]),
                title=row["title"],
                price=row["price"],
                url=row["url"],
                created_at=_as_utc(row["created_at"]),
            )
            for row in rows
        ]

    def query_exact_url_match(self, merchant: str, url: str) -> str | None:
        """Point lookup of a stored deal with the same merchant and URL."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id FROM deals WHERE merchant = %s AND url = %s LIMIT 1",
                    (merchant, url),
                )
                row = cur.fetchone()
        return str(row[0]) if row else None

    def save_deal(self, deal: Deal) -> str:
        """Insert a deal.

        Raises:
            DuplicateDealError: If merchant/url is already stored
            RepositoryError: On storage errors
        """
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                self._insert_deal(cur, deal)
            conn.commit()
        return deal.id

    def replace_deal(self, old_deal_id: str, deal: Deal) -> str:
        """Delete one deal and insert its replacement in a single transaction."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM deals WHERE id = %s", (old_deal_id,))
                self._insert_deal(cur, deal)
            conn.commit()
        return deal.id

    def delete_deal(self, deal_id: str) -> None:
        """Delete a deal by id (no-op when missing)."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM deals WHERE id = %s", (deal_id,))
            conn.commit()

    def get_deal(self, deal_id: str) -> Deal | None:
        """Get a single deal by id."""
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SELECT * FROM deals WHERE id = %s", (deal_id,))
                row = cur.fetchone()
        return self._row_to_deal(row) if row else None

    def list_deals(self, merchant: str | None = None) -> list[Deal]:
        """List deals oldest first, optionally for a single merchant."""
        query = "SELECT * FROM deals"
        params: tuple[Any, ...] = ()
        if merchant is not None:
            query += " WHERE merchant = %s"
            params = (merchant,)
        query += " ORDER BY created_at ASC, id"

        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [self._row_to_deal(row) for row in rows]

    def count_deals(self) -> int:
        """Count stored deals."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM deals")
                row = cur.fetchone()
        return int(row[0]) if row else 0

    def is_message_processed(self, message_id: str) -> bool:
        """Check whether a Telegram message was already imported or skipped."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT 1 FROM processed_messages WHERE message_id = %s",
                    (message_id,),
                )
                row = cur.fetchone()
        return row is not None

    def record_processed_message(self, message: ProcessedMessage) -> None:
        """Record a handled Telegram message (idempotent upsert)."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO processed_messages (
                        message_id, channel, deal_id, skipped_reason, posted_at, processed_at
                    ) VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (message_id) DO UPDATE SET
                        deal_id = EXCLUDED.deal_id,
                        skipped_reason = EXCLUDED.skipped_reason,
                        processed_at = EXCLUDED.processed_at
                    """,
                    (
                        message.message_id,
                        message.channel,
                        message.deal_id,
                        message.skipped_reason.value if message.skipped_reason else None,
                        _as_utc(message.posted_at),
                        _as_utc(message.processed_at),
                    ),
                )
            conn.commit()
