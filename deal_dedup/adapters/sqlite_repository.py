"""SQLite repository adapter for local storage.

Implements DealRepositoryProtocol with SQLite backend.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Final

import pytz

from deal_dedup.config.logging_config import get_logger
from deal_dedup.domain.exceptions import DuplicateDealError, RepositoryError
from deal_dedup.domain.models import Deal, ProcessedMessage, WindowDeal

logger = get_logger(__name__)

DEAL_COLUMNS: Final[tuple[str, ...]] = (
    "id",
    "title",
    "price",
    "original_price",
    "discount_percentage",
    "merchant",
    "url",
    "description",
    "image_url",
    "category",
    "is_expired",
    "ai_score",
    "created_at",
)


def to_utc_iso(value: datetime) -> str:
    """Serialize a timestamp as sortable UTC ISO-8601 text.

    Naive datetimes are treated as UTC. Microseconds are always written so
    lexicographic order matches chronological order.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC).isoformat(timespec="microseconds")


def from_iso(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=pytz.UTC)
    return parsed


class SQLiteRepository:
    """SQLite-based deal repository (local runs and tests)."""

    def __init__(self, db_path: str) -> None:
        """Initialize repository and ensure schema.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

        # Ensure data directory exists
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection.

        Returns:
            SQLite connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _create_schema(self) -> None:
        """Create database schema if not exists."""
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        conn = self._get_connection()
        try:
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS deals (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    price INTEGER,
                    original_price INTEGER,
                    discount_percentage INTEGER,
                    merchant TEXT NOT NULL,
                    url TEXT,
                    description TEXT,
                    image_url TEXT,
                    category TEXT,
                    is_expired INTEGER NOT NULL DEFAULT 0,
                    ai_score INTEGER,
                    created_at TEXT NOT NULL
                )
                """
            )
            # Window query: merchant equality + created_at range, newest first
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_deals_merchant_created_at
                ON deals(merchant, created_at DESC)
                """
            )
            # Backstop for concurrent check-then-insert (NULL urls never collide)
            cursor.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_deals_merchant_url
                ON deals(merchant, url)
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS processed_messages (
                    message_id TEXT PRIMARY KEY,
                    channel TEXT NOT NULL,
                    deal_id TEXT,
                    skipped_reason TEXT,
                    posted_at TEXT NOT NULL,
                    processed_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_processed_messages_channel
                ON processed_messages(channel, posted_at)
                """
            )

            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to create schema: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _deal_params(deal: Deal) -> tuple[Any, ...]:
        return (
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
            int(deal.is_expired),
            deal.ai_score,
            to_utc_iso(deal.created_at),
        )

    @staticmethod
    def _row_to_deal(row: sqlite3.Row) -> Deal:
        return Deal(
            id=row["id"],
            title=row["title"],
            price=row["price"],
            original_price=row["original_price"],
            discount_percentage=row["discount_percentage"],
            merchant=row["merchant"],
            url=row["url"],
            description=row["description"],
            image_url=row["image_url"],
            category=row["category"],
            is_expired=bool(row["is_expired"]),
            ai_score=row["ai_score"],
            created_at=from_iso(row["created_at"]),
        )

    def _insert_deal(self, cursor: sqlite3.Cursor, deal: Deal) -> None:
        placeholders = ", ".join("?" for _ in DEAL_COLUMNS)
        try:
            cursor.execute(
                f"INSERT INTO deals ({', '.join(DEAL_COLUMNS)}) VALUES ({placeholders})",
                self._deal_params(deal),
            )
        except sqlite3.IntegrityError as e:
            if "deals.url" in str(e) and deal.url is not None:
                raise DuplicateDealError(deal.merchant, deal.url) from e
            raise RepositoryError(f"Failed to save deal {deal.id}: {e}") from e

    def query_recent_deals_by_merchant(
        self, merchant: str, since: datetime, limit: int
    ) -> list[WindowDeal]:
        """Get recent deals from one merchant, newest first.

        Args:
            merchant: Exact merchant name
            since: Only deals created at or after this instant
            limit: Maximum rows to return

        Returns:
            At most ``limit`` window deals

        Raises:
            RepositoryError: On storage errors
        """
        try:
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT id, title, price, url, created_at FROM deals
                    WHERE merchant = ? AND created_at >= ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (merchant, to_utc_iso(since), limit),
                )
                rows = cursor.fetchall()
            finally:
                conn.close()

            return [
                WindowDeal(
                    id=row["id"],
                    title=row["title"],
                    price=row["price"],
                    url=row["url"],
                    created_at=from_iso(row["created_at"]),
                )
                for row in rows
            ]

        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to query recent deals: {e}") from e

    def query_exact_url_match(self, merchant: str, url: str) -> str | None:
        """Point lookup of a stored deal with the same merchant and URL."""
        try:
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT id FROM deals WHERE merchant = ? AND url = ? LIMIT 1",
                    (merchant, url),
                )
                row = cursor.fetchone()
            finally:
                conn.close()

            return row["id"] if row else None

        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to query URL match: {e}") from e

    def save_deal(self, deal: Deal) -> str:
        """Insert a deal.

        Args:
            deal: Deal to persist

        Returns:
            Stored deal id

        Raises:
            DuplicateDealError: If merchant/url is already stored
            RepositoryError: On storage errors
        """
        conn = self._get_connection()
        try:
            self._insert_deal(conn.cursor(), deal)
            conn.commit()
            return deal.id
        except (DuplicateDealError, RepositoryError):
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to save deal: {e}") from e
        finally:
            conn.close()

    def replace_deal(self, old_deal_id: str, deal: Deal) -> str:
        """Delete one deal and insert its replacement in a single transaction.

        Raises:
            DuplicateDealError: If the replacement's merchant/url is taken
            RepositoryError: On storage errors
        """
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM deals WHERE id = ?", (old_deal_id,))
            self._insert_deal(cursor, deal)
            conn.commit()
            return deal.id
        except (DuplicateDealError, RepositoryError):
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to replace deal {old_deal_id}: {e}") from e
        finally:
            conn.close()

    def delete_deal(self, deal_id: str) -> None:
        """Delete a deal by id (no-op when missing)."""
        conn = self._get_connection()
        try:
            conn.execute("DELETE FROM deals WHERE id = ?", (deal_id,))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to delete deal {deal_id}: {e}") from e
        finally:
            conn.close()

    def get_deal(self, deal_id: str) -> Deal | None:
        """Get a single deal by id."""
        try:
            conn = self._get_connection()
            try:
                row = conn.execute("SELECT * FROM deals WHERE id = ?", (deal_id,)).fetchone()
            finally:
                conn.close()
            return self._row_to_deal(row) if row else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get deal {deal_id}: {e}") from e

    def list_deals(self, merchant: str | None = None) -> list[Deal]:
        """List deals oldest first, optionally for a single merchant."""
        query = "SELECT * FROM deals"
        params: tuple[Any, ...] = ()
        if merchant is not None:
            query += " WHERE merchant = ?"
            params = (merchant,)
        query += " ORDER BY created_at ASC, rowid ASC"

        try:
            conn = self._get_connection()
            try:
                rows = conn.execute(query, params).fetchall()
            finally:
                conn.close()
            return [self._row_to_deal(row) for row in rows]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to list deals: {e}") from e

    def count_deals(self) -> int:
        """Count stored deals."""
        try:
            conn = self._get_connection()
            try:
                row = conn.execute("SELECT COUNT(*) AS total FROM deals").fetchone()
            finally:
                conn.close()
            return int(row["total"])
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to count deals: {e}") from e

    def is_message_processed(self, message_id: str) -> bool:
        """Check whether a Telegram message was already imported or skipped."""
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT 1 FROM processed_messages WHERE message_id = ?",
                    (message_id,),
                ).fetchone()
            finally:
                conn.close()
            return row is not None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to check processed message: {e}") from e

    def record_processed_message(self, message: ProcessedMessage) -> None:
        """Record a handled Telegram message (idempotent upsert)."""
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO processed_messages
                    (message_id, channel, deal_id, skipped_reason, posted_at, processed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message.message_id,
                    message.channel,
                    message.deal_id,
                    message.skipped_reason.value if message.skipped_reason else None,
                    to_utc_iso(message.posted_at),
                    to_utc_iso(message.processed_at),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to record processed message: {e}") from e
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are per-operation; nothing to release."""
        return None
