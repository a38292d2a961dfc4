"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
"""

from datetime import datetime
from typing import Protocol

from deal_dedup.domain.models import Deal, ProcessedMessage, WindowDeal


class DealWindowSource(Protocol):
    """Read-only storage surface consumed by the duplicate checker."""

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
        ...

    def query_exact_url_match(self, merchant: str, url: str) -> str | None:
        """Point lookup of a stored deal with the same merchant and URL.

        Args:
            merchant: Exact merchant name
            url: Exact product URL

        Returns:
            Matching deal id or None

        Raises:
            RepositoryError: On storage errors
        """
        ...


class DealRepositoryProtocol(DealWindowSource, Protocol):
    """Protocol for deal storage operations."""

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
        ...

    def replace_deal(self, old_deal_id: str, deal: Deal) -> str:
        """Delete ``old_deal_id`` and insert ``deal`` in one transaction.

        Returns:
            Stored id of the replacement

        Raises:
            DuplicateDealError: If the replacement's merchant/url is taken
            RepositoryError: On storage errors
        """
        ...

    def delete_deal(self, deal_id: str) -> None:
        """Delete a deal by id (no-op when missing).

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def get_deal(self, deal_id: str) -> Deal | None:
        """Get a single deal by id."""
        ...

    def list_deals(self, merchant: str | None = None) -> list[Deal]:
        """List deals oldest first, optionally for a single merchant."""
        ...

    def count_deals(self) -> int:
        """Count stored deals."""
        ...

    def is_message_processed(self, message_id: str) -> bool:
        """Check whether a Telegram message was already imported or skipped."""
        ...

    def record_processed_message(self, message: ProcessedMessage) -> None:
        """Record a handled Telegram message (idempotent upsert).

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def close(self) -> None:
        """Release connections held by the repository."""
        ...
