"""Domain models for the deal deduplication engine.

All models use Pydantic v2 for validation and serialization.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

import pytz
from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(tz=pytz.UTC)


def calculate_discount_percentage(price: int | None, original_price: int | None) -> int | None:
    """Derive the discount percentage from current and original price.

    Args:
        price: Current price
        original_price: Price before discount (MRP)

    Returns:
        Whole-number discount or None when it cannot be derived

    Example:
        >>> calculate_discount_percentage(750, 1000)
        25
    """
    if price is None or original_price is None or original_price <= price:
        return None
    return int((original_price - price) / original_price * 100 + 0.5)


class DealCandidate(BaseModel):
    """Scraped deal awaiting duplicate evaluation (never persisted)."""

    title: str = Field(..., description="Raw deal title, possibly with emoji")
    price: int | None = Field(
        default=None, ge=0, description="Price in whole rupees (None = unknown)"
    )
    merchant: str = Field(..., description="Merchant name, e.g. Amazon")
    url: str | None = Field(default=None, description="Product URL")

    @field_validator("title", "merchant")
    @classmethod
    def _require_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be empty")
        return stripped

    @field_validator("url")
    @classmethod
    def _blank_url_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class WindowDeal(BaseModel):
    """Stored deal as seen by the candidate window query."""

    id: str
    title: str
    price: int | None = None
    url: str | None = None
    created_at: datetime


class Deal(BaseModel):
    """Persisted deal record."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    price: int | None = Field(default=None, ge=0)
    original_price: int | None = Field(default=None, ge=0)
    discount_percentage: int | None = Field(default=None, ge=0, le=100)
    merchant: str
    url: str | None = None
    description: str | None = None
    image_url: str | None = None
    category: str | None = None
    is_expired: bool = False
    ai_score: int | None = Field(default=None, ge=0, le=100)
    created_at: datetime = Field(default_factory=_utcnow)

    def model_post_init(self, __context: object) -> None:
        if self.discount_percentage is None:
            self.discount_percentage = calculate_discount_percentage(
                self.price, self.original_price
            )

    def to_window_deal(self) -> WindowDeal:
        return WindowDeal(
            id=self.id,
            title=self.title,
            price=self.price,
            url=self.url,
            created_at=self.created_at,
        )


class SimilarityBreakdown(BaseModel):
    """Per-signal similarity for a pair of deals."""

    title_similarity: float = Field(..., ge=0.0, le=1.0)
    feature_similarity: float = Field(..., ge=0.0, le=1.0)
    price_similarity: float = Field(..., ge=0.0, le=1.0)
    score: int = Field(..., ge=0, le=100, description="Weighted composite (0-100)")


class SimilarityVerdict(BaseModel):
    """Duplicate decision for one candidate (computed fresh, never stored)."""

    is_duplicate: bool
    similarity_score: int = Field(..., ge=0, le=100)
    reason: str
    matched_deal_id: str | None = None
    matched_deal_price: int | None = None
    exact_url_match: bool = Field(
        default=False, description="True when decided by the exact-URL fast path"
    )


class ScrapedDeal(BaseModel):
    """Deal parsed from a Telegram channel post."""

    title: str
    price: int = Field(..., ge=0)
    price_is_placeholder: bool = Field(
        default=False, description="True when the post had a link but no price"
    )
    original_price: int | None = None
    merchant: str
    url: str | None = None
    description: str | None = None
    image_url: str | None = None
    category: str | None = None
    message_id: str = Field(..., description="Channel-scoped id, e.g. channel/100311")
    channel: str
    posted_at: datetime

    def to_candidate(self) -> DealCandidate:
        """Candidate for duplicate checks; a placeholder price counts as unknown."""
        return DealCandidate(
            title=self.title,
            price=None if self.price_is_placeholder else self.price,
            merchant=self.merchant,
            url=self.url,
        )

    def to_deal(self) -> Deal:
        return Deal(
            title=self.title,
            price=self.price,
            original_price=self.original_price,
            merchant=self.merchant,
            url=self.url,
            description=self.description,
            image_url=self.image_url,
            category=self.category,
        )


class SkipReason(str, Enum):
    """Why an imported message did not produce a new deal."""

    DUPLICATE_URL = "duplicate_url"
    DUPLICATE = "duplicate"
    CHECK_FAILED = "check_failed"


class ProcessedMessage(BaseModel):
    """Record of a Telegram message the importer has handled."""

    message_id: str
    channel: str
    deal_id: str | None = None
    skipped_reason: SkipReason | None = None
    posted_at: datetime
    processed_at: datetime = Field(default_factory=_utcnow)


class ImportResult(BaseModel):
    """Result of importing one batch of scraped deals."""

    imported: int = 0
    replaced: int = 0
    duplicates: int = 0
    url_duplicates: int = 0
    already_processed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return (
            self.imported
            + self.replaced
            + self.duplicates
            + self.url_duplicates
            + self.already_processed
            + self.failed
        )


class CleanupResult(BaseModel):
    """Result of a duplicate cleanup sweep."""

    deals_checked: int = 0
    url_duplicates_removed: int = 0
    similar_duplicates_removed: int = 0
    removed_deal_ids: list[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def total_removed(self) -> int:
        return self.url_duplicates_removed + self.similar_duplicates_removed


class DedupPolicy(BaseModel):
    """Effective duplicate-detection tunables for one merchant."""

    threshold: int = Field(default=75, ge=0, le=100)
    window_days: int = Field(default=7, ge=1)
    window_limit: int = Field(default=50, ge=1)
