"""Custom exception hierarchy for the deal deduplication engine.

Following error taxonomy: retryable, non-retryable, validation.
"""


class DealDedupError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(DealDedupError):
    """Errors that can be retried (connection issues, temporary failures)."""

    pass


class NonRetryableError(DealDedupError):
    """Errors that should not be retried (validation, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Data or configuration validation errors."""

    pass


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass


class DuplicateDealError(NonRetryableError):
    """A deal with the same merchant and URL is already stored."""

    def __init__(self, merchant: str, url: str | None) -> None:
        """Initialize with the conflicting merchant/URL pair."""
        self.merchant = merchant
        self.url = url
        super().__init__(f"Deal already stored for merchant={merchant!r} url={url!r}")
