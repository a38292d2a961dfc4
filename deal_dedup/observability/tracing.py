"""Correlation identifiers shared by every log line of one import or sweep."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

import structlog

from deal_dedup.config.logging_config import bind_context, unbind_context

CORRELATION_ID_KEY = "correlation_id"


def current_correlation_id() -> str | None:
    """Return the correlation id bound in this context, if any."""
    value = structlog.contextvars.get_contextvars().get(CORRELATION_ID_KEY)
    return str(value) if value is not None else None


@contextmanager
def correlation_scope(existing_id: str | None = None) -> Iterator[str]:
    """Bind a correlation id for the lifetime of the context.

    Nested scopes reuse the outer id unless one is passed explicitly, so
    a use case called from a scheduled script logs under the run's id.
    The previous binding is restored on exit.

    Args:
        existing_id: Id to bind; defaults to the outer id or a new UUID4

    Yields:
        The bound correlation id
    """
    outer_id = current_correlation_id()
    correlation_id = existing_id or outer_id or str(uuid4())
    bind_context(**{CORRELATION_ID_KEY: correlation_id})
    try:
        yield correlation_id
    finally:
        if outer_id is None:
            unbind_context(CORRELATION_ID_KEY)
        else:
            bind_context(**{CORRELATION_ID_KEY: outer_id})


__all__ = ["CORRELATION_ID_KEY", "correlation_scope", "current_correlation_id"]
