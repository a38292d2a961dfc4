"""Prometheus metrics for duplicate detection, imports and cleanup sweeps.

Metrics are registered on the default ``prometheus_client`` registry at
import time. The HTTP exporter is only started when a script asks for it
(``--metrics-port``); importing this module never opens a socket.
"""

from __future__ import annotations

import threading
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from deal_dedup.config.logging_config import get_logger

logger = get_logger(__name__)

DEDUP_VERDICTS_TOTAL: Final[Counter] = Counter(
    "deal_dedup_verdicts_total",
    "Duplicate checks by outcome",
    labelnames=("outcome",),
)
"""Outcomes: exact_url, similar, unique, empty_window."""

DEDUP_CHECK_DURATION_SECONDS: Final[Histogram] = Histogram(
    "deal_dedup_check_duration_seconds",
    "Duration of a single duplicate check in seconds",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

DEAL_IMPORTS_TOTAL: Final[Counter] = Counter(
    "deal_dedup_imports_total",
    "Imported Telegram deals by outcome",
    labelnames=("outcome",),
)
"""Outcomes: imported, replaced, duplicate, duplicate_url, already_processed, failed."""

CLEANUP_REMOVED_TOTAL: Final[Counter] = Counter(
    "deal_dedup_cleanup_removed_total",
    "Deals removed by the cleanup sweep",
    labelnames=("kind",),
)
"""Kinds: url, similar."""

USE_CASE_DURATION_SECONDS: Final[Histogram] = Histogram(
    "deal_dedup_use_case_duration_seconds",
    "Duration of import and cleanup runs in seconds",
    labelnames=("use_case",),
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_PORT: int | None = None


def ensure_metrics_exporter(port: int) -> None:
    """Start the Prometheus HTTP exporter once per process.

    Args:
        port: TCP port to listen on

    Raises:
        OSError: If the port cannot be bound
    """
    global _EXPORTER_PORT
    with _EXPORTER_LOCK:
        if _EXPORTER_PORT is not None:
            if _EXPORTER_PORT != port:
                logger.warning(
                    "metrics_exporter_already_running",
                    port=_EXPORTER_PORT,
                    requested_port=port,
                )
            return

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error("metrics_exporter_start_failed", port=port, error=str(exc))
            raise

        _EXPORTER_PORT = port
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "CLEANUP_REMOVED_TOTAL",
    "DEAL_IMPORTS_TOTAL",
    "DEDUP_CHECK_DURATION_SECONDS",
    "DEDUP_VERDICTS_TOTAL",
    "USE_CASE_DURATION_SECONDS",
    "ensure_metrics_exporter",
]
