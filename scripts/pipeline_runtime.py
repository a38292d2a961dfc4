"""Common runtime helpers for the import and cleanup scripts."""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable
from dataclasses import dataclass
from types import FrameType
from typing import Protocol

from deal_dedup.config.logging_config import get_logger, setup_logging
from deal_dedup.config.settings import Settings
from deal_dedup.domain.exceptions import RetryableError
from deal_dedup.observability.metrics import ensure_metrics_exporter

logger = get_logger(__name__)


class ShutdownSignal(Protocol):
    def is_set(self) -> bool: ...

    def wait(self, timeout: float) -> bool: ...


@dataclass
class _ShutdownController:
    """Shutdown flag shared by signal handlers and the scheduler loop."""

    _event: threading.Event

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)

    def request(self, signum: int, frame: FrameType | None) -> None:
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        self._event.set()


def create_shutdown_controller() -> _ShutdownController:
    return _ShutdownController(threading.Event())


def install_signal_handlers(controller: _ShutdownController) -> None:
    """Register SIGTERM/SIGINT handlers for graceful shutdown."""

    def _handler(signum: int, frame: FrameType | None) -> None:
        controller.request(signum, frame)

    signal.signal(signal.SIGTERM, _handler)
    signal.signal(signal.SIGINT, _handler)


def initialize_logging(settings: Settings, *, json_logs: bool = False) -> None:
    """Initialize structlog-based logging for scripts."""

    setup_logging(log_level=settings.log_level, json_logs=json_logs)
    logger.info("logging_initialized", level=settings.log_level, json_logs=json_logs)


def start_metrics_exporter(port: int | None) -> None:
    """Expose Prometheus metrics when a port was requested."""
    if port is None:
        return
    ensure_metrics_exporter(port)


def run_scheduler_loop(
    *,
    controller: ShutdownSignal,
    interval_seconds: float,
    run_once: bool,
    action: Callable[[], object],
) -> int:
    """Execute ``action`` at a fixed interval until shutdown is requested.

    Retryable failures (storage outages) are logged and the next iteration
    runs on schedule; any other error stops the loop.

    Returns:
        Number of iterations executed
    """

    interval_seconds = max(0.1, interval_seconds)
    logger.info("scheduler_loop_started", interval=interval_seconds, run_once=run_once)
    iteration = 0
    while not controller.is_set():
        iteration += 1
        try:
            action()
        except RetryableError:
            logger.exception("scheduler_iteration_failed", iteration=iteration)
            if run_once:
                raise
        if run_once:
            break
        controller.wait(interval_seconds)

    logger.info("scheduler_loop_stopped", iterations=iteration)
    return iteration


__all__ = [
    "ShutdownSignal",
    "create_shutdown_controller",
    "initialize_logging",
    "install_signal_handlers",
    "run_scheduler_loop",
    "start_metrics_exporter",
]
