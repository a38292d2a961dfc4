"""structlog setup shared by the import, cleanup and check scripts.

Log lines go to stderr: the scripts print verdicts and cleanup reports as
JSON on stdout, and that output must stay parseable.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor

APP_NAME = "deal_dedup"

NOISY_LOGGERS = ("psycopg2", "alembic", "sqlalchemy.engine")


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag entries with the app and the emitting component.

    ``deal_dedup.services.duplicate_checker`` becomes ``duplicate_checker``.
    """
    event_dict["app"] = APP_NAME
    logger_name = event_dict.get("logger")
    if isinstance(logger_name, str) and logger_name.startswith(f"{APP_NAME}."):
        event_dict["component"] = logger_name.rsplit(".", 1)[-1]
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure stdlib logging and structlog.

    Args:
        log_level: Level name; unknown names fall back to INFO
        json_logs: JSON lines for schedulers, colored console output otherwise
        stream: Destination (stderr when omitted)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream is None))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Module logger; call with ``__name__``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to every later log entry in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
