"""Import Telegram deal posts exported as JSON, one file per channel.

File format::

    {
      "channel": "dealschannel",
      "messages": [
        {"id": 100311, "text": "...", "posted_at": "2026-10-19T08:30:00+00:00",
         "link_preview_title": "...", "link_preview_description": "...",
         "image_url": "..."}
      ]
    }
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import pipeline_runtime
from deal_dedup.adapters.repository_factory import create_repository
from deal_dedup.config.logging_config import get_logger
from deal_dedup.config.settings import Settings, load_settings
from deal_dedup.domain.exceptions import ValidationError
from deal_dedup.domain.models import ImportResult, ScrapedDeal
from deal_dedup.domain.protocols import DealRepositoryProtocol
from deal_dedup.services.deal_parser import parse_deal_message
from deal_dedup.services.duplicate_checker import DuplicateChecker, create_duplicate_checker
from deal_dedup.services.merchant_locks import MerchantLockRegistry
from deal_dedup.services.rate_limiter import TokenBucket
from deal_dedup.use_cases.import_deals import import_deals_use_case

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import Telegram deals with duplicate detection")
    parser.add_argument("files", nargs="+", type=Path, help="Channel export JSON files")
    parser.add_argument(
        "--interval-seconds",
        type=float,
        default=None,
        help="Re-import every N seconds until interrupted (default: run once)",
    )
    parser.add_argument(
        "--config-dir",
        default=None,
        help="Directory with main.yaml (default: config)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    args = parser.parse_args(argv)
    if args.interval_seconds is not None and args.interval_seconds <= 0:
        parser.error("--interval-seconds must be greater than 0")
    return args


def load_channel_export(path: Path) -> tuple[str, list[dict[str, Any]]]:
    """Read one channel export.

    Raises:
        ValidationError: If the file is not a valid export
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Cannot read channel export {path}: {exc}") from exc

    channel = payload.get("channel") if isinstance(payload, dict) else None
    messages = payload.get("messages") if isinstance(payload, dict) else None
    if not isinstance(channel, str) or not isinstance(messages, list):
        raise ValidationError(f"{path}: expected 'channel' string and 'messages' list")
    return channel, messages


def parse_channel_messages(
    channel: str, messages: list[dict[str, Any]], settings: Settings
) -> list[ScrapedDeal]:
    """Parse exported posts of one channel, oldest first."""
    deals: list[ScrapedDeal] = []
    for message in sorted(messages, key=lambda item: str(item.get("posted_at", ""))):
        text = message.get("text") or ""
        if "id" not in message or "posted_at" not in message or not text:
            logger.warning("telegram_message_malformed", channel=channel, message=str(message)[:80])
            continue
        try:
            posted_at = datetime.fromisoformat(message["posted_at"])
        except (TypeError, ValueError):
            logger.warning(
                "telegram_message_bad_timestamp",
                channel=channel,
                message_id=message["id"],
                posted_at=message["posted_at"],
            )
            continue

        deal = parse_deal_message(
            text,
            message_id=f"{channel}/{message['id']}",
            channel=channel,
            posted_at=posted_at,
            link_preview_title=message.get("link_preview_title"),
            link_preview_description=message.get("link_preview_description"),
            image_url=message.get("image_url"),
            max_urls=settings.parser_max_urls_per_deal,
            min_title_length=settings.parser_min_title_length,
        )
        if deal is not None:
            deals.append(deal)
    return deals


def import_files(
    files: list[Path],
    *,
    repository: DealRepositoryProtocol,
    checker: DuplicateChecker,
    locks: MerchantLockRegistry,
    bucket: TokenBucket,
    settings: Settings,
) -> ImportResult:
    """Import every channel export, rate-limited between channels."""
    totals = ImportResult()
    correlation_id = str(uuid4())
    for path in files:
        channel, messages = load_channel_export(path)
        bucket.acquire()

        deals = parse_channel_messages(channel, messages, settings)
        logger.info(
            "channel_parsed",
            channel=channel,
            messages=len(messages),
            deals=len(deals),
        )
        result = import_deals_use_case(
            repository,
            checker,
            deals,
            locks=locks,
            correlation_id=correlation_id,
        )
        totals = ImportResult(
            imported=totals.imported + result.imported,
            replaced=totals.replaced + result.replaced,
            duplicates=totals.duplicates + result.duplicates,
            url_duplicates=totals.url_duplicates + result.url_duplicates,
            already_processed=totals.already_processed + result.already_processed,
            failed=totals.failed + result.failed,
        )
    return totals


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = load_settings(args.config_dir)
    pipeline_runtime.initialize_logging(settings, json_logs=args.json_logs)
    pipeline_runtime.start_metrics_exporter(args.metrics_port)

    controller = pipeline_runtime.create_shutdown_controller()
    pipeline_runtime.install_signal_handlers(controller)

    repository = create_repository(settings)
    checker = create_duplicate_checker(repository, settings)
    locks = MerchantLockRegistry()
    bucket = TokenBucket(
        settings.importer_channel_delay_seconds,
        burst=settings.importer_burst,
    )

    def _import() -> None:
        totals = import_files(
            args.files,
            repository=repository,
            checker=checker,
            locks=locks,
            bucket=bucket,
            settings=settings,
        )
        logger.info("import_run_finished", **totals.model_dump(), total=totals.total)

    try:
        pipeline_runtime.run_scheduler_loop(
            controller=controller,
            interval_seconds=args.interval_seconds or 0.0,
            run_once=args.interval_seconds is None,
            action=_import,
        )
    except ValidationError as exc:
        logger.error("import_input_invalid", error=str(exc))
        return 2
    finally:
        repository.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
