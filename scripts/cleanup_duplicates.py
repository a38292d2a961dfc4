"""Remove duplicate deals already in storage, keeping the oldest of each group."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import pipeline_runtime
from deal_dedup.adapters.repository_factory import create_repository
from deal_dedup.config.logging_config import get_logger
from deal_dedup.config.settings import load_settings
from deal_dedup.domain.exceptions import RepositoryError
from deal_dedup.use_cases.cleanup_duplicates import cleanup_duplicates_use_case

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove duplicate deals")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report duplicates without deleting them",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="Similarity threshold (default: deduplication.threshold)",
    )
    parser.add_argument(
        "--config-dir",
        default=None,
        help="Directory with main.yaml (default: config)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    args = parser.parse_args(argv)
    if args.threshold is not None and not 0 <= args.threshold <= 100:
        parser.error("--threshold must be between 0 and 100")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = load_settings(args.config_dir)
    pipeline_runtime.initialize_logging(settings, json_logs=args.json_logs)

    repository = create_repository(settings)
    try:
        result = cleanup_duplicates_use_case(
            repository,
            threshold=args.threshold if args.threshold is not None else settings.dedup_threshold,
            price_gap_limit=settings.dedup_cleanup_price_gap_percent,
            dry_run=args.dry_run,
        )
    except RepositoryError as exc:
        logger.error("cleanup_failed", error=str(exc))
        return 1
    finally:
        repository.close()

    print(result.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
