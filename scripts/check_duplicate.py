"""Evaluate one deal candidate against stored deals and print the verdict."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError as PydanticValidationError

from scripts import pipeline_runtime
from deal_dedup.adapters.repository_factory import create_repository
from deal_dedup.config.logging_config import get_logger
from deal_dedup.config.settings import load_settings
from deal_dedup.domain.exceptions import RepositoryError
from deal_dedup.domain.models import DealCandidate
from deal_dedup.services.duplicate_checker import create_duplicate_checker

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check a deal candidate for duplicates")
    parser.add_argument("--title", required=True, help="Deal title")
    parser.add_argument("--merchant", required=True, help="Merchant name, e.g. Amazon")
    parser.add_argument("--price", type=int, default=None, help="Price in whole rupees")
    parser.add_argument("--url", default=None, help="Product URL")
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
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = load_settings(args.config_dir)
    pipeline_runtime.initialize_logging(settings, json_logs=args.json_logs)

    try:
        candidate = DealCandidate(
            title=args.title,
            price=args.price,
            merchant=args.merchant,
            url=args.url,
        )
    except PydanticValidationError as exc:
        logger.error("invalid_candidate", errors=exc.errors(include_url=False))
        return 2

    repository = create_repository(settings)
    try:
        checker = create_duplicate_checker(repository, settings)
        verdict = checker.check_for_duplicate(candidate)
    except RepositoryError as exc:
        logger.error("duplicate_check_unavailable", error=str(exc))
        return 1
    finally:
        repository.close()

    print(verdict.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
