"""Application settings with Pydantic Settings validation.

Secrets (database password) are loaded from .env file.
Non-sensitive configuration is loaded from config/*.yaml files.
All configs are automatically merged and validated against JSON schemas.
"""

import json
from pathlib import Path
from typing import Any, Final, Literal

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deal_dedup.config.logging_config import get_logger
from deal_dedup.domain.deduplication_constants import (
    CLEANUP_PRICE_GAP_PERCENT,
    DEFAULT_DUPLICATE_THRESHOLD,
    DEFAULT_WINDOW_DAYS,
    DEFAULT_WINDOW_LIMIT,
)
from deal_dedup.domain.models import DedupPolicy
from deal_dedup.domain.parsing_constants import (
    DEFAULT_MAX_URLS_PER_DEAL,
    DEFAULT_MIN_TITLE_LENGTH,
)

DEFAULT_CONFIG_DIR: Final[Path] = Path("config")

POSTGRES_MIN_CONNECTIONS_DEFAULT: Final[int] = 1
POSTGRES_MAX_CONNECTIONS_DEFAULT: Final[int] = 10
POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT: Final[int] = 10_000
POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT: Final[int] = 10
POSTGRES_APPLICATION_NAME_DEFAULT: Final[str] = "deal_dedup"

IMPORTER_CHANNEL_DELAY_SECONDS_DEFAULT: Final[float] = 5.0

logger = get_logger(__name__)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load JSON Schema from <config_dir>/schemas/.

    Args:
        schema_name: Schema name without extension (e.g., "main")
        config_dir: Configuration directory

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = config_dir / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any],
    schema_name: str,
    file_path: str = "",
    config_dir: Path = DEFAULT_CONFIG_DIR,
) -> None:
    """Validate config section against JSON Schema.

    Args:
        config: Configuration dictionary to validate
        schema_name: Name of schema to validate against
        file_path: Optional file path for error messages
        config_dir: Configuration directory holding schemas/

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, config_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs(config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    Loading order (later overrides earlier):
    1. main.yaml
    2. All other *.yaml files (sorted alphabetically)

    Each config is validated against its JSON Schema if available.

    Returns:
        Merged configuration dictionary
    """
    merged_config: dict[str, Any] = {}

    main_path = config_dir / "main.yaml"
    if main_path.exists():
        try:
            with open(main_path, encoding="utf-8") as f:
                main_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(main_path),
                error=str(e),
            )
        else:
            validate_config_section(main_config, "main", str(main_path), config_dir)
            merged_config = main_config
            logger.debug("config_file_loaded", path=str(main_path), schema="main")

    yaml_files: list[Path] = []
    if config_dir.is_dir():
        yaml_files = sorted(f for f in config_dir.glob("*.yaml") if f.name != "main.yaml")

    for yaml_file in yaml_files:
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(yaml_file),
                error=str(e),
            )
            continue

        schema_name = yaml_file.stem
        try:
            validate_config_section(file_config, schema_name, str(yaml_file), config_dir)
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    file_count = (1 if main_path.exists() else 0) + len(yaml_files)
    logger.info("config_load_complete", file_count=file_count, config_dir=str(config_dir))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Secrets are loaded from .env file.
    Non-sensitive config is loaded from config/*.yaml with fallback to defaults.
    Environment variables take precedence over YAML values.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    postgres_password: SecretStr | None = Field(
        default=None, description="PostgreSQL password (from .env, optional)"
    )

    def __init__(self, config_dir: str | Path | None = None, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs(Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR)

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        database_config = config.get("database") or {}
        _assign("database_type", database_config.get("type"))
        _assign("db_path", database_config.get("path"))

        postgres_config = database_config.get("postgres") or {}
        _assign("postgres_host", postgres_config.get("host"))
        _assign("postgres_port", postgres_config.get("port"))
        _assign("postgres_database", postgres_config.get("database"))
        _assign("postgres_user", postgres_config.get("user"))
        _assign("postgres_min_connections", postgres_config.get("min_connections"))
        _assign("postgres_max_connections", postgres_config.get("max_connections"))
        _assign("postgres_ssl_mode", postgres_config.get("ssl_mode"))

        dedupe_config = config.get("deduplication") or {}
        _assign("dedup_threshold", dedupe_config.get("threshold"))
        _assign("dedup_window_days", dedupe_config.get("window_days"))
        _assign("dedup_window_limit", dedupe_config.get("window_limit"))
        _assign(
            "dedup_cleanup_price_gap_percent",
            dedupe_config.get("cleanup_price_gap_percent"),
        )
        overrides = dedupe_config.get("merchant_overrides")
        if isinstance(overrides, dict):
            _assign("dedup_merchant_overrides", self._parse_overrides(overrides))

        parser_config = config.get("parser") or {}
        _assign("parser_max_urls_per_deal", parser_config.get("max_urls_per_deal"))
        _assign("parser_min_title_length", parser_config.get("min_title_length"))

        importer_config = config.get("importer") or {}
        _assign(
            "importer_channel_delay_seconds",
            importer_config.get("channel_delay_seconds"),
        )
        _assign("importer_burst", importer_config.get("burst"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))

    @staticmethod
    def _parse_overrides(raw: dict[str, Any]) -> dict[str, dict[str, int]]:
        parsed: dict[str, dict[str, int]] = {}
        for merchant, values in raw.items():
            if not isinstance(values, dict):
                logger.warning("dedup_override_ignored", merchant=merchant)
                continue
            parsed[str(merchant)] = {
                key: int(value)
                for key, value in values.items()
                if key in {"threshold", "window_days", "window_limit"}
            }
            DedupPolicy(**parsed[str(merchant)])
        return parsed

    # Database configuration
    database_type: Literal["sqlite", "postgres"] = Field(
        default="sqlite", description="Database type: sqlite or postgres"
    )
    db_path: str = Field(default="data/deals.db", description="SQLite database path")
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_database: str = Field(default="deals", description="PostgreSQL database name")
    postgres_user: str = Field(default="postgres", description="PostgreSQL user")
    postgres_min_connections: int = Field(
        default=POSTGRES_MIN_CONNECTIONS_DEFAULT,
        description="Minimum number of connections in PostgreSQL pool",
    )
    postgres_max_connections: int = Field(
        default=POSTGRES_MAX_CONNECTIONS_DEFAULT,
        description="Maximum number of connections in PostgreSQL pool",
    )
    postgres_statement_timeout_ms: int = Field(
        default=POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT,
        description="PostgreSQL statement timeout in milliseconds",
    )
    postgres_connect_timeout_seconds: int = Field(
        default=POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT,
        description="PostgreSQL connection timeout in seconds",
    )
    postgres_application_name: str = Field(
        default=POSTGRES_APPLICATION_NAME_DEFAULT,
        description="Application name for PostgreSQL connections",
    )
    postgres_ssl_mode: str | None = Field(
        default=None,
        description="Optional SSL mode for PostgreSQL connections (e.g., require)",
    )

    # Deduplication configuration
    dedup_threshold: int = Field(
        default=DEFAULT_DUPLICATE_THRESHOLD,
        ge=0,
        le=100,
        description="Minimum composite score (0-100) to flag a duplicate",
    )
    dedup_window_days: int = Field(
        default=DEFAULT_WINDOW_DAYS,
        ge=1,
        description="Trailing days of stored deals compared against a candidate",
    )
    dedup_window_limit: int = Field(
        default=DEFAULT_WINDOW_LIMIT,
        ge=1,
        description="Maximum stored deals compared against a candidate",
    )
    dedup_merchant_overrides: dict[str, dict[str, int]] = Field(
        default_factory=dict,
        description="Per-merchant threshold/window overrides",
    )
    dedup_cleanup_price_gap_percent: float = Field(
        default=CLEANUP_PRICE_GAP_PERCENT,
        ge=0.0,
        description="Cleanup skips pairs whose price gap exceeds this percent",
    )

    # Telegram post parsing
    parser_max_urls_per_deal: int = Field(
        default=DEFAULT_MAX_URLS_PER_DEAL,
        ge=1,
        description="Posts with more URLs are treated as roundups and skipped",
    )
    parser_min_title_length: int = Field(
        default=DEFAULT_MIN_TITLE_LENGTH,
        ge=1,
        description="Minimum characters for an extracted title",
    )

    # Importer pacing
    importer_channel_delay_seconds: float = Field(
        default=IMPORTER_CHANNEL_DELAY_SECONDS_DEFAULT,
        ge=0.0,
        description="Average delay between channel imports (token refill period)",
    )
    importer_burst: int = Field(
        default=1, ge=1, description="Channel imports allowed back-to-back"
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("dedup_merchant_overrides", mode="before")
    @classmethod
    def validate_overrides(cls, v: Any) -> Any:
        """Validate that every override builds a valid DedupPolicy."""
        if isinstance(v, dict):
            for values in v.values():
                DedupPolicy(**values)
        return v

    @property
    def default_policy(self) -> DedupPolicy:
        return DedupPolicy(
            threshold=self.dedup_threshold,
            window_days=self.dedup_window_days,
            window_limit=self.dedup_window_limit,
        )

    def policy_for(self, merchant: str) -> DedupPolicy:
        """Get the effective deduplication policy for a merchant.

        Merchant names are matched case-insensitively; values missing from an
        override fall back to the global defaults.

        Args:
            merchant: Merchant name

        Returns:
            Effective policy

        Example:
            >>> settings.policy_for("Amazon").threshold
            80
        """
        base = self.default_policy
        wanted = merchant.casefold()
        for name, values in self.dedup_merchant_overrides.items():
            if name.casefold() == wanted:
                return DedupPolicy(**{**base.model_dump(), **values})
        return base


def load_settings(config_dir: str | Path | None = None) -> Settings:
    """Build settings once at process startup and pass them down explicitly."""
    return Settings(config_dir=config_dir)  # type: ignore[call-arg]
