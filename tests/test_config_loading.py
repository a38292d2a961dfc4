"""Tests for configuration loading system."""

import json
from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

from deal_dedup.config.settings import (
    Settings,
    deep_merge,
    load_all_configs,
    load_schema,
    load_settings,
    validate_config_section,
)
from deal_dedup.domain.models import DedupPolicy

REPO_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class StubLogger:
    """Capture structured logging calls."""

    def __init__(self) -> None:
        self.debug_calls: list[tuple[str, dict[str, Any]]] = []
        self.info_calls: list[tuple[str, dict[str, Any]]] = []
        self.warning_calls: list[tuple[str, dict[str, Any]]] = []
        self.error_calls: list[tuple[str, dict[str, Any]]] = []

    def debug(self, event: str, **kwargs: Any) -> None:
        self.debug_calls.append((event, kwargs))

    def info(self, event: str, **kwargs: Any) -> None:
        self.info_calls.append((event, kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self.warning_calls.append((event, kwargs))

    def error(self, event: str, **kwargs: Any) -> None:
        self.error_calls.append((event, kwargs))


def _write_yaml(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f)


def _write_schema(config_dir: Path, name: str) -> None:
    schema_dir = config_dir / "schemas"
    schema_dir.mkdir(parents=True, exist_ok=True)
    (schema_dir / f"{name}.schema.json").write_text(
        (REPO_CONFIG_DIR / "schemas" / f"{name}.schema.json").read_text(encoding="utf-8"),
        encoding="utf-8",
    )


def test_deep_merge_simple() -> None:
    """Test deep merge with simple dictionaries."""
    base = {"a": 1, "b": 2}
    override = {"b": 3, "c": 4}
    result = deep_merge(base, override)

    assert result == {"a": 1, "b": 3, "c": 4}


def test_deep_merge_nested() -> None:
    """Test deep merge with nested dictionaries."""
    base = {"deduplication": {"threshold": 75, "window_days": 7}}
    override = {"deduplication": {"window_limit": 30}}
    result = deep_merge(base, override)

    assert result == {"deduplication": {"threshold": 75, "window_days": 7, "window_limit": 30}}


def test_deep_merge_lists_replaced() -> None:
    """Test that lists are replaced, not merged."""
    result = deep_merge({"items": [1, 2, 3]}, {"items": [4, 5]})

    assert result == {"items": [4, 5]}


def test_load_schema_existing(tmp_path: Path) -> None:
    """Test loading existing schema file."""
    schema_content = {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "type": "object",
        "properties": {"test": {"type": "string"}},
    }
    schema_dir = tmp_path / "schemas"
    schema_dir.mkdir()
    (schema_dir / "test.schema.json").write_text(json.dumps(schema_content), encoding="utf-8")

    assert load_schema("test", tmp_path) == schema_content


def test_load_schema_missing(tmp_path: Path) -> None:
    """Test loading non-existent schema returns empty dict."""
    assert load_schema("nonexistent_schema_xyz", tmp_path) == {}


def test_repo_main_config_passes_its_schema() -> None:
    with open(REPO_CONFIG_DIR / "main.yaml", encoding="utf-8") as f:
        main_config = yaml.safe_load(f)

    validate_config_section(main_config, "main", config_dir=REPO_CONFIG_DIR)


def test_validate_config_section_invalid_threshold() -> None:
    """Out-of-range tunables are rejected before Settings is built."""
    config = {"deduplication": {"threshold": 120}}

    with pytest.raises(ValueError, match="Config validation failed for main"):
        validate_config_section(config, "main", "main.yaml", REPO_CONFIG_DIR)


def test_validate_config_section_unknown_override_key() -> None:
    config = {"deduplication": {"merchant_overrides": {"Amazon": {"treshold": 80}}}}

    with pytest.raises(ValueError, match="Config validation failed"):
        validate_config_section(config, "main", config_dir=REPO_CONFIG_DIR)


def test_load_all_configs_no_config_directory(tmp_path: Path) -> None:
    """Missing config directory yields an empty config (env-only scenario)."""
    assert load_all_configs(tmp_path / "missing") == {}


def test_load_all_configs_merge(tmp_path: Path) -> None:
    """Test loading and merging multiple config files."""
    _write_yaml(tmp_path / "main.yaml", {"deduplication": {"threshold": 75, "window_days": 7}})
    _write_yaml(tmp_path / "local.yaml", {"deduplication": {"window_days": 3}})

    config = load_all_configs(tmp_path)

    assert config["deduplication"]["threshold"] == 75  # From main
    assert config["deduplication"]["window_days"] == 3  # From local


def test_load_all_configs_logs_structured_warning(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Config loader should emit structured warnings when files fail to load."""

    logger_stub = StubLogger()
    monkeypatch.setattr("deal_dedup.config.settings.logger", logger_stub)
    (tmp_path / "main.yaml").write_text("invalid: [yaml", encoding="utf-8")

    load_all_configs(tmp_path)

    assert logger_stub.warning_calls
    event, payload = logger_stub.warning_calls[0]
    assert event == "config_file_load_failed"
    assert payload["path"].endswith("main.yaml")
    assert "error" in payload


def test_settings_defaults_without_config(tmp_path: Path) -> None:
    settings = Settings(config_dir=tmp_path)

    assert settings.database_type == "sqlite"
    assert settings.default_policy == DedupPolicy(threshold=75, window_days=7, window_limit=50)
    assert settings.parser_max_urls_per_deal == 2
    assert settings.importer_channel_delay_seconds == 5.0


def test_settings_apply_yaml_values(tmp_path: Path) -> None:
    _write_schema(tmp_path, "main")
    _write_yaml(
        tmp_path / "main.yaml",
        {
            "database": {"type": "sqlite", "path": "custom.db"},
            "deduplication": {
                "threshold": 80,
                "window_days": 3,
                "merchant_overrides": {"Amazon": {"threshold": 85}},
            },
            "logging": {"level": "DEBUG"},
        },
    )

    settings = load_settings(tmp_path)

    assert settings.db_path == "custom.db"
    assert settings.dedup_threshold == 80
    assert settings.log_level == "DEBUG"
    assert settings.policy_for("amazon") == DedupPolicy(
        threshold=85, window_days=3, window_limit=50
    )
    assert settings.policy_for("Flipkart").threshold == 80


def test_environment_wins_over_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "main.yaml", {"deduplication": {"threshold": 80}})
    monkeypatch.setenv("DEDUP_THRESHOLD", "90")

    settings = Settings(config_dir=tmp_path)

    assert settings.dedup_threshold == 90


def test_invalid_override_in_extra_file_rejected(tmp_path: Path) -> None:
    """Overrides outside main.yaml are still checked against the policy bounds."""
    _write_yaml(
        tmp_path / "merchants.yaml",
        {"deduplication": {"merchant_overrides": {"Amazon": {"threshold": 150}}}},
    )

    with pytest.raises(ValidationError):
        Settings(config_dir=tmp_path)


def test_invalid_override_argument_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        Settings(config_dir=tmp_path, dedup_merchant_overrides={"Amazon": {"window_days": 0}})


def test_threshold_out_of_range_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        Settings(config_dir=tmp_path, dedup_threshold=101)
