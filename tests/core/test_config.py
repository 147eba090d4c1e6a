# tests/core/test_config.py
"""Tests for configuration schema and loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from chunkwise.core.config import (
    ChunkwiseSettings,
    ConcurrencySettings,
    FaultPolicySettings,
    LedgerSettings,
    WorkUnitSettings,
    load_settings,
    resolve_config,
)


class TestSettingsModels:
    def test_defaults(self) -> None:
        settings = ChunkwiseSettings()

        assert settings.ledger.backend == "sqlite"
        assert settings.ledger.url == "sqlite:///./state/ledger.db"
        assert settings.ledger.retention_days == 30
        assert settings.concurrency.max_workers == 4
        assert settings.concurrency.queue_capacity == 0
        assert settings.logging.level == "INFO"
        assert settings.work_units == {}

    def test_settings_are_frozen(self) -> None:
        settings = LedgerSettings()

        with pytest.raises(ValidationError):
            settings.url = "sqlite:///other.db"  # type: ignore[misc]

    def test_max_workers_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ConcurrencySettings(max_workers=0)

    def test_queue_capacity_must_be_non_negative(self) -> None:
        with pytest.raises(ValidationError):
            ConcurrencySettings(queue_capacity=-1)

    def test_chunk_size_required_and_positive(self) -> None:
        with pytest.raises(ValidationError):
            WorkUnitSettings()  # type: ignore[call-arg]
        with pytest.raises(ValidationError):
            WorkUnitSettings(chunk_size=0)

    def test_key_range_validated(self) -> None:
        assert WorkUnitSettings(chunk_size=1, key_range=(5, 10)).key_range == (5, 10)
        with pytest.raises(ValidationError, match="key_range"):
            WorkUnitSettings(chunk_size=1, key_range=(10, 5))

    def test_unknown_verdict_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FaultPolicySettings(classification={"transient": "ignore"})  # type: ignore[dict-item]

    def test_blank_category_rejected(self) -> None:
        with pytest.raises(ValidationError, match="non-empty"):
            FaultPolicySettings(classification={" ": "skip"})

    def test_exponential_max_below_initial_rejected(self) -> None:
        with pytest.raises(ValidationError, match="max_delay_seconds"):
            FaultPolicySettings(backoff="exponential", initial_delay_seconds=10, max_delay_seconds=1)

    def test_fixed_backoff_ignores_max_delay(self) -> None:
        settings = FaultPolicySettings(backoff="fixed", initial_delay_seconds=10, max_delay_seconds=1)

        assert settings.initial_delay_seconds == 10

    def test_invalid_work_unit_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="invalid work unit name"):
            ChunkwiseSettings(work_units={"bad name": WorkUnitSettings(chunk_size=1)})

    def test_work_unit_lookup_lists_known_names(self) -> None:
        settings = ChunkwiseSettings(work_units={"daily": WorkUnitSettings(chunk_size=1)})

        assert settings.work_unit("daily").chunk_size == 1
        with pytest.raises(KeyError, match="known: daily"):
            settings.work_unit("weekly")


class TestLoadSettings:
    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
ledger:
  url: "sqlite:///./ledger.db"
concurrency:
  max_workers: 2
  queue_capacity: 8
work_units:
  daily_load:
    chunk_size: 100
    partition_count: 4
    fault_policy:
      retry_limit: 2
      skip_limit: 10
      backoff: exponential
      initial_delay_seconds: 0.5
      max_delay_seconds: 30
      classification:
        quota: fatal
      exception_categories:
        KeyError: validation
""")

        settings = load_settings(config_file)

        assert settings.ledger.url == "sqlite:///./ledger.db"
        assert settings.concurrency.max_workers == 2
        assert settings.concurrency.queue_capacity == 8
        unit = settings.work_unit("daily_load")
        assert unit.chunk_size == 100
        assert unit.partition_count == 4
        assert unit.fault_policy.retry_limit == 2
        assert unit.fault_policy.backoff == "exponential"
        assert unit.fault_policy.classification == {"quota": "fatal"}

    def test_load_with_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
ledger:
  url: "sqlite:///./from-file.db"
""")
        # Environment variable should override YAML
        monkeypatch.setenv("CHUNKWISE_LEDGER__URL", "sqlite:///./from-env.db")

        settings = load_settings(config_file)

        assert settings.ledger.url == "sqlite:///./from-env.db"

    def test_env_var_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEDGER_DIR", "/var/lib/chunkwise")
        monkeypatch.delenv("MISSING_VAR", raising=False)
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
ledger:
  url: "sqlite:///${LEDGER_DIR}/ledger.db"
logging:
  level: "${MISSING_VAR:-DEBUG}"
""")

        settings = load_settings(config_file)

        assert settings.ledger.url == "sqlite:////var/lib/chunkwise/ledger.db"
        assert settings.logging.level == "DEBUG"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_settings(tmp_path / "nope.yaml")

    def test_load_validates_schema(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
concurrency:
  max_workers: -1
""")
        with pytest.raises(ValidationError):
            load_settings(config_file)


class TestResolveConfig:
    def test_includes_defaults_and_is_json_safe(self) -> None:
        settings = ChunkwiseSettings(work_units={"daily": WorkUnitSettings(chunk_size=5, key_range=(0, 10))})

        resolved = resolve_config(settings)

        assert resolved["concurrency"]["max_workers"] == 4
        assert resolved["work_units"]["daily"]["chunk_size"] == 5
        assert resolved["work_units"]["daily"]["key_range"] == [0, 10]
        assert resolved["work_units"]["daily"]["fault_policy"]["skip_after_retry"] == ["transient"]
