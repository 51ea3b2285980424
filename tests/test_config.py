"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from power_scheduler.config.manager import ConfigManager
from power_scheduler.config.schema import AppConfig

REPO_ROOT = Path(__file__).resolve().parent.parent


class TestAppConfig:
    def test_default_config_is_valid(self) -> None:
        config = AppConfig()
        assert config.scheduler.generation_hour == 20
        assert config.scheduler.generation_minute == 30
        assert config.scheduler.retry_interval_minutes == 30
        assert config.scheduler.check_interval_seconds == 60
        assert config.price_source.indicator == 1001
        assert config.price_source.geo_id == 8741

    def test_custom_values(self) -> None:
        config = AppConfig(
            scheduler={"generation_hour": 21, "timezone": "Atlantic/Canary"},
            api={"port": 9000},
        )
        assert config.scheduler.generation_hour == 21
        assert config.scheduler.timezone == "Atlantic/Canary"
        assert config.api.port == 9000

    def test_generation_hour_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(scheduler={"generation_hour": 24})

    def test_shipped_defaults_match_models(self) -> None:
        mgr = ConfigManager(
            defaults_path=REPO_ROOT / "config.defaults.yaml",
            user_path=REPO_ROOT / "does-not-exist.yaml",
            environ={},
        )
        assert mgr.load() == AppConfig()


class TestConfigManager:
    def test_load_defaults_only(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("scheduler:\n  generation_minute: 45\ndb:\n  path: test.db\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml", environ={})
        config = mgr.load()
        assert config.scheduler.generation_minute == 45
        assert config.db.path == "test.db"

    def test_user_overrides(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("price_source:\n  api_token: ''\n  timeout_seconds: 30\n")
        user_file = tmp_path / "user.yaml"
        user_file.write_text("price_source:\n  api_token: secret\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=user_file, environ={})
        config = mgr.load()
        assert config.price_source.api_token == "secret"
        assert config.price_source.timeout_seconds == 30

    def test_environment_wins_over_yaml(self, tmp_path: Path) -> None:
        user_file = tmp_path / "user.yaml"
        user_file.write_text("price_source:\n  api_token: from-yaml\napi:\n  port: 8000\n")
        mgr = ConfigManager(
            defaults_path=tmp_path / "defaults.yaml",
            user_path=user_file,
            environ={"ESIOS_TOKEN": "from-env", "SERVER_PORT": "9000", "POWER_SCHEDULER_DB": "/data/s.db"},
        )
        config = mgr.load()
        assert config.price_source.api_token == "from-env"
        assert config.api.port == 9000
        assert config.db.path == "/data/s.db"

    def test_empty_environment_value_ignored(self, tmp_path: Path) -> None:
        user_file = tmp_path / "user.yaml"
        user_file.write_text("price_source:\n  api_token: from-yaml\n")
        mgr = ConfigManager(tmp_path / "defaults.yaml", user_file, environ={"ESIOS_TOKEN": ""})
        assert mgr.load().price_source.api_token == "from-yaml"

    def test_invalid_environment_value(self, tmp_path: Path) -> None:
        mgr = ConfigManager(tmp_path / "d.yaml", tmp_path / "u.yaml", environ={"SERVER_PORT": "http"})
        with pytest.raises(ValidationError):
            mgr.load()

    def test_deep_merge(self) -> None:
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        override = {"a": {"b": 10}, "e": 5}
        result = ConfigManager._deep_merge(base, override)
        assert result == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}

    def test_config_before_load_raises(self, tmp_path: Path) -> None:
        mgr = ConfigManager(defaults_path=tmp_path / "d.yaml", user_path=tmp_path / "u.yaml")
        with pytest.raises(RuntimeError):
            _ = mgr.config

    def test_config_after_load(self, config_manager: ConfigManager) -> None:
        assert config_manager.config.db.path == ":memory:"
