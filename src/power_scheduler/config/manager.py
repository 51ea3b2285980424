"""Configuration loading and validation.

Settings are layered, later layers winning:

1. ``config.defaults.yaml`` shipped with the service
2. the operator's ``config.yaml``
3. environment variables (``ESIOS_TOKEN`` and friends), so secrets and
   deployment-specific values can stay out of the YAML files
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from power_scheduler.config.schema import AppConfig

logger = logging.getLogger(__name__)

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ESIOS_TOKEN": ("price_source", "api_token"),
    "SERVER_HOST": ("api", "host"),
    "SERVER_PORT": ("api", "port"),
    "POWER_SCHEDULER_DB": ("db", "path"),
    "POWER_SCHEDULER_TIMEZONE": ("scheduler", "timezone"),
    "LOG_LEVEL": ("logging", "level"),
}


class ConfigManager:
    """Builds the validated AppConfig from YAML files and the environment."""

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._environ = os.environ if environ is None else environ
        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        """Load defaults, apply user overrides and environment, then validate."""
        merged = self._deep_merge(
            self._load_yaml(self._defaults_path), self._load_yaml(self._user_path),
        )
        env = self._env_overrides()
        if env:
            logger.info("Config overridden from environment: %s", sorted(
                name for name in ENV_OVERRIDES if name in self._environ
            ))
        self._config = AppConfig.model_validate(self._deep_merge(merged, env))

        scheduler = self._config.scheduler
        logger.info(
            "Configuration loaded (generation at %02d:%02d %s, price source %s)",
            scheduler.generation_hour,
            scheduler.generation_minute,
            scheduler.timezone,
            self._config.price_source.type,
        )
        if not self._config.price_source.api_token:
            logger.warning("No ESIOS token configured; set ESIOS_TOKEN or price_source.api_token")
        return self._config

    def _env_overrides(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for name, (section, key) in ENV_OVERRIDES.items():
            value = self._environ.get(name)
            if value:
                # pydantic coerces strings such as SERVER_PORT="9000"
                overrides.setdefault(section, {})[key] = value
        return overrides

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
