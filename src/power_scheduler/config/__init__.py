"""Configuration management for Power Scheduler."""

from power_scheduler.config.schema import AppConfig
from power_scheduler.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
