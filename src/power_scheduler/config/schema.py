"""Pydantic configuration models for all system settings."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SchedulerConfig(BaseModel):
    generation_hour: int = Field(20, ge=0, le=23)  # Tomorrow's prices are published ~20:15
    generation_minute: int = Field(30, ge=0, le=59)
    retry_interval_minutes: int = Field(30, ge=1)
    check_interval_seconds: int = Field(60, ge=1)
    operation_timeout_seconds: float = Field(120.0, gt=0)
    timezone: str = "Europe/Madrid"  # IANA tz used for local wall-clock hours
    backfill_on_startup: bool = True


class PriceSourceConfig(BaseModel):
    type: str = "esios"
    api_token: str = ""
    base_url: str = "https://api.esios.ree.es"
    indicator: int = 1001  # PVPC
    geo_id: int = 8741  # Peninsula
    timeout_seconds: float = Field(30.0, gt=0)


class APIConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class DBConfig(BaseModel):
    path: str = "power_scheduler.db"


class AppConfig(BaseModel):
    """Root configuration model containing all system settings."""

    scheduler: SchedulerConfig = SchedulerConfig()
    price_source: PriceSourceConfig = PriceSourceConfig()
    api: APIConfig = APIConfig()
    logging: LoggingConfig = LoggingConfig()
    db: DBConfig = DBConfig()
