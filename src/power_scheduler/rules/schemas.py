"""Request models for device and rule management.

Range checks live in ``validate_rule_fields`` rather than on the models so
that a partial update can be checked against the merged rule.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel

from power_scheduler.scheduling.models import ActionStatus
from power_scheduler.scheduling.weekdays import ALL_DAYS


class DeviceCreate(BaseModel):
    external_id: str
    name: str
    device_type: str | None = None
    room: str | None = None


class DeviceUpdate(BaseModel):
    """Partial update; an inactive device gets no new schedule entries."""

    name: str | None = None
    device_type: str | None = None
    room: str | None = None
    is_active: bool | None = None


class RuleCreate(BaseModel):
    device_id: int
    name: str
    max_hours: int
    min_continuous_hours: int = 1
    time_window_start: int | None = None
    time_window_end: int | None = None
    days_of_week: int = ALL_DAYS
    is_enabled: bool = True


class RuleUpdate(BaseModel):
    """Partial update; only the fields that were sent are applied."""

    name: str | None = None
    max_hours: int | None = None
    min_continuous_hours: int | None = None
    time_window_start: int | None = None
    time_window_end: int | None = None
    days_of_week: int | None = None
    is_enabled: bool | None = None


class CalculateRequest(BaseModel):
    rule_id: int
    target_date: date | None = None


class StatusUpdate(BaseModel):
    status: ActionStatus
