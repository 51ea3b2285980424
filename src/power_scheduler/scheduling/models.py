"""Domain types for rules, schedule entries and regeneration results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Mapping

from power_scheduler.scheduling.weekdays import ALL_DAYS, DaysOfWeek


class ActionStatus(str, Enum):
    """Lifecycle of a scheduled action. Everything except PENDING is terminal."""

    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    MISSED = "missed"


# Statuses an external executor may report, and the states it may report them from
REPORTABLE_STATUSES = frozenset({ActionStatus.EXECUTED, ActionStatus.FAILED, ActionStatus.CANCELLED})
REPORTABLE_FROM = frozenset({ActionStatus.PENDING, ActionStatus.MISSED})


@dataclass
class Rule:
    """A device activation policy."""

    id: int
    device_id: int
    name: str
    max_hours: int
    min_continuous_hours: int = 1
    time_window_start: int | None = None
    time_window_end: int | None = None
    days_of_week: int = ALL_DAYS
    is_enabled: bool = True
    device_active: bool = True

    @property
    def schedulable(self) -> bool:
        return self.is_enabled and self.device_active

    def applies_on(self, day: date) -> bool:
        return DaysOfWeek(self.days_of_week).includes(day)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Rule:
        return cls(
            id=row["id"],
            device_id=row["device_id"],
            name=row["name"],
            max_hours=row["max_hours"],
            min_continuous_hours=row["min_continuous_hours"],
            time_window_start=row["time_window_start"],
            time_window_end=row["time_window_end"],
            days_of_week=row["days_of_week"],
            is_enabled=bool(row["is_enabled"]),
            device_active=bool(row.get("device_active", 1)),
        )


def hour_start(day: date, hour: int) -> datetime:
    """Local start instant of ``hour`` on ``day``."""
    return datetime.combine(day, time(hour))


def hour_end(day: date, hour: int) -> datetime:
    """Exclusive local end instant of ``hour`` on ``day`` (next midnight for hour 23)."""
    return hour_start(day, hour) + timedelta(hours=1)


@dataclass
class ScheduledAction:
    """One hour-long activation of a rule's device on a given date."""

    rule_id: int
    scheduled_date: date
    start_hour: int
    price_per_kwh: float | None = None
    status: ActionStatus = ActionStatus.PENDING
    id: int | None = None

    @property
    def end_hour(self) -> int:
        return (self.start_hour + 1) % 24

    @property
    def starts_at(self) -> datetime:
        return hour_start(self.scheduled_date, self.start_hour)

    @property
    def ends_at(self) -> datetime:
        return hour_end(self.scheduled_date, self.start_hour)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ScheduledAction:
        return cls(
            id=row["id"],
            rule_id=row["rule_id"],
            scheduled_date=date.fromisoformat(row["scheduled_date"]),
            start_hour=row["start_hour"],
            price_per_kwh=row["price_per_kwh"],
            status=ActionStatus(row["status"]),
        )


@dataclass
class OptimalHours:
    """Hours chosen for activation and their summed price."""

    hours: list[int] = field(default_factory=list)
    total_price: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.hours


class OutcomeStatus(str, Enum):
    CREATED = "created"
    ALREADY_PASSED = "already_passed"
    PRICES_UNAVAILABLE = "prices_unavailable"
    NONE_CREATED = "none_created"
    SKIPPED_WEEKDAY = "skipped_weekday"


@dataclass
class RegenerationOutcome:
    """Result of regenerating one rule for one date."""

    rule_id: int
    date: date
    status: OutcomeStatus
    created_count: int = 0
    deleted_count: int = 0
    hours: list[int] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.status is OutcomeStatus.CREATED:
            hours = ", ".join(f"{h:02d}:00" for h in self.hours)
            return f"{self.created_count} hour(s) scheduled for {self.date} ({hours})"
        if self.status is OutcomeStatus.ALREADY_PASSED:
            return "Optimal hours already passed, nothing to do today"
        if self.status is OutcomeStatus.PRICES_UNAVAILABLE:
            return f"Prices for {self.date} not yet available, will retry"
        if self.status is OutcomeStatus.SKIPPED_WEEKDAY:
            return f"Rule does not apply on {self.date:%A}"
        return f"No new hours scheduled for {self.date}"


@dataclass
class DateRegeneration:
    """Result of regenerating every enabled rule for one date."""

    date: date
    rules_processed: int = 0
    created_count: int = 0
    outcomes: list[RegenerationOutcome] = field(default_factory=list)
    prices_unavailable: bool = False

    @property
    def message(self) -> str:
        if self.prices_unavailable:
            return f"Prices for {self.date} not yet available, will retry"
        return f"{self.rules_processed} rule(s) processed, {self.created_count} hour(s) scheduled"
