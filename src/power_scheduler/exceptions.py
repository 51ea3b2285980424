"""Exception types shared across the scheduler.

Price-source failures are transient and never fatal; validation failures
are raised before anything is written; persistence errors are left as the
underlying ``aiosqlite.Error`` and propagate to the caller.
"""

from __future__ import annotations

from datetime import date


class SchedulerError(Exception):
    """Base exception for all Power Scheduler components."""


class PriceUnavailableError(SchedulerError):
    """Raised when hourly prices for the requested date cannot be obtained."""

    def __init__(self, day: date | None = None, message: str | None = None) -> None:
        if message is None:
            message = f"No price data available for {day}" if day else "Price data is not available"
        super().__init__(message)
        self.date = day


class RuleValidationError(SchedulerError):
    """Raised when rule constraints are out of range."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(SchedulerError):
    """Raised when a device, rule or scheduled action does not exist."""

    def __init__(self, kind: str, item_id: int) -> None:
        super().__init__(f"{kind} {item_id} not found")
        self.kind = kind
        self.item_id = item_id


class InvalidStatusTransitionError(SchedulerError):
    """Raised when an external status report is not allowed for the entry."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot change status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class DeviceInUseError(SchedulerError):
    """Raised when deleting a device that live rules still point at."""

    def __init__(self, device_id: int, rule_ids: list[int]) -> None:
        super().__init__(
            f"Device {device_id} is used by rule(s) {', '.join(map(str, rule_ids))}; delete them first"
        )
        self.device_id = device_id
        self.rule_ids = rule_ids
