"""Rule management and the schedule status-update surface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from power_scheduler.db.repository import Repository
from power_scheduler.exceptions import (
    DeviceInUseError,
    InvalidStatusTransitionError,
    NotFoundError,
    PriceUnavailableError,
    RuleValidationError,
)
from power_scheduler.rules.schemas import DeviceCreate, DeviceUpdate, RuleCreate, RuleUpdate
from power_scheduler.scheduling.models import (
    REPORTABLE_FROM,
    REPORTABLE_STATUSES,
    ActionStatus,
    DateRegeneration,
    OptimalHours,
    RegenerationOutcome,
    Rule,
)
from power_scheduler.scheduling.regenerator import Clock, ScheduleRegenerator
from power_scheduler.scheduling.weekdays import ALL_DAYS

logger = logging.getLogger(__name__)


def validate_rule_fields(fields: dict[str, Any]) -> None:
    """Check a complete set of rule fields. Raises RuleValidationError."""
    name = fields.get("name")
    if not name or not str(name).strip():
        raise RuleValidationError("name", "Rule name must not be empty")

    max_hours = fields["max_hours"]
    if not 1 <= max_hours <= 24:
        raise RuleValidationError("max_hours", "max_hours must be between 1 and 24")

    min_continuous = fields.get("min_continuous_hours", 1)
    if min_continuous < 1:
        raise RuleValidationError("min_continuous_hours", "min_continuous_hours must be at least 1")
    if min_continuous > max_hours:
        raise RuleValidationError(
            "min_continuous_hours", "min_continuous_hours cannot exceed max_hours",
        )

    for key in ("time_window_start", "time_window_end"):
        value = fields.get(key)
        if value is not None and not 0 <= value <= 23:
            raise RuleValidationError(key, f"{key} must be an hour between 0 and 23")

    days = fields.get("days_of_week", ALL_DAYS)
    if not 0 <= days <= ALL_DAYS:
        raise RuleValidationError("days_of_week", "days_of_week must be a bitmask between 0 and 127")


@dataclass
class ScheduleSync:
    """What happened to a rule's schedule after a write."""

    rule_id: int
    outcomes: list[RegenerationOutcome] = field(default_factory=list)
    cancelled_count: int = 0

    @property
    def summary(self) -> str:
        if not self.outcomes:
            return f"{self.cancelled_count} future entries cancelled"
        return "; ".join(f"{o.date}: {o.message}" for o in self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "summary": self.summary,
            "cancelled_count": self.cancelled_count,
            "outcomes": [
                {
                    "date": o.date.isoformat(),
                    "status": o.status.value,
                    "created_count": o.created_count,
                    "deleted_count": o.deleted_count,
                    "hours": o.hours,
                    "message": o.message,
                }
                for o in self.outcomes
            ],
        }


class RuleService:
    """Creates, changes and removes rules, and keeps their schedules in step.

    Persisting a rule and syncing its schedule are separate calls so the
    caller can await the sync or run it in the background.
    """

    def __init__(self, repo: Repository, regenerator: ScheduleRegenerator, clock: Clock) -> None:
        self._repo = repo
        self._regenerator = regenerator
        self._clock = clock

    def now(self) -> datetime:
        """Local wall-clock time used for every schedule decision."""
        return self._clock()

    # ── Devices ─────────────────────────────────────────────

    async def create_device(self, data: DeviceCreate) -> dict[str, Any]:
        if not data.external_id.strip() or not data.name.strip():
            raise RuleValidationError("device", "Device external_id and name must not be empty")
        device_id = await self._repo.create_device(
            data.external_id, data.name, data.device_type, data.room,
        )
        logger.info("Device %d created: %s", device_id, data.name)
        return await self._repo.get_device(device_id)  # type: ignore[return-value]

    async def get_device(self, device_id: int) -> dict[str, Any]:
        device = await self._repo.get_device(device_id)
        if device is None:
            raise NotFoundError("Device", device_id)
        return device

    async def list_devices(self, active_only: bool = False) -> list[dict[str, Any]]:
        return await self._repo.list_devices(active_only=active_only)

    async def update_device(self, device_id: int, data: DeviceUpdate) -> dict[str, Any]:
        await self.get_device(device_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("name", "is_active"):
            if key in changes and changes[key] is None:
                raise RuleValidationError(key, f"{key} cannot be null")
        if "name" in changes and not changes["name"].strip():
            raise RuleValidationError("name", "Device name must not be empty")

        await self._repo.update_device(device_id, **changes)
        logger.info("Device %d updated: %s", device_id, sorted(changes))
        return await self.get_device(device_id)

    async def sync_device(self, device_id: int) -> list[ScheduleSync]:
        """Re-sync every rule of the device, e.g. after it was (de)activated."""
        return [
            await self.sync_schedule(await self.get_rule(rule_id))
            for rule_id in await self._repo.list_rule_ids_for_device(device_id)
        ]

    async def delete_device(self, device_id: int) -> None:
        """Remove a device. Refused while any of its rules still exists."""
        await self.get_device(device_id)
        rule_ids = await self._repo.list_rule_ids_for_device(device_id)
        if rule_ids:
            raise DeviceInUseError(device_id, rule_ids)
        await self._repo.delete_device(device_id)
        logger.info("Device %d deleted", device_id)

    # ── Rules ───────────────────────────────────────────────

    async def get_rule(self, rule_id: int) -> Rule:
        row = await self._repo.get_rule(rule_id)
        if row is None:
            raise NotFoundError("Rule", rule_id)
        return Rule.from_row(row)

    async def list_rules(self) -> list[dict[str, Any]]:
        return await self._repo.list_rules()

    async def create_rule(self, data: RuleCreate) -> Rule:
        fields = data.model_dump()
        validate_rule_fields(fields)
        if await self._repo.get_device(data.device_id) is None:
            raise NotFoundError("Device", data.device_id)

        rule_id = await self._repo.create_rule(**fields)
        logger.info("Rule %d created: %s", rule_id, data.name)
        return await self.get_rule(rule_id)

    async def update_rule(self, rule_id: int, data: RuleUpdate) -> Rule:
        current = await self.get_rule(rule_id)
        changes = data.model_dump(exclude_unset=True)
        merged = {
            "name": current.name,
            "max_hours": current.max_hours,
            "min_continuous_hours": current.min_continuous_hours,
            "time_window_start": current.time_window_start,
            "time_window_end": current.time_window_end,
            "days_of_week": current.days_of_week,
            "is_enabled": current.is_enabled,
        }
        merged.update(changes)
        for key in ("name", "max_hours", "min_continuous_hours", "days_of_week", "is_enabled"):
            if merged[key] is None:
                raise RuleValidationError(key, f"{key} cannot be null")
        validate_rule_fields(merged)

        await self._repo.update_rule(rule_id, **changes)
        logger.info("Rule %d updated: %s", rule_id, sorted(changes))
        return await self.get_rule(rule_id)

    async def set_enabled(self, rule_id: int, enabled: bool) -> Rule:
        await self.get_rule(rule_id)
        await self._repo.update_rule(rule_id, is_enabled=enabled)
        logger.info("Rule %d %s", rule_id, "enabled" if enabled else "disabled")
        return await self.get_rule(rule_id)

    async def delete_rule(self, rule_id: int) -> int:
        """Soft-delete a rule; returns how many future entries were cancelled."""
        await self.get_rule(rule_id)
        async with self._repo.transaction():
            cancelled = await self._regenerator.cancel_future(rule_id)
            await self._repo.soft_delete_rule(rule_id)
        logger.info("Rule %d deleted, %d future entries cancelled", rule_id, cancelled)
        return cancelled

    async def sync_schedule(self, rule: Rule) -> ScheduleSync:
        """Regenerate today and tomorrow for an enabled rule.

        A disabled rule, or one whose device is inactive, has its future
        entries cancelled instead.
        """
        sync = ScheduleSync(rule_id=rule.id)
        if not rule.schedulable:
            sync.cancelled_count = await self._regenerator.cancel_future(rule.id)
            return sync

        today = self._clock().date()
        for day in (today, today + timedelta(days=1)):
            sync.outcomes.append(await self._regenerator.regenerate(rule, day))
        return sync

    async def calculate(self, rule_id: int, day: date | None = None) -> OptimalHours:
        """Dry run: the hours the rule would get on ``day`` (default today)."""
        rule = await self.get_rule(rule_id)
        return await self._regenerator.calculate(rule, day or self._clock().date())

    # ── Schedule ────────────────────────────────────────────

    async def generate_now(self) -> list[DateRegeneration]:
        """Regenerate today and tomorrow for every enabled rule.

        A day whose prices are not available is reported in its result
        instead of failing the whole call.
        """
        today = self._clock().date()
        results: list[DateRegeneration] = []
        for day in (today, today + timedelta(days=1)):
            try:
                results.append(await self._regenerator.regenerate_date(day))
            except PriceUnavailableError as e:
                logger.info("Skipping %s in manual generation: %s", day, e)
                results.append(DateRegeneration(date=day, prices_unavailable=True))
        return results

    async def update_action_status(self, action_id: int, status: str | ActionStatus) -> dict[str, Any]:
        """Record an executor's report for a schedule entry.

        Allowed: executed, failed or cancelled, reported on a pending entry
        or on one the sweep already marked missed.
        """
        action = await self._repo.get_action(action_id)
        if action is None:
            raise NotFoundError("Scheduled action", action_id)

        current = ActionStatus(action["status"])
        try:
            requested = ActionStatus(status)
        except ValueError:
            raise InvalidStatusTransitionError(current.value, str(status)) from None
        if requested not in REPORTABLE_STATUSES or current not in REPORTABLE_FROM:
            raise InvalidStatusTransitionError(current.value, requested.value)

        updated = await self._repo.update_action_status(
            action_id, requested.value, expected_current=[s.value for s in REPORTABLE_FROM],
        )
        if not updated:
            latest = await self._repo.get_action(action_id)
            raise InvalidStatusTransitionError(
                latest["status"] if latest else current.value, requested.value,
            )
        logger.info("Action %d: %s -> %s", action_id, current.value, requested.value)
        return await self._repo.get_action(action_id)  # type: ignore[return-value]
