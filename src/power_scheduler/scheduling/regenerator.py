"""Turn a rule plus a day's prices into persisted schedule entries.

Regeneration replaces a rule's future pending entries for one date with the
current optimal selection. Entries that already started (or whose status is
no longer pending) are never touched, and inserts ignore duplicates, so
running it again, or concurrently with another caller, converges on the
same schedule.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable

from power_scheduler.db.repository import Repository
from power_scheduler.exceptions import PriceUnavailableError
from power_scheduler.logging.context import log_context
from power_scheduler.pricing.base import DailyPrices, PriceProvider, fetch_prices_for
from power_scheduler.scheduling.models import (
    DateRegeneration,
    OptimalHours,
    OutcomeStatus,
    RegenerationOutcome,
    Rule,
    hour_end,
    hour_start,
)
from power_scheduler.scheduling.selector import calculate_optimal_hours

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ScheduleRegenerator:
    """Regenerates schedule entries for rules, one date at a time."""

    def __init__(self, repo: Repository, price_provider: PriceProvider, clock: Clock) -> None:
        self._repo = repo
        self._prices = price_provider
        self._clock = clock

    async def regenerate(self, rule: Rule, target_date: date) -> RegenerationOutcome:
        """Regenerate one rule for one date.

        A failing price source is reported as a PRICES_UNAVAILABLE outcome
        after the rule's stale future entries are removed. Persistence
        errors propagate.
        """
        with log_context(rule_id=rule.id, date=target_date):
            if not rule.applies_on(target_date):
                logger.debug("Rule %d skipped: does not apply on %s", rule.id, target_date)
                return RegenerationOutcome(rule.id, target_date, OutcomeStatus.SKIPPED_WEEKDAY)

            now = self._clock()
            try:
                prices = await fetch_prices_for(self._prices, target_date, now.date())
            except PriceUnavailableError as e:
                logger.warning("Prices unavailable for rule %d on %s: %s", rule.id, target_date, e)
                prices = None

            if prices is None or not prices.prices:
                deleted = await self._repo.delete_future_pending(rule.id, target_date, now)
                return RegenerationOutcome(
                    rule.id, target_date, OutcomeStatus.PRICES_UNAVAILABLE, deleted_count=deleted,
                )

            return await self._apply(rule, prices, now)

    async def regenerate_date(self, target_date: date) -> DateRegeneration:
        """Regenerate every enabled rule for ``target_date`` from one price fetch.

        Raises PriceUnavailableError when the day's prices cannot be fetched
        or are empty, so the caller can retry later.
        """
        now = self._clock()
        prices = await fetch_prices_for(self._prices, target_date, now.date())
        if not prices.prices:
            raise PriceUnavailableError(target_date)

        rows = await self._repo.list_enabled_rules()
        result = DateRegeneration(date=target_date)
        for row in rows:
            rule = Rule.from_row(row)
            with log_context(rule_id=rule.id, date=target_date):
                if rule.applies_on(target_date):
                    outcome = await self._apply(rule, prices, now)
                else:
                    outcome = RegenerationOutcome(rule.id, target_date, OutcomeStatus.SKIPPED_WEEKDAY)
            result.rules_processed += 1
            result.created_count += outcome.created_count
            result.outcomes.append(outcome)

        logger.info(
            "Regenerated %s: %d rules processed, %d entries created",
            target_date, result.rules_processed, result.created_count,
        )
        return result

    async def calculate(self, rule: Rule, target_date: date) -> OptimalHours:
        """Selection the rule would get on ``target_date``, without writing anything."""
        now = self._clock()
        prices = await fetch_prices_for(self._prices, target_date, now.date())
        return calculate_optimal_hours(
            prices.prices,
            rule.max_hours,
            rule.min_continuous_hours,
            rule.time_window_start,
            rule.time_window_end,
        )

    async def cancel_future(self, rule_id: int, now: datetime | None = None) -> int:
        """Cancel the rule's pending entries that have not started yet."""
        cancelled = await self._repo.cancel_future_pending(rule_id, now or self._clock())
        if cancelled:
            logger.info("Cancelled %d future entries for rule %d", cancelled, rule_id)
        return cancelled

    async def _apply(self, rule: Rule, prices: DailyPrices, now: datetime) -> RegenerationOutcome:
        day = prices.date
        selection = calculate_optimal_hours(
            prices.prices,
            rule.max_hours,
            rule.min_continuous_hours,
            rule.time_window_start,
            rule.time_window_end,
        )
        future_hours = [h for h in selection.hours if hour_start(day, h) > now]

        created: list[int] = []
        async with self._repo.transaction():
            deleted = await self._repo.delete_future_pending(rule.id, day, now)
            for hour in future_hours:
                inserted = await self._repo.insert_action(
                    rule.id, day, hour,
                    starts_at=hour_start(day, hour),
                    ends_at=hour_end(day, hour),
                    price_per_kwh=prices.price_at(hour),
                )
                if inserted:
                    created.append(hour)

        if created:
            status = OutcomeStatus.CREATED
        elif selection.hours and not future_hours:
            status = OutcomeStatus.ALREADY_PASSED
        else:
            status = OutcomeStatus.NONE_CREATED

        outcome = RegenerationOutcome(
            rule.id, day, status,
            created_count=len(created), deleted_count=deleted, hours=created,
        )
        logger.info("Rule %d: %s", rule.id, outcome.message)
        return outcome
