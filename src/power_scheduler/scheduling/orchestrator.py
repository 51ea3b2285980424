"""Background scheduling: daily generation with retry, and the expiry sweep.

Two tasks share a stop event and tick at ``check_interval_seconds``:

1. Generation loop: on startup backfills today (and tomorrow once its
   prices should be out), then at the configured local time generates
   tomorrow's schedule. A failed attempt is retried every
   ``retry_interval_minutes`` until it succeeds or its date has passed.
2. Expiry sweep: marks pending entries whose hour has ended as missed.

Neither loop lets an exception escape; failures are logged and the next
tick tries again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any

from power_scheduler.config.schema import SchedulerConfig
from power_scheduler.db.repository import Repository
from power_scheduler.exceptions import PriceUnavailableError
from power_scheduler.scheduling.regenerator import Clock, ScheduleRegenerator

logger = logging.getLogger(__name__)


@dataclass
class GenerationState:
    """Snapshot of the generation loop state."""

    last_generated_date: date | None = None
    # Dates awaiting a retry, with the time of their last failed attempt.
    retries: dict[date, datetime] = field(default_factory=dict)
    last_error: str = ""
    attempts: int = 0

    @property
    def retry_pending(self) -> bool:
        return bool(self.retries)


@dataclass
class SweepState:
    last_sweep_at: datetime | None = None
    missed_total: int = 0
    last_error: str = ""


class GenerationLoop:
    """Daily trigger, startup backfill and retry bookkeeping."""

    def __init__(
        self,
        regenerator: ScheduleRegenerator,
        repo: Repository,
        config: SchedulerConfig,
        clock: Clock,
    ) -> None:
        self._regenerator = regenerator
        self._repo = repo
        self._config = config
        self._clock = clock
        self._state = GenerationState()

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def generation_time(self) -> time:
        return time(self._config.generation_hour, self._config.generation_minute)

    @property
    def retry_interval(self) -> timedelta:
        return timedelta(minutes=self._config.retry_interval_minutes)

    async def backfill(self, now: datetime | None = None) -> None:
        """Fill in schedules missed while the process was not running."""
        now = now or self._clock()
        today = now.date()
        tomorrow = today + timedelta(days=1)

        try:
            if await self._repo.count_actions_for_date(today) == 0:
                logger.info("No schedule for today (%s), backfilling", today)
                await self._attempt(today)

            if now.time() >= self.generation_time:
                if await self._repo.count_actions_for_date(tomorrow) == 0:
                    logger.info("No schedule for tomorrow (%s), backfilling", tomorrow)
                    if await self._attempt(tomorrow):
                        self._state.last_generated_date = tomorrow
                    else:
                        self._arm_retry(tomorrow, now)
                else:
                    self._state.last_generated_date = tomorrow
        except Exception:
            logger.exception("Startup backfill failed")

    async def tick(self, now: datetime | None = None) -> None:
        now = now or self._clock()
        today = now.date()
        tomorrow = today + timedelta(days=1)
        state = self._state

        for retry_date in sorted(state.retries):
            if retry_date < today:
                logger.warning("Dropping retry for %s: date has passed", retry_date)
                del state.retries[retry_date]
            elif now - state.retries[retry_date] >= self.retry_interval:
                logger.info("Retrying schedule generation for %s", retry_date)
                if await self._attempt(retry_date):
                    logger.info("Retry for %s succeeded", retry_date)
                    if retry_date == tomorrow:
                        state.last_generated_date = tomorrow
                    del state.retries[retry_date]
                else:
                    state.retries[retry_date] = now

        if self._in_generation_minute(now) and state.last_generated_date != tomorrow:
            if tomorrow in state.retries:
                return
            logger.info("Daily generation for %s", tomorrow)
            if await self._attempt(tomorrow):
                state.last_generated_date = tomorrow
            else:
                self._arm_retry(tomorrow, now)

    def _in_generation_minute(self, now: datetime) -> bool:
        return (
            now.hour == self._config.generation_hour
            and now.minute == self._config.generation_minute
        )

    def _arm_retry(self, target: date, now: datetime) -> None:
        self._state.retries[target] = now
        logger.warning(
            "Generation for %s failed, retrying in %d minutes",
            target, self._config.retry_interval_minutes,
        )

    async def _attempt(self, target: date) -> bool:
        self._state.attempts += 1
        try:
            await asyncio.wait_for(
                self._regenerator.regenerate_date(target),
                timeout=self._config.operation_timeout_seconds,
            )
        except PriceUnavailableError as e:
            self._state.last_error = str(e)
            logger.warning("Generation for %s: %s", target, e)
            return False
        except asyncio.TimeoutError:
            self._state.last_error = "timeout"
            logger.warning(
                "Generation for %s timed out after %.0fs",
                target, self._config.operation_timeout_seconds,
            )
            return False
        except Exception as e:
            self._state.last_error = str(e)
            logger.exception("Generation for %s failed", target)
            return False
        self._state.last_error = ""
        return True


class ExpirySweeper:
    """Reclassifies pending entries whose hour has ended as missed."""

    def __init__(self, repo: Repository, clock: Clock) -> None:
        self._repo = repo
        self._clock = clock
        self._state = SweepState()

    @property
    def state(self) -> SweepState:
        return self._state

    async def sweep(self, now: datetime | None = None) -> int:
        now = now or self._clock()
        today_count, earlier_count = await self._repo.mark_expired_as_missed(now)
        self._state.last_sweep_at = now
        missed = today_count + earlier_count
        self._state.missed_total += missed
        if missed:
            logger.info(
                "Marked %d entries as missed (%d today, %d from earlier days)",
                missed, today_count, earlier_count,
            )
        return missed


class DailyOrchestrator:
    """Runs the generation loop and the expiry sweep until stopped."""

    def __init__(
        self,
        regenerator: ScheduleRegenerator,
        repo: Repository,
        config: SchedulerConfig,
        clock: Clock,
    ) -> None:
        self._config = config
        self.generation = GenerationLoop(regenerator, repo, config, clock)
        self.sweeper = ExpirySweeper(repo, clock)
        self._stop_event = asyncio.Event()
        self._running = False
        self._tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Run both loops until ``stop()`` is called."""
        self._running = True
        self._stop_event.clear()
        logger.info(
            "Scheduler starting (generation at %02d:%02d, check every %ds)",
            self._config.generation_hour,
            self._config.generation_minute,
            self._config.check_interval_seconds,
        )

        tasks = [
            asyncio.create_task(self._generation_loop(), name="schedule_generation"),
            asyncio.create_task(self._sweep_loop(), name="expiry_sweep"),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._running = False
            logger.info("Scheduler stopped after %d ticks", self._tick_count)

    def stop(self) -> None:
        """Signal both loops to stop."""
        self._stop_event.set()

    async def tick_once(self, now: datetime | None = None) -> None:
        """Run one generation tick and one sweep (for testing)."""
        await self.generation.tick(now)
        await self.sweeper.sweep(now)

    def status(self) -> dict[str, Any]:
        gen = self.generation.state
        sweep = self.sweeper.state
        return {
            "running": self._running,
            "tick_count": self._tick_count,
            "generation_time": self.generation.generation_time.strftime("%H:%M"),
            "last_generated_date": gen.last_generated_date.isoformat() if gen.last_generated_date else None,
            "retry_pending": gen.retry_pending,
            "retry_dates": [d.isoformat() for d in sorted(gen.retries)],
            "last_generation_error": gen.last_error or None,
            "last_sweep_at": sweep.last_sweep_at.isoformat() if sweep.last_sweep_at else None,
            "missed_total": sweep.missed_total,
        }

    async def _wait(self) -> bool:
        """Sleep one interval. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(
                self._stop_event.wait(), timeout=self._config.check_interval_seconds,
            )
            return True
        except asyncio.TimeoutError:
            return False

    async def _generation_loop(self) -> None:
        if self._config.backfill_on_startup:
            await self.generation.backfill()
        while not self._stop_event.is_set():
            self._tick_count += 1
            try:
                await self.generation.tick()
            except Exception:
                logger.exception("Generation tick failed")
            if await self._wait():
                break

    async def _sweep_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.sweeper.sweep()
            except Exception as e:
                self.sweeper.state.last_error = str(e)
                logger.exception("Expiry sweep failed")
            if await self._wait():
                break
