"""Shared test fixtures for Power Scheduler."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from power_scheduler.config.manager import ConfigManager
from power_scheduler.config.schema import AppConfig
from power_scheduler.db.engine import close_db, init_db
from power_scheduler.db.repository import Repository
from power_scheduler.exceptions import PriceUnavailableError
from power_scheduler.pricing.base import DailyPrices, HourlyPrice, PriceProvider
from power_scheduler.scheduling.regenerator import ScheduleRegenerator

# A Monday
MONDAY = date(2026, 3, 2)


class FakeClock:
    """Settable local wall clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakePriceProvider(PriceProvider):
    """Serves the same day curve for every date unless told otherwise."""

    def __init__(self, clock: FakeClock, default: list[HourlyPrice] | None = None) -> None:
        self._clock = clock
        self.default = default or []
        self.by_date: dict[date, list[HourlyPrice]] = {}
        self.failing: set[date] = set()
        self.calls: list[date] = []
        self.closed = False

    async def fetch_today(self) -> DailyPrices:
        return await self.fetch_for_date(self._clock().date())

    async def fetch_tomorrow(self) -> DailyPrices:
        return await self.fetch_for_date(self._clock().date() + timedelta(days=1))

    async def fetch_for_date(self, day: date) -> DailyPrices:
        self.calls.append(day)
        if day in self.failing:
            raise PriceUnavailableError(day)
        return DailyPrices(date=day, prices=list(self.by_date.get(day, self.default)))

    async def close(self) -> None:
        self.closed = True


def make_prices(cheap_hours: range | list[int], cheap: float = 0.05, other: float = 0.20) -> list[HourlyPrice]:
    cheap_set = set(cheap_hours)
    return [HourlyPrice(hour=h, price=cheap if h in cheap_set else other) for h in range(24)]


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("db:\n  path: ':memory:'\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user, environ={})
    mgr.load()
    return mgr


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a fresh database file for each test."""
    conn = await init_db(tmp_path / "test.db")
    yield conn
    await close_db()


@pytest_asyncio.fixture
async def repo(db: aiosqlite.Connection) -> Repository:
    """Provide a repository with a fresh database."""
    return Repository(db)


@pytest.fixture
def clock() -> FakeClock:
    """Monday 10:00 local time."""
    return FakeClock(datetime(2026, 3, 2, 10, 0))


@pytest.fixture
def scenario_prices() -> list[HourlyPrice]:
    """0.05 EUR/kWh for 00:00-05:00, 0.20 for the rest of the day."""
    return make_prices(range(0, 6))


@pytest.fixture
def price_provider(clock: FakeClock, scenario_prices: list[HourlyPrice]) -> FakePriceProvider:
    return FakePriceProvider(clock, default=scenario_prices)


@pytest.fixture
def regenerator(repo: Repository, price_provider: FakePriceProvider, clock: FakeClock) -> ScheduleRegenerator:
    return ScheduleRegenerator(repo, price_provider, clock)


@pytest_asyncio.fixture
async def device_id(repo: Repository) -> int:
    return await repo.create_device("shelly-boiler-01", "Boiler", device_type="water_heater", room="Garage")


@pytest.fixture(name="make_prices")
def make_prices_fixture():
    """Factory for a 24-hour curve with a cheap set of hours."""
    return make_prices
