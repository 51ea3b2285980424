"""Price data types and the abstract price source."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta


@dataclass(frozen=True)
class HourlyPrice:
    """Price of one local hour of the day."""

    hour: int  # 0..23
    price: float  # EUR/kWh


@dataclass
class DailyPrices:
    """Hourly prices for one calendar date.

    A full day has 24 entries; fewer is a partial result and an empty list
    means the day has not been published yet.
    """

    date: date
    prices: list[HourlyPrice] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return len(self.prices) == 24

    def price_at(self, hour: int) -> float | None:
        for p in self.prices:
            if p.hour == hour:
                return p.price
        return None


class PriceProvider(ABC):
    """Abstract source of day-ahead hourly prices.

    Implementations raise ``PriceUnavailableError`` when a day cannot be
    fetched at all.
    """

    @abstractmethod
    async def fetch_today(self) -> DailyPrices:
        ...

    @abstractmethod
    async def fetch_tomorrow(self) -> DailyPrices:
        """Tomorrow's prices; usually published in the evening, may not exist yet."""
        ...

    @abstractmethod
    async def fetch_for_date(self, day: date) -> DailyPrices:
        ...

    async def close(self) -> None:
        return None


async def fetch_prices_for(provider: PriceProvider, day: date, today: date) -> DailyPrices:
    """Fetch prices for ``day`` through the provider path matching its distance from today."""
    if day == today:
        return await provider.fetch_today()
    if day == today + timedelta(days=1):
        return await provider.fetch_tomorrow()
    return await provider.fetch_for_date(day)
