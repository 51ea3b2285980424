"""Daily price summary utilities."""

from __future__ import annotations

from dataclasses import dataclass

from power_scheduler.pricing.base import HourlyPrice


@dataclass
class PriceStats:
    min_price: float
    max_price: float
    avg_price: float
    cheapest_hours: list[int]
    most_expensive_hours: list[int]


def get_cheapest_hours(prices: list[HourlyPrice], count: int = 6) -> list[HourlyPrice]:
    """Return the cheapest hours sorted by price (lower hour first on ties)."""
    return sorted(prices, key=lambda p: (p.price, p.hour))[:count]


def get_most_expensive_hours(prices: list[HourlyPrice], count: int = 6) -> list[HourlyPrice]:
    """Return the most expensive hours sorted by price descending."""
    return sorted(prices, key=lambda p: (-p.price, p.hour))[:count]


def price_stats(prices: list[HourlyPrice], count: int = 6) -> PriceStats | None:
    """Summarise a day's prices. Returns None for an empty day."""
    if not prices:
        return None
    values = [p.price for p in prices]
    return PriceStats(
        min_price=min(values),
        max_price=max(values),
        avg_price=sum(values) / len(values),
        cheapest_hours=[p.hour for p in get_cheapest_hours(prices, count)],
        most_expensive_hours=[p.hour for p in get_most_expensive_hours(prices, count)],
    )
