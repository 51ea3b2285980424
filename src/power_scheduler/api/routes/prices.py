"""Day-ahead price endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Request

from power_scheduler.exceptions import PriceUnavailableError
from power_scheduler.pricing.base import DailyPrices
from power_scheduler.pricing.stats import price_stats

router = APIRouter()


def _prices_response(daily: DailyPrices) -> dict:
    if not daily.prices:
        raise PriceUnavailableError(daily.date)
    stats = price_stats(daily.prices)
    return {
        "date": daily.date.isoformat(),
        "complete": daily.is_complete,
        "prices": [{"hour": p.hour, "price": p.price} for p in daily.prices],
        "stats": asdict(stats) if stats else None,
    }


@router.get("/prices/today")
async def prices_today(request: Request) -> dict:
    return _prices_response(await request.app.state.price_provider.fetch_today())


@router.get("/prices/tomorrow")
async def prices_tomorrow(request: Request) -> dict:
    """Tomorrow's prices; 503 until they are published."""
    return _prices_response(await request.app.state.price_provider.fetch_tomorrow())
