"""Preview the hours a rule would select for a day, without touching the database."""

from __future__ import annotations

import argparse
import asyncio
import json
from datetime import date
from pathlib import Path

from power_scheduler.config.manager import ConfigManager
from power_scheduler.pricing.base import HourlyPrice
from power_scheduler.pricing.providers.esios import EsiosProvider
from power_scheduler.pricing.window import filter_by_time_window
from power_scheduler.scheduling.selector import calculate_optimal_hours
from power_scheduler.scheduling.weekdays import parse_days
from power_scheduler.timezone_utils import local_now, resolve_timezone


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD, default today")
    parser.add_argument("--max-hours", type=int, required=True)
    parser.add_argument("--min-continuous", type=int, default=1)
    parser.add_argument("--window-start", type=int, default=None)
    parser.add_argument("--window-end", type=int, default=None)
    parser.add_argument(
        "--days", type=parse_days, default=parse_days("all"),
        help="all, weekdays, weekend or a list such as mon,wed,sat",
    )
    parser.add_argument(
        "--prices-json", default="",
        help='Read prices from a JSON file ([{"hour": 0, "price": 0.12}, ...]) instead of ESIOS',
    )
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--defaults", default="config.defaults.yaml")
    return parser.parse_args()


def _load_prices_file(path: Path) -> list[HourlyPrice]:
    with open(path) as f:
        raw = json.load(f)
    return [HourlyPrice(hour=int(item["hour"]), price=float(item["price"])) for item in raw]


async def _fetch_prices(args: argparse.Namespace) -> tuple[date, list[HourlyPrice]]:
    manager = ConfigManager(defaults_path=Path(args.defaults), user_path=Path(args.config))
    config = manager.load()
    tz = resolve_timezone(config.scheduler.timezone)
    day = args.date or local_now(tz).date()
    if args.prices_json:
        return day, _load_prices_file(Path(args.prices_json))

    provider = EsiosProvider(config.price_source, tz)
    try:
        daily = await provider.fetch_for_date(day)
    finally:
        await provider.close()
    return day, daily.prices


def main() -> None:
    args = parse_args()
    day, prices = asyncio.run(_fetch_prices(args))
    if not args.days.includes(day):
        print(f"Rule does not apply on {day:%A} (days: {', '.join(args.days.names())})")
        return

    available = {p.hour for p in filter_by_time_window(prices, args.window_start, args.window_end)}
    selection = calculate_optimal_hours(
        prices, args.max_hours, args.min_continuous, args.window_start, args.window_end,
    )
    chosen = set(selection.hours)

    print(f"Prices for {day} ({len(prices)} hours)")
    for p in sorted(prices, key=lambda p: p.hour):
        marker = "*" if p.hour in chosen else ("." if p.hour in available else " ")
        print(f"  {marker} {p.hour:02d}:00  {p.price:.5f} EUR/kWh")
    print()
    if selection.is_empty:
        print("No hours selected")
    else:
        hours = ", ".join(f"{h:02d}:00" for h in selection.hours)
        print(f"Selected {len(selection.hours)} hour(s): {hours}")
        print(f"Total price: {selection.total_price:.5f} EUR/kWh")


if __name__ == "__main__":
    main()
