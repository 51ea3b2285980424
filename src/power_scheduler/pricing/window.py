"""Time-window filtering of hourly prices."""

from __future__ import annotations

from power_scheduler.pricing.base import HourlyPrice


def in_time_window(hour: int, start: int | None, end: int | None) -> bool:
    """Return True if ``hour`` lies in the half-open window ``[start, end)``.

    A window with ``start > end`` crosses midnight. A missing bound leaves
    that side of the day open.
    """
    if start is None and end is None:
        return True
    if start is not None and end is not None:
        if start <= end:
            return start <= hour < end
        return hour >= start or hour < end
    if start is not None:
        return hour >= start
    return hour < end  # type: ignore[operator]


def filter_by_time_window(
    prices: list[HourlyPrice],
    start: int | None = None,
    end: int | None = None,
) -> list[HourlyPrice]:
    """Keep only the prices whose hour falls inside the window."""
    if start is None and end is None:
        return list(prices)
    return [p for p in prices if in_time_window(p.hour, start, end)]
