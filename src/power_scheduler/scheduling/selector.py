"""Cheapest-hour selection under time-window and continuity constraints.

Two strategies:
- scattered: the ``max_hours`` cheapest individual hours (min_continuous <= 1);
- continuous blocks: a greedy cover with runs of at least ``min_continuous``
  consecutive hours, cheapest average first.

The block strategy is greedy, not a global optimum. Its ordering is fully
deterministic: candidates are ranked by average price (rounded to 1e-9 so
float noise cannot split ties), then longer blocks first, then the order in
which they were generated (run order, start offset, length).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from power_scheduler.pricing.base import HourlyPrice
from power_scheduler.pricing.window import filter_by_time_window
from power_scheduler.scheduling.models import OptimalHours

logger = logging.getLogger(__name__)

_AVG_PRECISION = 9


@dataclass(frozen=True)
class _Block:
    hours: tuple[int, ...]
    average: float
    order: int


def calculate_optimal_hours(
    prices: list[HourlyPrice],
    max_hours: int,
    min_continuous_hours: int = 1,
    window_start: int | None = None,
    window_end: int | None = None,
) -> OptimalHours:
    """Select the hours to activate and their total price."""
    available = filter_by_time_window(prices, window_start, window_end)
    if not available or max_hours <= 0:
        return OptimalHours()

    if min_continuous_hours <= 1:
        return _scattered_hours(available, max_hours)
    return _continuous_blocks(available, max_hours, min_continuous_hours)


def _scattered_hours(prices: list[HourlyPrice], max_hours: int) -> OptimalHours:
    """Cheapest individual hours; equal prices go to the earlier hour."""
    selected = sorted(prices, key=lambda p: (p.price, p.hour))[:max_hours]
    return OptimalHours(
        hours=sorted(p.hour for p in selected),
        total_price=sum(p.price for p in selected),
    )


def build_runs(hours: list[int]) -> list[list[int]]:
    """Split hours into maximal runs of consecutive hours.

    23 -> 0 counts as consecutive, so when the day has both a run ending at
    23 and a separate run starting at 0, they are joined into one run that
    crosses midnight (e.g. a 20:00-06:00 window yields ``[20..23, 0..5]``).
    """
    ordered = sorted(set(hours))
    if not ordered:
        return []

    runs: list[list[int]] = [[ordered[0]]]
    for hour in ordered[1:]:
        if hour == runs[-1][-1] + 1:
            runs[-1].append(hour)
        else:
            runs.append([hour])

    if len(runs) > 1 and runs[0][0] == 0 and runs[-1][-1] == 23:
        wrapped = runs.pop() + runs.pop(0)
        runs.insert(0, wrapped)
    return runs


def _candidate_blocks(runs: list[list[int]], price_map: dict[int, float], min_len: int) -> list[_Block]:
    blocks: list[_Block] = []
    for run in runs:
        for start in range(len(run)):
            for end in range(start + min_len, len(run) + 1):
                hours = tuple(run[start:end])
                average = sum(price_map[h] for h in hours) / len(hours)
                blocks.append(_Block(hours=hours, average=average, order=len(blocks)))
    return blocks


def _continuous_blocks(prices: list[HourlyPrice], max_hours: int, min_continuous: int) -> OptimalHours:
    price_map = {p.hour: p.price for p in prices}
    runs = build_runs(list(price_map))
    blocks = _candidate_blocks(runs, price_map, min_continuous)
    if not blocks:
        return OptimalHours()

    blocks.sort(key=lambda b: (round(b.average, _AVG_PRECISION), -len(b.hours), b.order))

    selected: set[int] = set()
    for block in blocks:
        if len(selected) >= max_hours:
            break
        if selected.intersection(block.hours):
            continue
        if len(selected) + len(block.hours) > max_hours:
            continue
        selected.update(block.hours)

    hours = sorted(selected)
    logger.debug(
        "Block selection: %d candidates, %d of %d hours selected",
        len(blocks), len(hours), max_hours,
    )
    return OptimalHours(hours=hours, total_price=sum(price_map[h] for h in hours))
