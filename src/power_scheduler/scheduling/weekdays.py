"""Weekday enumeration and the days-of-week bitmask used by rules.

Bit ``n`` of a mask is set when the rule applies on ``Weekday(n)``:
Monday is bit 0 (value 1) and Sunday is bit 6 (value 64).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import IntEnum


class Weekday(IntEnum):
    """Days of the week, numbered like ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of(cls, day: date) -> Weekday:
        return cls(day.weekday())


ALL_DAYS = 0b1111111
WEEKDAYS = 0b0011111
WEEKEND = 0b1100000


def weekday_bit(day: Weekday) -> int:
    """Return the mask bit for a weekday."""
    return 1 << int(day)


@dataclass(frozen=True)
class DaysOfWeek:
    """Immutable wrapper around a 7-bit days-of-week mask."""

    mask: int = ALL_DAYS

    def __post_init__(self) -> None:
        if not 0 <= self.mask <= ALL_DAYS:
            raise ValueError(f"days_of_week mask must be between 0 and {ALL_DAYS}, got {self.mask}")

    @classmethod
    def from_days(cls, days: list[Weekday]) -> DaysOfWeek:
        mask = 0
        for day in days:
            mask |= weekday_bit(day)
        return cls(mask)

    def includes(self, day: date | Weekday) -> bool:
        weekday = day if isinstance(day, Weekday) else Weekday.of(day)
        return bool(self.mask & weekday_bit(weekday))

    def days(self) -> list[Weekday]:
        return [d for d in Weekday if self.mask & weekday_bit(d)]

    def names(self) -> list[str]:
        return [d.name.lower() for d in self.days()]


_PRESETS = {"all": ALL_DAYS, "weekdays": WEEKDAYS, "weekend": WEEKEND}


def parse_days(text: str) -> DaysOfWeek:
    """Parse "weekdays", "weekend", "all" or a comma list such as "mon,wed,sat"."""
    text = text.strip().lower()
    if text in _PRESETS:
        return DaysOfWeek(_PRESETS[text])

    days: list[Weekday] = []
    for part in filter(None, (p.strip() for p in text.split(","))):
        matches = [d for d in Weekday if d.name.lower().startswith(part)]
        if len(part) < 2 or len(matches) != 1:
            raise ValueError(f"Unknown weekday '{part}'")
        days.append(matches[0])
    if not days:
        raise ValueError("No weekdays given")
    return DaysOfWeek.from_days(days)
