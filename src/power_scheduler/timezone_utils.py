"""Timezone resolution and local wall-clock helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Standard-time offsets used when IANA tzdata is unavailable (Windows hosts).
_FIXED_FALLBACKS: dict[str, tzinfo] = {
    "Europe/Madrid": timezone(timedelta(hours=1)),
    "Atlantic/Canary": timezone.utc,
}


def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve an IANA timezone name with safe fallbacks.

    Order:
    1. IANA database via ZoneInfo.
    2. Known fixed-offset fallback map.
    3. Host local timezone.
    4. UTC.
    """
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        pass

    if tz_name in _FIXED_FALLBACKS:
        return _FIXED_FALLBACKS[tz_name]

    local_tz = datetime.now().astimezone().tzinfo
    if local_tz is not None:
        return local_tz
    return timezone.utc


def local_now(tz: tzinfo) -> datetime:
    """Current wall-clock time in ``tz`` as a naive datetime (seconds precision).

    Schedule entries are stored as local dates and hours, so every comparison
    against them is made in naive local time.
    """
    return datetime.now(tz).replace(tzinfo=None, microsecond=0)
