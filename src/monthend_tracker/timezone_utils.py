"""Timezone resolution helpers with pragmatic fallbacks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Standard-time offsets for hosts without IANA tzdata (Windows, slim images).
_FIXED_FALLBACKS: dict[str, tzinfo] = {
    "Australia/Sydney": timezone(timedelta(hours=10)),
    "Australia/Melbourne": timezone(timedelta(hours=10)),
    "Australia/Brisbane": timezone(timedelta(hours=10)),
}


def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve an IANA timezone name with safe fallbacks.

    Order:
    1. IANA database via ZoneInfo.
    2. Known fixed-offset fallback map.
    3. UTC.
    """
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        pass

    if tz_name in _FIXED_FALLBACKS:
        return _FIXED_FALLBACKS[tz_name]
    return timezone.utc


def now_in(tz: tzinfo) -> datetime:
    """Current wall-clock time in the given timezone."""
    return datetime.now(tz)
