"""Time utilities (market timezone)."""

from datetime import date, datetime, timezone

import pytz


def today_in(tz_name: str = "America/New_York") -> date:
    """Current calendar date in the given timezone."""
    return datetime.now(pytz.timezone(tz_name)).date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso_date(value: str) -> date:
    """Strict YYYY-MM-DD parsing; raises ValueError otherwise."""
    if len(value) != 10:
        raise ValueError(f"Expected YYYY-MM-DD, got {value!r}")
    return datetime.strptime(value, "%Y-%m-%d").date()
