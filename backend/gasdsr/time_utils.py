"""
Time semantics for daily stock reconciliation.

- Timestamps are canonical UTC. Naive datetimes are interpreted as UTC.
- A business day is a calendar date in the configured business time zone.
  Its window is [local midnight, next local midnight).
- Dates travel on the wire as "YYYY-MM-DD" strings.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (aware)."""
    return datetime.now(timezone.utc)


def resolve_timezone(value: str | tzinfo | None) -> tzinfo:
    """
    Resolve a configured time zone.

    Accepts a tzinfo (returned as-is), "UTC", a fixed offset such as
    "+04:00", or an IANA zone name such as "Asia/Dubai".
    """
    if value is None:
        return timezone.utc
    if isinstance(value, tzinfo):
        return value

    name = str(value).strip()
    if not name or name.upper() in ("UTC", "Z"):
        return timezone.utc

    m = _OFFSET_RE.match(name)
    if m:
        sign, hours, minutes = m.groups()
        delta = timedelta(hours=int(hours), minutes=int(minutes))
        return timezone(-delta if sign == "-" else delta)

    return ZoneInfo(name)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to an aware UTC datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    return to_aware_utc(dt)


def to_aware_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    dt_utc = to_aware_utc(dt).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def parse_business_date(value: str | date | datetime | None) -> date:
    """
    Parse a business date.

    Accepts a date, a datetime (its calendar date is taken as-is) or a
    "YYYY-MM-DD" string. Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s[:10])
        except ValueError:
            raise ValueError(f"invalid date: {value!r} (expected YYYY-MM-DD)")
    raise ValueError("date is required")


def format_business_date(day: date) -> str:
    return day.isoformat()


def shift_day(day: date, days: int) -> date:
    return day + timedelta(days=days)


def day_window(day: date, tz: str | tzinfo | None) -> tuple[datetime, datetime]:
    """Return the [start, end) UTC instants of a business day in the given zone."""
    zone = resolve_timezone(tz)
    start_local = datetime.combine(day, time.min, tzinfo=zone)
    end_local = datetime.combine(shift_day(day, 1), time.min, tzinfo=zone)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def local_midnight(day: date, tz: str | tzinfo | None) -> datetime:
    return day_window(day, tz)[0]


def business_today(tz: str | tzinfo | None, now: datetime | None = None) -> date:
    """Current calendar date in the business time zone."""
    current = to_aware_utc(now) if now is not None else utcnow()
    return current.astimezone(resolve_timezone(tz)).date()
