from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Optional

from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM:SS(.fffffff)" (naive) is kept as-is
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped

    The upstream emits up to 7 fractional digits; extra digits are dropped
    so fromisoformat accepts them.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None

        if s.endswith("Z"):
            s = s[:-1] + "+00:00"

        if "." in s:
            head, _, frac = s.partition(".")
            digits = ""
            rest = ""
            for i, ch in enumerate(frac):
                if not ch.isdigit():
                    rest = frac[i:]
                    break
                digits += ch
            s = f"{head}.{digits[:6].ljust(6, '0')}{rest}" if digits else f"{head}{rest}"

        dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def today_in(tz_name: str) -> date:
    """Calendar date in the configured business time zone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month (leap years included)."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def format_ymd(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def format_mdy(d: date) -> str:
    """Purchase-order endpoints take MM/DD/YYYY."""
    return d.strftime("%m/%d/%Y")


def parse_mdy(value: str) -> date:
    """Strict MM/DD/YYYY parser; raises ValueError on anything else."""
    text = (value or "").strip()
    parts = text.split("/")
    if len(parts) != 3 or len(parts[0]) != 2 or len(parts[1]) != 2 or len(parts[2]) != 4:
        raise ValueError(f"Expected MM/DD/YYYY, got {value!r}")
    return datetime.strptime(text, "%m/%d/%Y").date()


def months_before(d: date, months: int) -> date:
    """Same day-of-month `months` earlier, clamped to the month's last day."""
    month_index = d.year * 12 + (d.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))

