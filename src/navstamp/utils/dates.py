"""
Date helpers for exchange-local valuation days and ISO timestamps.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso_z(dt: datetime) -> str:
    """Render an aware datetime as ISO-8601 UTC with millisecond precision and a trailing Z."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_ymd(s: str) -> date:
    """Parse YYYY-MM-DD string to date. Raises ValueError on failure."""
    return date.fromisoformat(str(s).strip()[:10])


def parse_iso_date(s: str | None) -> date | None:
    """Parse ISO date string (YYYY-MM-DD) to date."""
    if not s:
        return None
    try:
        return parse_ymd(s)
    except (ValueError, TypeError):
        return None


def local_date(now: datetime, tz: str) -> date:
    """
    Calendar date of `now` in the exchange-local timezone `tz`.

    A 17:00 New York stamp on 2026-02-17 is 22:00 UTC the same day, but a late
    re-run at 20:30 New York is already 2026-02-18 in UTC; keying by the local
    day keeps both runs on 2026-02-17.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz)).date()


def utc_date_of_epoch(ts: float) -> date:
    """UTC calendar date of a unix timestamp in seconds."""
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).date()
