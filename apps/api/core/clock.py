"""
Civil-date helpers.

Quotas, history windows and review weeks are all keyed on the calendar date in
APP_TIMEZONE, never on the UTC date.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional
from zoneinfo import ZoneInfo

from core.config import settings

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def civil_today(now: Optional[datetime] = None) -> date:
    instant = ensure_aware(now) if now is not None else utc_now()
    return instant.astimezone(_zone(settings.APP_TIMEZONE)).date()


def shift_days(d: date, days: int) -> date:
    return d + timedelta(days=days)


def week_start(d: date) -> date:
    """Monday of the week containing `d`."""
    return d - timedelta(days=d.weekday())


def days_between(start: date, end: date) -> int:
    return (end - start).days


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse a strict YYYY-MM-DD string; anything else yields None."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None
