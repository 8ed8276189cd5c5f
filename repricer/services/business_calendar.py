"""
Business-day calendar.

Weekends are closed. Holidays are configuration data (HOLIDAYS setting) and
are never computed.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from repricer.core.config import get_settings


def is_business_day(day: date, holidays: Optional[Iterable[date]] = None) -> bool:
    """False on Saturday, Sunday and any configured holiday."""
    if day.weekday() >= 5:
        return False
    if holidays is None:
        holidays = get_settings().HOLIDAYS
    return day not in set(holidays)


def today(timezone_name: Optional[str] = None) -> date:
    """The current calendar day in the business timezone."""
    tz = ZoneInfo(timezone_name or get_settings().BUSINESS_TIMEZONE)
    return datetime.now(tz).date()


def days_back(start: date, max_days: int):
    """Yield start - 1 day, start - 2 days, ... start - max_days."""
    for offset in range(1, max_days + 1):
        yield start - timedelta(days=offset)
