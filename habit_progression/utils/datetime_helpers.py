"""
Local-Calendar Date Utilities

Every date key in the engine is a local-calendar date string (YYYY-MM-DD)
derived from the user's timezone, never UTC: the user's perceived "day"
decides streak continuity, not an absolute instant.

CRITICAL RULES:
- Evaluation code never reads the wall clock; callers pass "today"/"now"
- local_today()/local_now() are the only clock reads and belong to callers
- Never mix naive and aware datetimes in the same comparison
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DATE_KEY_FORMAT = "%Y-%m-%d"

# Default timezone if user hasn't set one
DEFAULT_TIMEZONE = "UTC"

DateLike = Union[date, str]


def get_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """
    Resolve a timezone name, falling back to the default

    Args:
        tz_name: IANA timezone name (e.g. "Europe/Paris")

    Returns:
        ZoneInfo object
    """
    if not tz_name:
        return ZoneInfo(DEFAULT_TIMEZONE)

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.error(f"Invalid timezone '{tz_name}': {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_now(tz_name: Optional[str] = None) -> datetime:
    """Current datetime in the given timezone (timezone-aware)"""
    return datetime.now(get_timezone(tz_name))


def local_today(tz_name: Optional[str] = None) -> date:
    """Today's local-calendar date in the given timezone"""
    return local_now(tz_name).date()


def to_date_key(value: DateLike) -> str:
    """
    Convert a date to its YYYY-MM-DD key

    Datetimes are converted using their own (local) wall-clock date.
    """
    if isinstance(value, str):
        return parse_date_key(value).strftime(DATE_KEY_FORMAT)
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(DATE_KEY_FORMAT)


def parse_date_key(value: DateLike) -> date:
    """
    Parse a YYYY-MM-DD key to a date object

    Raises:
        ValueError: If value is not in YYYY-MM-DD format
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, DATE_KEY_FORMAT).date()
    except ValueError as e:
        raise ValueError(f"Invalid date key '{value}'. Expected YYYY-MM-DD") from e


def date_range(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end, both inclusive"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def start_of_day(day: date, tzinfo=None) -> datetime:
    """Local midnight (00:00) of a date"""
    return datetime.combine(day, time.min, tzinfo=tzinfo)


def days_between(start: date, end: date) -> int:
    """Inclusive count of days between two dates (0 if end precedes start)"""
    if end < start:
        return 0
    return (end - start).days + 1
