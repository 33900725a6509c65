"""Unit tests for Datetime Helpers (habit_progression/utils/datetime_helpers.py)"""
import pytest
from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo

from habit_progression.utils.datetime_helpers import (
    date_range,
    days_between,
    get_timezone,
    local_now,
    local_today,
    parse_date_key,
    start_of_day,
    to_date_key,
)


# ============================================================================
# Timezone Tests
# ============================================================================

def test_get_timezone_valid():
    """Test resolving a valid IANA name"""
    assert get_timezone("Europe/Paris") == ZoneInfo("Europe/Paris")


def test_get_timezone_falls_back_to_utc():
    """Test that unknown or empty names fall back to UTC"""
    assert get_timezone("Not/AZone") == ZoneInfo("UTC")
    assert get_timezone(None) == ZoneInfo("UTC")


def test_local_now_is_aware():
    """Test that local_now returns a timezone-aware datetime"""
    result = local_now("Asia/Tokyo")

    assert result.tzinfo is not None


def test_local_today_near_utc_today():
    """Test that local dates differ from UTC by at most one day"""
    utc_date = datetime.now(timezone.utc).date()
    tokyo_date = local_today("Asia/Tokyo")

    assert abs((tokyo_date - utc_date).days) <= 1


# ============================================================================
# Date Key Tests
# ============================================================================

def test_to_date_key_from_date():
    assert to_date_key(date(2024, 6, 1)) == "2024-06-01"


def test_to_date_key_uses_local_wall_clock():
    """Test that an aware datetime keeps its own calendar date"""
    late_evening = datetime(2024, 6, 1, 23, 30, tzinfo=ZoneInfo("America/New_York"))

    assert to_date_key(late_evening) == "2024-06-01"


def test_parse_date_key_valid():
    assert parse_date_key("2024-02-29") == date(2024, 2, 29)


@pytest.mark.parametrize("value", ["2024/06/01", "01-06-2024", "2024-02-30", ""])
def test_parse_date_key_invalid(value):
    """Test that malformed keys are rejected"""
    with pytest.raises(ValueError, match="YYYY-MM-DD"):
        parse_date_key(value)


# ============================================================================
# Range Tests
# ============================================================================

def test_date_range_inclusive():
    result = list(date_range(date(2024, 2, 28), date(2024, 3, 1)))

    assert result == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]


def test_date_range_empty_when_reversed():
    assert list(date_range(date(2024, 3, 1), date(2024, 2, 28))) == []


def test_days_between_inclusive():
    assert days_between(date(2024, 6, 1), date(2024, 6, 1)) == 1
    assert days_between(date(2024, 6, 1), date(2024, 6, 14)) == 14
    assert days_between(date(2024, 6, 2), date(2024, 6, 1)) == 0


def test_start_of_day():
    assert start_of_day(date(2024, 6, 1)) == datetime(2024, 6, 1, 0, 0)
