"""Global test fixtures and utilities for habit-progression tests"""
import pytest
from datetime import date, datetime, timedelta

from habit_progression.models.group import Group, GroupHabit
from habit_progression.models.habit import DayProgress, Habit
from habit_progression.models.holiday import HolidayPeriod
from habit_progression.services.progression_service import ProgressionService
from habit_progression.store import InMemoryRecordStore


# ============================================================================
# Clock Fixtures
# ============================================================================

@pytest.fixture
def today():
    """Fixed local date (a Wednesday)"""
    return date(2024, 6, 12)


@pytest.fixture
def now(today):
    """Fixed local datetime, morning of `today`"""
    return datetime.combine(today, datetime.min.time()).replace(hour=9)


@pytest.fixture
def days_ago(today):
    """days_ago(n) -> date n days before today"""
    def _days_ago(n: int) -> date:
        return today - timedelta(days=n)
    return _days_ago


# ============================================================================
# Record Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-1"


@pytest.fixture
def make_habit(test_user_id):
    """
    Habit factory

    make_habit(created_at, completed=[dates], tasks=[...], **fields)
    marks every task done on each completed date.
    """
    def _make_habit(created_at: date, completed=(), tasks=("t1", "t2"), **fields) -> Habit:
        task_list = list(tasks)
        daily_tasks = {
            day.isoformat(): DayProgress(completed_tasks=task_list, all_completed=True)
            for day in completed
        }
        fields.setdefault("id", "habit-1")
        fields.setdefault("user_id", test_user_id)
        fields.setdefault("name", "Morning routine")
        return Habit(tasks=task_list, daily_tasks=daily_tasks, created_at=created_at, **fields)
    return _make_habit


@pytest.fixture
def make_holiday(test_user_id):
    """HolidayPeriod factory (applies to every habit unless told otherwise)"""
    def _make_holiday(start_date: date, end_date: date, **fields) -> HolidayPeriod:
        fields.setdefault("id", "holiday-1")
        fields.setdefault("user_id", test_user_id)
        return HolidayPeriod(start_date=start_date, end_date=end_date, **fields)
    return _make_holiday


@pytest.fixture
def make_group_habit():
    """
    GroupHabit factory

    make_group_habit(created_at, progress={date: {member: [task ids]}}, ...)
    """
    def _make_group_habit(created_at: date, progress=None, tasks=("t1", "t2"),
                          members=("m1", "m2"), **fields) -> GroupHabit:
        task_list = list(tasks)
        daily_progress = {}
        for day, per_member in (progress or {}).items():
            daily_progress[day.isoformat()] = {
                member: DayProgress(completed_tasks=done, all_completed=set(done) >= set(task_list))
                for member, done in per_member.items()
            }
        fields.setdefault("id", "group-habit-1")
        fields.setdefault("group_id", "group-1")
        fields.setdefault("name", "Team walk")
        return GroupHabit(
            tasks=task_list,
            member_ids=list(members),
            daily_progress=daily_progress,
            created_at=created_at,
            **fields
        )
    return _make_group_habit


@pytest.fixture
def group():
    """Level 1 group with two members"""
    return Group(id="group-1", name="Walkers", member_ids=["m1", "m2"], habit_ids=["group-habit-1"])


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Empty in-memory record store"""
    return InMemoryRecordStore()


@pytest.fixture
def service(store):
    """ProgressionService over the in-memory store"""
    return ProgressionService(store)
