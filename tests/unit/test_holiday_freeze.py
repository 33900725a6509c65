"""Unit tests for holiday mode (habit_progression/gamification/holiday_freeze.py)"""
import pytest
from datetime import timedelta

from habit_progression.exceptions import NotFoundError, ValidationError
from habit_progression.gamification.holiday_freeze import HolidayFreezeManager, validate_holiday_request
from habit_progression.models.holiday import FreezeMode, FrozenTask


# ============================================================================
# Freeze resolution
# ============================================================================

class TestFreezeState:
    """Strongest freeze wins across overlapping holidays"""

    def test_applies_to_all_freezes_every_habit(self, make_holiday, today):
        manager = HolidayFreezeManager([make_holiday(today, today + timedelta(days=3))])

        assert manager.freeze_state("habit-1", today).mode == FreezeMode.ALL
        assert manager.freeze_state("any-other-habit", today).mode == FreezeMode.ALL

    def test_day_outside_holiday_is_not_frozen(self, make_holiday, today):
        manager = HolidayFreezeManager([make_holiday(today, today + timedelta(days=3))])

        assert manager.freeze_state("habit-1", today - timedelta(days=1)).mode == FreezeMode.NONE

    def test_habit_freeze_beats_task_freeze(self, make_holiday, today):
        tasks_only = make_holiday(
            today, today, id="h-tasks", applies_to_all=False,
            frozen_tasks=[FrozenTask(habit_id="habit-1", task_ids=["t1"])],
        )
        whole_habit = make_holiday(today, today, id="h-habit", applies_to_all=False, frozen_habits=["habit-1"])
        manager = HolidayFreezeManager([tasks_only, whole_habit])

        state = manager.freeze_state("habit-1", today)

        assert state.mode == FreezeMode.HABIT
        assert state.frozen_task_ids == frozenset()
        assert set(state.holiday_ids) == {"h-tasks", "h-habit"}

    def test_task_freezes_are_unioned(self, make_holiday, today):
        first = make_holiday(today, today, id="h1", applies_to_all=False,
                             frozen_tasks=[FrozenTask(habit_id="habit-1", task_ids=["t1"])])
        second = make_holiday(today, today, id="h2", applies_to_all=False,
                              frozen_tasks=[FrozenTask(habit_id="habit-1", task_ids=["t2"])])
        manager = HolidayFreezeManager([first, second])

        assert manager.frozen_task_ids("habit-1", today) == frozenset({"t1", "t2"})

    def test_other_habits_unaffected_by_habit_freeze(self, make_holiday, today):
        holiday = make_holiday(today, today, applies_to_all=False, frozen_habits=["habit-1"])
        manager = HolidayFreezeManager([holiday])

        assert manager.freeze_state("habit-2", today).mode == FreezeMode.NONE


class TestFullyFrozen:
    """Task freezes covering every task freeze the whole habit"""

    def test_all_tasks_frozen(self, make_holiday, make_habit, today):
        holiday = make_holiday(today, today, applies_to_all=False,
                               frozen_tasks=[FrozenTask(habit_id="habit-1", task_ids=["t1", "t2"])])
        manager = HolidayFreezeManager([holiday])

        assert manager.is_fully_frozen(make_habit(today, tasks=["t1", "t2"]), today) is True
        assert manager.is_fully_frozen(make_habit(today, tasks=["t1", "t2", "t3"]), today) is False

    def test_binary_habit_cannot_be_task_frozen(self, make_holiday, make_habit, today):
        holiday = make_holiday(today, today, applies_to_all=False,
                               frozen_tasks=[FrozenTask(habit_id="habit-1", task_ids=["t1"])])
        manager = HolidayFreezeManager([holiday])

        assert manager.is_fully_frozen(make_habit(today, tasks=[]), today) is False


# ============================================================================
# Lifecycle
# ============================================================================

class TestCancel:
    """Ending a holiday early"""

    def test_cancel_unfreezes_from_today_on(self, make_holiday, today):
        manager = HolidayFreezeManager([make_holiday(today - timedelta(days=2), today + timedelta(days=2))])
        assert manager.freeze_state("habit-1", today).mode == FreezeMode.ALL

        affected = manager.cancel("holiday-1", today)

        assert affected is None  # every habit
        assert manager.freeze_state("habit-1", today).mode == FreezeMode.NONE
        assert manager.freeze_state("habit-1", today + timedelta(days=1)).mode == FreezeMode.NONE
        assert manager.freeze_state("habit-1", today - timedelta(days=1)).mode == FreezeMode.ALL

    def test_cancel_returns_affected_habits(self, make_holiday, today):
        holiday = make_holiday(today, today + timedelta(days=2), applies_to_all=False,
                               frozen_habits=["habit-1"],
                               frozen_tasks=[FrozenTask(habit_id="habit-2", task_ids=["t1"])])
        manager = HolidayFreezeManager([holiday])

        assert manager.cancel("holiday-1", today) == {"habit-1", "habit-2"}
        assert manager.get("holiday-1").cancelled_on == today

    def test_cancel_unknown_holiday(self, today):
        with pytest.raises(NotFoundError):
            HolidayFreezeManager().cancel("missing", today)

    def test_active_holiday(self, make_holiday, today):
        manager = HolidayFreezeManager([make_holiday(today, today + timedelta(days=2))])

        assert manager.is_on_holiday(today) is True
        manager.cancel("holiday-1", today)
        assert manager.is_on_holiday(today) is False
        assert manager.active_holiday(today) is None


def test_expire_reports_holidays_ended_yesterday(make_holiday, today):
    ended = make_holiday(today - timedelta(days=5), today - timedelta(days=1), id="ended")
    running = make_holiday(today - timedelta(days=5), today + timedelta(days=1), id="running")
    manager = HolidayFreezeManager([ended, running])

    assert [h.id for h in manager.expire(today)] == ["ended"]


# ============================================================================
# Request validation
# ============================================================================

class TestValidateHolidayRequest:
    """Holiday creation rules"""

    def test_valid_request(self, today):
        validate_holiday_request(today, today + timedelta(days=6), today)

    def test_start_in_past(self, today):
        with pytest.raises(ValidationError) as exc_info:
            validate_holiday_request(today - timedelta(days=1), today, today)
        assert exc_info.value.field == "start_date"

    def test_end_before_start(self, today):
        with pytest.raises(ValidationError):
            validate_holiday_request(today + timedelta(days=3), today + timedelta(days=1), today)

    def test_free_users_limited_to_max_days(self, today):
        with pytest.raises(ValidationError):
            validate_holiday_request(today, today + timedelta(days=14), today)

    def test_premium_users_unlimited(self, today):
        validate_holiday_request(today, today + timedelta(days=60), today, is_premium=True)

    def test_overlap_rejected(self, make_holiday, today):
        existing = make_holiday(today + timedelta(days=2), today + timedelta(days=4))

        with pytest.raises(ValidationError):
            validate_holiday_request(today, today + timedelta(days=3), today, existing=[existing])

    def test_cancelled_holiday_does_not_block(self, make_holiday, today):
        existing = make_holiday(today, today + timedelta(days=4), cancelled_on=today)

        validate_holiday_request(today, today + timedelta(days=3), today, existing=[existing])
