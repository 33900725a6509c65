"""Unit tests for the streak calculator (habit_progression/gamification/streak_system.py)"""
import pytest
from datetime import date, timedelta

from habit_progression.gamification.holiday_freeze import HolidayFreezeManager
from habit_progression.gamification.streak_system import (
    DayStatus,
    calculate_goal_progress,
    calculate_streaks,
    classify_day,
    update_streak,
)
from habit_progression.models.habit import DayProgress, Frequency
from habit_progression.models.holiday import FrozenTask


def span(start: date, end: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


# ============================================================================
# Daily habits
# ============================================================================

class TestDailyStreak:
    """Consecutive completed days"""

    def test_consecutive_days_through_yesterday(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(4), completed=span(days_ago(4), days_ago(1)))

        result = calculate_streaks(habit, today)

        assert result.current_streak == 4
        assert result.best_streak == 4
        assert result.last_break_date is None

    def test_today_counts_once_completed(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(2), completed=span(days_ago(2), today))

        assert calculate_streaks(habit, today).current_streak == 3

    def test_today_pending_does_not_break(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(2), completed=span(days_ago(2), days_ago(1)))

        assert classify_day(habit, today, today) == DayStatus.PENDING
        assert calculate_streaks(habit, today).current_streak == 2

    def test_missed_yesterday_breaks_streak(self, make_habit, days_ago, today):
        """10 completed days, nothing yesterday, today not done yet"""
        habit = make_habit(days_ago(11), completed=span(days_ago(11), days_ago(2)))

        result = calculate_streaks(habit, today)

        assert result.current_streak == 0
        assert result.best_streak == 10
        assert result.last_break_date == days_ago(1)
        assert result.streak_before_break == 10

    def test_partial_day_is_a_break(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(3), completed=[days_ago(3), days_ago(1)])
        habit.daily_tasks[days_ago(2).isoformat()] = DayProgress(completed_tasks=["t1"])

        result = calculate_streaks(habit, today)

        assert result.current_streak == 1
        assert result.last_break_date == days_ago(2)

    def test_new_habit_has_no_streak(self, make_habit, today):
        result = calculate_streaks(make_habit(today), today)

        assert result.current_streak == 0
        assert result.last_break_date is None

    def test_stored_best_streak_never_drops(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(2), completed=span(days_ago(2), days_ago(1)), best_streak=40)

        result = calculate_streaks(habit, today)

        assert result.current_streak == 2
        assert result.best_streak == 40

    @pytest.mark.parametrize("completed_offsets", [
        [],
        [1, 2, 3],
        [5, 4, 2, 1],
        [9, 8, 7, 6, 3, 2, 0],
        [0],
    ])
    def test_best_is_at_least_current(self, make_habit, days_ago, today, completed_offsets):
        habit = make_habit(days_ago(9), completed=[days_ago(n) for n in completed_offsets])

        result = calculate_streaks(habit, today)

        assert result.best_streak >= result.current_streak

    def test_binary_habit_uses_flag(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(2), tasks=[])
        for day in (days_ago(2), days_ago(1)):
            habit.daily_tasks[day.isoformat()] = DayProgress(all_completed=True)

        assert calculate_streaks(habit, today).current_streak == 2

    def test_saved_day_counts_like_completed(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(3), completed=[days_ago(3), days_ago(2)],
                           saved_dates=[days_ago(1).isoformat()])

        result = calculate_streaks(habit, today)

        assert result.current_streak == 3
        assert result.last_saved_date == days_ago(1)
        assert result.streak_before_save == 2


class TestCustomFrequency:
    """Only the chosen weekdays are evaluated"""

    def test_unscheduled_days_are_neutral(self, make_habit):
        # Monday, Wednesday, Friday habit; today is Wednesday 2024-06-12
        today = date(2024, 6, 12)
        completed = [date(2024, 6, 3), date(2024, 6, 5), date(2024, 6, 7), date(2024, 6, 10)]
        habit = make_habit(date(2024, 6, 3), completed=completed,
                           frequency=Frequency.CUSTOM, custom_days=[1, 3, 5])

        assert classify_day(habit, date(2024, 6, 11), today) == DayStatus.UNSCHEDULED
        assert calculate_streaks(habit, today).current_streak == 4

    def test_missed_scheduled_day_breaks(self, make_habit):
        today = date(2024, 6, 12)
        habit = make_habit(date(2024, 6, 3), completed=[date(2024, 6, 3), date(2024, 6, 10)],
                           frequency=Frequency.CUSTOM, custom_days=[1, 3, 5])

        result = calculate_streaks(habit, today)

        assert result.current_streak == 1
        assert result.last_break_date == date(2024, 6, 7)


class TestWeeklyStreak:
    """Weekly habits count consecutive completed weeks"""

    def test_consecutive_weeks(self, make_habit):
        habit = make_habit(date(2024, 5, 20), frequency=Frequency.WEEKLY,
                           completed=[date(2024, 5, 22), date(2024, 5, 29), date(2024, 6, 5)])

        result = calculate_streaks(habit, date(2024, 6, 12))

        assert result.current_streak == 3

    def test_missed_week_breaks(self, make_habit):
        habit = make_habit(date(2024, 5, 20), frequency=Frequency.WEEKLY,
                           completed=[date(2024, 5, 22), date(2024, 6, 5)])

        result = calculate_streaks(habit, date(2024, 6, 12))

        assert result.current_streak == 1
        assert result.last_break_date == date(2024, 5, 27)
        assert result.streak_before_break == 1

    def test_current_week_completed_counts(self, make_habit):
        habit = make_habit(date(2024, 6, 3), frequency=Frequency.WEEKLY,
                           completed=[date(2024, 6, 4), date(2024, 6, 11)])

        assert calculate_streaks(habit, date(2024, 6, 12)).current_streak == 2


# ============================================================================
# Holiday freezes
# ============================================================================

class TestFrozenDays:
    """Frozen days neither count nor break"""

    def test_streak_survives_holiday(self, make_habit, make_holiday, days_ago, today):
        """Streak 5, three frozen days, one more completed day: 6"""
        habit = make_habit(days_ago(9), completed=span(days_ago(9), days_ago(5)) + [days_ago(1)])
        manager = HolidayFreezeManager([make_holiday(days_ago(4), days_ago(2))])

        assert classify_day(habit, days_ago(3), today, manager) == DayStatus.FROZEN
        assert calculate_streaks(habit, today, manager).current_streak == 6

    def test_without_holiday_the_gap_breaks(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(9), completed=span(days_ago(9), days_ago(5)) + [days_ago(1)])

        assert calculate_streaks(habit, today).current_streak == 1

    def test_completed_day_during_holiday_still_counts(self, make_habit, make_holiday, days_ago, today):
        habit = make_habit(days_ago(3), completed=span(days_ago(3), days_ago(1)))
        manager = HolidayFreezeManager([make_holiday(days_ago(2), days_ago(1))])

        assert calculate_streaks(habit, today, manager).current_streak == 3

    def test_task_freeze_shrinks_the_day(self, make_habit, make_holiday, days_ago, today):
        habit = make_habit(days_ago(2), completed=[days_ago(2)])
        habit.daily_tasks[days_ago(1).isoformat()] = DayProgress(completed_tasks=["t1"])
        holiday = make_holiday(days_ago(1), days_ago(1), applies_to_all=False,
                               frozen_tasks=[FrozenTask(habit_id="habit-1", task_ids=["t2"])])
        manager = HolidayFreezeManager([holiday])

        assert classify_day(habit, days_ago(1), today, manager) == DayStatus.COMPLETED
        assert calculate_streaks(habit, today, manager).current_streak == 2

    def test_cancelled_holiday_stops_freezing(self, make_habit, make_holiday, days_ago, today):
        habit = make_habit(days_ago(3), completed=[days_ago(3)])
        manager = HolidayFreezeManager([make_holiday(days_ago(2), today + timedelta(days=3))])
        assert calculate_streaks(habit, today, manager).current_streak == 1

        manager.cancel("holiday-1", days_ago(1))

        result = calculate_streaks(habit, today, manager)
        assert result.current_streak == 0
        assert result.last_break_date == days_ago(1)


# ============================================================================
# Persisted update
# ============================================================================

def test_update_streak_writes_derived_fields(make_habit, days_ago, today):
    habit = make_habit(days_ago(2), completed=span(days_ago(2), days_ago(1)))

    updated, result = update_streak(habit, today)

    assert updated.current_streak == result.current_streak == 2
    assert updated.best_streak == 2
    assert updated.completed_dates == [days_ago(2).isoformat(), days_ago(1).isoformat()]
    assert habit.current_streak == 0  # input untouched


# ============================================================================
# Duration goal
# ============================================================================

class TestGoalProgress:
    """Progress toward total_days"""

    def test_frozen_days_excluded_by_default(self, make_habit, make_holiday, days_ago, today):
        habit = make_habit(days_ago(8), completed=span(days_ago(8), days_ago(4)), total_days=10)
        manager = HolidayFreezeManager([make_holiday(days_ago(3), days_ago(1))])

        progress = calculate_goal_progress(habit, today, manager)

        assert progress.completed_days == 5
        assert progress.frozen_days == 3
        assert progress.counted_days == 5
        assert progress.percent == pytest.approx(50.0)

    def test_frozen_days_counted_when_enabled(self, make_habit, make_holiday, days_ago, today):
        habit = make_habit(days_ago(8), completed=span(days_ago(8), days_ago(4)), total_days=10)
        manager = HolidayFreezeManager([make_holiday(days_ago(3), days_ago(1))])

        progress = calculate_goal_progress(habit, today, manager, count_frozen_days=True)

        assert progress.counted_days == 8
        assert progress.percent == pytest.approx(80.0)

    def test_percent_caps_at_100(self, make_habit, days_ago, today):
        habit = make_habit(days_ago(4), completed=span(days_ago(4), today), total_days=3)

        assert calculate_goal_progress(habit, today).percent == 100.0
