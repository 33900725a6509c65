"""
Streak Calculator

Walks a habit's daily records from creation to "today" and derives its
current and best streak. Every day is classified as:

- completed: all (non-frozen) tasks done, counts +1
- saved: a past miss repaired by a streak saver, counts +1
- frozen: covered by a holiday for this habit (or all its tasks), neutral
- unscheduled: not one of a custom habit's weekdays, neutral
- pending: today and not done yet, neutral while still actionable
- broken: a past day matching none of the above, resets the streak to 0

Weekly habits are walked week by week (Monday-start) with the same rules,
so their streak counts consecutive completed weeks.

Features:
- Holiday / task freezes via HolidayFreezeManager
- Best streak never decreases
- Break tracking for the streak saver
- Duration goal progress
"""

from enum import Enum
from typing import Optional
from datetime import date, timedelta
import logging

from pydantic import BaseModel

from habit_progression import config
from habit_progression.gamification.daily_completion import evaluate_day
from habit_progression.gamification.holiday_freeze import HolidayFreezeManager
from habit_progression.gamification.weekly_aggregator import (
    iter_week_starts,
    week_start,
    week_window,
)
from habit_progression.models.habit import Frequency, Habit
from habit_progression.utils.datetime_helpers import date_range

logger = logging.getLogger(__name__)


class DayStatus(str, Enum):
    COMPLETED = "completed"
    SAVED = "saved"
    FROZEN = "frozen"
    UNSCHEDULED = "unscheduled"
    PENDING = "pending"
    BROKEN = "broken"


COUNTING_STATUSES = {DayStatus.COMPLETED, DayStatus.SAVED}


class StreakResult(BaseModel):
    """Derived streak state for one habit"""
    current_streak: int = 0
    best_streak: int = 0
    last_break_date: Optional[date] = None  # most recent broken day (week start for weekly habits)
    streak_before_break: int = 0  # run length that last_break_date ended
    last_saved_date: Optional[date] = None  # most recent miss repaired by a saver
    streak_before_save: int = 0


class GoalProgress(BaseModel):
    """Progress toward a habit's duration goal"""
    completed_days: int
    frozen_days: int
    counted_days: int
    total_days: int
    percent: float


def _is_day_completed(habit: Habit, day: date, freeze_manager: Optional[HolidayFreezeManager]) -> bool:
    frozen_tasks = freeze_manager.frozen_task_ids(habit.id, day) if freeze_manager else frozenset()
    return evaluate_day(habit.tasks, habit.progress_for(day), frozen_tasks).all_completed


def classify_day(
    habit: Habit,
    day: date,
    today: date,
    freeze_manager: Optional[HolidayFreezeManager] = None
) -> DayStatus:
    """
    Classify one day of a daily or custom-frequency habit

    A day completed during a holiday still counts as completed.
    """
    if not habit.is_scheduled(day):
        return DayStatus.UNSCHEDULED
    if _is_day_completed(habit, day, freeze_manager):
        return DayStatus.COMPLETED
    if freeze_manager is not None and freeze_manager.is_fully_frozen(habit, day):
        return DayStatus.FROZEN
    if day >= today:
        return DayStatus.PENDING
    if day.isoformat() in habit.saved_dates:
        return DayStatus.SAVED
    return DayStatus.BROKEN


def classify_week(
    habit: Habit,
    week: date,
    today: date,
    freeze_manager: Optional[HolidayFreezeManager] = None
) -> Optional[DayStatus]:
    """
    Classify the week starting on `week` for a weekly habit

    Returns:
        DayStatus, or None when no day of the week is evaluable
    """
    window = week_window(week, habit.created_at, today)
    if window is None:
        return None

    days = list(date_range(*window))
    if any(_is_day_completed(habit, day, freeze_manager) for day in days):
        return DayStatus.COMPLETED
    if week == week_start(today):
        return DayStatus.PENDING
    if freeze_manager is not None and all(freeze_manager.is_fully_frozen(habit, day) for day in days):
        return DayStatus.FROZEN
    if week.isoformat() in habit.saved_dates:
        return DayStatus.SAVED
    return DayStatus.BROKEN


def _walk(habit: Habit, today: date, freeze_manager: Optional[HolidayFreezeManager]):
    """Yield (period_start, status) in chronological order"""
    if habit.frequency == Frequency.WEEKLY:
        for week in iter_week_starts(habit.created_at, today):
            status = classify_week(habit, week, today, freeze_manager)
            if status is not None:
                yield week, status
        return

    earliest = today - timedelta(days=config.STREAK_HISTORY_LIMIT_DAYS)
    start = max(habit.created_at, earliest)
    for day in date_range(start, today):
        yield day, classify_day(habit, day, today, freeze_manager)


def calculate_streaks(
    habit: Habit,
    today: date,
    freeze_manager: Optional[HolidayFreezeManager] = None
) -> StreakResult:
    """
    Derive current and best streak from the habit's records

    Args:
        habit: Habit snapshot
        today: Current local date (explicit, never read from the clock)
        freeze_manager: Holiday freezes for the habit's owner

    Returns:
        StreakResult; best_streak is at least the stored best_streak
    """
    result = StreakResult()
    run = 0
    best = 0

    for period, status in _walk(habit, today, freeze_manager):
        if status in COUNTING_STATUSES:
            if status == DayStatus.SAVED:
                result.last_saved_date = period
                result.streak_before_save = run
            run += 1
        elif status == DayStatus.BROKEN:
            result.last_break_date = period
            result.streak_before_break = run
            run = 0
        best = max(best, run)

    result.current_streak = run
    result.best_streak = max(best, habit.best_streak, run)
    return result


def update_streak(
    habit: Habit,
    today: date,
    freeze_manager: Optional[HolidayFreezeManager] = None
) -> tuple[Habit, StreakResult]:
    """
    Recompute a habit's streak fields

    Returns:
        (updated habit copy, StreakResult)
    """
    result = calculate_streaks(habit, today, freeze_manager)
    completed_dates = sorted(
        key for key, progress in habit.daily_tasks.items()
        if evaluate_day(habit.tasks, progress).all_completed
    )

    updated = habit.model_copy(update={
        "current_streak": result.current_streak,
        "best_streak": result.best_streak,
        "completed_dates": completed_dates,
    })

    if result.current_streak != habit.current_streak:
        logger.info(
            f"Updated streak for habit {habit.id}: "
            f"{habit.current_streak} → {result.current_streak} days"
        )
    if result.current_streak == 0 and habit.current_streak > 0:
        logger.info(
            f"Habit {habit.id} streak broken on {result.last_break_date}. "
            f"Was {result.streak_before_break}"
        )

    return updated, result


def calculate_goal_progress(
    habit: Habit,
    today: date,
    freeze_manager: Optional[HolidayFreezeManager] = None,
    count_frozen_days: Optional[bool] = None
) -> GoalProgress:
    """
    Progress toward the habit's total_days duration goal

    Frozen days count only when count_frozen_days (default from
    COUNT_FROZEN_DAYS_TOWARD_GOAL) is enabled.
    """
    if count_frozen_days is None:
        count_frozen_days = config.COUNT_FROZEN_DAYS_TOWARD_GOAL

    completed = 0
    frozen = 0
    for _, status in _walk(habit, today, freeze_manager):
        if status == DayStatus.COMPLETED:
            completed += 1
        elif status == DayStatus.FROZEN:
            frozen += 1

    counted = completed + (frozen if count_frozen_days else 0)
    total = max(habit.total_days, 1)
    return GoalProgress(
        completed_days=completed,
        frozen_days=frozen,
        counted_days=counted,
        total_days=habit.total_days,
        percent=min(100.0, counted / total * 100),
    )
