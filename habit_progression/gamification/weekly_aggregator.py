"""
Weekly Aggregator

Evaluates "weekly" frequency habits over Monday-start calendar weeks.

A week counts as completed when at least one day inside it, clamped to
[created_at, today], is fully completed. Completed tasks are aggregated as a
set union across the week: a task finished on two days counts once.
"""

from typing import Iterable, Mapping, Optional
from datetime import date, datetime, time, timedelta
import logging

from habit_progression.models.habit import DayProgress
from habit_progression.utils.datetime_helpers import date_range

logger = logging.getLogger(__name__)

# New week opens on the following Monday at 00:01 local time
WEEK_RESET_TIME = time(0, 1)


def week_start(day: date) -> date:
    """Monday of the ISO week containing day"""
    return day - timedelta(days=day.isoweekday() - 1)


def week_end(day: date) -> date:
    """Sunday of the ISO week containing day"""
    return week_start(day) + timedelta(days=6)


def next_week_reset(today: date) -> datetime:
    """Local datetime when the next weekly window opens"""
    return datetime.combine(week_start(today) + timedelta(days=7), WEEK_RESET_TIME)


def week_window(day: date, created_at: date, today: date) -> Optional[tuple[date, date]]:
    """
    Week containing day, clamped to [created_at, today]

    Returns:
        (first, last) inclusive, or None when nothing of the week is evaluable
    """
    first = max(week_start(day), created_at)
    last = min(week_end(day), today)
    if last < first:
        return None
    return first, last


def _window_days(day: date, created_at: date, today: date) -> list[date]:
    window = week_window(day, created_at, today)
    if window is None:
        return []
    return list(date_range(*window))


def is_week_completed(
    daily_tasks: Mapping[str, DayProgress],
    day: date,
    created_at: date,
    today: date
) -> bool:
    """Whether the week containing day has a fully completed day"""
    for current in _window_days(day, created_at, today):
        progress = daily_tasks.get(current.isoformat())
        if progress is not None and progress.all_completed:
            return True
    return False


def is_weekly_habit_completed_this_week(
    daily_tasks: Mapping[str, DayProgress],
    created_at: date,
    today: date
) -> bool:
    """
    Whether a weekly habit is done for the current week

    Args:
        daily_tasks: YYYY-MM-DD -> DayProgress
        created_at: Habit creation date (days before it never count)
        today: Current local date (days after it never count)
    """
    return is_week_completed(daily_tasks, today, created_at, today)


def weekly_completed_task_ids(
    daily_tasks: Mapping[str, DayProgress],
    day: date,
    created_at: date,
    today: date,
    task_ids: Optional[Iterable[str]] = None
) -> set[str]:
    """Union of completed task ids across the clamped week containing day"""
    allowed = set(task_ids) if task_ids is not None else None
    completed: set[str] = set()
    for current in _window_days(day, created_at, today):
        progress = daily_tasks.get(current.isoformat())
        if progress is None:
            continue
        completed.update(progress.completed_tasks)

    if allowed is not None:
        completed &= allowed
    return completed


def weekly_completed_tasks_count(
    daily_tasks: Mapping[str, DayProgress],
    created_at: date,
    today: date,
    task_ids: Optional[Iterable[str]] = None
) -> int:
    """
    Distinct tasks completed so far this week

    When task_ids is given, ids outside the habit are not counted, so the
    result never exceeds the habit's distinct task count.
    """
    return len(weekly_completed_task_ids(daily_tasks, today, created_at, today, task_ids))


def iter_week_starts(created_at: date, today: date) -> list[date]:
    """Monday of every week from the creation week to the current week"""
    starts = []
    current = week_start(created_at)
    last = week_start(today)
    while current <= last:
        starts.append(current)
        current += timedelta(days=7)
    return starts
