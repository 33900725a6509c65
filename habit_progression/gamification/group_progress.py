"""
Group Habit Progression

Group habits are structurally parallel to personal habits, but completions
are per member and aggregated per day.

Validation rules for a group day:
- 100% completion always validates the day
- >= GROUP_MIN_COMPLETION_RATE validates it once per streak run (the
  "exception"); the next shortfall breaks the streak
- Today only counts once it is fully completed, so it never burns the
  exception while members can still act

Weekly group habits count a member as done for a week when their persisted
weekly flag is set or any day of the clamped week is fully completed.

XP:
- GROUP_TASK_XP per completed task, GROUP_DAILY_BONUS_XP for a perfect day
- GROUP_WEEKLY_BONUS_XP when every day of a finished week validated
- Levels come from GROUP_LEVEL_THRESHOLDS; tiers from the group tier policy
"""

from typing import Iterator, List, Optional
from datetime import date, datetime, timedelta
import logging

from pydantic import BaseModel, Field

from habit_progression import config
from habit_progression.gamification.daily_completion import evaluate_day, toggle_task
from habit_progression.gamification.streak_saver import (
    consume_saver,
    ensure_eligible,
    evaluate_save_eligibility,
)
from habit_progression.gamification.streak_system import COUNTING_STATUSES, DayStatus, StreakResult
from habit_progression.gamification.weekly_aggregator import (
    iter_week_starts,
    week_start,
    week_window,
)
from habit_progression.gamification.xp_system import (
    GROUP_TIER_POLICY,
    calculate_group_level,
    calculate_tier,
    level_up_events,
    round_half_up,
)
from habit_progression.models.events import ProgressionEvent
from habit_progression.models.group import Group, GroupFrequency, GroupHabit
from habit_progression.models.streak_saver import StreakSaveEligibility, StreakSaveResult, StreakSaverInventory
from habit_progression.models.tier import LevelProgress
from habit_progression.utils.datetime_helpers import date_range

logger = logging.getLogger(__name__)


class GroupDayResult(BaseModel):
    """Aggregated completion of a group habit for one day (or week)"""
    period: date
    completion_rate: float = 0.0
    member_ratios: dict[str, float] = Field(default_factory=dict)
    completed_tasks: int = 0
    perfect: bool = False


def is_day_validated(completion_rate: float, failed_days_count: int) -> bool:
    """Whether a group day counts toward the streak"""
    if completion_rate >= 1.0:
        return True
    return (
        completion_rate >= config.GROUP_MIN_COMPLETION_RATE
        and failed_days_count < config.GROUP_MAX_FAILED_DAYS
    )


def get_required_completion_rate(failed_days_count: int) -> float:
    """Completion rate needed to validate the next day"""
    if failed_days_count < config.GROUP_MAX_FAILED_DAYS:
        return config.GROUP_MIN_COMPLETION_RATE
    return 1.0


def evaluate_group_day(group_habit: GroupHabit, day: date) -> GroupDayResult:
    """Mean member completion for one day; absent members count as 0"""
    members = group_habit.member_ids
    if not members:
        return GroupDayResult(period=day)

    ratios = {}
    completed_tasks = 0
    all_perfect = True
    for member_id in members:
        completion = evaluate_day(group_habit.tasks, group_habit.member_progress(day, member_id))
        ratios[member_id] = completion.ratio
        completed_tasks += completion.completed_count if group_habit.tasks else 0
        all_perfect = all_perfect and completion.all_completed

    return GroupDayResult(
        period=day,
        completion_rate=sum(ratios.values()) / len(members),
        member_ratios=ratios,
        completed_tasks=completed_tasks,
        perfect=all_perfect,
    )


def is_member_weekly_complete(group_habit: GroupHabit, member_id: str, day: date, today: date) -> bool:
    """Persisted weekly flag, or a fully completed day in the clamped week"""
    week = week_start(day)
    if week.isoformat() in group_habit.weekly_completions.get(member_id, []):
        return True
    window = week_window(day, group_habit.created_at, today)
    if window is None:
        return False
    for current in date_range(*window):
        completion = evaluate_day(group_habit.tasks, group_habit.member_progress(current, member_id))
        if completion.all_completed:
            return True
    return False


def evaluate_group_week(group_habit: GroupHabit, week: date, today: date) -> GroupDayResult:
    """Share of members who completed the weekly habit"""
    members = group_habit.member_ids
    if not members:
        return GroupDayResult(period=week)
    ratios = {
        member_id: 1.0 if is_member_weekly_complete(group_habit, member_id, week, today) else 0.0
        for member_id in members
    }
    rate = sum(ratios.values()) / len(members)
    return GroupDayResult(period=week, completion_rate=rate, member_ratios=ratios, perfect=rate >= 1.0)


def walk_group_periods(group_habit: GroupHabit, today: date) -> Iterator[tuple[date, DayStatus, bool]]:
    """
    Yield (period, status, used_exception) chronologically

    Periods are days for daily group habits and week starts for weekly ones.
    """
    weekly = group_habit.frequency == GroupFrequency.WEEKLY
    if weekly:
        periods = [w for w in iter_week_starts(group_habit.created_at, today)
                   if week_window(w, group_habit.created_at, today) is not None]
        current_period = week_start(today)
    else:
        periods = list(date_range(group_habit.created_at, today))
        current_period = today

    failed_days = 0
    for period in periods:
        result = (evaluate_group_week(group_habit, period, today) if weekly
                  else evaluate_group_day(group_habit, period))

        if result.completion_rate >= 1.0:
            yield period, DayStatus.COMPLETED, False
        elif period >= current_period:
            yield period, DayStatus.PENDING, False
        elif is_day_validated(result.completion_rate, failed_days):
            failed_days += 1
            yield period, DayStatus.COMPLETED, True
        elif period.isoformat() in group_habit.saved_dates:
            yield period, DayStatus.SAVED, False
        else:
            failed_days = 0
            yield period, DayStatus.BROKEN, False


def calculate_group_streaks(group_habit: GroupHabit, today: date) -> StreakResult:
    """Group streak with the same semantics as a personal streak"""
    result = StreakResult()
    run = 0
    best = 0
    for period, status, _ in walk_group_periods(group_habit, today):
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
    result.best_streak = max(best, group_habit.best_streak, run)
    return result


def update_group_streak(group_habit: GroupHabit, today: date) -> tuple[GroupHabit, StreakResult]:
    result = calculate_group_streaks(group_habit, today)
    updated = group_habit.model_copy(update={
        "current_streak": result.current_streak,
        "best_streak": result.best_streak,
    })
    return updated, result


def calculate_group_daily_xp(completed_tasks: int, is_perfect_day: bool) -> int:
    """Task XP plus the perfect-day bonus"""
    bonus = config.GROUP_DAILY_BONUS_XP if is_perfect_day else 0
    return completed_tasks * config.GROUP_TASK_XP + bonus


def is_weekly_bonus_earned(group_habit: GroupHabit, week: date, today: date) -> bool:
    """Every evaluable day of a finished week validated (daily group habits)"""
    if group_habit.frequency != GroupFrequency.DAILY:
        return False
    first = week_start(week)
    if first + timedelta(days=6) >= today:
        return False
    window = week_window(first, group_habit.created_at, today)
    if window is None:
        return False
    statuses = {
        period: status for period, status, _ in walk_group_periods(group_habit, window[1])
        if window[0] <= period <= window[1]
    }
    return bool(statuses) and all(s in COUNTING_STATUSES for s in statuses.values())


def toggle_member_task(
    group_habit: GroupHabit,
    member_id: str,
    day: date,
    task_id: str,
    completed: Optional[bool] = None
) -> GroupHabit:
    """Group habit copy with one member's task toggled"""
    key = day.isoformat()
    day_progress = dict(group_habit.daily_progress.get(key, {}))
    day_progress[member_id] = toggle_task(day_progress.get(member_id), task_id, group_habit.tasks, completed)
    daily_progress = {**group_habit.daily_progress, key: day_progress}
    return group_habit.model_copy(update={"daily_progress": daily_progress})


def mark_weekly_completion(group_habit: GroupHabit, member_id: str, today: date) -> GroupHabit:
    """Persist the member's "completed this week" flag"""
    week_key = week_start(today).isoformat()
    weeks = list(group_habit.weekly_completions.get(member_id, []))
    if week_key in weeks:
        return group_habit
    weeks.append(week_key)
    return group_habit.model_copy(update={
        "weekly_completions": {**group_habit.weekly_completions, member_id: weeks}
    })


def calculate_group_xp_award(base_xp: int, group: Group) -> int:
    """Group XP scaled by the group's tier multiplier"""
    status = calculate_tier(group.level, GROUP_TIER_POLICY)
    return round_half_up(base_xp * status.tier.multiplier)


def add_group_xp(
    group: Group,
    amount: int,
    occurred_at: datetime
) -> tuple[Group, LevelProgress, List[ProgressionEvent]]:
    """
    Add XP to a group, emitting level-up and tier-change events

    Returns:
        (updated group, new LevelProgress, events)
    """
    new_total = group.total_xp + amount
    progress = calculate_group_level(new_total)
    events = level_up_events(group.level, progress.current_level, occurred_at, group_id=group.id)

    old_tier = calculate_tier(group.level, GROUP_TIER_POLICY).tier
    new_tier = calculate_tier(progress.current_level, GROUP_TIER_POLICY).tier
    if new_tier.name != old_tier.name:
        events.append(ProgressionEvent(
            event_type="tier_changed",
            group_id=group.id,
            payload={"scope": "group", "old_tier": old_tier.name, "new_tier": new_tier.name},
            occurred_at=occurred_at,
        ))

    logger.info(f"Awarded {amount} XP to group {group.id}. Total: {new_total} XP, Level: {progress.current_level}")
    updated = group.model_copy(update={"total_xp": new_total, "level": progress.current_level})
    return updated, progress, events


def check_group_save_eligibility(
    group_habit: GroupHabit,
    team_inventory: StreakSaverInventory,
    now: datetime,
    window_hours: Optional[int] = None
) -> StreakSaveEligibility:
    streak = calculate_group_streaks(group_habit, now.date())
    return evaluate_save_eligibility(
        group_habit.id,
        streak,
        team_inventory,
        now,
        weekly=group_habit.frequency == GroupFrequency.WEEKLY,
        window_hours=window_hours,
    )


def apply_group_streak_save(
    group_habit: GroupHabit,
    team_inventory: StreakSaverInventory,
    now: datetime,
    missed_date: Optional[date] = None,
    window_hours: Optional[int] = None
) -> tuple[GroupHabit, StreakSaverInventory, StreakSaveResult]:
    """Repair a group habit's most recent break from the team allowance"""
    eligibility = check_group_save_eligibility(group_habit, team_inventory, now, window_hours)
    missed = ensure_eligible(eligibility, group_habit.saved_dates, missed_date, window_hours=window_hours)

    repaired = group_habit.model_copy(update={"saved_dates": [*group_habit.saved_dates, missed.isoformat()]})
    repaired, streak = update_group_streak(repaired, now.date())
    new_inventory = consume_saver(team_inventory)

    logger.info(
        f"Group {group_habit.group_id} saved habit {group_habit.id} streak missed on {missed}: "
        f"{eligibility.previous_streak} → {streak.current_streak}"
    )
    result = StreakSaveResult(
        habit_id=group_habit.id,
        missed_date=missed,
        previous_streak=eligibility.previous_streak,
        new_streak=streak.current_streak,
        best_streak=streak.best_streak,
        savers_remaining=new_inventory.available,
    )
    return repaired, new_inventory, result
