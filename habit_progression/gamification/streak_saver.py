"""
Streak Saver

One-shot, time-boxed, inventory-gated repair of a just-broken streak.

Rules:
- A break is detected at local midnight after the missed day (Monday 00:01
  after a missed week for weekly habits)
- It can be repaired only within STREAK_SAVER_WINDOW_HOURS of detection
- Each break event can be repaired once
- Repair needs an available saver (personal, or the group's team allowance)

A repair decrements the inventory by one, records the missed date as a
consumed break event and restores the streak to previous_streak + 1, as if
the missed day had been completed. The missed day's tasks are not touched.
The caller persists habit and inventory in one transaction.
"""

from typing import Iterable, Optional
from datetime import date, datetime, timedelta, timezone
import logging

from habit_progression import config
from habit_progression.exceptions import EligibilityError
from habit_progression.gamification.holiday_freeze import HolidayFreezeManager
from habit_progression.gamification.streak_system import StreakResult, calculate_streaks, update_streak
from habit_progression.gamification.weekly_aggregator import next_week_reset
from habit_progression.models.habit import Frequency, Habit
from habit_progression.models.streak_saver import (
    StreakSaveEligibility,
    StreakSaveReason,
    StreakSaveResult,
    StreakSaverInventory,
)
from habit_progression.utils.datetime_helpers import start_of_day

logger = logging.getLogger(__name__)


def break_detected_at(missed: date, weekly: bool = False, tzinfo=None) -> datetime:
    """Moment a missed day (or week) became a break"""
    if weekly:
        return next_week_reset(missed).replace(tzinfo=tzinfo)
    return start_of_day(missed + timedelta(days=1), tzinfo)


def window_expires_at(detected: datetime, window: timedelta) -> datetime:
    """End of the repair window, measured in elapsed time across DST changes"""
    if detected.tzinfo is None:
        return detected + window
    return (detected.astimezone(timezone.utc) + window).astimezone(detected.tzinfo)


def evaluate_save_eligibility(
    habit_id: str,
    streak: StreakResult,
    inventory: StreakSaverInventory,
    now: datetime,
    weekly: bool = False,
    window_hours: Optional[int] = None
) -> StreakSaveEligibility:
    """
    Decide whether the most recent break can be repaired

    Args:
        habit_id: Habit (or group habit) id
        streak: Current StreakResult of the habit
        inventory: Inventory the saver would come from
        now: Current local datetime (explicit)
        weekly: Whether breaks are whole weeks
        window_hours: Repair window (defaults to STREAK_SAVER_WINDOW_HOURS)
    """
    if window_hours is None:
        window_hours = config.STREAK_SAVER_WINDOW_HOURS
    window = timedelta(hours=window_hours)

    def ineligible(reason: StreakSaveReason, missed: Optional[date] = None, previous: int = 0,
                   detected: Optional[datetime] = None) -> StreakSaveEligibility:
        return StreakSaveEligibility(
            can_save=False,
            habit_id=habit_id,
            last_break_date=missed,
            previous_streak=previous,
            reason=reason,
            detected_at=detected,
            expires_at=window_expires_at(detected, window) if detected else None,
            savers_available=inventory.available,
        )

    missed = streak.last_break_date
    saved = streak.last_saved_date

    if saved is not None and (missed is None or saved > missed):
        detected = break_detected_at(saved, weekly, now.tzinfo)
        if now <= window_expires_at(detected, window):
            return ineligible(StreakSaveReason.ALREADY_USED, saved, streak.streak_before_save, detected)
        return ineligible(StreakSaveReason.NO_BREAK)

    if missed is None:
        return ineligible(StreakSaveReason.NO_BREAK)

    detected = break_detected_at(missed, weekly, now.tzinfo)
    previous = streak.streak_before_break

    expires = window_expires_at(detected, window)
    if now > expires:
        return ineligible(StreakSaveReason.WINDOW_CLOSED, missed, previous, detected)
    if previous <= 0:
        return ineligible(StreakSaveReason.NOTHING_TO_RESTORE, missed, previous, detected)
    if inventory.available <= 0:
        return ineligible(StreakSaveReason.NO_SAVERS, missed, previous, detected)

    return StreakSaveEligibility(
        can_save=True,
        habit_id=habit_id,
        last_break_date=missed,
        previous_streak=previous,
        detected_at=detected,
        expires_at=expires,
        savers_available=inventory.available,
    )


def check_streak_save_eligibility(
    habit: Habit,
    inventory: StreakSaverInventory,
    now: datetime,
    freeze_manager: Optional[HolidayFreezeManager] = None,
    window_hours: Optional[int] = None
) -> StreakSaveEligibility:
    """Eligibility of a personal habit's most recent break"""
    streak = calculate_streaks(habit, now.date(), freeze_manager)
    return evaluate_save_eligibility(
        habit.id,
        streak,
        inventory,
        now,
        weekly=habit.frequency == Frequency.WEEKLY,
        window_hours=window_hours,
    )


def ensure_eligible(
    eligibility: StreakSaveEligibility,
    saved_dates: Iterable[str],
    missed_date: Optional[date] = None,
    user_id: Optional[str] = None,
    window_hours: Optional[int] = None
) -> date:
    """
    Raise unless the (optionally named) break can be repaired

    Returns:
        The missed date to repair

    Raises:
        EligibilityError: With the ineligibility reason
    """
    if window_hours is None:
        window_hours = config.STREAK_SAVER_WINDOW_HOURS
    if missed_date is not None and missed_date.isoformat() in set(saved_dates):
        raise EligibilityError(StreakSaveReason.ALREADY_USED.value, habit_id=eligibility.habit_id,
                               user_id=user_id, window_hours=window_hours, operation="use_streak_saver")
    if not eligibility.can_save:
        raise EligibilityError(eligibility.reason.value, habit_id=eligibility.habit_id,
                               user_id=user_id, window_hours=window_hours, operation="use_streak_saver")
    if missed_date is not None and missed_date != eligibility.last_break_date:
        raise EligibilityError(StreakSaveReason.NO_BREAK.value, habit_id=eligibility.habit_id,
                               user_id=user_id, window_hours=window_hours, operation="use_streak_saver")
    return eligibility.last_break_date


def consume_saver(inventory: StreakSaverInventory) -> StreakSaverInventory:
    """Inventory copy with exactly one saver used"""
    return inventory.model_copy(update={
        "available": inventory.available - 1,
        "total_used": inventory.total_used + 1,
    })


def add_streak_savers(inventory: StreakSaverInventory, quantity: int) -> StreakSaverInventory:
    """Inventory copy with quantity savers granted"""
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    logger.info(f"Granted {quantity} streak saver(s) to {inventory.owner_id}")
    return inventory.model_copy(update={"available": inventory.available + quantity})


def apply_streak_save(
    habit: Habit,
    inventory: StreakSaverInventory,
    now: datetime,
    freeze_manager: Optional[HolidayFreezeManager] = None,
    missed_date: Optional[date] = None,
    window_hours: Optional[int] = None
) -> tuple[Habit, StreakSaverInventory, StreakSaveResult]:
    """
    Repair a personal habit's most recent break

    Pure: returns the new habit and inventory records without persisting.

    Raises:
        EligibilityError: "no savers available", "window closed",
            "already used", "no broken streak" or "nothing to restore"
    """
    eligibility = check_streak_save_eligibility(habit, inventory, now, freeze_manager, window_hours)
    missed = ensure_eligible(eligibility, habit.saved_dates, missed_date, user_id=habit.user_id,
                             window_hours=window_hours)

    repaired = habit.model_copy(update={"saved_dates": [*habit.saved_dates, missed.isoformat()]})
    repaired, streak = update_streak(repaired, now.date(), freeze_manager)
    new_inventory = consume_saver(inventory)

    logger.info(
        f"User {habit.user_id} saved habit {habit.id} streak missed on {missed}: "
        f"{eligibility.previous_streak} → {streak.current_streak} days"
    )

    result = StreakSaveResult(
        habit_id=habit.id,
        missed_date=missed,
        previous_streak=eligibility.previous_streak,
        new_streak=streak.current_streak,
        best_streak=streak.best_streak,
        savers_remaining=new_inventory.available,
    )
    return repaired, new_inventory, result
