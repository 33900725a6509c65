"""
Holiday / Freeze Manager

Tracks declared holiday windows during which habits, or specific tasks, are
excluded from streak-breaking evaluation.

Freeze precedence for a (habit, date):
1. applies_to_all -> every habit frozen entirely
2. habit id in frozen_habits -> that habit frozen entirely
3. (habit_id, task_ids) pairs -> only those tasks frozen; remaining tasks
   still count and all_completed is judged against them

Resolved states are cached per (habit_id, date). Ending a holiday, naturally
or by cancellation, drops the whole cache so no stale freeze survives.
"""

from typing import Iterable, Optional
from datetime import date, timedelta
import logging

from habit_progression import config
from habit_progression.exceptions import NotFoundError, ValidationError
from habit_progression.models.habit import Habit
from habit_progression.models.holiday import FreezeMode, FreezeState, HolidayPeriod
from habit_progression.utils.datetime_helpers import days_between

logger = logging.getLogger(__name__)


class HolidayFreezeManager:
    """Freeze lookups over one user's holiday periods"""

    def __init__(self, holidays: Optional[Iterable[HolidayPeriod]] = None):
        self._holidays: dict[str, HolidayPeriod] = {h.id: h for h in (holidays or [])}
        self._cache: dict[tuple[str, date], FreezeState] = {}

    @property
    def holidays(self) -> list[HolidayPeriod]:
        return list(self._holidays.values())

    def get(self, holiday_id: str) -> HolidayPeriod:
        holiday = self._holidays.get(holiday_id)
        if holiday is None:
            raise NotFoundError(
                f"Holiday {holiday_id} not found",
                record_type="HolidayPeriod",
                record_id=holiday_id,
            )
        return holiday

    def add(self, holiday: HolidayPeriod) -> None:
        self._holidays[holiday.id] = holiday
        self.invalidate()

    def replace_all(self, holidays: Iterable[HolidayPeriod]) -> None:
        """Swap in an authoritative set of holidays (e.g. after a reload)"""
        self._holidays = {h.id: h for h in holidays}
        self.invalidate()

    def invalidate(self) -> None:
        if self._cache:
            logger.debug(f"Dropping {len(self._cache)} cached freeze states")
        self._cache.clear()

    def freeze_state(self, habit_id: str, day: date) -> FreezeState:
        """Strongest freeze any covering holiday applies to this habit on this day"""
        key = (habit_id, day)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        mode = FreezeMode.NONE
        frozen_tasks: set[str] = set()
        holiday_ids = []
        for holiday in self._holidays.values():
            if not holiday.covers(day):
                continue
            holiday_mode = holiday.freeze_mode_for(habit_id)
            if holiday_mode == FreezeMode.NONE:
                continue
            holiday_ids.append(holiday.id)
            if holiday_mode == FreezeMode.TASKS:
                frozen_tasks.update(holiday.frozen_task_ids_for(habit_id))
            if holiday_mode.rank > mode.rank:
                mode = holiday_mode

        state = FreezeState(
            mode=mode,
            frozen_task_ids=frozenset(frozen_tasks) if mode == FreezeMode.TASKS else frozenset(),
            holiday_ids=holiday_ids,
        )
        self._cache[key] = state
        return state

    def frozen_task_ids(self, habit_id: str, day: date) -> frozenset[str]:
        return self.freeze_state(habit_id, day).frozen_task_ids

    def is_fully_frozen(self, habit: Habit, day: date) -> bool:
        """
        Whether the whole habit is excluded on this day

        A task-level freeze covering every one of the habit's tasks counts as
        a full freeze. Binary habits cannot be task-frozen.
        """
        state = self.freeze_state(habit.id, day)
        if state.mode in (FreezeMode.ALL, FreezeMode.HABIT):
            return True
        if state.mode == FreezeMode.TASKS and habit.tasks:
            return set(habit.tasks) <= state.frozen_task_ids
        return False

    def is_on_holiday(self, today: date) -> bool:
        return any(h.is_active(today) for h in self._holidays.values())

    def active_holiday(self, today: date) -> Optional[HolidayPeriod]:
        active = [h for h in self._holidays.values() if h.is_active(today)]
        if not active:
            return None
        return min(active, key=lambda h: h.end_date)

    def cancel(self, holiday_id: str, today: date) -> Optional[set[str]]:
        """
        End a holiday early

        Days before today keep their freeze; today and later count normally
        again. All cached freeze state is dropped.

        Returns:
            Affected habit ids, or None when every habit is affected
        """
        holiday = self.get(holiday_id)
        if holiday.cancelled_on is not None:
            logger.info(f"Holiday {holiday_id} already cancelled on {holiday.cancelled_on}")
            return holiday.affected_habit_ids

        self._holidays[holiday_id] = holiday.model_copy(update={"cancelled_on": today})
        self.invalidate()
        logger.info(f"Cancelled holiday {holiday_id} for user {holiday.user_id} on {today}")
        return holiday.affected_habit_ids

    def expire(self, today: date) -> list[HolidayPeriod]:
        """
        Drop cached state for holidays that ended naturally before today

        Returns:
            Holidays whose end_date is yesterday (just ended)
        """
        yesterday = today - timedelta(days=1)
        ended = [
            h for h in self._holidays.values()
            if h.cancelled_on is None and h.end_date == yesterday
        ]
        if ended:
            self.invalidate()
            logger.info(f"{len(ended)} holiday(s) ended on {yesterday}")
        return ended


def validate_holiday_request(
    start_date: date,
    end_date: date,
    today: date,
    is_premium: bool = False,
    existing: Iterable[HolidayPeriod] = ()
) -> None:
    """
    Validate a holiday creation request

    Raises:
        ValidationError: If the range is invalid, too long, or overlaps an
            active holiday
    """
    if start_date < today:
        raise ValidationError("Start date cannot be in the past", field="start_date", value=start_date.isoformat())
    if end_date < start_date:
        raise ValidationError("End date must be after start date", field="end_date", value=end_date.isoformat())

    max_days = config.PREMIUM_HOLIDAY_MAX_DAYS if is_premium else config.FREE_HOLIDAY_MAX_DAYS
    duration = days_between(start_date, end_date)
    if max_days != -1 and duration > max_days:
        raise ValidationError(
            f"Holiday cannot exceed {max_days} days",
            field="end_date",
            value=end_date.isoformat(),
        )

    for holiday in existing:
        if holiday.cancelled_on is not None:
            continue
        if start_date <= holiday.end_date and holiday.start_date <= end_date:
            raise ValidationError(
                f"Overlaps holiday {holiday.id}",
                field="start_date",
                value=start_date.isoformat(),
            )
