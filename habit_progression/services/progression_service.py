"""
ProgressionService - Progression Business Logic

Orchestrates completion writes, streak recomputation, holiday mode, streak
savers and XP/tier/level updates against a record store.
"""

import logging
from typing import Dict, Iterable, List, Optional
from datetime import date, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from habit_progression.exceptions import EligibilityError, ProgressionError, ValidationError
from habit_progression.gamification.daily_completion import (
    DayCompletion,
    evaluate_day,
    set_day_completed,
    toggle_task,
)
from habit_progression.gamification.group_progress import (
    apply_group_streak_save,
    add_group_xp,
    calculate_group_daily_xp,
    calculate_group_streaks,
    calculate_group_xp_award,
    check_group_save_eligibility,
    evaluate_group_day,
    is_weekly_bonus_earned,
    mark_weekly_completion,
    toggle_member_task,
    update_group_streak,
)
from habit_progression.gamification.holiday_freeze import HolidayFreezeManager, validate_holiday_request
from habit_progression.gamification.milestones import check_milestone_unlock
from habit_progression.gamification.streak_saver import (
    add_streak_savers,
    apply_streak_save,
    check_streak_save_eligibility,
)
from habit_progression.gamification.streak_system import (
    StreakResult,
    calculate_goal_progress,
    calculate_streaks,
    update_streak,
)
from habit_progression.gamification.weekly_aggregator import week_start
from habit_progression.gamification.xp_system import (
    calculate_level_from_xp,
    calculate_tier,
    calculate_xp_award,
    level_up_events,
)
from habit_progression import config
from habit_progression.models.events import ProgressionEvent
from habit_progression.models.group import Group, GroupHabit
from habit_progression.models.habit import DayProgress, Habit, UserProgress
from habit_progression.models.holiday import FrozenTask, HolidayPeriod
from habit_progression.models.streak_saver import (
    InventoryScope,
    StreakSaveEligibility,
    StreakSaveResult,
    StreakSaverInventory,
)
from habit_progression.observability import metrics
from habit_progression.store import InMemoryRecordStore

logger = logging.getLogger(__name__)


class ProgressionUpdate(BaseModel):
    """Outcome of a completion write on a personal habit"""
    habit: Habit
    user_progress: UserProgress
    completion: DayCompletion
    streak: StreakResult
    xp_awarded: int = 0
    events: List[ProgressionEvent] = Field(default_factory=list)


class GroupProgressionUpdate(BaseModel):
    """Outcome of a completion write on a group habit"""
    group_habit: GroupHabit
    group: Group
    completion_rate: float
    streak: StreakResult
    xp_awarded: int = 0
    events: List[ProgressionEvent] = Field(default_factory=list)


class ProgressionService:
    """
    Service for habit progression.

    Responsibilities:
    - Task and full-day completion writes
    - Streak recomputation with holiday freezes
    - Holiday creation, cancellation and expiry
    - Streak saver eligibility and use
    - XP, tier, level and milestone updates
    - Group habit aggregation and group XP
    """

    def __init__(self, store: InMemoryRecordStore):
        """
        Initialize ProgressionService.

        Args:
            store: Record store holding habits, holidays, inventories and groups
        """
        self.store = store
        self._freeze_managers: Dict[str, HolidayFreezeManager] = {}
        logger.debug("ProgressionService initialized")

    def freeze_manager(self, user_id: str) -> HolidayFreezeManager:
        """Holiday freeze manager for a user, loaded from the store once"""
        manager = self._freeze_managers.get(user_id)
        if manager is None:
            manager = HolidayFreezeManager(self.store.get_user_holidays(user_id))
            self._freeze_managers[user_id] = manager
        return manager

    def _reload_holidays(self, user_id: str) -> HolidayFreezeManager:
        manager = self.freeze_manager(user_id)
        manager.invalidate()
        manager.replace_all(self.store.get_user_holidays(user_id))
        return manager

    # ==========================================
    # Completion writes
    # ==========================================

    def toggle_task(
        self,
        habit_id: str,
        task_id: str,
        day: date,
        now: datetime,
        completed: Optional[bool] = None
    ) -> ProgressionUpdate:
        """
        Toggle one task of a habit on a day

        Args:
            habit_id: Habit UUID
            task_id: Task id (must belong to the habit)
            day: Local date being edited
            now: Current local datetime
            completed: Explicit target state; None flips the task

        Returns:
            ProgressionUpdate with the new habit, XP and emitted events

        Raises:
            ValidationError: If the task does not belong to the habit, or the day is before
                the habit was created or after today
        """
        habit = self.store.get_habit(habit_id)
        _ensure_evaluable_day(day, habit.created_at, now.date(), habit.id)
        progress = toggle_task(habit.progress_for(day), task_id, habit.tasks, completed)
        return self._apply_completion(habit, day, progress, now)

    def toggle_day(self, habit_id: str, day: date, completed: bool, now: datetime) -> ProgressionUpdate:
        """Complete (or clear) every task of a habit on a day"""
        habit = self.store.get_habit(habit_id)
        _ensure_evaluable_day(day, habit.created_at, now.date(), habit.id)
        progress = set_day_completed(habit.progress_for(day), completed, habit.tasks)
        return self._apply_completion(habit, day, progress, now)

    def _apply_completion(
        self,
        habit: Habit,
        day: date,
        progress: DayProgress,
        now: datetime
    ) -> ProgressionUpdate:
        today = now.date()
        manager = self.freeze_manager(habit.user_id)
        frozen_tasks = manager.frozen_task_ids(habit.id, day)

        before = evaluate_day(habit.tasks, habit.progress_for(day), frozen_tasks)
        after = evaluate_day(habit.tasks, progress, frozen_tasks)

        changed = habit.model_copy(update={
            "daily_tasks": {**habit.daily_tasks, day.isoformat(): progress}
        })
        previous_streak = calculate_streaks(habit, today, manager)
        updated, streak = update_streak(changed, today, manager)

        # XP follows the day's state, so un-checking gives back what checking earned
        xp_before = calculate_xp_award(before.completed_count, len(habit.tasks), before.all_completed,
                                       previous_streak.current_streak)
        xp_after = calculate_xp_award(after.completed_count, len(habit.tasks), after.all_completed,
                                      streak.current_streak)
        xp_delta = xp_after.total - xp_before.total

        events: List[ProgressionEvent] = []
        broke = (
            previous_streak.current_streak > 0
            and streak.current_streak == 0
            and streak.last_break_date != previous_streak.last_break_date
        )
        updated = self._apply_tier_and_milestones(habit, updated, streak, now, events, broke)
        updated = updated.model_copy(update={"habit_xp": max(0, updated.habit_xp + xp_delta)})

        if xp_delta > 0:
            events.append(ProgressionEvent(
                event_type="xp_awarded",
                user_id=habit.user_id,
                habit_id=habit.id,
                payload={"amount": xp_delta, "base_xp": xp_after.base_xp,
                         "streak_bonus": xp_after.streak_bonus, "multiplier": xp_after.multiplier},
                occurred_at=now,
            ))
            metrics.xp_awarded_total.labels(scope="habit").inc(xp_delta)

        milestone_xp = sum(e.payload.get("xp_reward", 0) for e in events if e.event_type == "milestone_reached")
        user_progress = self._add_user_xp(habit.user_id, xp_delta + milestone_xp, now, events)

        with self.store.transaction():
            saved = self.store.save_habit(updated, expected_version=habit.version)
            user_progress = self.store.save_user_progress(user_progress, expected_version=user_progress.version)

        logger.info(
            f"Habit {habit.id} on {day}: {after.completed_count}/{after.total_count} done, "
            f"streak {streak.current_streak}, XP {xp_delta:+d}"
        )
        return ProgressionUpdate(
            habit=saved,
            user_progress=user_progress,
            completion=after,
            streak=streak,
            xp_awarded=xp_delta + milestone_xp,
            events=events,
        )

    def _apply_tier_and_milestones(
        self,
        previous: Habit,
        updated: Habit,
        streak: StreakResult,
        now: datetime,
        events: List[ProgressionEvent],
        broke: bool = False
    ) -> Habit:
        """Tier change, milestone and streak-break bookkeeping for a recomputed habit"""
        tier = calculate_tier(streak.current_streak).tier
        if tier.name != previous.current_tier:
            events.append(ProgressionEvent(
                event_type="tier_changed",
                user_id=previous.user_id,
                habit_id=previous.id,
                payload={"scope": "habit", "old_tier": previous.current_tier, "new_tier": tier.name,
                         "multiplier": tier.multiplier},
                occurred_at=now,
            ))
            metrics.tier_changes_total.labels(scope="habit").inc()
            updated = updated.model_copy(update={"current_tier": tier.name})

        milestone = check_milestone_unlock(streak.current_streak, updated.milestones_unlocked)
        if milestone is not None:
            events.append(ProgressionEvent(
                event_type="milestone_reached",
                user_id=previous.user_id,
                habit_id=previous.id,
                payload={"days": milestone.days, "title": milestone.title, "xp_reward": milestone.xp_reward,
                         "badge": milestone.badge},
                occurred_at=now,
            ))
            metrics.xp_awarded_total.labels(scope="milestone").inc(milestone.xp_reward)
            updated = updated.model_copy(update={
                "milestones_unlocked": [*updated.milestones_unlocked, milestone.title]
            })
            logger.info(f"Habit {previous.id} unlocked milestone '{milestone.title}'")

        if broke:
            events.append(ProgressionEvent(
                event_type="streak_broken",
                user_id=previous.user_id,
                habit_id=previous.id,
                payload={"missed_date": streak.last_break_date.isoformat() if streak.last_break_date else None,
                         "previous_streak": streak.streak_before_break},
                occurred_at=now,
            ))
            metrics.streak_breaks_total.labels(scope="habit").inc()

        return updated

    def _add_user_xp(
        self,
        user_id: str,
        amount: int,
        now: datetime,
        events: List[ProgressionEvent]
    ) -> UserProgress:
        progress = self.store.get_user_progress(user_id)
        if amount == 0:
            return progress
        new_total = max(0, progress.total_xp + amount)
        level = calculate_level_from_xp(new_total)
        events.extend(level_up_events(progress.level, level.current_level, now, user_id=user_id))
        return progress.model_copy(update={"total_xp": new_total, "level": level.current_level})

    # ==========================================
    # Streak recomputation
    # ==========================================

    def recalculate_habit(self, habit_id: str, now: datetime) -> ProgressionUpdate:
        """Recompute one habit's streak and tier (e.g. at day rollover)"""
        habit = self.store.get_habit(habit_id)
        manager = self.freeze_manager(habit.user_id)
        today = now.date()

        updated, streak = update_streak(habit, today, manager)
        # A stored run that ended at the newest break
        broke = (
            habit.current_streak > 0
            and streak.current_streak == 0
            and streak.last_break_date is not None
            and streak.streak_before_break >= habit.current_streak
        )
        events: List[ProgressionEvent] = []
        updated = self._apply_tier_and_milestones(habit, updated, streak, now, events, broke)

        milestone_xp = sum(e.payload.get("xp_reward", 0) for e in events if e.event_type == "milestone_reached")
        user_progress = self._add_user_xp(habit.user_id, milestone_xp, now, events)

        with self.store.transaction():
            saved = self.store.save_habit(updated, expected_version=habit.version)
            if milestone_xp:
                user_progress = self.store.save_user_progress(user_progress, expected_version=user_progress.version)

        return ProgressionUpdate(
            habit=saved,
            user_progress=user_progress,
            completion=evaluate_day(habit.tasks, habit.progress_for(today), manager.frozen_task_ids(habit.id, today)),
            streak=streak,
            xp_awarded=milestone_xp,
            events=events,
        )

    def recalculate_user_habits(
        self,
        user_id: str,
        now: datetime,
        habit_ids: Optional[Iterable[str]] = None
    ) -> List[ProgressionUpdate]:
        """
        Recompute streaks for a user's habits

        Args:
            habit_ids: Restrict to these habits (None means all the user's habits)
        """
        wanted = set(habit_ids) if habit_ids is not None else None
        updates = []
        for habit in self.store.get_user_habits(user_id):
            if wanted is not None and habit.id not in wanted:
                continue
            updates.append(self.recalculate_habit(habit.id, now))
        return updates

    def get_goal_progress(self, habit_id: str, today: date):
        habit = self.store.get_habit(habit_id)
        return calculate_goal_progress(habit, today, self.freeze_manager(habit.user_id))

    # ==========================================
    # Holiday mode
    # ==========================================

    def create_holiday(
        self,
        user_id: str,
        start_date: date,
        end_date: date,
        now: datetime,
        applies_to_all: bool = True,
        frozen_habits: Iterable[str] = (),
        frozen_tasks: Optional[Dict[str, List[str]]] = None,
        reason: Optional[str] = None,
        is_premium: bool = False
    ) -> HolidayPeriod:
        """
        Declare a holiday for a user

        Raises:
            ValidationError: If the period is invalid, too long or overlapping
        """
        today = now.date()
        manager = self.freeze_manager(user_id)
        validate_holiday_request(start_date, end_date, today, is_premium, manager.holidays)

        holiday = HolidayPeriod(
            id=str(uuid4()),
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            applies_to_all=applies_to_all,
            frozen_habits=list(frozen_habits),
            frozen_tasks=[FrozenTask(habit_id=h, task_ids=t) for h, t in (frozen_tasks or {}).items()],
            reason=reason,
            created_at=today,
        )
        holiday = self.store.save_holiday(holiday)
        manager.add(holiday)

        logger.info(f"Holiday {holiday.id} created for user {user_id}: {start_date} → {end_date}")
        return holiday

    def cancel_holiday(self, holiday_id: str, now: datetime) -> List[ProgressionUpdate]:
        """
        End a holiday early and recompute every affected habit immediately

        On failure the freeze cache is dropped, holidays are reloaded from the
        store and affected streaks are recomputed before the error propagates.
        """
        holiday = self.store.get_holiday(holiday_id)
        user_id = holiday.user_id
        manager = self.freeze_manager(user_id)
        today = now.date()

        try:
            affected = manager.cancel(holiday_id, today)
            self.store.save_holiday(manager.get(holiday_id), expected_version=holiday.version)
            updates = self.recalculate_user_habits(user_id, now, affected)
        except ProgressionError:
            metrics.holiday_cancellations_total.labels(status="error").inc()
            logger.error(f"Cancelling holiday {holiday_id} failed, reloading holidays for user {user_id}")
            self._reload_holidays(user_id)
            self.recalculate_user_habits(user_id, now, holiday.affected_habit_ids)
            raise

        metrics.holiday_cancellations_total.labels(status="success").inc()
        return updates

    def expire_holidays(self, user_id: str, now: datetime) -> List[ProgressionUpdate]:
        """Drop state of holidays that ended yesterday and recompute their habits"""
        manager = self.freeze_manager(user_id)
        ended = manager.expire(now.date())
        updates = []
        for holiday in ended:
            updates.extend(self.recalculate_user_habits(user_id, now, holiday.affected_habit_ids))
        return updates

    # ==========================================
    # Streak savers
    # ==========================================

    def get_inventory(self, owner_id: str, scope: InventoryScope = InventoryScope.PERSONAL) -> StreakSaverInventory:
        return self.store.get_inventory(owner_id, scope)

    def add_streak_savers(
        self,
        owner_id: str,
        quantity: int,
        scope: InventoryScope = InventoryScope.PERSONAL
    ) -> StreakSaverInventory:
        """Grant savers to a user (or a group's team allowance)"""
        inventory = self.store.get_inventory(owner_id, scope)
        granted = add_streak_savers(inventory, quantity)
        return self.store.save_inventory(granted, expected_version=inventory.version)

    def check_streak_save_eligibility(self, habit_id: str, now: datetime) -> StreakSaveEligibility:
        habit = self.store.get_habit(habit_id)
        inventory = self.store.get_inventory(habit.user_id)
        return check_streak_save_eligibility(habit, inventory, now, self.freeze_manager(habit.user_id))

    def use_streak_saver(
        self,
        habit_id: str,
        now: datetime,
        missed_date: Optional[date] = None
    ) -> tuple[StreakSaveResult, List[ProgressionEvent]]:
        """
        Repair a habit's most recent break with one saver

        Habit and inventory are written in one transaction: either both
        change or neither does.

        Raises:
            EligibilityError: If the break cannot be saved
        """
        habit = self.store.get_habit(habit_id)
        inventory = self.store.get_inventory(habit.user_id)
        manager = self.freeze_manager(habit.user_id)

        try:
            with self.store.transaction():
                repaired, new_inventory, result = apply_streak_save(habit, inventory, now, manager, missed_date)
                events: List[ProgressionEvent] = [ProgressionEvent(
                    event_type="streak_saved",
                    user_id=habit.user_id,
                    habit_id=habit.id,
                    payload={"missed_date": result.missed_date.isoformat(),
                             "previous_streak": result.previous_streak,
                             "new_streak": result.new_streak,
                             "savers_remaining": result.savers_remaining},
                    occurred_at=now,
                )]
                repaired = self._apply_tier_and_milestones(habit, repaired, StreakResult(
                    current_streak=result.new_streak, best_streak=result.best_streak), now, events)
                milestone_xp = sum(e.payload.get("xp_reward", 0) for e in events if e.event_type == "milestone_reached")
                if milestone_xp:
                    user_progress = self._add_user_xp(habit.user_id, milestone_xp, now, events)
                    self.store.save_user_progress(user_progress, expected_version=user_progress.version)
                self.store.save_habit(repaired, expected_version=habit.version)
                self.store.save_inventory(new_inventory, expected_version=inventory.version)
        except EligibilityError as e:
            metrics.record_streak_save(e.reason)
            raise

        metrics.record_streak_save("saved")
        return result, events

    # ==========================================
    # Group habits
    # ==========================================

    def toggle_group_task(
        self,
        group_habit_id: str,
        member_id: str,
        task_id: str,
        day: date,
        now: datetime,
        completed: Optional[bool] = None
    ) -> GroupProgressionUpdate:
        """Toggle a member's task and settle group streak and XP"""
        group_habit = self.store.get_group_habit(group_habit_id)
        _ensure_evaluable_day(day, group_habit.created_at, now.date(), group_habit.id)
        group = self.store.get_group(group_habit.group_id)

        before = evaluate_group_day(group_habit, day)
        changed = toggle_member_task(group_habit, member_id, day, task_id, completed)
        after = evaluate_group_day(changed, day)
        previous_streak = calculate_group_streaks(group_habit, now.date())
        updated, streak = update_group_streak(changed, now.date())
        broke = (
            previous_streak.current_streak > 0
            and streak.current_streak == 0
            and streak.last_break_date != previous_streak.last_break_date
        )

        xp_delta = (
            calculate_group_xp_award(calculate_group_daily_xp(after.completed_tasks, after.perfect), group)
            - calculate_group_xp_award(calculate_group_daily_xp(before.completed_tasks, before.perfect), group)
        )
        return self._settle_group(group_habit, updated, group, streak, after.completion_rate, xp_delta, now, broke)

    def mark_group_weekly_completion(self, group_habit_id: str, member_id: str, now: datetime) -> GroupProgressionUpdate:
        """Persist a member's weekly completion flag for a weekly group habit"""
        group_habit = self.store.get_group_habit(group_habit_id)
        group = self.store.get_group(group_habit.group_id)
        changed = mark_weekly_completion(group_habit, member_id, now.date())
        updated, streak = update_group_streak(changed, now.date())
        done = len([m for m, weeks in updated.weekly_completions.items()
                    if week_start(now.date()).isoformat() in weeks])
        rate = done / len(updated.member_ids) if updated.member_ids else 0.0
        return self._settle_group(group_habit, updated, group, streak, rate, 0, now)

    def award_group_weekly_bonus(self, group_habit_id: str, week: date, now: datetime) -> GroupProgressionUpdate:
        """Pay the weekly bonus once for a finished, fully validated week"""
        group_habit = self.store.get_group_habit(group_habit_id)
        group = self.store.get_group(group_habit.group_id)
        week_key = week_start(week).isoformat()

        xp = 0
        updated = group_habit
        if week_key not in group_habit.bonus_weeks and is_weekly_bonus_earned(group_habit, week, now.date()):
            xp = calculate_group_xp_award(config.GROUP_WEEKLY_BONUS_XP, group)
            updated = group_habit.model_copy(update={"bonus_weeks": [*group_habit.bonus_weeks, week_key]})
        updated, streak = update_group_streak(updated, now.date())
        return self._settle_group(group_habit, updated, group, streak, 1.0 if xp else 0.0, xp, now)

    def _settle_group(
        self,
        previous: GroupHabit,
        updated: GroupHabit,
        group: Group,
        streak: StreakResult,
        completion_rate: float,
        xp_delta: int,
        now: datetime,
        broke: bool = False
    ) -> GroupProgressionUpdate:
        events: List[ProgressionEvent] = []
        amount = max(xp_delta, -group.total_xp)
        if amount != 0:
            new_group, _, events = add_group_xp(group, amount, now)
            if amount > 0:
                events.append(ProgressionEvent(
                    event_type="xp_awarded",
                    group_id=group.id,
                    habit_id=previous.id,
                    payload={"amount": amount},
                    occurred_at=now,
                ))
                metrics.xp_awarded_total.labels(scope="group").inc(amount)
            tier_changes = len([e for e in events if e.event_type == "tier_changed"])
            if tier_changes:
                metrics.tier_changes_total.labels(scope="group").inc(tier_changes)
        else:
            new_group = group

        if broke:
            events.append(ProgressionEvent(
                event_type="streak_broken",
                group_id=group.id,
                habit_id=previous.id,
                payload={"missed_date": streak.last_break_date.isoformat() if streak.last_break_date else None,
                         "previous_streak": streak.streak_before_break},
                occurred_at=now,
            ))
            metrics.streak_breaks_total.labels(scope="group").inc()

        with self.store.transaction():
            saved_habit = self.store.save_group_habit(updated, expected_version=previous.version)
            if new_group is not group:
                new_group = self.store.save_group(new_group, expected_version=group.version)

        return GroupProgressionUpdate(
            group_habit=saved_habit,
            group=new_group,
            completion_rate=completion_rate,
            streak=streak,
            xp_awarded=amount,
            events=events,
        )

    def check_group_streak_save_eligibility(self, group_habit_id: str, now: datetime) -> StreakSaveEligibility:
        group_habit = self.store.get_group_habit(group_habit_id)
        inventory = self.store.get_inventory(group_habit.group_id, InventoryScope.TEAM)
        return check_group_save_eligibility(group_habit, inventory, now)

    def use_group_streak_saver(
        self,
        group_habit_id: str,
        now: datetime,
        missed_date: Optional[date] = None
    ) -> tuple[StreakSaveResult, List[ProgressionEvent]]:
        """Repair a group habit's most recent break from the team allowance"""
        group_habit = self.store.get_group_habit(group_habit_id)
        inventory = self.store.get_inventory(group_habit.group_id, InventoryScope.TEAM)

        try:
            with self.store.transaction():
                repaired, new_inventory, result = apply_group_streak_save(group_habit, inventory, now, missed_date)
                self.store.save_group_habit(repaired, expected_version=group_habit.version)
                self.store.save_inventory(new_inventory, expected_version=inventory.version)
        except EligibilityError as e:
            metrics.record_streak_save(e.reason)
            raise

        metrics.record_streak_save("saved")
        events = [ProgressionEvent(
            event_type="streak_saved",
            group_id=group_habit.group_id,
            habit_id=group_habit.id,
            payload={"missed_date": result.missed_date.isoformat(),
                     "previous_streak": result.previous_streak,
                     "new_streak": result.new_streak,
                     "savers_remaining": result.savers_remaining},
            occurred_at=now,
        )]
        return result, events


def _ensure_evaluable_day(day: date, created_at: date, today: date, habit_id: str) -> None:
    """Completion writes are limited to the days streaks and XP are evaluated on"""
    if day < created_at or day > today:
        raise ValidationError(
            f"Day {day} is outside {created_at} to {today} for habit {habit_id}",
            field="day",
            value=day.isoformat(),
            operation="completion_write",
        )
