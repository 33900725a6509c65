"""Holiday mode models"""
from enum import Enum
from typing import Optional
from datetime import date, timedelta
from pydantic import BaseModel, Field, model_validator


class FreezeMode(str, Enum):
    """
    What a holiday freezes for a given habit, strongest first:
    ALL > HABIT > TASKS > NONE
    """
    NONE = "none"
    TASKS = "tasks"
    HABIT = "habit"
    ALL = "all"

    @property
    def rank(self) -> int:
        return _FREEZE_RANK[self]


_FREEZE_RANK = {
    FreezeMode.NONE: 0,
    FreezeMode.TASKS: 1,
    FreezeMode.HABIT: 2,
    FreezeMode.ALL: 3,
}


class FrozenTask(BaseModel):
    """Tasks frozen inside a single habit"""
    habit_id: str
    task_ids: list[str] = Field(default_factory=list)


class HolidayPeriod(BaseModel):
    """Declared window excluded from streak-breaking evaluation"""
    id: str
    user_id: str
    start_date: date
    end_date: date
    applies_to_all: bool = True
    frozen_habits: list[str] = Field(default_factory=list)
    frozen_tasks: list[FrozenTask] = Field(default_factory=list)
    reason: Optional[str] = None
    created_at: Optional[date] = None
    cancelled_on: Optional[date] = None  # set when ended early
    version: int = 0

    @model_validator(mode='after')
    def validate_range(self) -> "HolidayPeriod":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self

    @property
    def effective_end(self) -> date:
        """Last frozen day, accounting for early cancellation"""
        if self.cancelled_on is not None:
            return min(self.end_date, self.cancelled_on - timedelta(days=1))
        return self.end_date

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.effective_end

    def is_active(self, today: date) -> bool:
        return self.cancelled_on is None and self.start_date <= today <= self.end_date

    def freeze_mode_for(self, habit_id: str) -> FreezeMode:
        """Tagged freeze mode this holiday applies to one habit"""
        if self.applies_to_all:
            return FreezeMode.ALL
        if habit_id in self.frozen_habits:
            return FreezeMode.HABIT
        for frozen in self.frozen_tasks:
            if frozen.habit_id == habit_id and frozen.task_ids:
                return FreezeMode.TASKS
        return FreezeMode.NONE

    def frozen_task_ids_for(self, habit_id: str) -> set[str]:
        ids: set[str] = set()
        for frozen in self.frozen_tasks:
            if frozen.habit_id == habit_id:
                ids.update(frozen.task_ids)
        return ids

    @property
    def affected_habit_ids(self) -> Optional[set[str]]:
        """Habits this holiday touches, or None for every habit"""
        if self.applies_to_all:
            return None
        return set(self.frozen_habits) | {f.habit_id for f in self.frozen_tasks}


class FreezeState(BaseModel):
    """Resolved freeze for one (habit, date)"""
    mode: FreezeMode = FreezeMode.NONE
    frozen_task_ids: frozenset[str] = frozenset()
    holiday_ids: list[str] = Field(default_factory=list)
