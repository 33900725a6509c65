"""Habit models"""
from enum import Enum
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field, field_validator, model_validator


class HabitKind(str, Enum):
    """Build a good habit or break a bad one"""
    GOOD = "good"
    BAD = "bad"


class Frequency(str, Enum):
    """How often a habit is expected to be completed"""
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"  # explicit weekday set


class Task(BaseModel):
    """Task label shown for a task id"""
    id: str
    name: str
    duration: Optional[str] = None


class DayProgress(BaseModel):
    """Completion record of one habit for one local date"""
    completed_tasks: list[str] = Field(default_factory=list)
    all_completed: bool = False

    @field_validator('completed_tasks')
    @classmethod
    def dedupe_completed_tasks(cls, v: list[str]) -> list[str]:
        """Keep task ids unique, preserving first-seen order"""
        return list(dict.fromkeys(v))


class Habit(BaseModel):
    """Habit with its per-day completion history and derived streaks"""
    id: str
    user_id: str
    name: str
    kind: HabitKind = HabitKind.GOOD
    category: str = "general"
    tasks: list[str] = Field(default_factory=list)  # ordered task ids
    frequency: Frequency = Frequency.DAILY
    custom_days: list[int] = Field(default_factory=list)  # ISO weekdays, Monday=1
    daily_tasks: dict[str, DayProgress] = Field(default_factory=dict)  # YYYY-MM-DD -> progress
    current_streak: int = 0
    best_streak: int = 0
    completed_dates: list[str] = Field(default_factory=list)
    total_days: int = 61  # duration goal
    created_at: date
    group_id: Optional[str] = None

    # Progression state
    saved_dates: list[str] = Field(default_factory=list)  # break events repaired by a streak saver
    milestones_unlocked: list[str] = Field(default_factory=list)
    current_tier: str = "Beginner"
    habit_xp: int = 0

    version: int = 0

    @field_validator('tasks')
    @classmethod
    def dedupe_tasks(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @field_validator('custom_days')
    @classmethod
    def validate_custom_days(cls, v: list[int]) -> list[int]:
        """Ensure weekdays are 1-7 (Monday-Sunday)"""
        for day in v:
            if day < 1 or day > 7:
                raise ValueError(
                    f"Invalid weekday: {day}. Weekdays must be 1-7 (Monday=1, Sunday=7)"
                )
        return sorted(set(v))

    @field_validator('daily_tasks')
    @classmethod
    def validate_date_keys(cls, v: dict[str, DayProgress]) -> dict[str, DayProgress]:
        """Ensure YYYY-MM-DD keys"""
        for key in v:
            try:
                date.fromisoformat(key)
            except ValueError:
                raise ValueError(f"Invalid date key: '{key}'. Must be YYYY-MM-DD")
        return v

    @model_validator(mode='after')
    def require_days_for_custom(self) -> "Habit":
        if self.frequency == Frequency.CUSTOM and not self.custom_days:
            raise ValueError("custom frequency requires at least one weekday")
        return self

    @property
    def is_binary(self) -> bool:
        """Zero-task habit created before the task system existed"""
        return not self.tasks

    def is_scheduled(self, day: date) -> bool:
        """Whether the habit expects a completion on this day"""
        if self.frequency == Frequency.CUSTOM:
            return day.isoweekday() in self.custom_days
        return True

    def progress_for(self, day: date) -> Optional[DayProgress]:
        return self.daily_tasks.get(day.isoformat())


class UserProgress(BaseModel):
    """Account-wide XP and level"""
    user_id: str
    total_xp: int = 0
    level: int = 1
    version: int = 0
