"""Group habit models"""
from enum import Enum
from datetime import date
from pydantic import BaseModel, Field, field_validator

from habit_progression.models.habit import DayProgress


class GroupFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class Group(BaseModel):
    """Group sharing habits, XP and a team streak saver allowance"""
    id: str
    name: str
    member_ids: list[str] = Field(default_factory=list)
    habit_ids: list[str] = Field(default_factory=list)
    total_xp: int = 0
    level: int = 1
    version: int = 0


class GroupHabit(BaseModel):
    """
    Habit shared by every member of a group

    Completions are stored per member and aggregated per day. Weekly habits
    additionally persist a per-member "completed this week" flag, stored as
    the set of week-start keys (Monday, YYYY-MM-DD) the member finished.
    """
    id: str
    group_id: str
    name: str
    tasks: list[str] = Field(default_factory=list)
    frequency: GroupFrequency = GroupFrequency.DAILY
    member_ids: list[str] = Field(default_factory=list)
    daily_progress: dict[str, dict[str, DayProgress]] = Field(default_factory=dict)  # date -> member -> progress
    weekly_completions: dict[str, list[str]] = Field(default_factory=dict)  # member -> week-start keys
    current_streak: int = 0
    best_streak: int = 0
    saved_dates: list[str] = Field(default_factory=list)
    bonus_weeks: list[str] = Field(default_factory=list)  # week-start keys whose weekly bonus was paid
    created_at: date
    version: int = 0

    @field_validator('daily_progress')
    @classmethod
    def validate_date_keys(cls, v: dict[str, dict[str, DayProgress]]) -> dict[str, dict[str, DayProgress]]:
        for key in v:
            try:
                date.fromisoformat(key)
            except ValueError:
                raise ValueError(f"Invalid date key: '{key}'. Must be YYYY-MM-DD")
        return v

    def member_progress(self, day: date, member_id: str) -> DayProgress | None:
        return self.daily_progress.get(day.isoformat(), {}).get(member_id)
