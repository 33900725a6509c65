"""Progression events consumed by presentation and notification layers"""
from typing import Any, Literal, Optional
from datetime import datetime
from uuid import uuid4
from pydantic import BaseModel, Field

EventType = Literal[
    "xp_awarded",
    "tier_changed",
    "streak_saved",
    "streak_broken",
    "milestone_reached",
    "level_up",
]


class ProgressionEvent(BaseModel):
    """Reward/celebration event emitted by the engine"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: EventType
    user_id: Optional[str] = None
    habit_id: Optional[str] = None
    group_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
