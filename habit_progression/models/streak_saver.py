"""Streak saver models"""
from enum import Enum
from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field


class InventoryScope(str, Enum):
    """Personal allowance or a group's shared team allowance"""
    PERSONAL = "personal"
    TEAM = "team"


class StreakSaveReason(str, Enum):
    """Why a streak saver cannot be used"""
    NO_SAVERS = "no savers available"
    WINDOW_CLOSED = "window closed"
    ALREADY_USED = "already used"
    NO_BREAK = "no broken streak"
    NOTHING_TO_RESTORE = "nothing to restore"


class StreakSaverInventory(BaseModel):
    """Consumable streak savers owned by a user (or a group)"""
    owner_id: str
    scope: InventoryScope = InventoryScope.PERSONAL
    available: int = Field(default=0, ge=0)
    total_used: int = Field(default=0, ge=0)
    version: int = 0


class StreakSaveEligibility(BaseModel):
    """Derived, never stored"""
    can_save: bool
    habit_id: str
    last_break_date: Optional[date] = None
    previous_streak: int = 0
    reason: Optional[StreakSaveReason] = None
    detected_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    savers_available: int = 0


class StreakSaveResult(BaseModel):
    """Outcome of a successful streak save"""
    habit_id: str
    missed_date: date
    previous_streak: int
    new_streak: int
    best_streak: int
    savers_remaining: int
