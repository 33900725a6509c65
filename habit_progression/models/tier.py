"""Tier and level models"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class TierScope(str, Enum):
    """Habit tiers are keyed by streak, group tiers by level"""
    HABIT = "habit"
    GROUP = "group"


class Tier(BaseModel):
    """One rank of a tier table"""
    name: str
    floor: int  # minimum streak (habit) or level (group)
    multiplier: float = 1.0
    icon: str = ""
    description: str = ""


class TierPolicy(BaseModel):
    """
    Ordered tier table for one scope

    The top tier has no next floor, so its progress runs up to `ceiling`
    and clamps at 100% beyond it.
    """
    scope: TierScope
    tiers: list[Tier]
    ceiling: int

    @model_validator(mode='after')
    def validate_order(self) -> "TierPolicy":
        if not self.tiers:
            raise ValueError("a tier policy needs at least one tier")
        floors = [t.floor for t in self.tiers]
        if floors != sorted(floors) or len(set(floors)) != len(floors):
            raise ValueError("tier floors must be strictly increasing")
        if self.ceiling <= floors[-1]:
            raise ValueError("ceiling must be above the top tier's floor")
        return self


class TierStatus(BaseModel):
    """Tier lookup result"""
    tier: Tier
    next_tier: Optional[Tier] = None
    progress: float = Field(ge=0.0, le=100.0)  # progress to next tier, percent
    value: int


class XPAward(BaseModel):
    """Breakdown of one XP award"""
    base_xp: int
    streak_bonus: int
    multiplier: float
    total: int


class LevelProgress(BaseModel):
    """Level computed from accumulated XP"""
    current_level: int
    total_xp: int
    xp_in_current_level: int
    xp_to_next_level: int
    total_xp_for_next_level: Optional[int] = None  # None at the top of a finite table
