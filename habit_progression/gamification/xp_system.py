"""
Tier, XP and Leveling System

Maps a streak (habit scope) or a level (group scope) to a tier, computes XP
awards, and derives levels from accumulated XP.

Habit tiers (streak floor -> multiplier):
- Beginner 0 (x1.0), Novice 7 (x1.1), Adept 14 (x1.2)
- Expert 30 (x1.3), Master 60 (x1.5), Legendary 100 (x2.0)

Group tiers are keyed by group level, and group levels come from their own
XP threshold table (GROUP_LEVEL_THRESHOLDS), never shared with habit tiers.

XP Award Rules:
- Task-bearing habit: 10 XP per completed task
- Zero-task (binary) habit: flat 20 XP when fully completed
- Streak bonus: floor(streak / 7) * 5, only once streak > 7
- Total: round((base + bonus) * tier multiplier)

User Leveling Curve (XP needed to leave a level):
- Levels 1-5: 80 + 20/level       - Levels 6-10: 160 + 40/level
- Levels 11-15: 360 + 80/level    - Levels 16-20: 760 + 120/level
- Levels 21-25: 1360 + 200/level  - Levels 26-30: 2360 + 300/level
- Levels 31-35: 3860 + 400/level  - Levels 36+: 5860 + 500/level
"""

from typing import Dict, List, Optional, Sequence
from datetime import datetime
import bisect
import logging
import math

from habit_progression import config
from habit_progression.models.events import ProgressionEvent
from habit_progression.models.tier import (
    LevelProgress,
    Tier,
    TierPolicy,
    TierScope,
    TierStatus,
    XPAward,
)

logger = logging.getLogger(__name__)


HABIT_TIER_POLICY = TierPolicy(
    scope=TierScope.HABIT,
    tiers=[
        Tier(name="Beginner", floor=0, multiplier=1.0, icon="🌱", description="Just getting started"),
        Tier(name="Novice", floor=7, multiplier=1.1, icon="🌿", description="Building momentum"),
        Tier(name="Adept", floor=14, multiplier=1.2, icon="🌳", description="Forming the habit"),
        Tier(name="Expert", floor=30, multiplier=1.3, icon="⭐", description="Habit established"),
        Tier(name="Master", floor=60, multiplier=1.5, icon="🔥", description="Mastery achieved"),
        Tier(name="Legendary", floor=100, multiplier=2.0, icon="👑", description="Legendary status"),
    ],
    ceiling=365,
)

GROUP_TIER_POLICY = TierPolicy(
    scope=TierScope.GROUP,
    tiers=[
        Tier(name="Crystal", floor=1, multiplier=1.0, icon="💎", description="Novice"),
        Tier(name="Ruby", floor=3, multiplier=1.1, icon="❤️", description="Rising hero"),
        Tier(name="Amethyst", floor=6, multiplier=1.2, icon="🔮", description="Mastery awakens"),
        Tier(name="Jade", floor=8, multiplier=1.3, icon="🍀", description="Legendary ascent"),
        Tier(name="Topaz", floor=10, multiplier=1.5, icon="🌟", description="Epic mastery"),
        Tier(name="Obsidian", floor=12, multiplier=2.0, icon="🖤", description="Mythic glory"),
    ],
    ceiling=15,
)

# Cumulative XP needed to reach group level N (index N-1)
GROUP_LEVEL_THRESHOLDS: List[int] = [
    0, 250, 500, 1000, 1500,
    2000, 3000, 4000, 5500, 7000,
    9000, 11000, 14000, 17500, 21500,
]

_TIER_POLICIES: Dict[TierScope, TierPolicy] = {
    TierScope.HABIT: HABIT_TIER_POLICY,
    TierScope.GROUP: GROUP_TIER_POLICY,
}


def get_tier_policy(scope: TierScope | str) -> TierPolicy:
    """Tier table for a scope ("habit" or "group")"""
    return _TIER_POLICIES[TierScope(scope)]


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative XP values"""
    return int(math.floor(value + 0.5))


def calculate_tier(value: int, policy: TierPolicy = HABIT_TIER_POLICY) -> TierStatus:
    """
    Highest tier whose floor is <= value, with progress to the next one

    progress = clamp01((value - floor) / (next_floor - floor)) * 100; the top
    tier measures against the policy ceiling and clamps at 100%.
    """
    tiers = policy.tiers
    index = 0
    for i, tier in enumerate(tiers):
        if tier.floor <= value:
            index = i
    current = tiers[index]
    next_tier = tiers[index + 1] if index + 1 < len(tiers) else None
    upper = next_tier.floor if next_tier else policy.ceiling

    span = upper - current.floor
    ratio = (value - current.floor) / span if span > 0 else 1.0
    progress = max(0.0, min(1.0, ratio)) * 100

    return TierStatus(tier=current, next_tier=next_tier, progress=progress, value=value)


def get_next_tier(tier: Tier, policy: TierPolicy = HABIT_TIER_POLICY) -> Optional[Tier]:
    """Next tier (or None if max)"""
    names = [t.name for t in policy.tiers]
    if tier.name not in names:
        return None
    i = names.index(tier.name)
    return policy.tiers[i + 1] if i + 1 < len(policy.tiers) else None


def calculate_streak_bonus(streak: int) -> int:
    """floor(streak / 7) * 5, applied only once streak > 7"""
    if streak <= config.STREAK_BONUS_INTERVAL_DAYS:
        return 0
    return (streak // config.STREAK_BONUS_INTERVAL_DAYS) * config.STREAK_BONUS_XP


def calculate_xp_award(
    completed_task_count: int,
    task_count: int,
    all_completed: bool,
    streak: int,
    policy: TierPolicy = HABIT_TIER_POLICY,
    tier_value: Optional[int] = None
) -> XPAward:
    """
    XP for one qualifying action

    Args:
        completed_task_count: Tasks completed by the action
        task_count: Tasks the habit has (0 for binary habits)
        all_completed: Whether the day is fully completed
        streak: Current streak (drives the streak bonus)
        policy: Tier table providing the multiplier
        tier_value: Value looked up in the policy (defaults to streak)

    Returns:
        XPAward breakdown
    """
    if task_count > 0:
        base_xp = max(0, completed_task_count) * config.TASK_XP
    else:
        base_xp = config.BINARY_HABIT_XP if all_completed else 0

    streak_bonus = calculate_streak_bonus(streak) if base_xp > 0 else 0
    status = calculate_tier(streak if tier_value is None else tier_value, policy)
    multiplier = status.tier.multiplier

    return XPAward(
        base_xp=base_xp,
        streak_bonus=streak_bonus,
        multiplier=multiplier,
        total=round_half_up((base_xp + streak_bonus) * multiplier),
    )


def xp_for_next_level(current_level: int) -> int:
    """XP required to go from current_level to current_level + 1"""
    if current_level <= 5:
        return 80 + (current_level - 1) * 20
    elif current_level <= 10:
        return 160 + (current_level - 5) * 40
    elif current_level <= 15:
        return 360 + (current_level - 10) * 80
    elif current_level <= 20:
        return 760 + (current_level - 15) * 120
    elif current_level <= 25:
        return 1360 + (current_level - 20) * 200
    elif current_level <= 30:
        return 2360 + (current_level - 25) * 300
    elif current_level <= 35:
        return 3860 + (current_level - 30) * 400
    return 5860 + (current_level - 35) * 500


def total_xp_for_level(target_level: int) -> int:
    """Total XP needed to reach target_level"""
    return sum(xp_for_next_level(level) for level in range(1, target_level))


def calculate_level_from_xp(total_xp: int) -> LevelProgress:
    """
    Calculate user level from total XP

    Returns:
        LevelProgress for the user levelling curve
    """
    level = 1
    xp_needed = 0
    xp_remaining = max(0, total_xp)

    while xp_remaining >= xp_for_next_level(level):
        xp_remaining -= xp_for_next_level(level)
        xp_needed += xp_for_next_level(level)
        level += 1

    step = xp_for_next_level(level)
    return LevelProgress(
        current_level=level,
        total_xp=total_xp,
        xp_in_current_level=xp_remaining,
        xp_to_next_level=step - xp_remaining,
        total_xp_for_next_level=xp_needed + step,
    )


def calculate_group_level(total_xp: int, thresholds: Sequence[int] = GROUP_LEVEL_THRESHOLDS) -> LevelProgress:
    """
    Group level from the explicit threshold table

    The last threshold is the top level; beyond it there is nothing to earn.
    """
    level = max(1, bisect.bisect_right(thresholds, max(0, total_xp)))
    floor = thresholds[level - 1]
    if level < len(thresholds):
        next_floor = thresholds[level]
        return LevelProgress(
            current_level=level,
            total_xp=total_xp,
            xp_in_current_level=total_xp - floor,
            xp_to_next_level=next_floor - total_xp,
            total_xp_for_next_level=next_floor,
        )
    return LevelProgress(
        current_level=level,
        total_xp=total_xp,
        xp_in_current_level=total_xp - floor,
        xp_to_next_level=0,
        total_xp_for_next_level=None,
    )


def level_up_events(
    old_level: int,
    new_level: int,
    occurred_at: datetime,
    user_id: Optional[str] = None,
    group_id: Optional[str] = None
) -> List[ProgressionEvent]:
    """One level_up event per level boundary crossed"""
    events = []
    for level in range(old_level + 1, new_level + 1):
        events.append(ProgressionEvent(
            event_type="level_up",
            user_id=user_id,
            group_id=group_id,
            payload={"old_level": level - 1, "new_level": level},
            occurred_at=occurred_at,
        ))
    if new_level > old_level:
        subject = f"group {group_id}" if group_id else f"user {user_id}"
        logger.info(f"{subject} leveled up from {old_level} to {new_level}!")
    return events
