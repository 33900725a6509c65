"""Streak milestones: one-time XP rewards when a habit's streak hits a day count"""

from typing import Iterable, List, Optional
import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class HabitMilestone(BaseModel):
    days: int
    title: str
    description: str
    xp_reward: int
    badge: str = ""


MILESTONES: List[HabitMilestone] = [
    HabitMilestone(days=3, title="Getting Started", description="Complete 3 days", xp_reward=50, badge="🎯"),
    HabitMilestone(days=7, title="Week Warrior", description="One week streak", xp_reward=100, badge="📅"),
    HabitMilestone(days=14, title="Fortnight Fighter", description="Two weeks strong", xp_reward=200, badge="💪"),
    HabitMilestone(days=21, title="Habit Former", description="21 days to form a habit", xp_reward=300, badge="🧠"),
    HabitMilestone(days=30, title="Monthly Master", description="One month achieved", xp_reward=500, badge="🏆"),
    HabitMilestone(days=60, title="Committed", description="Two months of dedication", xp_reward=750, badge="💎"),
    HabitMilestone(days=90, title="Quarter Champion", description="Three months strong", xp_reward=1000, badge="🌟"),
    HabitMilestone(days=100, title="Century", description="100 days milestone", xp_reward=1500, badge="💯"),
    HabitMilestone(days=365, title="Year Legend", description="One full year", xp_reward=5000, badge="🎊"),
]


def check_milestone_unlock(current_streak: int, unlocked: Iterable[str]) -> Optional[HabitMilestone]:
    """Milestone hit exactly by this streak and not unlocked before"""
    unlocked_titles = set(unlocked)
    for milestone in MILESTONES:
        if milestone.days == current_streak and milestone.title not in unlocked_titles:
            return milestone
    return None


def get_milestone_status(current_streak: int, unlocked: Iterable[str]) -> dict:
    """
    Unlocked and upcoming milestones for display

    Returns:
        {
            'unlocked': list[HabitMilestone],
            'next': HabitMilestone | None,
            'upcoming': list[HabitMilestone]  # at most 3
        }
    """
    unlocked_titles = set(unlocked)
    reached = [m for m in MILESTONES if m.title in unlocked_titles or m.days <= current_streak]
    upcoming = [m for m in MILESTONES if m.days > current_streak and m.title not in unlocked_titles]
    return {
        "unlocked": reached,
        "next": upcoming[0] if upcoming else None,
        "upcoming": upcoming[:3],
    }
