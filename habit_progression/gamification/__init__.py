"""
Progression rules for habits

This module implements:
- Daily completion evaluation
- Weekly aggregation for weekly-frequency habits
- Holiday mode (habit and task freezes)
- Streak calculation and the streak saver
- Tiers, XP, levels and milestones
- Group habit progression
"""

from habit_progression.gamification.daily_completion import evaluate_day, toggle_task, set_day_completed
from habit_progression.gamification.holiday_freeze import HolidayFreezeManager, validate_holiday_request
from habit_progression.gamification.streak_system import calculate_streaks, update_streak, calculate_goal_progress
from habit_progression.gamification.streak_saver import check_streak_save_eligibility, apply_streak_save
from habit_progression.gamification.xp_system import calculate_tier, calculate_xp_award, get_tier_policy

__all__ = [
    "evaluate_day",
    "toggle_task",
    "set_day_completed",
    "HolidayFreezeManager",
    "validate_holiday_request",
    "calculate_streaks",
    "update_streak",
    "calculate_goal_progress",
    "check_streak_save_eligibility",
    "apply_streak_save",
    "calculate_tier",
    "calculate_xp_award",
    "get_tier_policy",
]
