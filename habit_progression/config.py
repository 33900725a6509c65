"""Configuration management"""
import os
from dotenv import load_dotenv

from habit_progression.exceptions import ConfigurationError

load_dotenv()

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Streak saver
# Hours a break stays repairable after it was detected (local midnight after the missed day)
STREAK_SAVER_WINDOW_HOURS: int = int(os.getenv("STREAK_SAVER_WINDOW_HOURS", "24"))

# XP awards
TASK_XP: int = int(os.getenv("TASK_XP", "10"))
BINARY_HABIT_XP: int = int(os.getenv("BINARY_HABIT_XP", "20"))
STREAK_BONUS_INTERVAL_DAYS: int = int(os.getenv("STREAK_BONUS_INTERVAL_DAYS", "7"))
STREAK_BONUS_XP: int = int(os.getenv("STREAK_BONUS_XP", "5"))

# Group habits
GROUP_TASK_XP: int = int(os.getenv("GROUP_TASK_XP", "10"))
GROUP_DAILY_BONUS_XP: int = int(os.getenv("GROUP_DAILY_BONUS_XP", "50"))
GROUP_WEEKLY_BONUS_XP: int = int(os.getenv("GROUP_WEEKLY_BONUS_XP", "200"))
GROUP_MIN_COMPLETION_RATE: float = float(os.getenv("GROUP_MIN_COMPLETION_RATE", "0.5"))
GROUP_MAX_FAILED_DAYS: int = int(os.getenv("GROUP_MAX_FAILED_DAYS", "1"))

# Holiday mode
# -1 means unlimited
FREE_HOLIDAY_MAX_DAYS: int = int(os.getenv("FREE_HOLIDAY_MAX_DAYS", "14"))
PREMIUM_HOLIDAY_MAX_DAYS: int = int(os.getenv("PREMIUM_HOLIDAY_MAX_DAYS", "-1"))

# Duration goal: whether frozen holiday days count toward a habit's total_days goal
COUNT_FROZEN_DAYS_TOWARD_GOAL: bool = os.getenv("COUNT_FROZEN_DAYS_TOWARD_GOAL", "false").lower() == "true"

# Upper bound on how far back the streak walk looks
STREAK_HISTORY_LIMIT_DAYS: int = int(os.getenv("STREAK_HISTORY_LIMIT_DAYS", "3650"))


# Validation
def validate_config() -> None:
    """Validate numeric configuration ranges"""
    if STREAK_SAVER_WINDOW_HOURS <= 0:
        raise ConfigurationError(
            "STREAK_SAVER_WINDOW_HOURS must be positive",
            config_key="STREAK_SAVER_WINDOW_HOURS",
        )
    if TASK_XP < 0 or BINARY_HABIT_XP < 0 or STREAK_BONUS_XP < 0:
        raise ConfigurationError("XP amounts cannot be negative", config_key="TASK_XP")
    if STREAK_BONUS_INTERVAL_DAYS <= 0:
        raise ConfigurationError(
            "STREAK_BONUS_INTERVAL_DAYS must be positive",
            config_key="STREAK_BONUS_INTERVAL_DAYS",
        )
    if not 0.0 < GROUP_MIN_COMPLETION_RATE <= 1.0:
        raise ConfigurationError(
            "GROUP_MIN_COMPLETION_RATE must be in (0, 1]",
            config_key="GROUP_MIN_COMPLETION_RATE",
        )
    if STREAK_HISTORY_LIMIT_DAYS <= 0:
        raise ConfigurationError(
            "STREAK_HISTORY_LIMIT_DAYS must be positive",
            config_key="STREAK_HISTORY_LIMIT_DAYS",
        )
