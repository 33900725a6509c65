"""
Prometheus metrics definitions for the progression engine.

Metrics are organized by category:
- XP metrics: XP awarded by scope
- Streak metrics: breaks and streak saver attempts
- Holiday metrics: cancellations
- Tier metrics: tier changes by scope

Exposing them (e.g. a /metrics endpoint) is left to the embedding application.
"""

import logging
from prometheus_client import Counter

logger = logging.getLogger(__name__)

# =============================================================================
# XP Metrics
# =============================================================================

xp_awarded_total = Counter(
    "progression_xp_awarded_total",
    "Total XP awarded",
    ["scope"],  # scope: habit/group/milestone
)

# =============================================================================
# Streak Metrics
# =============================================================================

streak_breaks_total = Counter(
    "progression_streak_breaks_total",
    "Total streaks broken",
    ["scope"],
)

streak_saves_total = Counter(
    "progression_streak_saves_total",
    "Streak saver attempts by result",
    ["result"],  # result: saved or the ineligibility reason
)

# =============================================================================
# Holiday Metrics
# =============================================================================

holiday_cancellations_total = Counter(
    "progression_holiday_cancellations_total",
    "Holidays ended early",
    ["status"],  # status: success/error
)

# =============================================================================
# Tier Metrics
# =============================================================================

tier_changes_total = Counter(
    "progression_tier_changes_total",
    "Tier changes by scope",
    ["scope"],
)


def record_streak_save(result: str) -> None:
    """Count a streak saver attempt; result is "saved" or the failure reason"""
    streak_saves_total.labels(result=result.replace(" ", "_")).inc()
