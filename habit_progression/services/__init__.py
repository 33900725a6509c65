"""
Service Layer Package

Business logic that sits between callers (app, API, jobs) and the record store.
"""

from habit_progression.services.progression_service import (
    GroupProgressionUpdate,
    ProgressionService,
    ProgressionUpdate,
)

__all__ = [
    "ProgressionService",
    "ProgressionUpdate",
    "GroupProgressionUpdate",
]
