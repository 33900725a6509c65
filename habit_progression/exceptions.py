"""
Exception hierarchy for the progression engine

Every error carries the user and operation it happened in, a trace id and a
message safe to show to the user. Errors log themselves when raised.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class ProgressionError(Exception):
    """
    Base exception for all progression engine errors

    Example:
        raise ProgressionError(
            message="Habit record is corrupt",
            user_id="user-1",
            operation="recalculate_habit",
            context={"habit_id": "habit-1"}
        )
    """

    default_user_message = "Something went wrong while updating your progress. Please try again."

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None,
        log_level: int = logging.ERROR
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or self.default_user_message
        self.request_id = request_id or uuid4().hex
        self.timestamp = datetime.now(timezone.utc)

        logger.log(
            log_level,
            f"{type(self).__name__} in {self.operation or 'progression'}: {self.message}",
            extra={
                "request_id": self.request_id,
                "user_id": self.user_id,
                "error_context": self.context,
            },
            exc_info=self.cause,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for callers that report errors to clients"""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "user_message": self.user_message,
            "operation": self.operation,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors
# ==========================================

class ValidationError(ProgressionError):
    """
    Raised when a write references data the record does not allow

    Examples:
    - Toggling a task id the habit does not own
    - Holiday end date before start date
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            log_level=logging.WARNING,
            **kwargs
        )


# ==========================================
# Streak Saver Errors
# ==========================================

class EligibilityError(ProgressionError):
    """
    Streak saver cannot be used for the stated reason

    The reason is one of the StreakSaveReason values ("no savers available",
    "window closed", "already used", ...). Callers surface a retry or
    acquire-more prompt depending on it.
    """

    def __init__(
        self,
        reason: str,
        habit_id: Optional[str] = None,
        window_hours: Optional[int] = None,
        **kwargs
    ):
        self.reason = reason
        self.habit_id = habit_id
        user_message = _ELIGIBILITY_USER_MESSAGES.get(reason, "This streak cannot be saved.")
        if reason == "window closed" and window_hours is not None:
            user_message = f"Too late! A streak can only be saved within {window_hours} hours."
        super().__init__(
            message=f"Streak saver not usable: {reason}",
            user_message=user_message,
            context={"reason": reason, "habit_id": habit_id},
            log_level=logging.INFO,
            **kwargs
        )


_ELIGIBILITY_USER_MESSAGES = {
    "no savers available": "You have no streak savers left. Get more to protect your streak.",
    "window closed": "Too late! The window to save this streak has closed.",
    "already used": "This streak has already been saved.",
    "no broken streak": "Your streak is intact, nothing to save.",
    "nothing to restore": "There was no streak to restore before this miss.",
}


# ==========================================
# Store Errors
# ==========================================

class StoreError(ProgressionError):
    """Record store read or write failed"""


class ConcurrencyError(StoreError):
    """A write was applied against a stale snapshot"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            message=message,
            user_message="Your data changed in the meantime. Please reload and try again.",
            context={
                "record_type": record_type,
                "record_id": record_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
            **kwargs
        )


class NotFoundError(StoreError):
    """Requested habit/holiday record does not exist"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"That {record_type or 'record'} no longer exists.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(ProgressionError):
    """An engine setting is out of range or malformed"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="Progression settings are invalid. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )
