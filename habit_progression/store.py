"""
In-memory record store

Key-value store for progression records with per-record versions for
optimistic concurrency and an all-or-nothing transaction block. Used by
tests and embedding callers; production deployments plug their own
persistence behind the same methods.
"""

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, TypeVar
import copy
import logging

from pydantic import BaseModel

from habit_progression.exceptions import ConcurrencyError, NotFoundError
from habit_progression.models.group import Group, GroupHabit
from habit_progression.models.habit import Habit, UserProgress
from habit_progression.models.holiday import HolidayPeriod
from habit_progression.models.streak_saver import InventoryScope, StreakSaverInventory

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

HABIT = "habit"
HOLIDAY = "holiday"
INVENTORY = "inventory"
USER_PROGRESS = "user_progress"
GROUP = "group"
GROUP_HABIT = "group_habit"


class InMemoryRecordStore:
    """In-memory store for habits, holidays, inventories and groups"""

    def __init__(self):
        self._records: Dict[str, Dict[str, BaseModel]] = {}
        self._in_transaction = False
        logger.debug("InMemoryRecordStore initialized")

    # ==========================================
    # Generic access
    # ==========================================

    def get(self, kind: str, record_id: str) -> BaseModel:
        """Get a record, raising NotFoundError if absent"""
        record = self._records.get(kind, {}).get(record_id)
        if record is None:
            raise NotFoundError(
                f"{kind} {record_id} not found",
                record_type=kind,
                record_id=record_id,
            )
        return record

    def find(self, kind: str, record_id: str) -> Optional[BaseModel]:
        return self._records.get(kind, {}).get(record_id)

    def put(self, kind: str, record_id: str, record: RecordT, expected_version: Optional[int] = None) -> RecordT:
        """
        Save a record and bump its version

        Args:
            kind: Record type
            record_id: Record key
            record: Record to save
            expected_version: Version the caller read; mismatch raises

        Returns:
            The stored record (with its new version)

        Raises:
            ConcurrencyError: If the stored version differs from expected_version
        """
        current = self._records.get(kind, {}).get(record_id)
        actual_version = current.version if current is not None else 0
        if expected_version is not None and expected_version != actual_version:
            raise ConcurrencyError(
                f"Stale write to {kind} {record_id}: expected version {expected_version}, found {actual_version}",
                record_type=kind,
                record_id=record_id,
                expected_version=expected_version,
                actual_version=actual_version,
            )

        stored = record.model_copy(update={"version": actual_version + 1})
        self._records.setdefault(kind, {})[record_id] = stored
        logger.debug(f"Saved {kind} {record_id} (version {stored.version})")
        return stored

    def list_records(self, kind: str) -> List[BaseModel]:
        return list(self._records.get(kind, {}).values())

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRecordStore"]:
        """
        All-or-nothing block: every write inside it is rolled back if it raises

        Nested blocks join the outer transaction.
        """
        if self._in_transaction:
            yield self
            return

        snapshot = copy.deepcopy(self._records)
        self._in_transaction = True
        try:
            yield self
        except Exception:
            self._records = snapshot
            logger.warning("Transaction rolled back")
            raise
        finally:
            self._in_transaction = False

    # ==========================================
    # Typed helpers
    # ==========================================

    def get_habit(self, habit_id: str) -> Habit:
        return self.get(HABIT, habit_id)

    def save_habit(self, habit: Habit, expected_version: Optional[int] = None) -> Habit:
        return self.put(HABIT, habit.id, habit, expected_version)

    def get_user_habits(self, user_id: str) -> List[Habit]:
        return [h for h in self.list_records(HABIT) if h.user_id == user_id]

    def get_holiday(self, holiday_id: str) -> HolidayPeriod:
        return self.get(HOLIDAY, holiday_id)

    def save_holiday(self, holiday: HolidayPeriod, expected_version: Optional[int] = None) -> HolidayPeriod:
        return self.put(HOLIDAY, holiday.id, holiday, expected_version)

    def get_user_holidays(self, user_id: str) -> List[HolidayPeriod]:
        holidays = [h for h in self.list_records(HOLIDAY) if h.user_id == user_id]
        return sorted(holidays, key=lambda h: h.start_date)

    def get_inventory(self, owner_id: str, scope: InventoryScope = InventoryScope.PERSONAL) -> StreakSaverInventory:
        """Saver inventory for a user or group; empty if never granted"""
        record = self.find(INVENTORY, _inventory_key(owner_id, scope))
        if record is None:
            return StreakSaverInventory(owner_id=owner_id, scope=scope)
        return record

    def save_inventory(
        self,
        inventory: StreakSaverInventory,
        expected_version: Optional[int] = None
    ) -> StreakSaverInventory:
        return self.put(INVENTORY, _inventory_key(inventory.owner_id, inventory.scope), inventory, expected_version)

    def get_user_progress(self, user_id: str) -> UserProgress:
        record = self.find(USER_PROGRESS, user_id)
        if record is None:
            return UserProgress(user_id=user_id)
        return record

    def save_user_progress(self, progress: UserProgress, expected_version: Optional[int] = None) -> UserProgress:
        return self.put(USER_PROGRESS, progress.user_id, progress, expected_version)

    def get_group(self, group_id: str) -> Group:
        return self.get(GROUP, group_id)

    def save_group(self, group: Group, expected_version: Optional[int] = None) -> Group:
        return self.put(GROUP, group.id, group, expected_version)

    def get_group_habit(self, group_habit_id: str) -> GroupHabit:
        return self.get(GROUP_HABIT, group_habit_id)

    def save_group_habit(self, group_habit: GroupHabit, expected_version: Optional[int] = None) -> GroupHabit:
        return self.put(GROUP_HABIT, group_habit.id, group_habit, expected_version)


def _inventory_key(owner_id: str, scope: InventoryScope) -> str:
    return f"{InventoryScope(scope).value}_{owner_id}"
