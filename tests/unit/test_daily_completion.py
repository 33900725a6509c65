"""Unit tests for the daily completion evaluator (habit_progression/gamification/daily_completion.py)"""
import pytest

from habit_progression.exceptions import ValidationError
from habit_progression.gamification.daily_completion import (
    evaluate_day,
    resolve_tasks,
    set_day_completed,
    toggle_task,
)
from habit_progression.models.habit import DayProgress, Task

TASKS = ["t1", "t2", "t3"]


# ============================================================================
# evaluate_day
# ============================================================================

def test_partial_day_ratio():
    """Two of three tasks done"""
    result = evaluate_day(TASKS, DayProgress(completed_tasks=["t1", "t2"]))

    assert result.completed_count == 2
    assert result.total_count == 3
    assert result.ratio == pytest.approx(2 / 3)
    assert result.all_completed is False


def test_all_tasks_done_completes_day():
    result = evaluate_day(TASKS, DayProgress(completed_tasks=["t3", "t1", "t2"]))

    assert result.all_completed is True
    assert result.ratio == 1.0


def test_missing_progress_is_empty_day():
    result = evaluate_day(TASKS, None)

    assert result.completed_count == 0
    assert result.all_completed is False


def test_unknown_task_ids_are_ignored_and_reported():
    """Stale ids in stored progress never count and never raise"""
    result = evaluate_day(TASKS, DayProgress(completed_tasks=["t1", "removed-task"]))

    assert result.completed_count == 1
    assert result.unknown_task_ids == ["removed-task"]


def test_stored_flag_not_trusted_for_task_habits():
    """all_completed is derived from tasks when the habit has tasks"""
    result = evaluate_day(TASKS, DayProgress(completed_tasks=["t1"], all_completed=True))

    assert result.all_completed is False


def test_zero_task_habit_uses_stored_flag():
    assert evaluate_day([], DayProgress(all_completed=True)).all_completed is True
    assert evaluate_day([], DayProgress(all_completed=False)).all_completed is False
    assert evaluate_day([], None).all_completed is False


def test_frozen_tasks_leave_the_denominator():
    """Completing the non-frozen tasks completes the day"""
    result = evaluate_day(TASKS, DayProgress(completed_tasks=["t1", "t2"]), frozen_task_ids={"t3"})

    assert result.total_count == 2
    assert result.all_completed is True


def test_every_task_frozen_is_not_a_completion():
    result = evaluate_day(TASKS, DayProgress(completed_tasks=[]), frozen_task_ids=set(TASKS))

    assert result.total_count == 0
    assert result.all_completed is False


# ============================================================================
# Write helpers
# ============================================================================

class TestToggleTask:
    """Test single-task toggles"""

    def test_toggle_adds_then_removes(self):
        progress = toggle_task(None, "t1", TASKS)
        assert progress.completed_tasks == ["t1"]

        progress = toggle_task(progress, "t1", TASKS)
        assert progress.completed_tasks == []

    def test_explicit_state_is_idempotent(self):
        progress = toggle_task(None, "t1", TASKS, completed=True)
        again = toggle_task(progress, "t1", TASKS, completed=True)

        assert again.completed_tasks == ["t1"]

    def test_last_task_sets_all_completed(self):
        progress = DayProgress(completed_tasks=["t1", "t2"])
        progress = toggle_task(progress, "t3", TASKS)

        assert progress.all_completed is True

    def test_unknown_task_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            toggle_task(None, "not-a-task", TASKS)

        assert exc_info.value.field == "task_id"
        assert exc_info.value.value == "not-a-task"

    def test_toggle_drops_stale_ids(self):
        progress = DayProgress(completed_tasks=["t1", "removed-task"])
        progress = toggle_task(progress, "t2", TASKS)

        assert progress.completed_tasks == ["t1", "t2"]


class TestSetDayCompleted:
    """Test full-day toggles"""

    def test_complete_day_marks_every_task(self):
        progress = set_day_completed(None, True, TASKS)

        assert progress.completed_tasks == TASKS
        assert progress.all_completed is True

    def test_uncomplete_day_clears_tasks(self):
        progress = set_day_completed(DayProgress(completed_tasks=TASKS, all_completed=True), False, TASKS)

        assert progress.completed_tasks == []
        assert progress.all_completed is False

    def test_zero_task_habit_stores_flag(self):
        assert set_day_completed(None, True, []).all_completed is True


def test_completed_tasks_are_deduplicated():
    progress = DayProgress(completed_tasks=["t1", "t1", "t2"])

    assert progress.completed_tasks == ["t1", "t2"]


def test_resolve_tasks_synthesizes_placeholder():
    catalog = {"t1": Task(id="t1", name="Drink water", duration="1 min")}

    tasks = resolve_tasks(["t1", "t9"], catalog)

    assert tasks[0].name == "Drink water"
    assert tasks[1].id == "t9"
    assert tasks[1].name == "Task t9"
