"""
Daily Completion Evaluator

Derives a day's completion status from its task-completion set.

Rules:
- Habits with tasks: all_completed iff every (non-frozen) task is completed
- Zero-task habits (binary legacy mode): the stored all_completed flag decides
- Unknown task ids are ignored for counting and reported, never rejected
- Absent DayProgress means nothing completed
"""

from typing import Iterable, Mapping, Optional
import logging

from pydantic import BaseModel, Field

from habit_progression.exceptions import ValidationError
from habit_progression.models.habit import DayProgress, Task

logger = logging.getLogger(__name__)


class DayCompletion(BaseModel):
    """Completion status of one habit on one day"""
    completed_count: int = 0
    total_count: int = 0
    ratio: float = 0.0  # 0.0 - 1.0
    all_completed: bool = False
    unknown_task_ids: list[str] = Field(default_factory=list)


def evaluate_day(
    task_ids: Iterable[str],
    progress: Optional[DayProgress],
    frozen_task_ids: Iterable[str] = ()
) -> DayCompletion:
    """
    Evaluate one day of a habit

    Args:
        task_ids: The habit's task ids
        progress: Stored progress for the day (None if absent)
        frozen_task_ids: Tasks excluded by a task-level holiday freeze

    Returns:
        DayCompletion judged against the non-frozen task subset
    """
    tasks = list(dict.fromkeys(task_ids))
    completed = progress.completed_tasks if progress else []

    if not tasks:
        done = bool(progress and progress.all_completed)
        return DayCompletion(
            completed_count=1 if done else 0,
            total_count=1,
            ratio=1.0 if done else 0.0,
            all_completed=done,
        )

    known = set(tasks)
    unknown = [task_id for task_id in completed if task_id not in known]
    if unknown:
        logger.debug(f"Ignoring unknown task ids in day progress: {unknown}")

    frozen = set(frozen_task_ids)
    counted = [task_id for task_id in tasks if task_id not in frozen]
    completed_set = set(completed)
    completed_count = sum(1 for task_id in counted if task_id in completed_set)
    total = len(counted)

    if total == 0:
        # Every task frozen: nothing left to judge
        return DayCompletion(
            completed_count=0,
            total_count=0,
            ratio=0.0,
            all_completed=False,
            unknown_task_ids=unknown,
        )

    return DayCompletion(
        completed_count=completed_count,
        total_count=total,
        ratio=completed_count / total,
        all_completed=completed_count == total,
        unknown_task_ids=unknown,
    )


def toggle_task(
    progress: Optional[DayProgress],
    task_id: str,
    task_ids: Iterable[str],
    completed: Optional[bool] = None
) -> DayProgress:
    """
    Set or flip one task's completion, returning a new DayProgress

    Idempotent when `completed` is given: marking an already completed task
    as completed changes nothing.

    Raises:
        ValidationError: If task_id is not one of the habit's tasks
    """
    tasks = list(dict.fromkeys(task_ids))
    if task_id not in tasks:
        raise ValidationError(
            message=f"Task '{task_id}' does not belong to this habit",
            field="task_id",
            value=task_id,
            operation="toggle_task",
        )

    current = [t for t in (progress.completed_tasks if progress else []) if t in tasks]
    is_done = task_id in current
    target = (not is_done) if completed is None else completed

    if target and not is_done:
        current.append(task_id)
    elif not target and is_done:
        current.remove(task_id)

    return DayProgress(
        completed_tasks=current,
        all_completed=len(set(current)) == len(tasks),
    )


def set_day_completed(
    progress: Optional[DayProgress],
    completed: bool,
    task_ids: Iterable[str]
) -> DayProgress:
    """
    Full-day toggle

    With tasks, completing the day completes every task and un-completing it
    clears them. Zero-task habits only store the flag.
    """
    tasks = list(dict.fromkeys(task_ids))
    if not tasks:
        return DayProgress(completed_tasks=[], all_completed=completed)
    return DayProgress(
        completed_tasks=list(tasks) if completed else [],
        all_completed=completed,
    )


def resolve_tasks(task_ids: Iterable[str], catalog: Mapping[str, Task]) -> list[Task]:
    """
    Map task ids to their labels

    A habit referencing a task id missing from the catalog gets a synthesized
    placeholder label instead of failing.
    """
    resolved = []
    for task_id in task_ids:
        task = catalog.get(task_id)
        if task is None:
            logger.warning(f"Unknown task id '{task_id}', using placeholder label")
            task = Task(id=task_id, name=f"Task {task_id}")
        resolved.append(task)
    return resolved
