"""
Filtering and ordering of task lists.

Every function here is pure: it never mutates its input and returns a new
list. Ordering is priority descending, then due date ascending. Within one
priority, undated tasks come after dated ones; ties keep their input order
because ``sorted`` is stable.
"""
from __future__ import annotations

import typing as t
from datetime import datetime

from planner_server.models import Task, TaskFilter


def matches(task: Task, task_filter: t.Optional[TaskFilter]) -> bool:
    """Check whether a task satisfies every predicate present in the filter."""
    if task_filter is None or task_filter.is_empty():
        return True
    if task_filter.subject_id is not None and task.subject_id != task_filter.subject_id:
        return False
    if task_filter.status is not None and task.status != task_filter.status:
        return False
    if task_filter.priority is not None and task.priority != task_filter.priority:
        return False
    return True


def filter_tasks(tasks: t.Iterable[Task], task_filter: t.Optional[TaskFilter] = None) -> list[Task]:
    """Keep the tasks matching the filter, preserving input order."""
    return [task for task in tasks if matches(task, task_filter)]


def in_date_range(task: Task, start: datetime, end: datetime) -> bool:
    """True when the task is due within ``[start, end]``; undated tasks never are."""
    if task.due_date is None:
        return False
    return start <= task.due_date <= end


def tasks_in_range(tasks: t.Iterable[Task], start: datetime, end: datetime) -> list[Task]:
    return [task for task in tasks if in_date_range(task, start, end)]


def _sort_key(task: Task) -> tuple[int, bool, float]:
    due = task.due_date.timestamp() if task.due_date is not None else 0.0
    return (-task.priority, task.due_date is None, due)


def sort_tasks(tasks: t.Iterable[Task]) -> list[Task]:
    """Order tasks by priority (high first), then by due date (earliest first)."""
    return sorted(tasks, key=_sort_key)


def select_tasks(tasks: t.Iterable[Task], task_filter: t.Optional[TaskFilter] = None) -> list[Task]:
    """Filter then sort; the read path used by ``list_tasks``."""
    return sort_tasks(filter_tasks(tasks, task_filter))
