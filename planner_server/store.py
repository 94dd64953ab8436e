"""
Storage interface and in-memory implementation for planner entities.

In a real deployment the in-memory store would be replaced with a persistent
database; anything implementing ``PlannerStore`` can be injected into the
FastAPI application instead.
"""
from __future__ import annotations

import abc
import logging
import threading
import typing as t
import uuid
from dataclasses import replace
from datetime import datetime

from planner_server.errors import ValidationError
from planner_server.filtering import select_tasks, sort_tasks, tasks_in_range
from planner_server.models import (
    PREFERENCES_MUTABLE_FIELDS,
    PRIORITIES,
    PRIORITY_LOW,
    STATUSES,
    SUBJECT_MUTABLE_FIELDS,
    TASK_MUTABLE_FIELDS,
    Subject,
    Task,
    TaskFilter,
    UserPreferences,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_SUBJECTS: tuple[tuple[str, str], ...] = (
    ("Mathematics", "#ef4444"),
    ("Physics", "#3b82f6"),
    ("Chemistry", "#10b981"),
    ("Literature", "#8b5cf6"),
)


class PlannerStore(abc.ABC):
    """Capability set every planner backend provides.

    Operations signal absence with ``None`` (or ``False`` for deletes) and
    raise ``ValidationError`` only for invalid input.
    """

    # Subjects
    @abc.abstractmethod
    async def list_subjects(self) -> list[Subject]: ...

    @abc.abstractmethod
    async def get_subject(self, subject_id: str) -> t.Optional[Subject]: ...

    @abc.abstractmethod
    async def create_subject(self, name: str, color: str) -> Subject: ...

    @abc.abstractmethod
    async def update_subject(self, subject_id: str, changes: t.Mapping[str, t.Any]) -> t.Optional[Subject]: ...

    @abc.abstractmethod
    async def delete_subject(self, subject_id: str) -> bool: ...

    # Tasks
    @abc.abstractmethod
    async def list_tasks(self, task_filter: t.Optional[TaskFilter] = None) -> list[Task]: ...

    @abc.abstractmethod
    async def get_task(self, task_id: str) -> t.Optional[Task]: ...

    @abc.abstractmethod
    async def create_task(self, fields: t.Mapping[str, t.Any]) -> Task: ...

    @abc.abstractmethod
    async def update_task(self, task_id: str, changes: t.Mapping[str, t.Any]) -> t.Optional[Task]: ...

    @abc.abstractmethod
    async def delete_task(self, task_id: str) -> bool: ...

    @abc.abstractmethod
    async def list_tasks_in_range(self, start: datetime, end: datetime) -> list[Task]: ...

    # User preferences
    @abc.abstractmethod
    async def get_preferences(self) -> UserPreferences: ...

    @abc.abstractmethod
    async def update_preferences(self, changes: t.Mapping[str, t.Any]) -> UserPreferences: ...


def _reject_unknown(changes: t.Mapping[str, t.Any], allowed: frozenset[str], entity: str) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"Unknown {entity} field(s): {', '.join(unknown)}")


def _require_text(value: t.Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")
    return value


def _clean_task_fields(changes: t.Mapping[str, t.Any]) -> dict[str, t.Any]:
    """Validate task fields and normalize datetimes; returns a new dict."""
    _reject_unknown(changes, TASK_MUTABLE_FIELDS, "task")
    cleaned = dict(changes)
    if "title" in cleaned:
        _require_text(cleaned["title"], "title")
    if "priority" in cleaned:
        priority = cleaned["priority"]
        if isinstance(priority, bool) or priority not in PRIORITIES:
            raise ValidationError("priority must be 1 (low), 2 (medium) or 3 (high)")
    if "status" in cleaned and cleaned["status"] not in STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")
    if "due_date" in cleaned:
        cleaned["due_date"] = ensure_utc(cleaned["due_date"])
    return cleaned


def _clean_preferences_fields(changes: t.Mapping[str, t.Any]) -> dict[str, t.Any]:
    _reject_unknown(changes, PREFERENCES_MUTABLE_FIELDS, "preferences")
    cleaned = dict(changes)
    if "study_streak" in cleaned:
        streak = cleaned["study_streak"]
        if isinstance(streak, bool) or not isinstance(streak, int) or streak < 0:
            raise ValidationError("study_streak must be a non-negative integer")
    for flag in ("google_calendar_connected", "notifications_enabled"):
        if flag in cleaned and not isinstance(cleaned[flag], bool):
            raise ValidationError(f"{flag} must be a boolean")
    if "last_study_date" in cleaned:
        cleaned["last_study_date"] = ensure_utc(cleaned["last_study_date"])
    return cleaned


class InMemoryPlannerStore(PlannerStore):
    """Map-backed store living for the lifetime of the process.

    Each mutation replaces a whole record under ``self._lock``, so concurrent
    requests touching the same id cannot lose updates or observe a half
    applied patch.
    """

    def __init__(
        self,
        clock: t.Callable[[], datetime] = utcnow,
        id_factory: t.Callable[[], str] = lambda: str(uuid.uuid4()),
        seed_subjects: bool = False,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._subjects: dict[str, Subject] = {}
        self._tasks: dict[str, Task] = {}
        self._preferences: t.Optional[UserPreferences] = None

        if seed_subjects:
            for name, color in DEFAULT_SUBJECTS:
                self._insert_subject(name, color)
            logger.info("Seeded %d default subjects", len(DEFAULT_SUBJECTS))

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _new_id(self) -> str:
        # Re-roll on collision with a live record; call with the lock held.
        new_id = self._id_factory()
        while new_id in self._subjects or new_id in self._tasks:
            new_id = self._id_factory()
        return new_id

    def _insert_subject(self, name: str, color: str) -> Subject:
        with self._lock:
            subject = Subject(id=self._new_id(), name=name, color=color, created_at=self._now())
            self._subjects[subject.id] = subject
            return subject

    # Subjects

    async def list_subjects(self) -> list[Subject]:
        with self._lock:
            return list(self._subjects.values())

    async def get_subject(self, subject_id: str) -> t.Optional[Subject]:
        with self._lock:
            return self._subjects.get(subject_id)

    async def create_subject(self, name: str, color: str) -> Subject:
        _require_text(name, "name")
        if not isinstance(color, str):
            raise ValidationError("color must be a string")
        subject = self._insert_subject(name, color)
        logger.debug("Created subject %s (%s)", subject.id, subject.name)
        return subject

    async def update_subject(self, subject_id: str, changes: t.Mapping[str, t.Any]) -> t.Optional[Subject]:
        _reject_unknown(changes, SUBJECT_MUTABLE_FIELDS, "subject")
        if "name" in changes:
            _require_text(changes["name"], "name")
        if "color" in changes and not isinstance(changes["color"], str):
            raise ValidationError("color must be a string")
        with self._lock:
            existing = self._subjects.get(subject_id)
            if existing is None:
                return None
            updated = replace(existing, **changes)
            self._subjects[subject_id] = updated
            return updated

    async def delete_subject(self, subject_id: str) -> bool:
        # Tasks referencing the subject keep their subject_id.
        with self._lock:
            return self._subjects.pop(subject_id, None) is not None

    # Tasks

    async def list_tasks(self, task_filter: t.Optional[TaskFilter] = None) -> list[Task]:
        with self._lock:
            snapshot = list(self._tasks.values())
        return select_tasks(snapshot, task_filter)

    async def get_task(self, task_id: str) -> t.Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    async def create_task(self, fields: t.Mapping[str, t.Any]) -> Task:
        if "title" not in fields:
            raise ValidationError("title is required")
        # A null priority or status on create means "use the default".
        cleaned = _clean_task_fields({
            key: value for key, value in fields.items()
            if not (key in ("priority", "status") and value is None)
        })
        cleaned.setdefault("priority", PRIORITY_LOW)
        cleaned.setdefault("status", "pending")
        with self._lock:
            now = self._now()
            task = Task(id=self._new_id(), created_at=now, updated_at=now, **cleaned)
            self._tasks[task.id] = task
        logger.debug("Created task %s (%s)", task.id, task.title)
        return task

    async def update_task(self, task_id: str, changes: t.Mapping[str, t.Any]) -> t.Optional[Task]:
        cleaned = _clean_task_fields(changes)
        with self._lock:
            existing = self._tasks.get(task_id)
            if existing is None:
                return None
            updated_at = max(self._now(), existing.updated_at)
            updated = replace(existing, updated_at=updated_at, **cleaned)
            self._tasks[task_id] = updated
            return updated

    async def delete_task(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    async def list_tasks_in_range(self, start: datetime, end: datetime) -> list[Task]:
        start, end = ensure_utc(start), ensure_utc(end)
        with self._lock:
            snapshot = list(self._tasks.values())
        return sort_tasks(tasks_in_range(snapshot, start, end))

    # User preferences

    def _ensure_preferences(self) -> UserPreferences:
        if self._preferences is None:
            self._preferences = UserPreferences(id=self._new_id())
        return self._preferences

    async def get_preferences(self) -> UserPreferences:
        with self._lock:
            return self._ensure_preferences()

    async def update_preferences(self, changes: t.Mapping[str, t.Any]) -> UserPreferences:
        cleaned = _clean_preferences_fields(changes)
        with self._lock:
            self._preferences = replace(self._ensure_preferences(), **cleaned)
            return self._preferences
