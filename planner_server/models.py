"""
Data models for the planner store: subjects, tasks and user preferences.

This module contains all the dataclasses used to represent planner entities.
Records are treated as immutable values; the store replaces a record as a
whole on every mutation.
"""
from __future__ import annotations

import typing as t
from dataclasses import dataclass
from datetime import datetime, timezone


PRIORITY_LOW = 1
PRIORITY_MEDIUM = 2
PRIORITY_HIGH = 3
PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH)

STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: t.Optional[datetime]) -> t.Optional[datetime]:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Subject:
    """A course or category used to tag and color-code tasks."""
    id: str
    name: str
    color: str
    created_at: datetime


@dataclass(frozen=True)
class Task:
    """A unit of schoolwork with a priority, a status and an optional due date."""
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    description: t.Optional[str] = None
    subject_id: t.Optional[str] = None
    priority: int = PRIORITY_LOW
    status: str = "pending"
    due_date: t.Optional[datetime] = None
    google_calendar_event_id: t.Optional[str] = None


@dataclass(frozen=True)
class UserPreferences:
    """Process-wide settings singleton, including calendar-connection state."""
    id: str
    google_calendar_connected: bool = False
    google_access_token: t.Optional[str] = None
    google_refresh_token: t.Optional[str] = None
    notifications_enabled: bool = False
    study_streak: int = 0
    last_study_date: t.Optional[datetime] = None


@dataclass(frozen=True)
class TaskFilter:
    """Optional equality predicates narrowing a task list (logical AND)."""
    subject_id: t.Optional[str] = None
    status: t.Optional[str] = None
    priority: t.Optional[int] = None

    def is_empty(self) -> bool:
        return self.subject_id is None and self.status is None and self.priority is None


# Fields a caller may set on create or change through a patch.
SUBJECT_MUTABLE_FIELDS = frozenset({"name", "color"})
TASK_MUTABLE_FIELDS = frozenset({
    "title",
    "description",
    "subject_id",
    "priority",
    "status",
    "due_date",
    "google_calendar_event_id",
})
PREFERENCES_MUTABLE_FIELDS = frozenset({
    "google_calendar_connected",
    "google_access_token",
    "google_refresh_token",
    "notifications_enabled",
    "study_streak",
    "last_study_date",
})
