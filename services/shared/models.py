"""
Shared Pydantic models for REST API serialization.

This module contains Pydantic equivalents of the dataclass models in
planner_server.models, plus the request bodies of every endpoint. JSON uses
camelCase keys (``subjectId``, ``dueDate``) while Python code uses the
snake_case field names.
"""
from __future__ import annotations

import typing as t
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


TaskStatus = t.Literal["pending", "in_progress", "completed"]
Priority = t.Annotated[int, Field(ge=1, le=3)]


class ApiModel(BaseModel):
    """Base model with camelCase aliases; accepts either spelling on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Entity models
class Subject(ApiModel):
    """A course or category used to tag and color-code tasks."""
    id: str
    name: str
    color: str
    created_at: datetime


class Task(ApiModel):
    """A unit of schoolwork."""
    id: str
    title: str
    description: t.Optional[str] = None
    subject_id: t.Optional[str] = None
    priority: int = 1
    status: TaskStatus = "pending"
    due_date: t.Optional[datetime] = None
    google_calendar_event_id: t.Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserPreferences(ApiModel):
    """Per-user settings singleton, including calendar-connection state."""
    id: str
    google_calendar_connected: bool = False
    google_access_token: t.Optional[str] = None
    google_refresh_token: t.Optional[str] = None
    notifications_enabled: bool = False
    study_streak: int = 0
    last_study_date: t.Optional[datetime] = None


# Request/Response Models for API endpoints
class CreateSubjectRequest(ApiModel):
    """Request model for creating a subject."""
    name: str
    color: str


class UpdateSubjectRequest(ApiModel):
    """Partial update of a subject; only fields sent are applied."""
    name: t.Optional[str] = None
    color: t.Optional[str] = None


class CreateTaskRequest(ApiModel):
    """Request model for creating a task. Only ``title`` is required."""
    title: str
    description: t.Optional[str] = None
    subject_id: t.Optional[str] = None
    priority: t.Optional[Priority] = None
    status: t.Optional[TaskStatus] = None
    due_date: t.Optional[datetime] = None
    google_calendar_event_id: t.Optional[str] = None


class UpdateTaskRequest(ApiModel):
    """Partial update of a task; only fields sent are applied."""
    title: t.Optional[str] = None
    description: t.Optional[str] = None
    subject_id: t.Optional[str] = None
    priority: t.Optional[Priority] = None
    status: t.Optional[TaskStatus] = None
    due_date: t.Optional[datetime] = None
    google_calendar_event_id: t.Optional[str] = None


class UpdatePreferencesRequest(ApiModel):
    """Partial update of the preferences record."""
    google_calendar_connected: t.Optional[bool] = None
    google_access_token: t.Optional[str] = None
    google_refresh_token: t.Optional[str] = None
    notifications_enabled: t.Optional[bool] = None
    study_streak: t.Optional[int] = Field(default=None, ge=0)
    last_study_date: t.Optional[datetime] = None


class CalendarConnectRequest(ApiModel):
    """OAuth tokens obtained by the client for Google Calendar."""
    access_token: str = Field(min_length=1)
    refresh_token: t.Optional[str] = None


class OAuthExchangeRequest(ApiModel):
    """Authorization code returned to the OAuth redirect URI."""
    code: str


class AuthUrlResponse(ApiModel):
    """Response model for the Google consent-screen URL."""
    url: str
