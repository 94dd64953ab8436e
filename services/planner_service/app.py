"""
FastAPI service for the study planner.

This service exposes the planner store over REST: one endpoint family per
entity, preference read/update, and the Google Calendar connection, push and
webhook endpoints. It owns no state of its own; the store is constructed once
by ``create_app`` and injected into every handler.
"""
from __future__ import annotations

import logging
import typing as t
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime

import httpx
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from calendar_sync.google_calendar import GoogleCalendarClient, build_auth_url, exchange_code_for_tokens
from calendar_sync.push import push_task, remove_task_event
from planner_server.config import Settings, load_settings
from planner_server.errors import (
    CalendarNotConnectedError,
    CalendarSyncError,
    NotFoundError,
    ValidationError as StoreValidationError,
)
from planner_server.models import PRIORITIES, STATUSES, Subject, Task, TaskFilter, UserPreferences, ensure_utc
from planner_server.store import InMemoryPlannerStore, PlannerStore
from services.shared.models import (
    AuthUrlResponse,
    CalendarConnectRequest,
    CreateSubjectRequest,
    CreateTaskRequest,
    OAuthExchangeRequest,
    Subject as PydanticSubject,
    Task as PydanticTask,
    UpdatePreferencesRequest,
    UpdateSubjectRequest,
    UpdateTaskRequest,
    UserPreferences as PydanticUserPreferences,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_INVALID_PAYLOAD_MESSAGES = {
    "tasks": "Invalid task data",
    "subjects": "Invalid subject data",
    "preferences": "Invalid preferences data",
    "calendar": "Invalid calendar data",
}


# Dependencies
def get_store(request: Request) -> PlannerStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_calendar_transport(request: Request) -> t.Optional[httpx.AsyncBaseTransport]:
    return request.app.state.calendar_transport


def _subject_out(subject: Subject) -> PydanticSubject:
    return PydanticSubject(**asdict(subject))


def _task_out(task: Task) -> PydanticTask:
    return PydanticTask(**asdict(task))


def _preferences_out(preferences: UserPreferences) -> PydanticUserPreferences:
    return PydanticUserPreferences(**asdict(preferences))


def _server_error(message: str) -> HTTPException:
    """Log the active exception and build a generic 500 for the caller."""
    logger.exception(message)
    return HTTPException(status_code=500, detail=message)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer shape-validation failures with 400 instead of FastAPI's 422."""
    segment = request.url.path.strip("/").split("/", 1)[0]
    message = _INVALID_PAYLOAD_MESSAGES.get(segment, "Invalid request data")
    return JSONResponse(
        status_code=400,
        content={"detail": message, "errors": jsonable_encoder(exc.errors())},
    )


@router.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "service": "planner-service"}


def _task_filter(subject_id: t.Optional[str], status: t.Optional[str], priority: t.Optional[str]) -> TaskFilter:
    """Build a filter from raw query values; empty values mean "no filter"."""
    if status and status not in STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {', '.join(STATUSES)}")
    level = None
    if priority:
        try:
            level = int(priority)
        except ValueError:
            level = None
        if level not in PRIORITIES:
            raise HTTPException(status_code=400, detail="priority must be 1 (low), 2 (medium) or 3 (high)")
    return TaskFilter(subject_id=subject_id or None, status=status or None, priority=level)


# Tasks
@router.get("/tasks", response_model=list[PydanticTask])
async def list_tasks(
    subject_id: t.Optional[str] = Query(default=None, alias="subjectId"),
    status: t.Optional[str] = None,
    priority: t.Optional[str] = None,
    store: PlannerStore = Depends(get_store),
) -> list[PydanticTask]:
    """
    List tasks, optionally narrowed by subject, status and priority.

    Results are ordered by priority (high first), then by due date.
    """
    task_filter = _task_filter(subject_id, status, priority)
    try:
        tasks = await store.list_tasks(task_filter)
    except Exception:
        raise _server_error("Failed to fetch tasks")
    return [_task_out(task) for task in tasks]


@router.get("/tasks/range", response_model=list[PydanticTask])
async def list_tasks_in_range(
    start: datetime,
    end: datetime,
    store: PlannerStore = Depends(get_store),
) -> list[PydanticTask]:
    """List tasks due between ``start`` and ``end`` inclusive (calendar view)."""
    start, end = ensure_utc(start), ensure_utc(end)
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    try:
        tasks = await store.list_tasks_in_range(start, end)
    except Exception:
        raise _server_error("Failed to fetch tasks")
    return [_task_out(task) for task in tasks]


@router.get("/tasks/{task_id}", response_model=PydanticTask)
async def get_task(task_id: str, store: PlannerStore = Depends(get_store)) -> PydanticTask:
    try:
        task = await store.get_task(task_id)
    except Exception:
        raise _server_error("Failed to fetch task")
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return _task_out(task)


@router.post("/tasks", response_model=PydanticTask, status_code=201)
async def create_task(request: CreateTaskRequest, store: PlannerStore = Depends(get_store)) -> PydanticTask:
    try:
        task = await store.create_task(request.model_dump(exclude_none=True))
    except StoreValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        raise _server_error("Failed to create task")
    return _task_out(task)


@router.patch("/tasks/{task_id}", response_model=PydanticTask)
async def update_task(
    task_id: str,
    request: UpdateTaskRequest,
    store: PlannerStore = Depends(get_store),
) -> PydanticTask:
    """Apply the fields present in the body; omitted fields keep their values."""
    try:
        task = await store.update_task(task_id, request.model_dump(exclude_unset=True))
    except StoreValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        raise _server_error("Failed to update task")
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return _task_out(task)


@router.delete("/tasks/{task_id}", status_code=204, response_class=Response)
async def delete_task(task_id: str, store: PlannerStore = Depends(get_store)) -> Response:
    try:
        deleted = await store.delete_task(task_id)
    except Exception:
        raise _server_error("Failed to delete task")
    if not deleted:
        raise HTTPException(status_code=404, detail="Task not found")
    return Response(status_code=204)


# Subjects
@router.get("/subjects", response_model=list[PydanticSubject])
async def list_subjects(store: PlannerStore = Depends(get_store)) -> list[PydanticSubject]:
    try:
        subjects = await store.list_subjects()
    except Exception:
        raise _server_error("Failed to fetch subjects")
    return [_subject_out(subject) for subject in subjects]


@router.get("/subjects/{subject_id}", response_model=PydanticSubject)
async def get_subject(subject_id: str, store: PlannerStore = Depends(get_store)) -> PydanticSubject:
    try:
        subject = await store.get_subject(subject_id)
    except Exception:
        raise _server_error("Failed to fetch subject")
    if subject is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    return _subject_out(subject)


@router.post("/subjects", response_model=PydanticSubject, status_code=201)
async def create_subject(request: CreateSubjectRequest, store: PlannerStore = Depends(get_store)) -> PydanticSubject:
    try:
        subject = await store.create_subject(request.name, request.color)
    except StoreValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        raise _server_error("Failed to create subject")
    return _subject_out(subject)


@router.patch("/subjects/{subject_id}", response_model=PydanticSubject)
async def update_subject(
    subject_id: str,
    request: UpdateSubjectRequest,
    store: PlannerStore = Depends(get_store),
) -> PydanticSubject:
    try:
        subject = await store.update_subject(subject_id, request.model_dump(exclude_unset=True))
    except StoreValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        raise _server_error("Failed to update subject")
    if subject is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    return _subject_out(subject)


@router.delete("/subjects/{subject_id}", status_code=204, response_class=Response)
async def delete_subject(subject_id: str, store: PlannerStore = Depends(get_store)) -> Response:
    """Delete a subject. Tasks tagged with it keep their ``subjectId``."""
    try:
        deleted = await store.delete_subject(subject_id)
    except Exception:
        raise _server_error("Failed to delete subject")
    if not deleted:
        raise HTTPException(status_code=404, detail="Subject not found")
    return Response(status_code=204)


# User preferences
@router.get("/preferences", response_model=PydanticUserPreferences)
async def get_preferences(store: PlannerStore = Depends(get_store)) -> PydanticUserPreferences:
    try:
        preferences = await store.get_preferences()
    except Exception:
        raise _server_error("Failed to fetch preferences")
    return _preferences_out(preferences)


@router.patch("/preferences", response_model=PydanticUserPreferences)
async def update_preferences(
    request: UpdatePreferencesRequest,
    store: PlannerStore = Depends(get_store),
) -> PydanticUserPreferences:
    try:
        preferences = await store.update_preferences(request.model_dump(exclude_unset=True))
    except StoreValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        raise _server_error("Failed to update preferences")
    return _preferences_out(preferences)


# Google Calendar
async def _connect_calendar(
    store: PlannerStore,
    settings: Settings,
    transport: t.Optional[httpx.AsyncBaseTransport],
    access_token: str,
    refresh_token: t.Optional[str],
) -> UserPreferences:
    # Register the webhook before storing tokens so a failure leaves preferences untouched.
    if settings.webhook_url:
        client = GoogleCalendarClient(
            access_token,
            calendar_id=settings.calendar_id,
            timeout=settings.http_timeout,
            transport=transport,
        )
        channel = await client.watch_events(settings.webhook_url)
        if channel is None:
            logger.warning("Webhook registration failed; connecting without change notifications")
    return await store.update_preferences({
        "google_calendar_connected": True,
        "google_access_token": access_token,
        "google_refresh_token": refresh_token,
    })


@router.post("/calendar/connect", response_model=PydanticUserPreferences)
async def connect_calendar(
    request: CalendarConnectRequest,
    store: PlannerStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    transport: t.Optional[httpx.AsyncBaseTransport] = Depends(get_calendar_transport),
) -> PydanticUserPreferences:
    """Store OAuth tokens obtained by the client and mark the calendar connected."""
    try:
        preferences = await _connect_calendar(
            store, settings, transport, request.access_token, request.refresh_token
        )
    except Exception:
        raise _server_error("Failed to connect Google Calendar")
    return _preferences_out(preferences)


@router.post("/calendar/disconnect", response_model=PydanticUserPreferences)
async def disconnect_calendar(store: PlannerStore = Depends(get_store)) -> PydanticUserPreferences:
    try:
        preferences = await store.update_preferences({
            "google_calendar_connected": False,
            "google_access_token": None,
            "google_refresh_token": None,
        })
    except Exception:
        raise _server_error("Failed to disconnect Google Calendar")
    return _preferences_out(preferences)


@router.get("/calendar/auth-url", response_model=AuthUrlResponse)
async def calendar_auth_url(settings: Settings = Depends(get_settings)) -> AuthUrlResponse:
    if not settings.oauth_configured:
        raise HTTPException(status_code=503, detail="Google OAuth is not configured")
    return AuthUrlResponse(url=build_auth_url(settings.google_client_id, settings.google_redirect_uri))


@router.post("/calendar/oauth/exchange", response_model=PydanticUserPreferences)
async def exchange_oauth_code(
    request: OAuthExchangeRequest,
    store: PlannerStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    transport: t.Optional[httpx.AsyncBaseTransport] = Depends(get_calendar_transport),
) -> PydanticUserPreferences:
    """Exchange an authorization code for tokens and connect the calendar."""
    if not settings.oauth_configured:
        raise HTTPException(status_code=503, detail="Google OAuth is not configured")

    tokens = await exchange_code_for_tokens(
        request.code,
        settings.google_client_id,
        settings.google_client_secret,
        settings.google_redirect_uri,
        timeout=settings.http_timeout,
        transport=transport,
    )
    if not tokens or not tokens.get("access_token"):
        raise HTTPException(status_code=502, detail="Failed to exchange code for tokens")

    try:
        preferences = await _connect_calendar(
            store, settings, transport, tokens["access_token"], tokens.get("refresh_token")
        )
    except Exception:
        raise _server_error("Failed to connect Google Calendar")
    return _preferences_out(preferences)


async def _calendar_client(
    store: PlannerStore,
    settings: Settings,
    transport: t.Optional[httpx.AsyncBaseTransport],
) -> GoogleCalendarClient:
    preferences = await store.get_preferences()
    if not preferences.google_calendar_connected or not preferences.google_access_token:
        raise CalendarNotConnectedError("Google Calendar is not connected")
    return GoogleCalendarClient(
        preferences.google_access_token,
        calendar_id=settings.calendar_id,
        timeout=settings.http_timeout,
        transport=transport,
    )


@router.post("/calendar/push/{task_id}", response_model=PydanticTask)
async def push_task_to_calendar(
    task_id: str,
    store: PlannerStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    transport: t.Optional[httpx.AsyncBaseTransport] = Depends(get_calendar_transport),
) -> PydanticTask:
    """Create or update the Google Calendar event for a task."""
    try:
        client = await _calendar_client(store, settings, transport)
        task = await push_task(store, task_id, client, settings.event_duration_minutes)
    except CalendarNotConnectedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    except StoreValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CalendarSyncError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception:
        raise _server_error("Failed to push task to Google Calendar")
    return _task_out(task)


@router.delete("/calendar/push/{task_id}", response_model=PydanticTask)
async def remove_task_from_calendar(
    task_id: str,
    store: PlannerStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    transport: t.Optional[httpx.AsyncBaseTransport] = Depends(get_calendar_transport),
) -> PydanticTask:
    """Delete the Google Calendar event for a task and clear its reference."""
    try:
        client = await _calendar_client(store, settings, transport)
        task = await remove_task_event(store, task_id, client)
    except CalendarNotConnectedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    except CalendarSyncError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception:
        raise _server_error("Failed to remove task from Google Calendar")
    return _task_out(task)


@router.post("/calendar/webhook", response_class=PlainTextResponse)
async def calendar_webhook(
    request: Request,
    x_goog_channel_id: t.Optional[str] = Header(default=None),
    x_goog_resource_state: t.Optional[str] = Header(default=None),
) -> str:
    """
    Acknowledge Google Calendar push notifications.

    The initial ``sync`` handshake and change notifications are both answered
    with ``OK``; calendar changes are not applied to tasks.
    """
    try:
        body = await request.body()
        logger.info(
            "Google Calendar webhook received: channel=%s state=%s body=%d bytes",
            x_goog_channel_id, x_goog_resource_state, len(body),
        )
    except Exception:
        raise _server_error("Webhook processing failed")

    if x_goog_resource_state != "sync":
        # TODO: fetch changed events and reconcile tasks once two-way sync exists.
        logger.debug("Change notification acknowledged without syncing tasks")
    return "OK"


def create_app(
    store: t.Optional[PlannerStore] = None,
    settings: t.Optional[Settings] = None,
    calendar_transport: t.Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the planner application.

    :param store: Storage backend; defaults to a fresh in-memory store.
    :param settings: Service settings; defaults to ``load_settings()``.
    :param calendar_transport: httpx transport for Google calls (tests inject a mock).
    """
    settings = settings or load_settings()
    if store is None:
        store = InMemoryPlannerStore(seed_subjects=settings.seed_subjects)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize resources on startup and cleanup on shutdown."""
        logger.info("Planner service starting with %s", type(store).__name__)
        yield
        logger.info("Planner service stopped")

    app = FastAPI(
        title="Study Planner Service",
        description="REST API for subjects, tasks and preferences of a student planner",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.settings = settings
    app.state.calendar_transport = calendar_transport
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    from planner_server.logging_setup import setup_logging

    _settings = load_settings()
    setup_logging(_settings.log_level)
    uvicorn.run(create_app(settings=_settings), host=_settings.host, port=_settings.port)
