"""
One-way push of planner tasks into Google Calendar.

A pushed task keeps the remote event id in ``google_calendar_event_id`` so a
later push updates the same event instead of creating a duplicate.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from calendar_sync.google_calendar import CalendarEvent, GoogleCalendarClient
from planner_server.errors import CalendarSyncError, NotFoundError, ValidationError
from planner_server.models import Task
from planner_server.store import PlannerStore

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60


def task_to_event(task: Task, duration_minutes: int = DEFAULT_DURATION_MINUTES) -> CalendarEvent:
    """Build a Google Calendar event body spanning ``duration_minutes`` from the due date."""
    if task.due_date is None:
        raise ValidationError("Task has no due date to place on the calendar")
    start = task.due_date
    end = start + timedelta(minutes=duration_minutes)
    event: CalendarEvent = {
        "summary": task.title,
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": end.isoformat()},
    }
    if task.description:
        event["description"] = task.description
    return event


async def push_task(
    store: PlannerStore,
    task_id: str,
    client: GoogleCalendarClient,
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> Task:
    """Create or update the calendar event mirroring a task.

    :raises NotFoundError: if the task does not exist.
    :raises ValidationError: if the task has no due date.
    :raises CalendarSyncError: if Google rejected the event.
    """
    task = await store.get_task(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)

    event = task_to_event(task, duration_minutes)
    if task.google_calendar_event_id:
        remote = await client.update_event(task.google_calendar_event_id, event)
    else:
        remote = await client.create_event(event)
    if remote is None:
        raise CalendarSyncError("Failed to push task to Google Calendar")

    updated = await store.update_task(task_id, {"google_calendar_event_id": remote.get("id")})
    if updated is None:
        # Deleted while the request to Google was in flight.
        raise NotFoundError("Task", task_id)
    logger.info("Pushed task %s to calendar event %s", task_id, updated.google_calendar_event_id)
    return updated


async def remove_task_event(store: PlannerStore, task_id: str, client: GoogleCalendarClient) -> Task:
    """Delete the calendar event mirroring a task and clear the reference."""
    task = await store.get_task(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    if not task.google_calendar_event_id:
        return task

    if not await client.delete_event(task.google_calendar_event_id):
        raise CalendarSyncError("Failed to delete Google Calendar event")

    updated = await store.update_task(task_id, {"google_calendar_event_id": None})
    if updated is None:
        raise NotFoundError("Task", task_id)
    logger.info("Removed calendar event for task %s", task_id)
    return updated
