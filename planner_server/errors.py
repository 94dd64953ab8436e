"""Exception types raised by the planner store and calendar integration."""
from __future__ import annotations


class PlannerError(Exception):
    """Base class for planner errors."""


class ValidationError(PlannerError):
    """Malformed or missing required input, e.g. an empty task title."""


class NotFoundError(PlannerError):
    """An operation addressed an id that does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class CalendarNotConnectedError(PlannerError):
    """Google Calendar access was requested without an access token."""


class CalendarSyncError(PlannerError):
    """The Google Calendar API did not accept a push."""
