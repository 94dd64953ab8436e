"""
Thin async HTTP client for the Google Calendar v3 API.

Every call fails soft: a non-success response or a transport error is logged
and reported as ``None``, ``[]`` or ``False``. There is no retry, no backoff
and no token refresh.
"""
from __future__ import annotations

import logging
import os
import time
import typing as t
import uuid
from urllib.parse import urlencode

import httpx

from planner_server.errors import CalendarNotConnectedError

logger = logging.getLogger(__name__)

# Service URLs - configurable via environment variable
GOOGLE_CALENDAR_API_URL = os.getenv("GOOGLE_CALENDAR_API_URL", "https://www.googleapis.com/calendar/v3")
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token")

CALENDAR_SCOPES = (
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
)

# Timeout settings (in seconds)
STANDARD_TIMEOUT = 30.0

WATCH_TTL_SECONDS = 7 * 24 * 60 * 60

CalendarEvent = dict[str, t.Any]


def build_auth_url(client_id: str, redirect_uri: str) -> str:
    """Build the Google consent-screen URL requesting offline calendar access."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    *,
    timeout: float = STANDARD_TIMEOUT,
    transport: t.Optional[httpx.AsyncBaseTransport] = None,
) -> t.Optional[dict[str, t.Any]]:
    """
    Exchange an OAuth authorization code for access and refresh tokens.

    :return: The token payload (``access_token``, ``refresh_token``, ...) or
        ``None`` if Google rejected the exchange.
    """
    data = {
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
    }
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(GOOGLE_TOKEN_URL, data=data)
    except httpx.HTTPError as e:
        logger.error("Error exchanging code for tokens: %s", e)
        return None

    if not response.is_success:
        logger.error("Failed to exchange code for tokens: %s %s", response.status_code, response.text)
        return None
    return response.json()


class GoogleCalendarClient:
    """Bearer-token client for one user's calendars."""

    def __init__(
        self,
        access_token: t.Optional[str] = None,
        *,
        calendar_id: str = "primary",
        timeout: float = STANDARD_TIMEOUT,
        base_url: str = GOOGLE_CALENDAR_API_URL,
        transport: t.Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.access_token = access_token
        self.calendar_id = calendar_id
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def set_access_token(self, token: str) -> None:
        self.access_token = token

    def _events_url(self, calendar_id: t.Optional[str], event_id: t.Optional[str] = None) -> str:
        url = f"{self.base_url}/calendars/{calendar_id or self.calendar_id}/events"
        return f"{url}/{event_id}" if event_id else url

    async def _request(self, method: str, url: str, action: str, **kwargs: t.Any) -> t.Optional[httpx.Response]:
        """Send an authorized request; ``None`` on transport error or non-2xx."""
        if not self.access_token:
            raise CalendarNotConnectedError("No access token available")

        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Error calling Google Calendar to %s: %s", action, e)
            return None

        if not response.is_success:
            logger.error("Failed to %s: %s %s", action, response.status_code, response.text)
            return None
        return response

    async def create_event(self, event: CalendarEvent, calendar_id: t.Optional[str] = None) -> t.Optional[CalendarEvent]:
        response = await self._request("POST", self._events_url(calendar_id), "create event", json=event)
        return response.json() if response is not None else None

    async def update_event(
        self,
        event_id: str,
        event: CalendarEvent,
        calendar_id: t.Optional[str] = None,
    ) -> t.Optional[CalendarEvent]:
        response = await self._request("PUT", self._events_url(calendar_id, event_id), "update event", json=event)
        return response.json() if response is not None else None

    async def delete_event(self, event_id: str, calendar_id: t.Optional[str] = None) -> bool:
        response = await self._request("DELETE", self._events_url(calendar_id, event_id), "delete event")
        return response is not None

    async def list_events(
        self,
        time_min: t.Optional[str] = None,
        time_max: t.Optional[str] = None,
        calendar_id: t.Optional[str] = None,
    ) -> list[CalendarEvent]:
        """List single (expanded) events ordered by start time."""
        params = {"singleEvents": "true", "orderBy": "startTime"}
        if time_min:
            params["timeMin"] = time_min
        if time_max:
            params["timeMax"] = time_max

        response = await self._request("GET", self._events_url(calendar_id), "fetch events", params=params)
        if response is None:
            return []
        return response.json().get("items", [])

    async def watch_events(self, webhook_url: str, calendar_id: t.Optional[str] = None) -> t.Optional[dict[str, t.Any]]:
        """
        Register a push-notification channel for calendar changes.

        Notifications arrive at ``webhook_url`` (``POST /calendar/webhook``).
        The channel expires after seven days.
        """
        calendar_id = calendar_id or self.calendar_id
        channel = {
            "id": f"studyplan-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}",
            "type": "web_hook",
            "address": webhook_url,
            "token": f"studyplan-{calendar_id}",
            "params": {"ttl": str(WATCH_TTL_SECONDS)},
        }
        response = await self._request(
            "POST", f"{self._events_url(calendar_id)}/watch", "set up webhook", json=channel
        )
        return response.json() if response is not None else None
