"""Settings loaded from environment variables.

One ``Settings`` object is built at process start and passed to the
application factory; nothing reads the environment at request time.
"""
from __future__ import annotations

import os
import typing as t
from dataclasses import dataclass

ENV_PREFIX = "PLANNER"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8004
    log_level: str = "INFO"
    seed_subjects: bool = True

    # Google Calendar
    google_client_id: t.Optional[str] = None
    google_client_secret: t.Optional[str] = None
    google_redirect_uri: t.Optional[str] = None
    calendar_id: str = "primary"
    event_duration_minutes: int = 60
    http_timeout: float = 30.0
    webhook_url: t.Optional[str] = None

    @property
    def oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_redirect_uri)


def load_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        host=os.getenv(_k("HOST"), "0.0.0.0"),
        port=_env_int(_k("PORT"), 8004),
        log_level=os.getenv(_k("LOG_LEVEL"), "INFO").upper(),
        seed_subjects=_env_bool(_k("SEED_SUBJECTS"), True),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET") or None,
        google_redirect_uri=os.getenv("GOOGLE_REDIRECT_URI") or None,
        calendar_id=os.getenv(_k("CALENDAR_ID"), "primary"),
        event_duration_minutes=_env_int(_k("EVENT_DURATION_MINUTES"), 60),
        http_timeout=_env_float(_k("HTTP_TIMEOUT"), 30.0),
        webhook_url=os.getenv(_k("WEBHOOK_URL")) or None,
    )
