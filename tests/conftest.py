"""Shared fixtures for planner tests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from planner_server.config import Settings
from planner_server.store import InMemoryPlannerStore
from services.planner_service.app import create_app


T0 = datetime(2026, 9, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryPlannerStore:
    return InMemoryPlannerStore(clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(seed_subjects=False)


@pytest.fixture
def client(store: InMemoryPlannerStore, settings: Settings) -> TestClient:
    return TestClient(create_app(store=store, settings=settings))
