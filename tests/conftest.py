"""
Shared fixtures for signage-player tests.

A fake controller stands in for the central signage API so the resolver,
playlist cursor and orchestrator can be driven deterministically.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from signage_player.db import Base
from signage_player.errors import ConfigurationError, FetchFailure
from signage_player.models import playback_state  # noqa: F401
from signage_player.schemas.content import ContentOut
from signage_player.schemas.display import DisplayOut
from signage_player.schemas.schedule import ScheduleOut

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def make_schedule(
    schedule_id: str,
    priority: int = 0,
    start: datetime | None = None,
    end: datetime | None = None,
    is_active: bool = True,
    **binding,
) -> ScheduleOut:
    """Build a schedule from controller-style camelCase binding fields."""
    row = {
        "id": schedule_id,
        "displayId": "display-1",
        "startTime": (start or NOW - timedelta(hours=1)).isoformat(),
        "endTime": end.isoformat() if end else None,
        "priority": priority,
        "isActive": is_active,
    }
    row.update(binding)
    return ScheduleOut.model_validate(row)


def make_content(content_id: str, content_type: str = "image", duration: int = 10, **extra) -> ContentOut:
    return ContentOut(id=content_id, title=f"Content {content_id}", type=content_type, duration=duration, **extra)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


class FakeController:
    def __init__(self) -> None:
        self.schedules: list[ScheduleOut] = []
        self.contents: dict[str, ContentOut] = {}
        self.schedule_fetches = 0
        self.content_fetches: list[str] = []
        self.heartbeats: list[str] = []
        self.fail_schedules = False
        self.fail_content = False
        self.events: list = []

    async def fetch_display(self) -> DisplayOut:
        return DisplayOut(id="display-1", name="Lobby", location="Main entrance")

    async def fetch_schedules(self, display_id: str) -> list[ScheduleOut]:
        self.schedule_fetches += 1
        if self.fail_schedules:
            raise FetchFailure("controller unreachable")
        # A new list each time, like a fresh HTTP response.
        return [item.model_copy(deep=True) for item in self.schedules]

    async def fetch_content(self, content_id: str) -> ContentOut:
        self.content_fetches.append(content_id)
        if self.fail_content:
            raise FetchFailure("controller unreachable", status_code=502)
        if content_id not in self.contents:
            raise ConfigurationError(f"content {content_id} no longer exists")
        return self.contents[content_id].model_copy(deep=True)

    async def send_heartbeat(self, display_id: str) -> None:
        self.heartbeats.append(display_id)

    async def subscribe(self, display_id: str):
        for event in self.events:
            yield event


class RecordingHub:
    def __init__(self) -> None:
        self.messages: list[tuple[str, dict]] = []

    async def publish(self, event_type: str, payload: dict | None = None) -> int:
        self.messages.append((event_type, payload or {}))
        return len(self.messages)

    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.messages]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def controller() -> FakeController:
    fake = FakeController()
    for content_id, content_type, duration in [
        ("A", "image", 10),
        ("B", "image", 12),
        ("C", "text", 8),
        ("X", "image", 6),
        ("Y", "video", 30),
        ("Z", "text", 7),
    ]:
        fake.contents[content_id] = make_content(content_id, content_type, duration)
    return fake


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()
