"""Shared fixtures for agencycal tests."""

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

import pytest

from agencycal.calendar.models import (
    Actor,
    CalendarEvent,
    EventAttendee,
    Task,
    TaskAssignee,
    UserRole,
)
from agencycal.calendar.query_engine import CalendarQueryEngine
from agencycal.domain.access import ActorVisibilityPolicy
from agencycal.domain.memory_store import InMemoryCalendarStore


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests that run the aiohttp application")


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def member() -> Actor:
    return Actor(user_id="user-1", role=UserRole.MEMBER)


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    """Factory for events; start defaults to 2024-01-10 09:00Z, one hour long."""

    def _make(
        event_id: str = "evt-1",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        recurrence: Optional[str] = None,
        **kwargs: Any,
    ) -> CalendarEvent:
        start = start or datetime(2024, 1, 10, 9, 0, tzinfo=UTC)
        no_end = kwargs.pop("no_end", False)
        if end is None and not no_end:
            end = start + timedelta(hours=1)
        kwargs.setdefault("title", f"Event {event_id}")
        kwargs.setdefault("created_by_id", "owner-1")
        return CalendarEvent(
            id=event_id, start_time=start, end_time=end, recurrence=recurrence, **kwargs
        )

    return _make


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Factory for tasks with a deadline and one assignee."""

    def _make(
        task_id: str = "task-1",
        deadline: Optional[datetime] = None,
        assignee_ids: tuple[str, ...] = ("user-2",),
        **kwargs: Any,
    ) -> Task:
        kwargs.setdefault("title", f"Task {task_id}")
        kwargs.setdefault("created_by_id", "owner-1")
        return Task(
            id=task_id,
            deadline=deadline or datetime(2024, 1, 12, 17, 0, tzinfo=UTC),
            assignees=[
                TaskAssignee(user_id=user_id, name=f"User {user_id}", email=f"{user_id}@example.com")
                for user_id in assignee_ids
            ],
            **kwargs,
        )

    return _make


@pytest.fixture
def attendee() -> Callable[..., EventAttendee]:
    def _make(attendee_id: str = "att-1", user_id: Optional[str] = "user-1", **kwargs: Any) -> EventAttendee:
        return EventAttendee(id=attendee_id, user_id=user_id, **kwargs)

    return _make


@pytest.fixture
def store() -> InMemoryCalendarStore:
    return InMemoryCalendarStore()


@pytest.fixture
def engine(store: InMemoryCalendarStore) -> CalendarQueryEngine:
    return CalendarQueryEngine(
        event_repository=store,
        task_repository=store,
        visibility_policy=ActorVisibilityPolicy(store),
    )


@pytest.fixture
def restore_logging() -> Iterator[None]:
    """Snapshot and restore logger levels and root handlers around a test."""
    names = ["", "agencycal", "aiohttp.access", "aiohttp.server", "aiohttp.web", "aiohttp.web_log", "asyncio"]
    levels = {name: logging.getLogger(name).level for name in names}
    root = logging.getLogger()
    handlers = list(root.handlers)
    filters = {handler: list(handler.filters) for handler in handlers}
    yield
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler, saved in filters.items():
        handler.filters[:] = saved
