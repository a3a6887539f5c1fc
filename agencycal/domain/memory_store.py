"""JSON-loadable in-memory implementation of the persistence collaborators."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..calendar.models import CalendarEvent, EventFilters, Task, TaskStatus, WindowPredicate

logger = logging.getLogger(__name__)


def _matches_search(search: Optional[str], *fields: Optional[str]) -> bool:
    """Case-insensitive substring match over title/description fields."""
    if not search:
        return True
    needle = search.casefold()
    return any(field and needle in field.casefold() for field in fields)


class InMemoryCalendarStore:
    """Read-only event, task and project-team store backed by plain lists.

    Implements ``EventRepository``, ``TaskRepository`` and
    ``ProjectTeamDirectory``. Rows keep their load order, which the query
    engine relies on for stable tie-breaking.
    """

    def __init__(
        self,
        events: Optional[Iterable[CalendarEvent]] = None,
        tasks: Optional[Iterable[Task]] = None,
        project_teams: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> None:
        self._events: list[CalendarEvent] = list(events or [])
        self._tasks: list[Task] = list(tasks or [])
        self._teams: dict[str, frozenset[str]] = {
            project_id: frozenset(members) for project_id, members in (project_teams or {}).items()
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InMemoryCalendarStore:
        """Build a store from ``{"events": [...], "tasks": [...], "project_teams": {...}}``.

        Rows use the camelCase wire names or snake_case field names.

        Raises:
            pydantic.ValidationError: If a row does not validate
        """
        events = [CalendarEvent.model_validate(row) for row in data.get("events", [])]
        tasks = [Task.model_validate(row) for row in data.get("tasks", [])]
        teams = data.get("project_teams") or data.get("projectTeams") or {}
        return cls(events=events, tasks=tasks, project_teams=teams)

    @classmethod
    def from_json_file(cls, path: str | Path) -> InMemoryCalendarStore:
        """Load a store from a JSON document on disk.

        Raises:
            OSError: If the file cannot be read
            ValueError: If the document is not a JSON object or a row is invalid
        """
        file_path = Path(path)
        with file_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Calendar data file {file_path} must contain a JSON object")  # noqa: TRY004

        store = cls.from_dict(data)
        logger.info(
            "Loaded calendar data from %s: %d events, %d tasks, %d project teams",
            file_path,
            len(store._events),
            len(store._tasks),
            len(store._teams),
        )
        return store

    @property
    def events(self) -> tuple[CalendarEvent, ...]:
        return tuple(self._events)

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    def add_event(self, event: CalendarEvent) -> None:
        self._events.append(event)

    def add_task(self, task: Task) -> None:
        self._tasks.append(task)

    def set_team(self, project_id: str, members: Iterable[str]) -> None:
        self._teams[project_id] = frozenset(members)

    async def find_events(
        self, predicate: WindowPredicate, filters: EventFilters
    ) -> list[CalendarEvent]:
        """Events satisfying the window predicate and the filters, in load order."""
        matched = [
            event
            for event in self._events
            if predicate.matches(event)
            and (filters.type is None or event.type == filters.type)
            and (filters.project_id is None or event.project_id == filters.project_id)
            and _matches_search(filters.search, event.title, event.description)
        ]
        logger.debug("find_events matched %d of %d events", len(matched), len(self._events))
        return matched

    async def find_tasks_with_deadline_in_window(
        self,
        window_start: datetime,
        window_end: datetime,
        exclude_done: bool,
        filters: EventFilters,
    ) -> list[Task]:
        """Tasks with a deadline in ``[window_start, window_end]``, in load order."""
        matched = [
            task
            for task in self._tasks
            if task.deadline is not None
            and window_start <= task.deadline <= window_end
            and not (exclude_done and task.status == TaskStatus.DONE)
            and (filters.project_id is None or task.project_id == filters.project_id)
            and _matches_search(filters.search, task.title, task.description)
        ]
        logger.debug("find_tasks_with_deadline_in_window matched %d tasks", len(matched))
        return matched

    def is_team_member(self, project_id: str, user_id: str) -> bool:
        return user_id in self._teams.get(project_id, frozenset())
