"""Protocol definitions for the collaborators the query engine consumes.

The engine only reads through these contracts; persistence, access control and
authentication belong to the surrounding application.
"""

from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Protocol

from ..calendar.models import Actor, CalendarEvent, EventFilters, Task, WindowPredicate


class EventRepository(Protocol):
    """Protocol for event persistence lookups."""

    async def find_events(
        self, predicate: WindowPredicate, filters: EventFilters
    ) -> Sequence[CalendarEvent]:
        """Return candidate events for a window.

        Args:
            predicate: Conservative window predicate every returned row satisfies
            filters: Type, project and search filters

        Returns:
            Matching rows in stable storage order
        """
        ...


class TaskRepository(Protocol):
    """Protocol for task persistence lookups."""

    async def find_tasks_with_deadline_in_window(
        self,
        window_start: datetime.datetime,
        window_end: datetime.datetime,
        exclude_done: bool,
        filters: EventFilters,
    ) -> Sequence[Task]:
        """Return tasks whose deadline lies in ``[window_start, window_end]``.

        Args:
            window_start: Inclusive lower bound
            window_end: Inclusive upper bound
            exclude_done: Skip tasks in the terminal DONE status
            filters: Project and search filters

        Returns:
            Matching tasks in stable storage order
        """
        ...


class ProjectTeamDirectory(Protocol):
    """Protocol for project membership lookups."""

    def is_team_member(self, project_id: str, user_id: str) -> bool:
        """Check whether a user belongs to a project's team."""
        ...


class VisibilityPolicy(Protocol):
    """Protocol for actor access checks."""

    def is_visible(self, event: CalendarEvent, actor: Actor) -> bool:
        """Return True if the actor may see the event (and its occurrences)."""
        ...

    def is_task_visible(self, task: Task, actor: Actor) -> bool:
        """Return True if the actor may see the task's deadline entry."""
        ...
