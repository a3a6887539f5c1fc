"""Projection of task deadlines into read-only calendar entries."""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from .models import AttendeeStatus, CalendarEntry, EntryAttendee, EntryKind, EventType, Task

logger = logging.getLogger(__name__)

DEADLINE_ID_PREFIX = "task-"


def deadline_entry_id(task_id: str) -> str:
    """Derived id of the deadline entry for a task."""
    return f"{DEADLINE_ID_PREFIX}{task_id}"


def deadline_attendee_id(task_id: str, index: int) -> str:
    """Derived id of the ``index``-th assignee row on a deadline entry."""
    return f"task-attendee-{task_id}-{index}"


class DeadlineProjector:
    """Maps tasks to synthetic all-day deadline entries, one per task.

    Tasks arrive pre-filtered by the task lookup (deadline inside the window,
    not done); this class does no filtering of its own.
    """

    def project_task(self, task: Task) -> CalendarEntry:
        """Build the deadline entry for a single task.

        Raises:
            ValueError: If the task has no deadline
        """
        if task.deadline is None:
            raise ValueError(f"Task {task.id} has no deadline to project")

        # Deadlines are not RSVP'd, so every assignee is shown as accepted.
        attendees = [
            EntryAttendee(
                id=deadline_attendee_id(task.id, index),
                user_id=assignee.user_id,
                email=assignee.email,
                name=assignee.name,
                status=AttendeeStatus.ACCEPTED,
            )
            for index, assignee in enumerate(task.assignees)
        ]

        return CalendarEntry(
            kind=EntryKind.DEADLINE,
            id=deadline_entry_id(task.id),
            title=task.title,
            description=task.description,
            type=EventType.DEADLINE,
            start_time=task.deadline,
            end_time=None,
            is_all_day=True,
            recurrence=None,
            project_id=task.project_id,
            task_id=task.id,
            created_by_id=task.created_by_id,
            attendees=attendees,
            source_task_id=task.id,
        )

    def project(
        self,
        tasks: Iterable[Task],
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> list[CalendarEntry]:
        """Project every task, preserving input order.

        Args:
            tasks: Tasks already restricted to the window and non-terminal status
            window_start: Window the tasks were fetched for (diagnostics only)
            window_end: Window the tasks were fetched for (diagnostics only)
        """
        entries = [self.project_task(task) for task in tasks]
        logger.debug(
            "Projected %d task deadlines for window %s - %s", len(entries), window_start, window_end
        )
        return entries
