"""Actor visibility rules for events and task deadlines."""

from __future__ import annotations

import logging
from typing import Optional

from ..calendar.models import Actor, CalendarEvent, Task
from .protocols import ProjectTeamDirectory

logger = logging.getLogger(__name__)


class ActorVisibilityPolicy:
    """Admin bypass, otherwise creator / attendee / project team member.

    Tasks follow the same shape: admins see all, other actors see tasks they
    are assigned to, created, or whose project team they belong to.
    """

    def __init__(self, teams: Optional[ProjectTeamDirectory] = None) -> None:
        self._teams = teams

    def _in_team(self, project_id: Optional[str], user_id: str) -> bool:
        if project_id is None or self._teams is None:
            return False
        return bool(self._teams.is_team_member(project_id, user_id))

    def is_visible(self, event: CalendarEvent, actor: Actor) -> bool:
        if actor.is_admin:
            return True
        if event.created_by_id == actor.user_id:
            return True
        if any(attendee.user_id == actor.user_id for attendee in event.attendees):
            return True
        return self._in_team(event.project_id, actor.user_id)

    def is_task_visible(self, task: Task, actor: Actor) -> bool:
        if actor.is_admin:
            return True
        if task.created_by_id == actor.user_id:
            return True
        if any(assignee.user_id == actor.user_id for assignee in task.assignees):
            return True
        return self._in_team(task.project_id, actor.user_id)
