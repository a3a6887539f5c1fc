"""Calendar query engine: fetch, filter, expand, merge, sort and paginate.

One query runs as a join of two independent lookups (events and task
deadlines) followed by pure in-memory work. Nothing is cached between
queries.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from itertools import chain
from typing import Any, Optional, Union

from pydantic import ValidationError

from ..domain.protocols import EventRepository, TaskRepository, VisibilityPolicy
from ..exceptions import CalendarEngineError, QueryValidationError, StaleRecurrenceError, UpstreamFetchError
from .datetime_utils import parse_instant
from .deadline_projector import DeadlineProjector
from .models import (
    Actor,
    CalendarEntry,
    CalendarEvent,
    EventFilters,
    EventListResponse,
    Pagination,
    Task,
    TimeWindow,
    WindowPredicate,
)
from .rrule_expander import OccurrenceExpander

logger = logging.getLogger(__name__)


@dataclass
class QueryEngineConfig:
    """Configuration for calendar queries."""

    default_page_limit: int = 50
    max_page_limit: int = 100

    @classmethod
    def from_settings(cls, settings: Any) -> "QueryEngineConfig":
        """Extract query configuration from a settings object or dict."""
        if settings is None:
            return cls()
        if isinstance(settings, dict):
            return cls(
                default_page_limit=int(settings.get("default_page_limit", 50)),
                max_page_limit=int(settings.get("max_page_limit", 100)),
            )
        return cls(
            default_page_limit=int(getattr(settings, "default_page_limit", 50)),
            max_page_limit=int(getattr(settings, "max_page_limit", 100)),
        )


def make_window(start: Union[str, datetime], end: Union[str, datetime]) -> TimeWindow:
    """Build a query window from datetimes or ISO-8601 strings.

    Raises:
        QueryValidationError: If a bound is unparseable or start is after end
    """
    try:
        start_dt = parse_instant(start) if isinstance(start, str) else start
        end_dt = parse_instant(end) if isinstance(end, str) else end
        return TimeWindow(start=start_dt, end=end_dt)
    except (ValueError, OverflowError) as e:
        # pydantic's ValidationError is a ValueError subclass
        raise QueryValidationError(f"Invalid query window: {e}") from e


def paginate(entries: tuple[CalendarEntry, ...], pagination: Pagination) -> EventListResponse:
    """Slice a sorted result set; ``total`` is the size of the full set."""
    total = len(entries)
    page_items = entries[pagination.offset : pagination.offset + pagination.limit]
    return EventListResponse(
        events=list(page_items),
        total=total,
        page=pagination.page,
        limit=pagination.limit,
        total_pages=math.ceil(total / pagination.limit),
    )


def merge_and_sort(
    event_entries: tuple[CalendarEntry, ...], deadline_entries: tuple[CalendarEntry, ...]
) -> tuple[CalendarEntry, ...]:
    """Concatenate events before deadlines and sort by start time.

    ``sorted`` is stable, so equal start times keep input order.
    """
    return tuple(sorted(chain(event_entries, deadline_entries), key=lambda entry: entry.start_time))


class CalendarQueryEngine:
    """Answers calendar list queries for an actor."""

    def __init__(
        self,
        event_repository: EventRepository,
        task_repository: TaskRepository,
        visibility_policy: VisibilityPolicy,
        settings: Any = None,
        expander: Optional[OccurrenceExpander] = None,
        projector: Optional[DeadlineProjector] = None,
    ):
        """Initialize the engine.

        Args:
            event_repository: Event lookup
            task_repository: Task deadline lookup
            visibility_policy: Actor access checks
            settings: Object or dict with page limits, ``timezone`` and
                ``max_occurrences_per_rule``
            expander: Occurrence expander (built from ``settings`` if omitted)
            projector: Deadline projector
        """
        self._events = event_repository
        self._tasks = task_repository
        self._visibility = visibility_policy
        self.config = QueryEngineConfig.from_settings(settings)
        self.expander = expander or OccurrenceExpander(settings)
        self.projector = projector or DeadlineProjector()

    def make_pagination(self, page: Any = None, limit: Any = None) -> Pagination:
        """Validate page/limit input, applying the configured default limit.

        Raises:
            QueryValidationError: If page < 1 or limit is outside [1, max_page_limit]
        """
        try:
            pagination = Pagination(
                page=1 if page is None else page,
                limit=self.config.default_page_limit if limit is None else limit,
            )
        except ValidationError as e:
            raise QueryValidationError(f"Invalid pagination: {e}") from e

        if pagination.limit > self.config.max_page_limit:
            raise QueryValidationError(
                f"limit must be at most {self.config.max_page_limit}, got {pagination.limit}"
            )
        return pagination

    async def _fetch(
        self, window: TimeWindow, filters: EventFilters
    ) -> tuple[list[CalendarEvent], list[Task]]:
        """Run the event and task lookups concurrently.

        A failing lookup cancels the other one.

        Raises:
            UpstreamFetchError: If either lookup fails
        """
        predicate = WindowPredicate.for_window(window)
        tasks_lookup = None

        try:
            async with asyncio.TaskGroup() as group:
                events_lookup = group.create_task(self._events.find_events(predicate, filters))
                if filters.includes_deadlines:
                    tasks_lookup = group.create_task(
                        self._tasks.find_tasks_with_deadline_in_window(window.start, window.end, True, filters)
                    )
        except ExceptionGroup as eg:
            error = eg.exceptions[0]
            if isinstance(error, CalendarEngineError):
                raise error from None
            logger.error("Calendar persistence lookup failed: %s", error)
            raise UpstreamFetchError(f"Calendar persistence lookup failed: {error}") from error

        events = list(events_lookup.result())
        tasks = list(tasks_lookup.result()) if tasks_lookup is not None else []
        return events, tasks

    def _entries_for_event(self, event: CalendarEvent, window: TimeWindow) -> tuple[CalendarEntry, ...]:
        if not event.is_recurring:
            return (CalendarEntry.from_event(event),)

        try:
            occurrences = self.expander.expand_event(event, window)
        except StaleRecurrenceError as e:
            logger.warning("Skipping event %s with stale recurrence: %s", e.event_id, e.cause)
            return ()
        return tuple(self.expander.generate_occurrence_entries(event, occurrences))

    def _visible_events(self, events: list[CalendarEvent], actor: Actor) -> list[CalendarEvent]:
        return [event for event in events if self._visibility.is_visible(event, actor)]

    def _visible_tasks(self, tasks: list[Task], actor: Actor) -> list[Task]:
        return [task for task in tasks if self._visibility.is_task_visible(task, actor)]

    async def list_entries(
        self,
        window: TimeWindow,
        filters: Optional[EventFilters] = None,
        pagination: Optional[Pagination] = None,
        actor: Optional[Actor] = None,
    ) -> EventListResponse:
        """List calendar entries in a window for an actor.

        Args:
            window: Closed query window
            filters: Type, project and search filters
            pagination: Page request (configured default limit if omitted)
            actor: User the query runs for

        Returns:
            One page of the merged, expanded and visibility-filtered entries;
            ``total`` counts that whole set

        Raises:
            QueryValidationError: If the actor is missing or the limit is too large
            UpstreamFetchError: If a persistence lookup fails
        """
        if actor is None:
            raise QueryValidationError("An actor is required for calendar queries")
        filters = filters or EventFilters()
        if pagination is None:
            pagination = self.make_pagination()
        elif pagination.limit > self.config.max_page_limit:
            raise QueryValidationError(
                f"limit must be at most {self.config.max_page_limit}, got {pagination.limit}"
            )

        events, tasks = await self._fetch(window, filters)
        visible_events = self._visible_events(events, actor)
        visible_tasks = self._visible_tasks(tasks, actor)

        event_entries = tuple(
            chain.from_iterable(self._entries_for_event(event, window) for event in visible_events)
        )
        deadline_entries = tuple(self.projector.project(visible_tasks, window.start, window.end))
        merged = merge_and_sort(event_entries, deadline_entries)

        logger.debug(
            "Calendar query for %s: %d/%d events visible, %d deadlines, %d entries total",
            actor.user_id,
            len(visible_events),
            len(events),
            len(deadline_entries),
            len(merged),
        )
        return paginate(merged, pagination)

    async def list_deadlines(
        self,
        window: TimeWindow,
        filters: Optional[EventFilters] = None,
        actor: Optional[Actor] = None,
    ) -> list[CalendarEntry]:
        """Deadline entries only, sorted by deadline.

        Raises:
            QueryValidationError: If the actor is missing
            UpstreamFetchError: If the task lookup fails
        """
        if actor is None:
            raise QueryValidationError("An actor is required for calendar queries")
        filters = filters or EventFilters()

        try:
            tasks = await self._tasks.find_tasks_with_deadline_in_window(
                window.start, window.end, True, filters
            )
        except CalendarEngineError:
            raise
        except Exception as e:
            logger.error("Task deadline lookup failed: %s", e)
            raise UpstreamFetchError(f"Task deadline lookup failed: {e}") from e

        entries = self.projector.project(self._visible_tasks(list(tasks), actor), window.start, window.end)
        return sorted(entries, key=lambda entry: entry.start_time)
