"""Occurrence expansion for recurring calendar events.

Candidates are generated on the project-zone wall clock so a 09:00 weekly
meeting stays at 09:00 across DST changes, then converted back to UTC for
window comparisons. Month and year steps are always taken from the anchor
(``anchor + k months``), so a series anchored on the 31st lands on the last
day of shorter months and returns to the 31st afterwards.

Generation is bounded by the query window even for rules without COUNT or
UNTIL: steps that cannot reach the window are skipped arithmetically and the
stream stops at the first candidate past the window end.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from dateutil.relativedelta import relativedelta

from ..exceptions import RecurrenceParseError, StaleRecurrenceError
from .datetime_utils import (
    DEFAULT_PROJECT_TIMEZONE,
    duration_between,
    from_local_naive,
    get_zone,
    local_date,
    to_local_naive,
    to_utc,
)
from .models import CalendarEntry, CalendarEvent, Frequency, RecurrenceRule, TimeWindow
from .rrule_parser import parse_rrule

logger = logging.getLogger(__name__)

# Longest possible length of one frequency unit; used to skip steps that end
# before the window without generating them.
_MAX_UNIT_SPAN = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(weeks=1),
    Frequency.MONTHLY: timedelta(days=31),
    Frequency.YEARLY: timedelta(days=366),
}


@dataclass
class ExpanderConfig:
    """Configuration for occurrence expansion."""

    timezone: str = DEFAULT_PROJECT_TIMEZONE
    max_occurrences_per_rule: int = 10000

    @classmethod
    def from_settings(cls, settings: Any) -> "ExpanderConfig":
        """Extract expansion configuration from a settings object or dict."""
        if settings is None:
            return cls()
        if isinstance(settings, dict):
            return cls(
                timezone=settings.get("timezone", DEFAULT_PROJECT_TIMEZONE),
                max_occurrences_per_rule=int(settings.get("max_occurrences_per_rule", 10000)),
            )
        return cls(
            timezone=getattr(settings, "timezone", DEFAULT_PROJECT_TIMEZONE),
            max_occurrences_per_rule=int(getattr(settings, "max_occurrences_per_rule", 10000)),
        )


def _step_delta(rule: RecurrenceRule, step: int) -> Any:
    amount = step * rule.interval
    if rule.frequency == Frequency.DAILY:
        return timedelta(days=amount)
    if rule.frequency == Frequency.WEEKLY:
        return timedelta(weeks=amount)
    if rule.frequency == Frequency.MONTHLY:
        return relativedelta(months=amount)
    return relativedelta(years=amount)


def _first_relevant_step(rule: RecurrenceRule, anchor_wall: datetime, earliest_wall: datetime) -> int:
    """Lower bound on the first step whose candidates can reach ``earliest_wall``.

    Every step below the returned value produces candidates strictly before
    ``earliest_wall``. One extra step of slack absorbs DST shifts.
    """
    gap = earliest_wall - anchor_wall
    if gap <= timedelta(0):
        return 0
    try:
        span = _MAX_UNIT_SPAN[rule.frequency] * rule.interval
    except OverflowError:
        # One step is longer than any representable gap.
        return 0
    return max(0, gap // span - 1)


def iter_candidates(
    rule: RecurrenceRule, anchor_wall: datetime, first_step: int = 0
) -> Iterator[tuple[int, datetime]]:
    """Yield ``(series_index, wall_clock_start)`` pairs in ascending order.

    The stream is unbounded; callers stop it on COUNT, UNTIL or the window
    end. ``series_index`` counts candidates from the anchor, including any
    skipped by ``first_step``, so COUNT stays exact after a skip.
    """
    try:
        if rule.uses_by_day:
            anchor_weekday = anchor_wall.weekday()
            week_start = anchor_wall - timedelta(days=anchor_weekday)
            per_week = len(rule.by_day)
            first_week = sum(1 for day in rule.by_day if day.index >= anchor_weekday)

            step = first_step
            index = 0 if step == 0 else first_week + (step - 1) * per_week
            while True:
                monday = week_start + timedelta(weeks=step * rule.interval)
                for day in rule.by_day:
                    candidate = monday + timedelta(days=day.index)
                    if candidate < anchor_wall:
                        continue
                    yield index, candidate
                    index += 1
                step += 1
        else:
            step = first_step
            while True:
                yield step, anchor_wall + _step_delta(rule, step)
                step += 1
    except (OverflowError, ValueError):
        # Past datetime.max (timedelta overflow or year > 9999); the series cannot continue.
        return


def expand(
    rule: RecurrenceRule,
    anchor_start: datetime,
    window_start: datetime,
    window_end: datetime,
    duration: Optional[timedelta] = None,
    *,
    is_all_day: bool = False,
    zone: tzinfo = UTC,
    max_occurrences: Optional[int] = None,
) -> list[datetime]:
    """Expand a rule into occurrence starts overlapping ``[window_start, window_end]``.

    Args:
        rule: Parsed recurrence rule
        anchor_start: Start of the first occurrence
        window_start: Inclusive window start
        window_end: Inclusive window end
        duration: Length of each occurrence; occurrences starting before the
            window are kept when they run into it
        is_all_day: Compare by project-zone date instead of instant; the
            whole days of ``duration`` give the span in days
        zone: Project timezone for wall-clock stepping and date comparisons
        max_occurrences: Optional safety ceiling on returned occurrences

    Returns:
        Ascending UTC occurrence start times. Identical arguments always give
        an identical list.
    """
    anchor = to_utc(anchor_start)
    start = to_utc(window_start)
    end = to_utc(window_end)
    span = duration if duration is not None and duration > timedelta(0) else timedelta(0)

    if start > end:
        return []

    anchor_wall = to_local_naive(anchor, zone)
    first_day = local_date(start, zone)
    last_day = local_date(end, zone)
    span_days = timedelta(days=span.days)
    until_day = local_date(rule.until, zone) if rule.until is not None else None

    if is_all_day:
        if until_day is not None and until_day < first_day:
            return []
        if anchor_wall.date() > last_day:
            return []
        earliest_wall = datetime.combine(first_day - span_days, time.min)
    else:
        if rule.until is not None and rule.until < start:
            return []
        if anchor > end:
            return []
        earliest_wall = to_local_naive(start - span, zone)

    occurrences: list[datetime] = []
    first_step = _first_relevant_step(rule, anchor_wall, earliest_wall)

    for index, wall in iter_candidates(rule, anchor_wall, first_step):
        if rule.count is not None and index >= rule.count:
            break

        if is_all_day:
            day = wall.date()
            if until_day is not None and day > until_day:
                break
            if day > last_day:
                break
            if day + span_days < first_day:
                continue
            occurrence = from_local_naive(wall, zone)
        else:
            occurrence = from_local_naive(wall, zone)
            if rule.until is not None and occurrence > rule.until:
                break
            if occurrence > end:
                break
            if occurrence + span < start:
                continue

        occurrences.append(occurrence)
        if max_occurrences is not None and len(occurrences) >= max_occurrences:
            logger.warning(
                "Occurrence expansion capped at %d for rule %s",
                max_occurrences,
                rule.to_rrule_string(),
            )
            break

    return occurrences


def next_occurrence(
    rule: RecurrenceRule,
    anchor_start: datetime,
    after: datetime,
    *,
    inclusive: bool = False,
    zone: tzinfo = UTC,
) -> Optional[datetime]:
    """First occurrence after ``after`` (or at it, when inclusive).

    Returns:
        UTC start time, or None when COUNT or UNTIL has ended the series
    """
    after_utc = to_utc(after)
    anchor_wall = to_local_naive(to_utc(anchor_start), zone)
    first_step = _first_relevant_step(rule, anchor_wall, to_local_naive(after_utc, zone))

    for index, wall in iter_candidates(rule, anchor_wall, first_step):
        if rule.count is not None and index >= rule.count:
            return None
        occurrence = from_local_naive(wall, zone)
        if rule.until is not None and occurrence > rule.until:
            return None
        if occurrence > after_utc or (inclusive and occurrence == after_utc):
            return occurrence
    return None


class OccurrenceExpander:
    """Expands stored events against a query window with project settings."""

    def __init__(self, settings: Any = None):
        """Initialize expander.

        Args:
            settings: Object or dict with ``timezone`` and
                ``max_occurrences_per_rule``
        """
        config = ExpanderConfig.from_settings(settings)
        self.zone = get_zone(config.timezone)
        self.max_occurrences = config.max_occurrences_per_rule

        logger.debug(
            "OccurrenceExpander initialized: timezone=%s, max_occurrences=%d",
            config.timezone,
            self.max_occurrences,
        )

    def expand(
        self,
        rule: RecurrenceRule,
        anchor_start: datetime,
        window_start: datetime,
        window_end: datetime,
        duration: Optional[timedelta] = None,
        is_all_day: bool = False,
    ) -> list[datetime]:
        """Expand with this expander's zone and occurrence ceiling."""
        return expand(
            rule,
            anchor_start,
            window_start,
            window_end,
            duration,
            is_all_day=is_all_day,
            zone=self.zone,
            max_occurrences=self.max_occurrences,
        )

    def event_span(self, event: CalendarEvent) -> timedelta:
        """Occurrence length of an event; whole days for all-day events."""
        if event.end_time is None:
            return timedelta(0)
        if event.is_all_day:
            days = (local_date(event.end_time, self.zone) - local_date(event.start_time, self.zone)).days
            return timedelta(days=max(days, 0))
        return duration_between(event.start_time, event.end_time)

    def expand_event(self, event: CalendarEvent, window: TimeWindow) -> list[datetime]:
        """Occurrence starts of a stored recurring event inside ``window``.

        Raises:
            StaleRecurrenceError: If the stored recurrence string does not parse
        """
        try:
            rule = parse_rrule(event.recurrence or "")
        except RecurrenceParseError as e:
            raise StaleRecurrenceError(event.id, event.recurrence, e) from e

        occurrences = self.expand(
            rule,
            event.start_time,
            window.start,
            window.end,
            self.event_span(event),
            is_all_day=event.is_all_day,
        )
        logger.debug(
            "Expanded event %s (%s) into %d occurrences", event.id, event.recurrence, len(occurrences)
        )
        return occurrences

    def generate_occurrence_entries(
        self, event: CalendarEvent, occurrences: list[datetime]
    ) -> list[CalendarEntry]:
        """Build one calendar entry per occurrence, carrying the parent's fields."""
        length = duration_between(event.start_time, event.end_time) if event.end_time is not None else None
        return [
            CalendarEntry.occurrence_of(
                event, occurrence, occurrence + length if length is not None else None
            )
            for occurrence in occurrences
        ]

    def next_occurrence(
        self, rule: RecurrenceRule, anchor_start: datetime, after: datetime, inclusive: bool = False
    ) -> Optional[datetime]:
        """``next_occurrence`` in this expander's zone."""
        return next_occurrence(rule, anchor_start, after, inclusive=inclusive, zone=self.zone)
