"""Tests for agencycal.calendar.models."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from agencycal.calendar.models import (
    CalendarEntry,
    CalendarEvent,
    EntryKind,
    EventFilters,
    EventListResponse,
    EventType,
    Frequency,
    Pagination,
    RecurrenceRule,
    TerminatorKind,
    TimeWindow,
    Weekday,
    WindowPredicate,
)

pytestmark = pytest.mark.unit


class TestCalendarEvent:
    def test_end_before_start_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CalendarEvent(
                id="e1",
                title="Bad",
                start_time=datetime(2024, 1, 10, 10, tzinfo=UTC),
                end_time=datetime(2024, 1, 10, 9, tzinfo=UTC),
                created_by_id="u1",
            )

    def test_naive_instants_become_utc(self) -> None:
        event = CalendarEvent(id="e1", title="T", start_time=datetime(2024, 1, 10, 9), created_by_id="u1")
        assert event.start_time == datetime(2024, 1, 10, 9, tzinfo=UTC)

    def test_offset_instants_normalized(self) -> None:
        plus_seven = timezone(timedelta(hours=7))
        event = CalendarEvent(
            id="e1", title="T", start_time=datetime(2024, 1, 10, 16, tzinfo=plus_seven), created_by_id="u1"
        )
        assert event.start_time.tzinfo == UTC
        assert event.start_time.hour == 9

    def test_title_length(self) -> None:
        with pytest.raises(ValidationError):
            CalendarEvent(id="e1", title="x" * 201, start_time=datetime(2024, 1, 1), created_by_id="u1")

    @pytest.mark.parametrize("minutes", [-1, 10081])
    def test_reminder_range(self, minutes: int) -> None:
        with pytest.raises(ValidationError):
            CalendarEvent(
                id="e1", title="T", start_time=datetime(2024, 1, 1), created_by_id="u1", reminder_before=minutes
            )

    @pytest.mark.parametrize(("recurrence", "expected"), [(None, False), ("", False), ("  ", False), ("FREQ=DAILY", True)])
    def test_is_recurring(self, recurrence, expected) -> None:
        event = CalendarEvent(
            id="e1", title="T", start_time=datetime(2024, 1, 1), created_by_id="u1", recurrence=recurrence
        )
        assert event.is_recurring is expected


class TestRecurrenceRule:
    def test_count_and_until_exclusive(self) -> None:
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=Frequency.DAILY, count=3, until=datetime(2024, 1, 1, tzinfo=UTC))

    def test_terminator(self) -> None:
        assert RecurrenceRule(frequency=Frequency.DAILY).terminator == TerminatorKind.NONE
        assert RecurrenceRule(frequency=Frequency.DAILY, count=2).terminator == TerminatorKind.COUNT
        until_rule = RecurrenceRule(frequency=Frequency.DAILY, until=datetime(2024, 1, 1, tzinfo=UTC))
        assert until_rule.terminator == TerminatorKind.UNTIL

    def test_by_day_sorted_and_deduplicated(self) -> None:
        rule = RecurrenceRule(frequency=Frequency.WEEKLY, by_day=(Weekday.FR, Weekday.MO, Weekday.FR))
        assert rule.by_day == (Weekday.MO, Weekday.FR)
        assert rule.uses_by_day

    def test_by_day_ignored_outside_weekly(self) -> None:
        rule = RecurrenceRule(frequency=Frequency.DAILY, by_day=(Weekday.MO,))
        assert not rule.uses_by_day

    def test_to_rrule_string(self) -> None:
        rule = RecurrenceRule(
            frequency=Frequency.WEEKLY,
            interval=2,
            until=datetime(2024, 3, 1, 12, tzinfo=UTC),
            by_day=(Weekday.WE, Weekday.MO),
        )
        assert rule.to_rrule_string() == "FREQ=WEEKLY;INTERVAL=2;UNTIL=20240301T120000Z;BYDAY=MO,WE"

    def test_weekday_helpers(self) -> None:
        assert Weekday.MO.index == 0
        assert Weekday.SU.index == 6
        assert Weekday.WE.label == "Wednesday"


class TestCalendarEntry:
    def test_wire_format(self) -> None:
        event = CalendarEvent(
            id="e1",
            title="Standup",
            start_time=datetime(2024, 1, 10, 9, tzinfo=UTC),
            end_time=datetime(2024, 1, 10, 9, 15, tzinfo=UTC),
            recurrence="FREQ=DAILY",
            created_by_id="u1",
        )
        entry = CalendarEntry.occurrence_of(
            event, datetime(2024, 1, 11, 9, tzinfo=UTC), datetime(2024, 1, 11, 9, 15, tzinfo=UTC)
        )
        data = entry.model_dump(mode="json", by_alias=True)

        assert data["kind"] == "occurrence"
        assert data["id"] == "e1"
        assert data["startTime"] == "2024-01-11T09:00:00Z"
        assert data["endTime"] == "2024-01-11T09:15:00Z"
        assert data["occurrenceDate"] == "2024-01-11T09:00:00Z"
        assert data["anchorEventId"] == "e1"
        assert data["isRecurringOccurrence"] is True
        assert data["recurrence"] == "FREQ=DAILY"

    def test_from_event_is_plain_entry(self) -> None:
        event = CalendarEvent(id="e1", title="T", start_time=datetime(2024, 1, 10, 9), created_by_id="u1")
        entry = CalendarEntry.from_event(event)
        assert entry.kind == EntryKind.EVENT
        assert entry.occurrence_date is None
        assert entry.model_dump(mode="json", by_alias=True)["occurrenceDate"] is None

    def test_entries_are_immutable(self) -> None:
        event = CalendarEvent(id="e1", title="T", start_time=datetime(2024, 1, 10, 9), created_by_id="u1")
        entry = CalendarEntry.from_event(event)
        with pytest.raises(ValidationError):
            entry.title = "Changed"


class TestQueryModels:
    def test_window_order(self) -> None:
        with pytest.raises(ValidationError):
            TimeWindow(start=datetime(2024, 2, 1, tzinfo=UTC), end=datetime(2024, 1, 1, tzinfo=UTC))

    def test_zero_width_window_allowed(self) -> None:
        instant = datetime(2024, 1, 1, tzinfo=UTC)
        assert TimeWindow(start=instant, end=instant).start == instant

    def test_filters_blank_to_none(self) -> None:
        filters = EventFilters(project_id="  ", search="")
        assert filters.project_id is None
        assert filters.search is None

    @pytest.mark.parametrize(
        ("event_type", "expected"),
        [(None, True), (EventType.DEADLINE, True), (EventType.MEETING, False), (EventType.REMINDER, False)],
    )
    def test_includes_deadlines(self, event_type, expected) -> None:
        assert EventFilters(type=event_type).includes_deadlines is expected

    def test_pagination(self) -> None:
        assert Pagination(page=3, limit=20).offset == 40
        with pytest.raises(ValidationError):
            Pagination(page=0)
        with pytest.raises(ValidationError):
            Pagination(limit=0)

    def test_window_predicate(self, make_event) -> None:
        predicate = WindowPredicate.for_window(
            TimeWindow(start=datetime(2024, 1, 10, tzinfo=UTC), end=datetime(2024, 1, 20, tzinfo=UTC))
        )
        assert predicate.matches(make_event(start=datetime(2024, 1, 9, 23, 30, tzinfo=UTC)))
        assert not predicate.matches(make_event(start=datetime(2024, 1, 5, tzinfo=UTC)))
        assert predicate.matches(make_event(start=datetime(2023, 1, 5, tzinfo=UTC), recurrence="FREQ=YEARLY"))
        assert not predicate.matches(make_event(start=datetime(2024, 1, 21, tzinfo=UTC), recurrence="FREQ=DAILY"))

    def test_list_response_aliases(self) -> None:
        data = EventListResponse(total=3, page=1, limit=2, total_pages=2).model_dump(by_alias=True)
        assert data == {"events": [], "total": 3, "page": 1, "limit": 2, "totalPages": 2}
