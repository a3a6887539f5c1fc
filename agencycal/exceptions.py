"""Exception hierarchy for the agencycal calendar engine.

Recurrence errors on the write path are surfaced to the caller, recurrence
errors discovered while reading stored events are recovered per event, and
persistence failures are propagated unchanged in meaning.
"""

from __future__ import annotations

from typing import Optional


class CalendarEngineError(Exception):
    """Base exception for all calendar engine errors."""


class RecurrenceParseError(CalendarEngineError, ValueError):
    """A recurrence string could not be parsed.

    Attributes:
        token: The offending ``KEY=VALUE`` segment (or bare value), when known.
    """

    def __init__(self, message: str, token: Optional[str] = None):
        super().__init__(message)
        self.token = token


class RecurrenceValidationError(RecurrenceParseError):
    """A recurrence string is malformed or inconsistent with its event.

    Raised on the write path (event create/update) so the request can be
    rejected before anything is persisted. Should result in HTTP 400.
    """


class StaleRecurrenceError(CalendarEngineError):
    """A persisted recurrence string failed to parse during expansion.

    Raised when:
    - A row was written before recurrence validation existed
    - A row was edited outside the application

    The query engine catches this, logs it and drops the single event.
    """

    def __init__(self, event_id: str, recurrence: Optional[str], cause: Exception):
        super().__init__(f"Event {event_id} has unparseable recurrence {recurrence!r}: {cause}")
        self.event_id = event_id
        self.recurrence = recurrence
        self.cause = cause


class UpstreamFetchError(CalendarEngineError):
    """A persistence lookup failed.

    Not recovered locally and never retried; the whole query fails.
    Should result in HTTP 502.
    """


class QueryValidationError(CalendarEngineError, ValueError):
    """Calendar query input is invalid.

    Raised when:
    - The window start is after its end or a bound is unparseable
    - Page or limit are out of range
    - A filter value is not recognised

    Should result in HTTP 400.
    """
