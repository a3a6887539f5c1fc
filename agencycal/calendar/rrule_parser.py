"""Recurrence rule parsing, validation and construction.

Grammar (keys case-insensitive, segments separated by ``;``)::

    [RRULE:]FREQ=<DAILY|WEEKLY|MONTHLY|YEARLY>[;INTERVAL=<int>]
        [;COUNT=<int>|;UNTIL=<ISO instant>][;BYDAY=<weekday,...>]

Unknown keys are rejected rather than ignored: a typo such as ``COUTN=3``
would otherwise silently turn a finite series into an unbounded one.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Optional, Union

from pydantic import ValidationError

from ..exceptions import RecurrenceParseError, RecurrenceValidationError
from .datetime_utils import parse_instant, to_utc
from .models import Frequency, RecurrenceRule, Weekday

logger = logging.getLogger(__name__)

RRULE_PREFIX = "RRULE:"
KNOWN_KEYS = frozenset({"FREQ", "INTERVAL", "COUNT", "UNTIL", "BYDAY"})

_WEEKDAY_TOKENS: dict[str, Weekday] = {}
for _day in Weekday:
    _WEEKDAY_TOKENS[_day.value] = _day
    _WEEKDAY_TOKENS[_day.label[:3].upper()] = _day

_FREQUENCY_UNITS = {
    Frequency.DAILY: "day",
    Frequency.WEEKLY: "week",
    Frequency.MONTHLY: "month",
    Frequency.YEARLY: "year",
}

CUSTOM_RECURRENCE_LABEL = "Custom recurrence"


def _split_fields(text: str) -> dict[str, str]:
    """Split rule text into an upper-cased key -> raw value mapping."""
    body = text.strip()
    if body.upper().startswith(RRULE_PREFIX):
        body = body[len(RRULE_PREFIX):]

    fields: dict[str, str] = {}
    for raw_segment in body.split(";"):
        segment = raw_segment.strip()
        if "=" not in segment:
            raise RecurrenceParseError(f"Malformed recurrence token {segment!r}", token=segment)

        key, value = segment.split("=", 1)
        key = key.strip().upper()
        value = value.strip()

        if key not in KNOWN_KEYS:
            raise RecurrenceParseError(f"Unknown recurrence key {key!r}", token=segment)
        if key in fields:
            raise RecurrenceParseError(f"Recurrence key {key} given more than once", token=segment)
        if not value:
            raise RecurrenceParseError(f"Recurrence key {key} has no value", token=segment)

        fields[key] = value
    return fields


def _parse_frequency(value: str) -> Frequency:
    try:
        return Frequency(value.upper())
    except ValueError:
        raise RecurrenceParseError(f"Unsupported frequency {value!r}", token=f"FREQ={value}") from None


def _parse_positive_int(key: str, value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise RecurrenceParseError(f"{key} must be a positive integer, got {value!r}", token=f"{key}={value}")
    number = int(value)
    if number < 1:
        raise RecurrenceParseError(f"{key} must be >= 1, got {number}", token=f"{key}={value}")
    return number


def _parse_until(value: str) -> datetime:
    try:
        return parse_instant(value)
    except (ValueError, OverflowError) as e:
        raise RecurrenceParseError(f"Unparseable UNTIL instant {value!r}", token=f"UNTIL={value}") from e


def _parse_by_day(value: str) -> tuple[Weekday, ...]:
    days = []
    for raw_token in value.split(","):
        token = raw_token.strip().upper()
        day = _WEEKDAY_TOKENS.get(token)
        if day is None:
            raise RecurrenceParseError(f"Unknown weekday {raw_token!r} in BYDAY", token=f"BYDAY={value}")
        days.append(day)
    return tuple(days)


def parse_rrule(text: str) -> RecurrenceRule:
    """Parse compact recurrence text into a ``RecurrenceRule``.

    Args:
        text: Rule text, e.g. ``"FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE"``

    Returns:
        Parsed rule. ``by_day_present`` records whether BYDAY appeared, even
        for frequencies where it does not affect expansion.

    Raises:
        RecurrenceParseError: On any malformed token, unknown or repeated key,
            missing FREQ, interval/count below 1, unparseable UNTIL, or
            COUNT combined with UNTIL
    """
    if not isinstance(text, str) or not text.strip():
        raise RecurrenceParseError("Empty recurrence string")

    fields = _split_fields(text)
    if "FREQ" not in fields:
        raise RecurrenceParseError("Recurrence is missing required FREQ")
    if "COUNT" in fields and "UNTIL" in fields:
        raise RecurrenceParseError(
            "COUNT and UNTIL are mutually exclusive", token=f"UNTIL={fields['UNTIL']}"
        )

    frequency = _parse_frequency(fields["FREQ"])
    interval = _parse_positive_int("INTERVAL", fields["INTERVAL"]) if "INTERVAL" in fields else 1
    count = _parse_positive_int("COUNT", fields["COUNT"]) if "COUNT" in fields else None
    until = _parse_until(fields["UNTIL"]) if "UNTIL" in fields else None
    by_day = _parse_by_day(fields["BYDAY"]) if "BYDAY" in fields else ()

    if by_day and frequency != Frequency.WEEKLY:
        logger.debug("BYDAY ignored for %s recurrence %r", frequency.value, text)

    try:
        return RecurrenceRule(
            frequency=frequency,
            interval=interval,
            count=count,
            until=until,
            by_day=by_day,
            by_day_present="BYDAY" in fields,
        )
    except ValidationError as e:
        raise RecurrenceParseError(f"Invalid recurrence {text!r}: {e}") from e


def is_valid_rrule(text: object) -> bool:
    """Return True when ``text`` parses as a recurrence rule. Never raises."""
    try:
        parse_rrule(text)  # type: ignore[arg-type]
    except RecurrenceParseError:
        return False
    return True


def validate_recurrence(text: str, anchor_start: Optional[datetime] = None) -> RecurrenceRule:
    """Write-path validation of a recurrence string for an event.

    Args:
        text: Recurrence text submitted with the event
        anchor_start: Event start time; when given, UNTIL must not precede it

    Returns:
        The parsed rule

    Raises:
        RecurrenceValidationError: Describing the offending token
    """
    try:
        rule = parse_rrule(text)
    except RecurrenceParseError as e:
        raise RecurrenceValidationError(str(e), token=e.token) from e

    if anchor_start is not None and rule.until is not None and rule.until < to_utc(anchor_start):
        raise RecurrenceValidationError(
            "UNTIL must not be before the event start time",
            token=f"UNTIL={rule.until.strftime('%Y%m%dT%H%M%SZ')}",
        )
    return rule


def _coerce_weekday(value: Union[int, str, Weekday]) -> Weekday:
    if isinstance(value, Weekday):
        return value
    if isinstance(value, int):
        if not 0 <= value <= 6:
            raise RecurrenceValidationError(f"Weekday index out of range: {value}")
        return list(Weekday)[value]
    day = _WEEKDAY_TOKENS.get(str(value).strip().upper())
    if day is None:
        raise RecurrenceValidationError(f"Unknown weekday {value!r}")
    return day


def build_rrule(
    frequency: Union[Frequency, str],
    interval: int = 1,
    until: Optional[datetime] = None,
    count: Optional[int] = None,
    by_weekday: Iterable[Union[int, str, Weekday]] = (),
) -> str:
    """Generate canonical recurrence text from simple options.

    Args:
        frequency: Frequency or its name (case-insensitive)
        interval: Every N units (default 1)
        until: Optional last start instant
        count: Optional total occurrences
        by_weekday: Weekdays as indexes (0 = Monday), tokens or ``Weekday``

    Raises:
        RecurrenceValidationError: If options are inconsistent
    """
    try:
        freq = frequency if isinstance(frequency, Frequency) else Frequency(str(frequency).upper())
    except ValueError:
        raise RecurrenceValidationError(f"Unsupported frequency {frequency!r}") from None

    days = tuple(_coerce_weekday(day) for day in by_weekday)
    try:
        rule = RecurrenceRule(
            frequency=freq,
            interval=interval,
            count=count,
            until=until,
            by_day=days,
            by_day_present=bool(days),
        )
    except ValidationError as e:
        raise RecurrenceValidationError(f"Invalid recurrence options: {e}") from e
    return rule.to_rrule_string()


def describe_recurrence(rule_or_text: Union[RecurrenceRule, str]) -> str:
    """Human-readable English summary, e.g. ``"Every 2 weeks on Monday, 5 times"``."""
    if isinstance(rule_or_text, RecurrenceRule):
        rule = rule_or_text
    else:
        try:
            rule = parse_rrule(rule_or_text)
        except RecurrenceParseError:
            return CUSTOM_RECURRENCE_LABEL

    unit = _FREQUENCY_UNITS[rule.frequency]
    text = f"Every {unit}" if rule.interval == 1 else f"Every {rule.interval} {unit}s"

    if rule.uses_by_day:
        text += " on " + ", ".join(day.label for day in rule.by_day)

    if rule.count is not None:
        text += ", once" if rule.count == 1 else f", {rule.count} times"
    elif rule.until is not None:
        text += f", until {rule.until:%B} {rule.until.day}, {rule.until.year}"

    return text


def common_patterns() -> list[dict[str, str]]:
    """Preset recurrence choices offered by the event form."""
    return [
        {"label": "Daily", "value": build_rrule(Frequency.DAILY)},
        {"label": "Weekly", "value": build_rrule(Frequency.WEEKLY)},
        {"label": "Weekdays", "value": build_rrule(Frequency.WEEKLY, by_weekday=[0, 1, 2, 3, 4])},
        {"label": "Monthly", "value": build_rrule(Frequency.MONTHLY)},
        {"label": "Yearly", "value": build_rrule(Frequency.YEARLY)},
    ]
