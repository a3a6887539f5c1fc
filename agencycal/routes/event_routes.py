"""Calendar and recurrence API routes for agencycal."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from .. import __version__
from ..calendar.datetime_utils import now_utc, parse_instant, serialize_datetime_optional, serialize_datetime_utc
from ..calendar.models import Actor, EventFilters, EventType, UserRole
from ..calendar.query_engine import CalendarQueryEngine, make_window
from ..calendar.rrule_parser import common_patterns, describe_recurrence, parse_rrule, validate_recurrence
from ..exceptions import QueryValidationError, RecurrenceParseError, UpstreamFetchError
from ..logging_config import get_logging_status

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class MissingActorError(Exception):
    """The request carried no actor headers."""


def actor_from_request(request: web.Request) -> Actor:
    """Build the actor from gateway-forwarded ``X-Actor-Id`` / ``X-Actor-Role`` headers.

    Raises:
        MissingActorError: If ``X-Actor-Id`` is absent
        QueryValidationError: If ``X-Actor-Role`` is not a known role
    """
    user_id = request.headers.get("X-Actor-Id", "").strip()
    if not user_id:
        raise MissingActorError("X-Actor-Id header is required")

    raw_role = request.headers.get("X-Actor-Role", "").strip().upper()
    if not raw_role:
        return Actor(user_id=user_id)
    try:
        return Actor(user_id=user_id, role=UserRole(raw_role))
    except ValueError:
        raise QueryValidationError(f"Unknown actor role {raw_role!r}") from None


def filters_from_query(query: Any) -> EventFilters:
    """Parse ``type``, ``projectId`` and ``search`` query parameters.

    Raises:
        QueryValidationError: If a filter value is not recognised
    """
    raw_type = query.get("type")
    try:
        return EventFilters(
            type=EventType(raw_type.upper()) if raw_type else None,
            project_id=query.get("projectId"),
            search=query.get("search"),
        )
    except ValueError as e:
        raise QueryValidationError(f"Invalid filter: {e}") from e


def _required_param(query: Any, name: str) -> str:
    value = query.get(name)
    if not value:
        raise QueryValidationError(f"Missing required query parameter {name!r}")
    return value


def _handle_errors(handler: Handler) -> Handler:
    """Map engine exceptions to JSON error responses."""

    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        try:
            return await handler(request)
        except MissingActorError as e:
            return web.json_response({"error": str(e)}, status=401)
        except (QueryValidationError, RecurrenceParseError, ValidationError) as e:
            return web.json_response({"error": str(e)}, status=400)
        except UpstreamFetchError as e:
            return web.json_response({"error": str(e)}, status=502)
        except web.HTTPException:
            raise
        except Exception:
            logger.exception("Unhandled error in %s", request.path)
            return web.json_response({"error": "internal server error"}, status=500)

    return wrapper


def register_event_routes(app: web.Application, engine: CalendarQueryEngine) -> None:
    """Register calendar query and recurrence routes.

    Args:
        app: aiohttp web application
        engine: Query engine serving the calendar routes
    """

    @_handle_errors
    async def list_events(request: web.Request) -> web.StreamResponse:
        """Paginated calendar entries (events, occurrences, deadlines) in a window."""
        actor = actor_from_request(request)
        query = request.query
        window = make_window(_required_param(query, "start"), _required_param(query, "end"))
        filters = filters_from_query(query)
        pagination = engine.make_pagination(query.get("page"), query.get("limit"))

        result = await engine.list_entries(window, filters, pagination, actor)
        logger.debug(
            "/api/events returned %d of %d entries (page %d)",
            len(result.events),
            result.total,
            result.page,
        )
        return web.json_response(result.model_dump(mode="json", by_alias=True))

    @_handle_errors
    async def list_deadlines(request: web.Request) -> web.StreamResponse:
        """Task deadline entries in a window."""
        actor = actor_from_request(request)
        query = request.query
        window = make_window(_required_param(query, "start"), _required_param(query, "end"))
        filters = EventFilters(project_id=query.get("projectId"), search=query.get("search"))

        entries = await engine.list_deadlines(window, filters, actor)
        return web.json_response([entry.model_dump(mode="json", by_alias=True) for entry in entries])

    @_handle_errors
    async def validate(request: web.Request) -> web.StreamResponse:
        """Write-path recurrence check used before an event is saved."""
        try:
            data = await request.json()
        except ValueError:
            return web.json_response({"error": "invalid json"}, status=400)
        if not isinstance(data, dict):
            return web.json_response({"error": "request body must be an object"}, status=400)

        recurrence = data.get("recurrence")
        if not isinstance(recurrence, str):
            return web.json_response({"error": "missing or invalid recurrence"}, status=400)

        raw_start = data.get("startTime")
        try:
            anchor = parse_instant(raw_start) if isinstance(raw_start, str) and raw_start else None
        except (ValueError, OverflowError):
            return web.json_response({"error": f"invalid startTime {raw_start!r}"}, status=400)

        try:
            rule = validate_recurrence(recurrence, anchor)
        except RecurrenceParseError as e:
            return web.json_response(
                {"valid": False, "error": str(e), "token": e.token, "description": None}
            )
        return web.json_response(
            {
                "valid": True,
                "error": None,
                "token": None,
                "description": describe_recurrence(rule),
                "normalized": rule.to_rrule_string(),
            }
        )

    async def patterns(_request: web.Request) -> web.StreamResponse:
        """Preset recurrence choices."""
        return web.json_response({"patterns": common_patterns()})

    @_handle_errors
    async def next_occurrence(request: web.Request) -> web.StreamResponse:
        """Next occurrence of a rule after a given instant (default: now)."""
        query = request.query
        rule = parse_rrule(_required_param(query, "recurrence"))
        try:
            anchor = parse_instant(_required_param(query, "startTime"))
            after = parse_instant(query["after"]) if query.get("after") else now_utc()
        except (ValueError, OverflowError) as e:
            raise QueryValidationError(f"Invalid instant: {e}") from e

        upcoming = engine.expander.next_occurrence(rule, anchor, after)
        return web.json_response(
            {"next": serialize_datetime_optional(upcoming), "description": describe_recurrence(rule)}
        )

    async def health_check(_request: web.Request) -> web.StreamResponse:
        """Liveness endpoint with current logger levels."""
        return web.json_response(
            {
                "status": "ok",
                "version": __version__,
                "server_time_iso": serialize_datetime_utc(now_utc()),
                "logging": get_logging_status(),
            }
        )

    app.router.add_get("/api/events", list_events)
    app.router.add_get("/api/events/deadlines", list_deadlines)
    app.router.add_post("/api/recurrence/validate", validate)
    app.router.add_get("/api/recurrence/patterns", patterns)
    app.router.add_get("/api/recurrence/next", next_occurrence)
    app.router.add_get("/api/health", health_check)

    logger.debug("Event routes registered")
