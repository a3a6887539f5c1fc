"""aiohttp server wiring for the agencycal calendar API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Optional

from aiohttp import web

from .calendar.query_engine import CalendarQueryEngine
from .config_manager import DEFAULT_WEB_HOST, DEFAULT_WEB_PORT, EngineSettings, get_config_value
from .domain.access import ActorVisibilityPolicy
from .domain.memory_store import InMemoryCalendarStore
from .logging_config import configure_logging
from .middleware import correlation_id_middleware
from .routes import register_event_routes

logger = logging.getLogger(__name__)


def build_store(config: Any) -> InMemoryCalendarStore:
    """Load the calendar store from ``data_file`` or start empty."""
    data_file = get_config_value(config, "data_file")
    if not data_file:
        logger.warning("No data_file configured; serving an empty calendar")
        return InMemoryCalendarStore()
    return InMemoryCalendarStore.from_json_file(data_file)


def build_engine(config: Any, store: Optional[InMemoryCalendarStore] = None) -> CalendarQueryEngine:
    """Wire a query engine over a store using settings from ``config``."""
    store = store if store is not None else build_store(config)
    settings = EngineSettings.from_config(config)
    logger.debug("Engine settings: %s", settings)
    return CalendarQueryEngine(
        event_repository=store,
        task_repository=store,
        visibility_policy=ActorVisibilityPolicy(store),
        settings=settings,
    )


def make_app(engine: CalendarQueryEngine) -> web.Application:
    """Create aiohttp web application with routes wired to the engine."""
    app = web.Application(middlewares=[correlation_id_middleware])
    register_event_routes(app, engine)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _serve(config: Any) -> None:
    """Run the server until signalled to stop."""
    stop_event = asyncio.Event()

    engine = build_engine(config)
    app = make_app(engine)

    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(config, "server_bind", DEFAULT_WEB_HOST)
    port = int(get_config_value(config, "server_port", DEFAULT_WEB_PORT))

    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", host, port)
        await runner.cleanup()
        raise
    logger.info("Server started successfully on %s:%d", host, port)

    loop = asyncio.get_running_loop()

    def _on_signal() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Args:
        config: dict or dataclass-like object with keys:
            - server_bind: host to bind (str)
            - server_port: port (int)
            - data_file: JSON file with events, tasks and project teams
            - timezone: project-wide IANA zone
            - default_page_limit / max_page_limit: pagination limits
            - max_occurrences_per_rule: expansion safety ceiling
            - debug_logging: enable debug logging for agencycal (bool)

    Blocks until SIGINT/SIGTERM is received.
    """
    debug_mode = bool(get_config_value(config, "debug_logging", False))
    configure_logging(debug_mode=debug_mode)
    logger.info("Logging configuration applied: debug_mode=%s", debug_mode)

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
