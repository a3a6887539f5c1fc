"""
Central logging configuration for agencycal.

Keeps agencycal module loggers at INFO (DEBUG in debug mode) while quieting the
aiohttp access and server loggers, and stamps every record with the current
request correlation id.
"""

import logging
import os
from typing import Optional

from .middleware.correlation_id import get_request_id

_NOISY_LOGGERS = (
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web_log",
    "asyncio",
)

_ENGINE_MODULES = (
    "agencycal",
    "agencycal.server",
    "agencycal.routes.event_routes",
    "agencycal.calendar.rrule_parser",
    "agencycal.calendar.rrule_expander",
    "agencycal.calendar.deadline_projector",
    "agencycal.calendar.query_engine",
    "agencycal.domain.memory_store",
)


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def _env_truthy(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for agencycal.

    Args:
        debug_mode: Whether to enable debug logging for agencycal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        AGENCYCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        AGENCYCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_log_level = os.getenv("AGENCYCAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif _env_truthy("AGENCYCAL_DEBUG"):
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Don't use force=True; keeps the colored handler installed by _init_logging
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        formatter = logging.Formatter(
            "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config: dict[str, int] = {name: logging.WARNING for name in _NOISY_LOGGERS}
    logger_config["aiohttp.web"] = logging.INFO

    engine_level = logging.DEBUG if final_debug else logging.INFO
    for module in _ENGINE_MODULES:
        logger_config[module] = engine_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for agencycal modules")
    else:
        root_logger.info("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}

    for logger_name in ("agencycal", "aiohttp.access", "aiohttp.server", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)

    return status
