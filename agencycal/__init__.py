"""agencycal - calendar query and recurrence expansion engine.

Package imports stay light; the aiohttp server and its dependencies are loaded
by ``run_server()``.
"""

__version__ = "0.1.0"

from typing import Any, Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors the AGENCYCAL_DEBUG environment variable (truthy values: "1",
    "true", "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("AGENCYCAL_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))


def run_server(args: Optional[Any] = None) -> None:
    """Start the agencycal API server.

    Configuration comes from ``.env`` and ``AGENCYCAL_*`` environment
    variables; command line arguments (``--host``, ``--port``,
    ``--data-file``, ``--debug``) override it.
    """
    import logging
    import os

    _init_logging(os.environ.get("AGENCYCAL_LOG_LEVEL"))

    from .config_manager import ConfigManager
    from .server import start_server

    logger = logging.getLogger(__name__)

    cfg = ConfigManager().load_full_config()

    if args is not None:
        host = getattr(args, "host", None)
        if host:
            cfg["server_bind"] = host
        port = getattr(args, "port", None)
        if port is not None:
            cfg["server_port"] = int(port)
            logger.debug("Applied command line port override: %d", cfg["server_port"])
        data_file = getattr(args, "data_file", None)
        if data_file:
            cfg["data_file"] = data_file
        if getattr(args, "debug", False):
            cfg["debug_logging"] = True

    logger.debug(
        "Resolved configuration (diagnostic): %s",
        {k: cfg.get(k) for k in ("server_bind", "server_port", "data_file", "timezone")},
    )
    start_server(cfg)
