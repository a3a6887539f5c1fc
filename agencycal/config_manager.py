"""Configuration management for the agencycal server."""

from __future__ import annotations

import logging
import os
import zoneinfo
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .calendar.datetime_utils import DEFAULT_PROJECT_TIMEZONE

logger = logging.getLogger(__name__)

DEFAULT_WEB_HOST = "127.0.0.1"
DEFAULT_WEB_PORT = 8080
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100  # Pagination limit for API requests
MAX_OCCURRENCES_PER_RULE = 10000  # Safety ceiling per recurring anchor

# Integer settings: env var -> config key
_INT_VARS = {
    "AGENCYCAL_WEB_PORT": "server_port",
    "AGENCYCAL_DEFAULT_PAGE_LIMIT": "default_page_limit",
    "AGENCYCAL_MAX_PAGE_LIMIT": "max_page_limit",
    "AGENCYCAL_MAX_OCCURRENCES_PER_RULE": "max_occurrences_per_rule",
}


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []

        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                str(self.env_file_path),
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()

            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - AGENCYCAL_WEB_HOST -> 'server_bind'
        - AGENCYCAL_WEB_PORT -> 'server_port' (int)
        - AGENCYCAL_TIMEZONE -> 'timezone' (validated IANA name)
        - AGENCYCAL_DATA_FILE -> 'data_file'
        - AGENCYCAL_DEFAULT_PAGE_LIMIT -> 'default_page_limit' (int)
        - AGENCYCAL_MAX_PAGE_LIMIT -> 'max_page_limit' (int)
        - AGENCYCAL_MAX_OCCURRENCES_PER_RULE -> 'max_occurrences_per_rule' (int)
        - AGENCYCAL_DEBUG_LOGGING -> 'debug_logging' (bool)

        Invalid values are logged and ignored.

        Returns:
            Configuration dictionary compatible with start_server
        """
        cfg: dict[str, Any] = {}

        host = os.environ.get("AGENCYCAL_WEB_HOST")
        if host:
            cfg["server_bind"] = host

        for env_name, key in _INT_VARS.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                value = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_name, raw)
                continue
            if value < 1:
                logger.warning("Invalid %s=%r (must be >= 1); ignoring", env_name, raw)
                continue
            cfg[key] = value

        timezone = os.environ.get("AGENCYCAL_TIMEZONE")
        if timezone:
            if is_valid_timezone(timezone):
                cfg["timezone"] = timezone
            else:
                logger.warning("Invalid AGENCYCAL_TIMEZONE=%r; ignoring", timezone)

        data_file = os.environ.get("AGENCYCAL_DATA_FILE")
        if data_file:
            cfg["data_file"] = data_file

        debug = os.environ.get("AGENCYCAL_DEBUG_LOGGING")
        if debug:
            cfg["debug_logging"] = debug.strip().lower() in ("1", "true", "yes", "on")

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def is_valid_timezone(name: str) -> bool:
    """Return True if ``name`` is a known IANA zone."""
    try:
        zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        return False
    return True


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)


@dataclass
class EngineSettings:
    """Settings shared by the expander and the query engine."""

    timezone: str = DEFAULT_PROJECT_TIMEZONE
    default_page_limit: int = DEFAULT_PAGE_LIMIT
    max_page_limit: int = MAX_PAGE_LIMIT
    max_occurrences_per_rule: int = MAX_OCCURRENCES_PER_RULE

    def __post_init__(self) -> None:
        if self.default_page_limit > self.max_page_limit:
            logger.warning(
                "default_page_limit %d exceeds max_page_limit %d; clamping",
                self.default_page_limit,
                self.max_page_limit,
            )
            self.default_page_limit = self.max_page_limit

    @classmethod
    def from_config(cls, config: Any) -> EngineSettings:
        """Build settings from a config dict or attribute object."""
        return cls(
            timezone=get_config_value(config, "timezone", DEFAULT_PROJECT_TIMEZONE),
            default_page_limit=int(get_config_value(config, "default_page_limit", DEFAULT_PAGE_LIMIT)),
            max_page_limit=int(get_config_value(config, "max_page_limit", MAX_PAGE_LIMIT)),
            max_occurrences_per_rule=int(
                get_config_value(config, "max_occurrences_per_rule", MAX_OCCURRENCES_PER_RULE)
            ),
        )
