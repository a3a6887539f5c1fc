"""Command-line entry for agencycal."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the agencycal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="agencycal",
        description="agencycal - calendar query and recurrence expansion API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m agencycal --data-file calendar.json            # Serve a JSON calendar on port 8080
  python -m agencycal --port 3000 --data-file calendar.json
        """,
    )

    parser.add_argument(
        "--host",
        metavar="HOST",
        help="Address to bind (default: 127.0.0.1, or from AGENCYCAL_WEB_HOST env var)",
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from AGENCYCAL_WEB_PORT env var)",
    )
    parser.add_argument(
        "--data-file",
        metavar="PATH",
        help="JSON file with events, tasks and project teams (or AGENCYCAL_DATA_FILE env var)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging for agencycal modules",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the agencycal CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
