"""Command-line entry for community_calendar."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the community_calendar CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="community_calendar",
        description="Community calendar server - agenda, month grid and moderation API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m community_calendar                          # Start on default port (8080)
  python -m community_calendar --port 3000              # Start on port 3000
  python -m community_calendar --data ./data/store.json # Persist to a JSON store
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from COMMUNITY_WEB_PORT env var)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML or JSON config file (default: ./config/config.yaml)",
    )
    parser.add_argument(
        "--data",
        metavar="PATH",
        help="JSON data store file (default: in-memory, or from COMMUNITY_DATA_PATH env var)",
    )

    return parser


def main() -> NoReturn:
    """Run the community_calendar CLI."""
    parser = _create_parser()
    args = parser.parse_args()

    try:
        run_server(args)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    sys.exit(0)


if __name__ == "__main__":
    main()
