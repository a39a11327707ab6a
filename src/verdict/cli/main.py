#!/usr/bin/env python3
"""
Verdict CLI - Prediction-market claim resolution engine.

Commands:
  verdict init                       Create database schema
  verdict monitor run                Run the resolution monitor
  verdict monitor tick               Run one monitor pass
  verdict claims show <id>           Show a claim and its aggregations
  verdict evidence review <id>       Admin review of an evidence item
  verdict admin force-final <id> YES Manually resolve a claim
"""

from __future__ import annotations

import argparse
import sys

from ..core.logging import configure_logging
from .commands import COMMAND_MODULES


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="verdict",
        description="Prediction-market claim resolution engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  verdict init                                   Create tables
  verdict claims add c1 "X by June" --expires 2026-06-30T00:00:00
  verdict monitor tick --now 2026-07-01T00:00:00 Run one pass as of a time
  verdict monitor run                            Run both tick loops
  verdict evidence review e1 --stance supports_no --source-type academic --verified
  verdict admin force-final c1 NO --confidence 90
        """,
    )
    parser.add_argument("--log-level", help="Override VERDICT_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for module in COMMAND_MODULES:
        module.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
