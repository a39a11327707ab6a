"""Init command: create the database schema."""

from __future__ import annotations

import argparse
import logging

from ...core.config import get_config
from ...core.db import check_connection, close_pool, init_schema
from ...core.exceptions import DatabaseException
from ..output import output_error, output_result

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the init command on the CLI parser."""
    init_parser = subparsers.add_parser("init", help="Create the database schema (idempotent)")
    init_parser.add_argument("--schema", help="Path to an alternative schema.sql")
    init_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    init_parser.set_defaults(func=cmd_init)


def cmd_init(args: argparse.Namespace) -> int:
    """Create tables and indexes."""
    try:
        if not check_connection():
            settings = get_config()
            output_error(f"Cannot connect to database {settings.db_name} at {settings.db_host}:{settings.db_port}")
            return 1
        init_schema(args.schema)
    except DatabaseException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Schema initialization failed")
        output_error(f"Schema initialization failed: {e}")
        return 1
    finally:
        close_pool()

    output_result({"success": True, "schema": args.schema or "default"}, args.output_json, "Schema ready.")
    return 0
