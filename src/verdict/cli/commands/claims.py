"""Claim commands: add, show, list.

Usage:
    verdict claims add <id> <text> --expires TIMESTAMP
    verdict claims show <id> [--history N]
    verdict claims list [--status STATUS ...]
"""

from __future__ import annotations

import argparse
import logging

from ...core.db import close_pool
from ...core.exceptions import VerdictException
from ...core.models import Claim, ClaimStatus
from ..output import output_error, output_result
from ..utils import build_engine, format_claim, parse_timestamp

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the claims command group on the CLI parser."""
    claims_parser = subparsers.add_parser("claims", help="Inspect and register claims")
    claims_sub = claims_parser.add_subparsers(dest="claims_command", required=True)

    add_parser = claims_sub.add_parser("add", help="Register an approved claim")
    add_parser.add_argument("claim_id", help="Claim identifier")
    add_parser.add_argument("text", help="Claim text")
    add_parser.add_argument("--expires", type=parse_timestamp, required=True, help="Expiry (ISO-8601)")
    add_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    add_parser.set_defaults(func=cmd_claims_add)

    show_parser = claims_sub.add_parser("show", help="Show one claim and its recent aggregations")
    show_parser.add_argument("claim_id", help="Claim identifier")
    show_parser.add_argument("--history", type=int, default=3, help="Aggregation records to show (default: 3)")
    show_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    show_parser.set_defaults(func=cmd_claims_show)

    list_parser = claims_sub.add_parser("list", help="List claims by status")
    list_parser.add_argument(
        "--status",
        nargs="+",
        choices=[s.value for s in ClaimStatus],
        help="Statuses to include (default: all)",
    )
    list_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    list_parser.set_defaults(func=cmd_claims_list)


def cmd_claims_add(args: argparse.Namespace) -> int:
    try:
        engine = build_engine()
        claim = engine.store.add_claim(Claim(id=args.claim_id, text=args.text, expires_at=args.expires))
    except VerdictException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Adding claim failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    output_result(claim.to_dict(), args.output_json, format_claim(claim))
    return 0


def cmd_claims_show(args: argparse.Namespace) -> int:
    try:
        engine = build_engine()
        claim = engine.store.get_claim(args.claim_id)
        history = engine.store.list_aggregations(claim.id, limit=args.history)
    except VerdictException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Showing claim failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    lines = [format_claim(claim)]
    for record in history:
        lines.append(
            f"  - {record['computed_at']}: {record['recommended_outcome']} "
            f"{record['final_confidence']}% YES via {record['strategy']}"
            f"{'  [suspect manipulation]' if record.get('suspect_manipulation') else ''}"
        )
        lines.append(f"    {record['explanation']}")
    output_result({"claim": claim.to_dict(), "aggregations": history}, args.output_json, "\n".join(lines))
    return 0


def cmd_claims_list(args: argparse.Namespace) -> int:
    statuses = [ClaimStatus(s) for s in args.status] if args.status else list(ClaimStatus)
    try:
        engine = build_engine()
        claims = engine.store.list_claims(statuses)
    except VerdictException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Listing claims failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    if not claims:
        output_result([], args.output_json, "No claims found.")
        return 0
    text = "\n".join(f"{c.id:<24} {c.status.value:<20} {c.expires_at.isoformat()}  {c.text[:60]}" for c in claims)
    output_result([c.to_dict() for c in claims], args.output_json, text)
    return 0
