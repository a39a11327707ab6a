"""Admin commands: manual preliminary and final resolution.

Both go through the same guarded lifecycle as the monitor; they can skip
waiting for automation but cannot break a lifecycle rule.

Usage:
    verdict admin force-preliminary <claim_id> <YES|NO>
    verdict admin force-final <claim_id> <YES|NO> --confidence N
"""

from __future__ import annotations

import argparse
import logging
from datetime import UTC, datetime

from ...core.db import close_pool
from ...core.exceptions import VerdictException
from ..output import output_error, output_result
from ..utils import build_engine, format_claim

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the admin command group on the CLI parser."""
    admin_parser = subparsers.add_parser("admin", help="Manual resolution commands")
    admin_sub = admin_parser.add_subparsers(dest="admin_command", required=True)

    pre_parser = admin_sub.add_parser("force-preliminary", help="Set the preliminary outcome and open the dispute window")
    pre_parser.add_argument("claim_id", help="Claim identifier")
    pre_parser.add_argument("outcome", choices=["YES", "NO"], type=str.upper, help="Preliminary outcome")
    pre_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    pre_parser.set_defaults(func=cmd_force_preliminary)

    final_parser = admin_sub.add_parser("force-final", help="Resolve a pending or flagged claim")
    final_parser.add_argument("claim_id", help="Claim identifier")
    final_parser.add_argument("outcome", choices=["YES", "NO"], type=str.upper, help="Final outcome")
    final_parser.add_argument("--confidence", type=float, required=True, help="Confidence in the outcome (0-100)")
    final_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    final_parser.set_defaults(func=cmd_force_final)


def cmd_force_preliminary(args: argparse.Namespace) -> int:
    try:
        engine = build_engine()
        claim = engine.lifecycle.force_preliminary_resolve(args.claim_id, args.outcome, datetime.now(UTC))
    except VerdictException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Forced preliminary resolution failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    output_result(claim.to_dict(), args.output_json, format_claim(claim))
    return 0


def cmd_force_final(args: argparse.Namespace) -> int:
    try:
        engine = build_engine()
        claim = engine.lifecycle.force_final_resolve(args.claim_id, args.outcome, args.confidence, datetime.now(UTC))
    except VerdictException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Forced final resolution failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    output_result(claim.to_dict(), args.output_json, format_claim(claim))
    return 0
