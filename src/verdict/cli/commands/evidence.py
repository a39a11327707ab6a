"""Evidence commands: list and review evidence items.

Usage:
    verdict evidence list <claim_id>
    verdict evidence review <evidence_id> --stance STANCE [--source-type TYPE] [--verified]
"""

from __future__ import annotations

import argparse
import logging

from ...core.credibility import score_evidence_pool
from ...core.db import close_pool
from ...core.exceptions import VerdictException
from ...core.models import SourceType, normalize_stance
from ..output import output_error, output_result
from ..utils import build_engine

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the evidence command group on the CLI parser."""
    evidence_parser = subparsers.add_parser("evidence", help="Inspect and review submitted evidence")
    evidence_sub = evidence_parser.add_subparsers(dest="evidence_command", required=True)

    list_parser = evidence_sub.add_parser("list", help="List a claim's evidence with credibility weights")
    list_parser.add_argument("claim_id", help="Claim identifier")
    list_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    list_parser.set_defaults(func=cmd_evidence_list)

    review_parser = evidence_sub.add_parser("review", help="Apply the one-time admin review to an item")
    review_parser.add_argument("evidence_id", help="Evidence item identifier")
    review_parser.add_argument("--stance", required=True, help="supports_yes, supports_no or neutral")
    review_parser.add_argument(
        "--source-type",
        choices=[s.value for s in SourceType],
        default=SourceType.OTHER.value,
        help="Source category (default: other)",
    )
    review_parser.add_argument("--verified", action="store_true", help="Mark the item admin-verified")
    review_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    review_parser.set_defaults(func=cmd_evidence_review)


def cmd_evidence_list(args: argparse.Namespace) -> int:
    try:
        engine = build_engine()
        items = engine.evidence.list_evidence(args.claim_id)
        pool = score_evidence_pool(items, engine.lifecycle.config)
    except VerdictException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Listing evidence failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    scores = {s.evidence_id: s for s in pool.items}
    lines = [
        f"{item.id:<24} {item.stance.value:<13} {item.source_type.value:<10} "
        f"weight {scores[item.id].effective_weight:.2f}"
        f"{'  contrarian' if scores[item.id].contrarian else ''}"
        f"{'  sybil' if scores[item.id].sybil_flagged else ''}"
        for item in items
    ]
    lines.append(f"Weighted YES {pool.weighted_yes:.2f}, NO {pool.weighted_no:.2f}")
    lines.extend(f"Warning: {w}" for w in pool.warnings)
    output_result({"items": [i.to_dict() for i in items], "pool": pool.to_dict()}, args.output_json, "\n".join(lines))
    return 0


def cmd_evidence_review(args: argparse.Namespace) -> int:
    try:
        stance = normalize_stance(args.stance)
        engine = build_engine()
        item = engine.evidence.update_evidence_review(
            args.evidence_id, stance, SourceType(args.source_type), args.verified
        )
    except VerdictException as e:
        output_error(e.message)
        return 1
    except Exception as e:
        logger.exception("Evidence review failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    output_result(
        item.to_dict(),
        args.output_json,
        f"Reviewed {item.id}: {item.stance.value}, {item.source_type.value}"
        f"{', verified' if item.admin_verified else ''}",
    )
    return 0
