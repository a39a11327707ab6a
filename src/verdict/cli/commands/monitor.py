"""Monitor commands: run the scheduler, run one tick, show claim counts.

Usage:
    verdict monitor run
    verdict monitor tick [--preliminary | --final] [--now TIMESTAMP]
    verdict monitor status
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from collections import Counter

from ...core.db import close_pool
from ...core.models import ClaimStatus
from ...core.monitor import ResolutionMonitor
from ..output import output_error, output_result
from ..utils import build_engine, parse_timestamp

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the monitor command group on the CLI parser."""
    monitor_parser = subparsers.add_parser("monitor", help="Drive claim resolution")
    monitor_sub = monitor_parser.add_subparsers(dest="monitor_command", required=True)

    run_parser = monitor_sub.add_parser("run", help="Run both tick loops until interrupted")
    run_parser.set_defaults(func=cmd_monitor_run)

    tick_parser = monitor_sub.add_parser("tick", help="Run one monitor pass and exit")
    which = tick_parser.add_mutually_exclusive_group()
    which.add_argument("--preliminary", action="store_true", help="Only expire claims and open dispute windows")
    which.add_argument("--final", action="store_true", help="Only close windows, refund and resolve")
    tick_parser.add_argument("--now", type=parse_timestamp, help="Evaluate as of this ISO-8601 time")
    tick_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    tick_parser.set_defaults(func=cmd_monitor_tick)

    status_parser = monitor_sub.add_parser("status", help="Show claim counts by status and monitor settings")
    status_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    status_parser.set_defaults(func=cmd_monitor_status)


async def _run_until_stopped(monitor: ResolutionMonitor) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await monitor.start()
    try:
        await stop.wait()
    finally:
        await monitor.stop()


def cmd_monitor_run(args: argparse.Namespace) -> int:
    """Run the preliminary and final loops in the foreground."""
    try:
        engine = build_engine()
        asyncio.run(_run_until_stopped(engine.monitor))
    except Exception as e:
        logger.exception("Monitor exited with an error")
        output_error(str(e))
        return 1
    finally:
        close_pool()
    return 0


def cmd_monitor_tick(args: argparse.Namespace) -> int:
    """Run a single pass and print the transition results."""
    try:
        engine = build_engine()
        if args.preliminary:
            results = asyncio.run(engine.monitor.tick_preliminary(args.now))
        elif args.final:
            results = asyncio.run(engine.monitor.tick_final(args.now))
        else:
            results = asyncio.run(engine.monitor.tick(args.now))
    except Exception as e:
        logger.exception("Monitor tick failed")
        output_error(str(e))
        return 1
    finally:
        close_pool()

    lines = [
        f"{'✓' if r.applied else '·'} {r.claim_id}: {r.from_status.value} -> {r.to_status.value}  {r.reason}"
        for r in results
    ]
    applied = sum(1 for r in results if r.applied)
    lines.append(f"{applied} of {len(results)} attempts applied.")
    output_result([r.to_dict() for r in results], args.output_json, "\n".join(lines))
    return 0


def cmd_monitor_status(args: argparse.Namespace) -> int:
    """Count claims per status."""
    try:
        engine = build_engine()
        claims = engine.store.list_claims(list(ClaimStatus))
    except Exception as e:
        output_error(str(e))
        return 1
    finally:
        close_pool()

    counts = Counter(claim.status for claim in claims)
    config = engine.monitor.config
    data = {
        "claims": {status.value: counts.get(status, 0) for status in ClaimStatus},
        "preliminary_interval": config.preliminary_interval,
        "final_interval": config.final_interval,
        "max_attempts": config.max_attempts,
        "max_workers": config.max_workers,
        "dispute_window_hours": engine.lifecycle.config.dispute_window_hours,
    }
    text = "\n".join(
        [f"  {status.value:<20} {counts.get(status, 0)}" for status in ClaimStatus]
        + [
            f"Ticks every {config.preliminary_interval:g}s (preliminary) and {config.final_interval:g}s (final); "
            f"dispute window {engine.lifecycle.config.dispute_window_hours:g}h"
        ]
    )
    output_result(data, args.output_json, text)
    return 0
