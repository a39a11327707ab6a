"""CLI command modules for Verdict.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import admin, claims, evidence, init_cmd, monitor
from .admin import cmd_force_final, cmd_force_preliminary
from .claims import cmd_claims_add, cmd_claims_list, cmd_claims_show
from .evidence import cmd_evidence_list, cmd_evidence_review
from .init_cmd import cmd_init
from .monitor import cmd_monitor_run, cmd_monitor_status, cmd_monitor_tick

# All command modules with register() functions, in registration order.
COMMAND_MODULES = [
    init_cmd,
    monitor,
    claims,
    evidence,
    admin,
]

__all__ = [
    "COMMAND_MODULES",
    "cmd_claims_add",
    "cmd_claims_list",
    "cmd_claims_show",
    "cmd_evidence_list",
    "cmd_evidence_review",
    "cmd_force_final",
    "cmd_force_preliminary",
    "cmd_init",
    "cmd_monitor_run",
    "cmd_monitor_status",
    "cmd_monitor_tick",
]
