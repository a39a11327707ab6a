# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Output formatting for CLI commands.

Commands build a plain dict and hand it here. ``--json`` prints it as
JSON; otherwise a short text rendering is used where one is given.
"""

from __future__ import annotations

import json
import sys
from typing import Any


def output_result(data: Any, as_json: bool = False, text: str | None = None) -> None:
    """Print a command result.

    If ``as_json`` is set, or no text rendering is given, pretty-print the
    data as JSON.
    """
    if as_json or text is None:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(text)


def output_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)
