# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Result envelope returned by signal sources.

A source never raises into the aggregator. It returns ``ok(score)`` when it
produced a SignalScore (possibly a neutral one with warnings) and
``err(message)`` when it could not. The aggregator alone decides what a
failed source is replaced with, so the substitution is visible in the
result's warnings instead of hidden inside an adapter.

Usage::

    from verdict.core.response import ok, err

    return ok(score)
    return err("Ledger query failed: connection refused", source="market")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class VerdictResponse:
    """Success-or-error envelope.

    Attributes:
        success:  True when the operation produced data.
        data:     Payload on success (a SignalScore for signal sources).
        error:    Human-readable failure description.  None on success.
        source:   Name of the component that produced the response.
    """

    success: bool
    data: Any = None
    error: str | None = None
    source: str | None = None


def ok(data: Any = None, source: str | None = None) -> VerdictResponse:
    """Create a successful VerdictResponse."""
    return VerdictResponse(success=True, data=data, source=source)


def err(error: str, source: str | None = None) -> VerdictResponse:
    """Create a failed VerdictResponse."""
    return VerdictResponse(success=False, error=error, source=source)
