# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Verdict - claim resolution engine for prediction markets.

Verdict decides whether a market claim ("will X happen by D?") resolved YES
or NO by combining three independent, imperfect signals:

  Market signal    (stake totals and participants on the ledger)
  Evidence signal  (user submissions, weighted by credibility)
  External signal  (analysis of retrieved documents)

Architecture:
  Signal sources (return VerdictResponse envelopes, never raise)
    → Credibility model (per-item weights, Sybil penalties)
    → Adaptive weighting (strategy chosen from evidence/market consensus)
    → Aggregator (confidence, outcome, manipulation flag, audit row)
    → Lifecycle (guarded, monotonic status transitions)
    → Monitor (two periodic ticks driving claims through the lifecycle)

CLI entry point: ``verdict``
"""

__version__ = "0.1.0"
