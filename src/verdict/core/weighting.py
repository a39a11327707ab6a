"""Adaptive weighting selector.

Chooses how much the market, evidence and external signals count toward a
final decision, based on how strongly the evidence agrees with the market.

Strategies (default thresholds):
- MARKET_VALIDATED     consensus >= 0.8   market 60% / evidence 10% / external 30%
- EVIDENCE_CONTRADICTS consensus <= 0.2   market 20% / evidence 30% / external 50%
- STANDARD             otherwise          market 35% / evidence 25% / external 40%

Both functions here are pure: no I/O, no clock, no hidden state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config import ResolutionConfig, SignalWeights
from .models import WeightingStrategy


@dataclass(frozen=True)
class StrategySelection:
    """The selector's decision for one aggregation pass."""

    strategy: WeightingStrategy
    weights: SignalWeights
    consensus: float
    explanation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "weights": self.weights.to_dict(),
            "consensus": round(self.consensus, 4),
            "explanation": self.explanation,
        }


def analyze_alignment(market_probability: float, weighted_yes: float, weighted_no: float) -> float:
    """Measure how far the evidence agrees with the market's direction.

    Returns a consensus in [0, 1]. With no directional evidence weight the
    market is unchallenged and consensus is 1.0. When the evidence majority
    points the same way as the market, consensus is the majority's share of
    the weight; when it points the other way, it is the minority's share.
    """
    total = weighted_yes + weighted_no
    if total <= 0:
        return 1.0

    market_says_yes = market_probability > 0.5
    evidence_says_yes = weighted_yes > weighted_no
    stronger = max(weighted_yes, weighted_no)
    weaker = min(weighted_yes, weighted_no)

    if market_says_yes == evidence_says_yes:
        return stronger / total
    return weaker / total


def select_strategy(
    consensus: float,
    evidence_count: int,
    config: ResolutionConfig | None = None,
) -> StrategySelection:
    """Pick a weighting strategy from evidence/market consensus.

    Args:
        consensus: Output of :func:`analyze_alignment`, clamped to [0, 1].
        evidence_count: Directional evidence items behind the consensus.
        config: Thresholds and weight presets (defaults if None).
    """
    config = config or ResolutionConfig()
    consensus = min(1.0, max(0.0, consensus))
    pct = f"{consensus:.0%}"

    if evidence_count == 0:
        return StrategySelection(
            strategy=WeightingStrategy.MARKET_VALIDATED,
            weights=config.market_validated_weights,
            consensus=consensus,
            explanation="No directional evidence submitted; trusting the market signal.",
        )

    if consensus >= config.market_validated_threshold:
        return StrategySelection(
            strategy=WeightingStrategy.MARKET_VALIDATED,
            weights=config.market_validated_weights,
            consensus=consensus,
            explanation=f"Evidence agrees with the market ({pct} consensus across {evidence_count} items); market weighted highest.",
        )

    if consensus <= config.evidence_contradicts_threshold:
        return StrategySelection(
            strategy=WeightingStrategy.EVIDENCE_CONTRADICTS,
            weights=config.evidence_contradicts_weights,
            consensus=consensus,
            explanation=(
                f"Evidence contradicts the market ({pct} consensus across {evidence_count} items); "
                "possible manipulation, leaning on independent verification."
            ),
        )

    return StrategySelection(
        strategy=WeightingStrategy.STANDARD,
        weights=config.standard_weights,
        consensus=consensus,
        explanation=f"Mixed signals ({pct} consensus across {evidence_count} items); balanced weighting.",
    )
