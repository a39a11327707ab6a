# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Confidence aggregation.

Combines the market, evidence and external signals into one 0-100
confidence that the claim is true:

    final_confidence = 100 × (w_market × p_market + w_evidence × p_evidence + w_external × p_external)

and recommends YES when ``final_confidence >= 50``.

Fallback policy (applied here, not in the sources):
- a source that failed or timed out scores a neutral 50% with a warning
- with no directional evidence, the evidence probability is the market's,
  so an unchallenged market is not diluted toward 50%

``aggregate`` is pure. ``ClaimEvaluator`` gathers the three sources
concurrently with a per-source timeout and then calls it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from .config import ResolutionConfig
from .models import AggregationResult, Claim, Recommendation, SignalContribution, SignalScore
from .response import VerdictResponse, err
from .signals import EVIDENCE, EXTERNAL, MARKET, SignalSource, neutral_signal
from .weighting import StrategySelection, analyze_alignment, select_strategy

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = [(80.0, "HIGH"), (60.0, "MODERATE"), (40.0, "LOW")]


def confidence_level(value: float) -> str:
    """Label an outcome confidence: HIGH >= 80, MODERATE >= 60, LOW >= 40, else VERY LOW."""
    for floor, label in CONFIDENCE_LEVELS:
        if value >= floor:
            return label
    return "VERY LOW"


def _direction(probability: float | None) -> bool | None:
    """True for YES, False for NO, None for no lean."""
    if probability is None or probability == 0.5:
        return None
    return probability > 0.5


def aggregate(
    claim_id: str,
    market: SignalScore,
    evidence: SignalScore,
    external: SignalScore,
    selection: StrategySelection,
    computed_at: datetime,
    config: ResolutionConfig | None = None,
    fallbacks: frozenset[str] | set[str] = frozenset(),
) -> AggregationResult:
    """Combine three signal scores under the selected weights.

    Args:
        claim_id: Claim being evaluated.
        market, evidence, external: Scores from the signal sources (or their
            neutral fallbacks).
        selection: Strategy and weights from :func:`select_strategy`.
        computed_at: Snapshot time recorded on the result. Nothing else
            depends on the clock.
        config: Conflict threshold, alignment bonus (defaults if None).
        fallbacks: Names of sources whose score is a substituted neutral.

    Returns:
        AggregationResult with final_confidence in [0, 100].
    """
    config = config or ResolutionConfig()
    weights = selection.weights

    p_market = market.probability
    evidence_fallback = evidence.sample_size == 0
    p_evidence = p_market if evidence_fallback else evidence.probability
    p_external = external.probability

    contributions = [
        SignalContribution(
            MARKET, weights.market, p_market, market.score, market.max_score, market.sample_size, MARKET in fallbacks
        ),
        SignalContribution(
            EVIDENCE,
            weights.evidence,
            p_evidence,
            evidence.score,
            evidence.max_score,
            evidence.sample_size,
            evidence_fallback or EVIDENCE in fallbacks,
        ),
        SignalContribution(
            EXTERNAL,
            weights.external,
            p_external,
            external.score,
            external.max_score,
            external.sample_size,
            EXTERNAL in fallbacks,
        ),
    ]

    final_confidence = min(100.0, max(0.0, sum(c.contribution for c in contributions)))
    recommended = Recommendation.YES if final_confidence >= 50.0 else Recommendation.NO

    gap = abs(p_market - p_evidence)
    suspect = evidence.sample_size >= config.min_evidence_for_conflict and gap > config.conflict_threshold

    directions = [
        _direction(p_market),
        None if evidence_fallback else _direction(p_evidence),
        _direction(p_external),
    ]
    aligned = directions[0] is not None and all(d == directions[0] for d in directions)
    alignment_bonus = 0.0
    if aligned:
        quality = min(min(1.0, s.sample_size / config.alignment_full_sample) for s in (market, evidence, external))
        alignment_bonus = config.alignment_bonus * quality
    signal_strength = min(100.0, market.score + evidence.score + external.score + alignment_bonus)

    warnings = [*market.warnings, *evidence.warnings, *external.warnings]

    parts = [
        selection.explanation,
        f"Final confidence {final_confidence:.1f}% YES, recommending {recommended.value}.",
        (
            f"Market {p_market:.0%} × {weights.market:.2f}, "
            f"evidence {p_evidence:.0%} × {weights.evidence:.2f}"
            f"{' (market fallback)' if evidence_fallback else ''}, "
            f"external {p_external:.0%} × {weights.external:.2f}"
            f"{' (neutral fallback)' if EXTERNAL in fallbacks else ''}."
        ),
    ]
    if suspect:
        parts.append(
            f"Market and evidence disagree by {gap * 100:.0f} points across {evidence.sample_size} items; "
            "possible manipulation, review before resolving."
        )
    if aligned:
        parts.append(f"All three signals agree (+{alignment_bonus:.1f} strength).")

    return AggregationResult(
        claim_id=claim_id,
        final_confidence=final_confidence,
        recommended_outcome=recommended,
        strategy=selection.strategy,
        evidence_consensus=selection.consensus,
        contributions=contributions,
        suspect_manipulation=suspect,
        explanation=" ".join(parts),
        computed_at=computed_at,
        warnings=warnings,
        signals_aligned=aligned,
        alignment_bonus=alignment_bonus,
        signal_strength=signal_strength,
    )


class ClaimEvaluator:
    """Runs the three signal sources for a claim and aggregates them.

    Sources run concurrently. Each gets ``source_timeout`` seconds; a source
    that times out is cancelled and its result discarded.
    """

    def __init__(
        self,
        market: SignalSource,
        evidence: SignalSource,
        external: SignalSource,
        config: ResolutionConfig | None = None,
        source_timeout: float = 30.0,
    ):
        self.market = market
        self.evidence = evidence
        self.external = external
        self.config = config or ResolutionConfig()
        self.source_timeout = source_timeout

    async def _evaluate_source(self, source: SignalSource, claim: Claim) -> VerdictResponse:
        try:
            return await asyncio.wait_for(source.evaluate(claim), timeout=self.source_timeout)
        except TimeoutError:
            logger.warning("%s signal timed out after %.1fs for claim %s", source.name, self.source_timeout, claim.id)
            return err(f"timed out after {self.source_timeout:g}s", source=source.name)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s signal raised for claim %s", source.name, claim.id)
            return err(str(exc), source=source.name)

    async def evaluate(self, claim: Claim, computed_at: datetime) -> AggregationResult:
        sources = (self.market, self.evidence, self.external)
        responses = await asyncio.gather(*(self._evaluate_source(s, claim) for s in sources))

        scores: list[SignalScore] = []
        fallbacks: set[str] = set()
        for source, response in zip(sources, responses):
            if response.success:
                scores.append(response.data)
            else:
                fallbacks.add(source.name)
                scores.append(neutral_signal(source.name, f"{source.name.capitalize()} signal unavailable: {response.error}"))
        market, evidence, external = scores

        if evidence.sample_size:
            consensus = analyze_alignment(
                market.probability,
                evidence.details.get("weighted_yes", 0.0),
                evidence.details.get("weighted_no", 0.0),
            )
        else:
            consensus = 1.0
        selection = select_strategy(consensus, evidence.sample_size, self.config)

        return aggregate(
            claim.id,
            market,
            evidence,
            external,
            selection,
            computed_at=computed_at,
            config=self.config,
            fallbacks=fallbacks,
        )
