"""Tests for verdict.core.aggregation module."""

from __future__ import annotations

import asyncio

import pytest

from verdict.core.aggregation import ClaimEvaluator, aggregate, confidence_level
from verdict.core.models import (
    BetPosition,
    Recommendation,
    SignalScore,
    Stance,
    WeightingStrategy,
)
from verdict.core.ports import Analysis, Document
from verdict.core.response import ok
from verdict.core.signals import EvidenceSignal, ExternalSignal, MarketSignal, neutral_signal
from verdict.core.weighting import select_strategy


def _score(source: str, percentage: float, sample_size: int = 10, **kwargs) -> SignalScore:
    return SignalScore(source=source, score=10.0, max_score=25.0, percentage=percentage, sample_size=sample_size, **kwargs)


class SlowSource:
    """Signal source that never finishes within the test timeout."""

    name = "external"

    async def evaluate(self, claim):
        await asyncio.sleep(10)
        return ok(neutral_signal("external", "late"))


class ExplodingSource:
    name = "market"

    async def evaluate(self, claim):
        raise RuntimeError("boom")


# ============================================================================
# confidence_level Tests
# ============================================================================


class TestConfidenceLevel:
    @pytest.mark.parametrize(
        "value,label",
        [(95, "HIGH"), (80, "HIGH"), (79.9, "MODERATE"), (60, "MODERATE"), (45, "LOW"), (10, "VERY LOW")],
    )
    def test_labels(self, value, label):
        assert confidence_level(value) == label


# ============================================================================
# aggregate() Tests
# ============================================================================


class TestAggregate:
    def test_weighted_sum(self, now):
        selection = select_strategy(0.5, 5)
        result = aggregate(
            "c1",
            _score("market", 80.0),
            _score("evidence", 60.0, sample_size=5),
            _score("external", 40.0),
            selection,
            computed_at=now,
        )
        assert result.final_confidence == pytest.approx(0.35 * 80 + 0.25 * 60 + 0.40 * 40)
        assert result.strategy is WeightingStrategy.STANDARD
        assert result.computed_at == now

    def test_yes_at_exactly_fifty(self, now):
        selection = select_strategy(0.5, 5)
        result = aggregate(
            "c1",
            _score("market", 50.0),
            _score("evidence", 50.0, sample_size=5),
            _score("external", 50.0),
            selection,
            computed_at=now,
        )
        assert result.final_confidence == pytest.approx(50.0)
        assert result.recommended_outcome is Recommendation.YES

    def test_evidence_fallback_uses_market(self, now):
        selection = select_strategy(1.0, 0)
        result = aggregate(
            "c1",
            _score("market", 70.0),
            neutral_signal("evidence", "No evidence submitted"),
            neutral_signal("external", "No external data available"),
            selection,
            computed_at=now,
        )
        assert result.final_confidence == pytest.approx(64.0)
        assert result.contribution_for("evidence").fallback is True
        assert result.contribution_for("evidence").probability == pytest.approx(0.7)
        assert "market fallback" in result.explanation

    def test_suspect_requires_enough_evidence(self, now):
        selection = select_strategy(0.0, 2)
        result = aggregate(
            "c1",
            _score("market", 90.0),
            _score("evidence", 0.0, sample_size=2),
            _score("external", 50.0),
            selection,
            computed_at=now,
        )
        assert result.suspect_manipulation is False

    def test_small_gap_not_suspect(self, now):
        selection = select_strategy(0.5, 5)
        result = aggregate(
            "c1",
            _score("market", 75.0),
            _score("evidence", 50.0, sample_size=5),
            _score("external", 50.0),
            selection,
            computed_at=now,
        )
        assert result.suspect_manipulation is False

    def test_alignment_bonus(self, now):
        selection = select_strategy(0.9, 10)
        result = aggregate(
            "c1",
            _score("market", 80.0),
            _score("evidence", 90.0, sample_size=10),
            _score("external", 70.0),
            selection,
            computed_at=now,
        )
        assert result.signals_aligned is True
        assert result.alignment_bonus == pytest.approx(8.0)
        assert result.signal_strength == pytest.approx(38.0)

    def test_alignment_bonus_scaled_by_thin_sample(self, now):
        selection = select_strategy(0.9, 5)
        result = aggregate(
            "c1",
            _score("market", 80.0),
            _score("evidence", 90.0, sample_size=5),
            _score("external", 70.0, sample_size=2),
            selection,
            computed_at=now,
        )
        assert result.alignment_bonus == pytest.approx(8.0 * 0.2)

    def test_no_alignment_when_external_disagrees(self, now):
        selection = select_strategy(0.9, 10)
        result = aggregate(
            "c1",
            _score("market", 80.0),
            _score("evidence", 90.0, sample_size=10),
            _score("external", 30.0),
            selection,
            computed_at=now,
        )
        assert result.signals_aligned is False
        assert result.alignment_bonus == 0.0

    def test_warnings_concatenated(self, now):
        selection = select_strategy(0.5, 5)
        result = aggregate(
            "c1",
            _score("market", 60.0, warnings=["Low participation: only 2 unique bettors"]),
            _score("evidence", 60.0, sample_size=5, warnings=["w2"]),
            _score("external", 60.0, warnings=["w3"]),
            selection,
            computed_at=now,
        )
        assert result.warnings == ["Low participation: only 2 unique bettors", "w2", "w3"]

    def test_confidence_bounded(self, now):
        selection = select_strategy(1.0, 5)
        result = aggregate(
            "c1",
            _score("market", 100.0),
            _score("evidence", 100.0, sample_size=5),
            _score("external", 100.0),
            selection,
            computed_at=now,
        )
        assert 0.0 <= result.final_confidence <= 100.0


# ============================================================================
# ClaimEvaluator Tests
# ============================================================================


class TestClaimEvaluator:
    async def test_market_only(self, evaluator, ledger, make_claim, now):
        """A 70/30 market with no evidence and no external data scores 64."""
        ledger.set("claim-1", 70.0, 30.0)
        result = await evaluator.evaluate(make_claim(), now)

        assert result.strategy is WeightingStrategy.MARKET_VALIDATED
        assert result.weights == {"market": 0.60, "evidence": 0.10, "external": 0.30}
        assert result.final_confidence == pytest.approx(64.0)
        assert result.recommended_outcome is Recommendation.YES
        assert result.suspect_manipulation is False
        assert "No external data available" in result.warnings

    async def test_manipulated_market(self, evaluator, ledger, evidence_store, make_claim, make_evidence, now):
        """Verified contrarian evidence against a 70% YES market flips the outcome."""
        ledger.set("claim-1", 70.0, 30.0)
        for i in range(5):
            evidence_store.add(
                make_evidence(
                    f"ev-{i}",
                    stance=Stance.SUPPORTS_NO,
                    submitter_bet_position=BetPosition.YES,
                    admin_verified=True,
                )
            )

        result = await evaluator.evaluate(make_claim(), now)

        assert result.evidence_consensus == 0.0
        assert result.strategy is WeightingStrategy.EVIDENCE_CONTRADICTS
        assert result.final_confidence == pytest.approx(39.0)
        assert result.recommended_outcome is Recommendation.NO
        assert result.outcome_confidence == pytest.approx(61.0)
        assert result.suspect_manipulation is True
        assert "possible manipulation" in result.explanation

    async def test_sybil_burst(self, evaluator, ledger, evidence_store, make_claim, make_evidence, now):
        ledger.set("claim-1", 60.0, 40.0)
        for i in range(9):
            evidence_store.add(make_evidence(f"old-{i}"))
        for i in range(3):
            evidence_store.add(make_evidence(f"new-{i}", submitter_identity_age_days=2))

        result = await evaluator.evaluate(make_claim(), now)

        assert "Sybil attack detected: 3 of 12 submissions from identities younger than 7 days" in result.warnings
        evidence = result.contribution_for("evidence")
        # 100% YES with 12 submissions, halved
        assert evidence.score == pytest.approx((30.0 + 12) * 0.5)

    async def test_source_failure_falls_back(self, evaluator, ledger, evidence_store, make_claim, now):
        ledger.set("claim-1", 70.0, 30.0)
        evidence_store.failing = True

        result = await evaluator.evaluate(make_claim(), now)

        evidence = result.contribution_for("evidence")
        assert evidence.fallback is True
        assert evidence.probability == pytest.approx(0.7)
        assert any(w.startswith("Evidence signal unavailable") for w in result.warnings)

    async def test_timeout_falls_back(self, ledger, evidence_store, resolution_config, make_claim, now):
        ledger.set("claim-1", 80.0, 20.0)
        evaluator = ClaimEvaluator(
            market=MarketSignal(ledger),
            evidence=EvidenceSignal(evidence_store, resolution_config),
            external=SlowSource(),
            config=resolution_config,
            source_timeout=0.05,
        )

        result = await evaluator.evaluate(make_claim(), now)

        external = result.contribution_for("external")
        assert external.fallback is True
        assert external.probability == 0.5
        assert any("timed out" in w for w in result.warnings)

    async def test_raising_source_is_contained(self, evidence_store, analyzer, resolution_config, make_claim, now):
        evaluator = ClaimEvaluator(
            market=ExplodingSource(),
            evidence=EvidenceSignal(evidence_store, resolution_config),
            external=ExternalSignal(analyzer),
            config=resolution_config,
            source_timeout=1.0,
        )

        result = await evaluator.evaluate(make_claim(), now)

        assert result.contribution_for("market").fallback is True
        assert any("boom" in w for w in result.warnings)

    async def test_external_analysis_used(self, ledger, evidence_store, resolution_config, make_claim, now):
        ledger.set("claim-1", 70.0, 30.0)
        documents = [Document(title=f"doc {i}", content="", source="reuters") for i in range(5)]

        class Docs:
            async def search(self, query, limit):
                return documents

        class Yes:
            async def analyze(self, claim_text, docs):
                return Analysis(Recommendation.YES, 0.9, "confirmed")

        evaluator = ClaimEvaluator(
            market=MarketSignal(ledger),
            evidence=EvidenceSignal(evidence_store, resolution_config),
            external=ExternalSignal(Yes(), Docs()),
            config=resolution_config,
        )

        result = await evaluator.evaluate(make_claim(), now)

        assert result.contribution_for("external").probability == pytest.approx(0.9)
        assert result.final_confidence == pytest.approx(0.6 * 70 + 0.1 * 70 + 0.3 * 90)

    async def test_deterministic(self, evaluator, ledger, evidence_store, make_claim, make_evidence, now):
        ledger.set("claim-1", 55.0, 45.0)
        evidence_store.add(make_evidence("e1", stance=Stance.SUPPORTS_NO))
        evidence_store.add(make_evidence("e2"))

        first = await evaluator.evaluate(make_claim(), now)
        second = await evaluator.evaluate(make_claim(), now)

        assert first.to_dict() == second.to_dict()
