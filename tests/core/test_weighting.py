"""Tests for verdict.core.weighting module."""

from __future__ import annotations

import pytest

from verdict.core.config import ResolutionConfig, SignalWeights
from verdict.core.models import WeightingStrategy
from verdict.core.weighting import analyze_alignment, select_strategy


class TestAnalyzeAlignment:
    def test_no_evidence_weight(self):
        assert analyze_alignment(0.7, 0.0, 0.0) == 1.0

    def test_agreeing_evidence(self):
        assert analyze_alignment(0.7, 9.0, 1.0) == pytest.approx(0.9)

    def test_opposing_evidence(self):
        assert analyze_alignment(0.7, 1.0, 9.0) == pytest.approx(0.1)

    def test_all_against_market(self):
        assert analyze_alignment(0.7, 0.0, 41.25) == 0.0

    def test_market_no_evidence_no(self):
        assert analyze_alignment(0.3, 0.0, 5.0) == 1.0

    def test_within_bounds(self):
        for yes, no in ((1, 2), (2, 1), (5, 5), (0, 3)):
            assert 0.0 <= analyze_alignment(0.6, yes, no) <= 1.0


class TestSelectStrategy:
    def test_no_evidence_trusts_market(self):
        selection = select_strategy(0.5, 0)
        assert selection.strategy is WeightingStrategy.MARKET_VALIDATED
        assert "No directional evidence" in selection.explanation

    @pytest.mark.parametrize(
        "consensus,expected",
        [
            (1.0, WeightingStrategy.MARKET_VALIDATED),
            (0.8, WeightingStrategy.MARKET_VALIDATED),
            (0.79, WeightingStrategy.STANDARD),
            (0.5, WeightingStrategy.STANDARD),
            (0.21, WeightingStrategy.STANDARD),
            (0.2, WeightingStrategy.EVIDENCE_CONTRADICTS),
            (0.0, WeightingStrategy.EVIDENCE_CONTRADICTS),
        ],
    )
    def test_thresholds(self, consensus, expected):
        assert select_strategy(consensus, 5).strategy is expected

    def test_weight_presets(self):
        assert select_strategy(0.9, 5).weights == SignalWeights(0.60, 0.10, 0.30)
        assert select_strategy(0.1, 5).weights == SignalWeights(0.20, 0.30, 0.50)
        assert select_strategy(0.5, 5).weights == SignalWeights(0.35, 0.25, 0.40)

    def test_weights_sum_to_one(self):
        for consensus in (0.0, 0.3, 0.9):
            assert select_strategy(consensus, 3).weights.total == pytest.approx(1.0)

    def test_clamps_consensus(self):
        assert select_strategy(1.7, 3).consensus == 1.0
        assert select_strategy(-0.2, 3).strategy is WeightingStrategy.EVIDENCE_CONTRADICTS

    def test_contradiction_explanation(self):
        selection = select_strategy(0.0, 5)
        assert "contradicts" in selection.explanation
        assert "5 items" in selection.explanation

    def test_custom_thresholds(self):
        config = ResolutionConfig(market_validated_threshold=0.6)
        assert select_strategy(0.65, 2, config).strategy is WeightingStrategy.MARKET_VALIDATED

    def test_to_dict(self):
        data = select_strategy(0.5, 2).to_dict()
        assert data["strategy"] == "standard"
        assert data["weights"] == {"market": 0.35, "evidence": 0.25, "external": 0.40}
