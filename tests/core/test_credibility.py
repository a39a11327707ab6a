"""Tests for verdict.core.credibility module."""

from __future__ import annotations

import random

import pytest

from verdict.core.config import ResolutionConfig
from verdict.core.credibility import (
    SOURCE_TYPE_MULTIPLIERS,
    credibility_multiplier,
    infer_stance,
    is_contrarian,
    is_sybil_suspect,
    score_evidence,
    score_evidence_pool,
)
from verdict.core.models import BetPosition, SourceType, Stance

# ============================================================================
# Per-item weight Tests
# ============================================================================


class TestIsContrarian:
    @pytest.mark.parametrize(
        "stance,bet,expected",
        [
            (Stance.SUPPORTS_NO, BetPosition.YES, True),
            (Stance.SUPPORTS_YES, BetPosition.NO, True),
            (Stance.SUPPORTS_YES, BetPosition.YES, False),
            (Stance.SUPPORTS_NO, BetPosition.NO, False),
            (Stance.SUPPORTS_NO, BetPosition.NONE, False),
            (Stance.NEUTRAL, BetPosition.YES, False),
        ],
    )
    def test_cases(self, stance, bet, expected):
        assert is_contrarian(stance, bet) is expected


class TestCredibilityMultiplier:
    def test_source_type_only(self, make_evidence):
        item = make_evidence(source_type=SourceType.NEWS)
        assert credibility_multiplier(item) == pytest.approx(0.8)

    def test_contrarian_and_verified(self, make_evidence):
        item = make_evidence(
            stance=Stance.SUPPORTS_NO,
            submitter_bet_position=BetPosition.YES,
            admin_verified=True,
        )
        assert credibility_multiplier(item) == pytest.approx(1.0 * 2.5 * 1.1)

    def test_anonymous_is_lowest(self):
        assert min(SOURCE_TYPE_MULTIPLIERS.values()) == SOURCE_TYPE_MULTIPLIERS[SourceType.ANONYMOUS]

    def test_custom_config(self, make_evidence):
        config = ResolutionConfig(contrarian_multiplier=3.0)
        item = make_evidence(stance=Stance.SUPPORTS_YES, submitter_bet_position=BetPosition.NO)
        assert credibility_multiplier(item, config) == pytest.approx(3.0)


class TestScoreEvidence:
    def test_contrarian_verified_academic(self, make_evidence):
        item = make_evidence(
            stance=Stance.SUPPORTS_NO,
            submitter_bet_position=BetPosition.YES,
            admin_verified=True,
        )
        scored = score_evidence(item)
        assert scored.effective_weight == pytest.approx(8.25)
        assert scored.contrarian is True
        assert scored.sybil_flagged is False
        assert scored.identity_age_factor == 1.0

    def test_young_identity_halved(self, make_evidence):
        scored = score_evidence(make_evidence(submitter_identity_age_days=2))
        assert scored.sybil_flagged is True
        assert scored.identity_age_factor == 0.5
        assert scored.effective_weight == pytest.approx(1.5)

    def test_unknown_age_not_flagged(self, make_evidence):
        assert is_sybil_suspect(make_evidence(submitter_identity_age_days=None)) is False

    def test_seven_days_not_flagged(self, make_evidence):
        assert is_sybil_suspect(make_evidence(submitter_identity_age_days=7)) is False

    def test_zero_quality_is_zero_weight(self, make_evidence):
        assert score_evidence(make_evidence(base_quality=0.0)).effective_weight == 0.0


# ============================================================================
# Pool Tests
# ============================================================================


class TestScoreEvidencePool:
    def test_empty(self):
        pool = score_evidence_pool([])
        assert pool.submissions == 0
        assert pool.yes_probability is None
        assert pool.sybil_burst is False

    def test_accumulates_by_stance(self, make_evidence):
        pool = score_evidence_pool(
            [
                make_evidence("e1", stance=Stance.SUPPORTS_YES),
                make_evidence("e2", stance=Stance.SUPPORTS_NO, base_quality=1.0),
                make_evidence("e3", stance=Stance.NEUTRAL),
            ]
        )
        assert pool.weighted_yes == pytest.approx(3.0)
        assert pool.weighted_no == pytest.approx(1.0)
        assert pool.directional_count == 2
        assert pool.yes_probability == pytest.approx(0.75)

    def test_sybil_burst(self, make_evidence):
        items = [make_evidence(f"old-{i}") for i in range(9)]
        items += [make_evidence(f"new-{i}", submitter_identity_age_days=1) for i in range(3)]
        pool = score_evidence_pool(items)

        assert pool.flagged_count == 3
        assert pool.sybil_burst is True
        # 9 × 3.0 + 3 × 1.5, then halved
        assert pool.weighted_yes == pytest.approx((27.0 + 4.5) * 0.5)
        assert pool.warnings == ["Sybil attack detected: 3 of 12 submissions from identities younger than 7 days"]

    def test_at_threshold_no_burst(self, make_evidence):
        items = [make_evidence(f"old-{i}") for i in range(8)]
        items += [make_evidence(f"new-{i}", submitter_identity_age_days=1) for i in range(2)]
        pool = score_evidence_pool(items)
        assert pool.flagged_count == 2
        assert pool.sybil_burst is False
        assert pool.warnings == []

    def test_order_independent(self, make_evidence):
        items = [
            make_evidence("e1", stance=Stance.SUPPORTS_YES, base_quality=4.0),
            make_evidence("e2", stance=Stance.SUPPORTS_NO, submitter_bet_position=BetPosition.YES),
            make_evidence("e3", stance=Stance.SUPPORTS_NO, source_type=SourceType.BLOG),
            make_evidence("e4", stance=Stance.SUPPORTS_YES, submitter_identity_age_days=1),
        ]
        forward = score_evidence_pool(items)
        shuffled = list(items)
        random.Random(7).shuffle(shuffled)
        backward = score_evidence_pool(shuffled)
        assert forward.weighted_yes == pytest.approx(backward.weighted_yes)
        assert forward.weighted_no == pytest.approx(backward.weighted_no)

    def test_weights_never_negative(self, make_evidence):
        pool = score_evidence_pool([make_evidence(f"e{i}", base_quality=q) for i, q in enumerate((0, 1, 5))])
        assert all(item.effective_weight >= 0 for item in pool.items)

    def test_to_dict(self, make_evidence):
        data = score_evidence_pool([make_evidence()]).to_dict()
        assert data["submissions"] == 1
        assert data["items"][0]["evidence_id"] == "ev-1"


# ============================================================================
# Stance inference Tests
# ============================================================================


class TestInferStance:
    def test_yes(self):
        assert infer_stance("Officials confirmed the project was completed.") is Stance.SUPPORTS_YES

    def test_no(self):
        assert infer_stance("The vote failed and the bill was rejected.") is Stance.SUPPORTS_NO

    def test_single_hit_is_neutral(self):
        assert infer_stance("It was confirmed.") is Stance.NEUTRAL

    def test_tie_is_neutral(self):
        assert infer_stance("confirmed and completed, but failed and rejected") is Stance.NEUTRAL

    def test_whole_words_only(self):
        assert infer_stance("notable nothing knowledge") is Stance.NEUTRAL
