# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Evidence credibility model.

Each evidence item gets an effective weight:

    effective_weight = base_quality × source_credibility
                       × credibility_multiplier × identity_age_factor

where the credibility multiplier combines:
- contrarian bonus (2.5x) when the submitter's bet opposes the item's stance
- source-type multiplier (academic/government 1.0 ... anonymous 0.3)
- admin-verification bonus (1.1x)

Sybil mitigation:
- identities younger than 7 days get a 0.5x identity-age factor
- if more than 20% of a claim's submissions are flagged this way, the whole
  pool (yes and no accumulators alike) is halved and a warning is raised

Weights are never negative. Disagreement lives in separate yes/no
accumulators, so the result does not depend on item order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .config import ResolutionConfig
from .models import BetPosition, EvidenceItem, SourceType, Stance

logger = logging.getLogger(__name__)

SOURCE_TYPE_MULTIPLIERS: dict[SourceType, float] = {
    SourceType.ACADEMIC: 1.0,
    SourceType.GOVERNMENT: 1.0,
    SourceType.EXPERT: 0.9,
    SourceType.NEWS: 0.8,
    SourceType.BLOG: 0.5,
    SourceType.SOCIAL: 0.5,
    SourceType.ANONYMOUS: 0.3,
    SourceType.OTHER: 0.7,
}

YES_KEYWORDS = (
    "confirmed", "confirm", "yes", "true", "happened", "occurred", "completed", "achieved",
    "successful", "success", "won", "passed", "approved", "correct", "verified",
)  # fmt: skip
NO_KEYWORDS = (
    "denied", "deny", "no", "false", "did not happen", "not occurred", "incomplete", "failed",
    "unsuccessful", "lost", "rejected", "incorrect", "unverified", "fake",
)  # fmt: skip
MIN_KEYWORD_HITS = 2


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    return re.compile(r"\b(" + "|".join(re.escape(k) for k in keywords) + r")\b")


_YES_PATTERN = _keyword_pattern(YES_KEYWORDS)
_NO_PATTERN = _keyword_pattern(NO_KEYWORDS)


@dataclass
class ItemScore:
    """Credibility breakdown for one evidence item."""

    evidence_id: str
    stance: Stance
    effective_weight: float
    credibility_multiplier: float
    identity_age_factor: float
    contrarian: bool
    sybil_flagged: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "evidence_id": self.evidence_id,
            "stance": self.stance.value,
            "effective_weight": round(self.effective_weight, 4),
            "credibility_multiplier": round(self.credibility_multiplier, 4),
            "identity_age_factor": self.identity_age_factor,
            "contrarian": self.contrarian,
            "sybil_flagged": self.sybil_flagged,
        }


@dataclass
class EvidencePool:
    """Scored evidence for one claim."""

    items: list[ItemScore] = field(default_factory=list)
    weighted_yes: float = 0.0
    weighted_no: float = 0.0
    submissions: int = 0
    flagged_count: int = 0
    sybil_burst: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def directional_count(self) -> int:
        return sum(1 for item in self.items if item.stance is not Stance.NEUTRAL)

    @property
    def total_weight(self) -> float:
        return self.weighted_yes + self.weighted_no

    @property
    def yes_probability(self) -> float | None:
        """weighted_yes / (weighted_yes + weighted_no), or None without directional weight."""
        total = self.total_weight
        if total <= 0:
            return None
        return self.weighted_yes / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "weighted_yes": round(self.weighted_yes, 4),
            "weighted_no": round(self.weighted_no, 4),
            "submissions": self.submissions,
            "directional_count": self.directional_count,
            "flagged_count": self.flagged_count,
            "sybil_burst": self.sybil_burst,
            "warnings": list(self.warnings),
            "items": [item.to_dict() for item in self.items],
        }


def is_contrarian(stance: Stance, bet_position: BetPosition) -> bool:
    """True when the submitter bet against the side their evidence supports."""
    if bet_position is BetPosition.NONE or stance is Stance.NEUTRAL:
        return False
    return (bet_position is BetPosition.YES) != (stance is Stance.SUPPORTS_YES)


def credibility_multiplier(item: EvidenceItem, config: ResolutionConfig | None = None) -> float:
    """Contrarian × source-type × verification multiplier for one item."""
    config = config or ResolutionConfig()
    multiplier = SOURCE_TYPE_MULTIPLIERS.get(item.source_type, SOURCE_TYPE_MULTIPLIERS[SourceType.OTHER])
    if is_contrarian(item.stance, item.submitter_bet_position):
        multiplier *= config.contrarian_multiplier
    if item.admin_verified:
        multiplier *= config.verification_bonus
    return multiplier


def is_sybil_suspect(item: EvidenceItem, config: ResolutionConfig | None = None) -> bool:
    """True when the submitter's identity is younger than the Sybil cutoff.

    Unknown identity age is not treated as suspicious.
    """
    config = config or ResolutionConfig()
    age = item.submitter_identity_age_days
    return age is not None and age < config.sybil_min_identity_age_days


def score_evidence(item: EvidenceItem, config: ResolutionConfig | None = None) -> ItemScore:
    """Compute the effective weight of one evidence item.

    Contrarianism is judged against the submitter's own bet, not the
    market; the market's direction enters later, in the consensus.

    Returns:
        ItemScore with ``effective_weight >= 0``.
    """
    config = config or ResolutionConfig()
    multiplier = credibility_multiplier(item, config)
    flagged = is_sybil_suspect(item, config)
    age_factor = config.sybil_penalty if flagged else 1.0
    weight = max(0.0, item.base_quality * item.source_credibility * multiplier * age_factor)

    return ItemScore(
        evidence_id=item.id,
        stance=item.stance,
        effective_weight=weight,
        credibility_multiplier=multiplier,
        identity_age_factor=age_factor,
        contrarian=is_contrarian(item.stance, item.submitter_bet_position),
        sybil_flagged=flagged,
    )


def score_evidence_pool(items: Iterable[EvidenceItem], config: ResolutionConfig | None = None) -> EvidencePool:
    """Score every item for a claim and accumulate yes/no weight.

    Applies the pool-wide Sybil penalty when the share of flagged
    submissions exceeds ``config.sybil_burst_ratio``.
    """
    config = config or ResolutionConfig()
    pool = EvidencePool()

    for item in items:
        scored = score_evidence(item, config)
        pool.items.append(scored)
        pool.submissions += 1
        if scored.sybil_flagged:
            pool.flagged_count += 1
        if scored.stance is Stance.SUPPORTS_YES:
            pool.weighted_yes += scored.effective_weight
        elif scored.stance is Stance.SUPPORTS_NO:
            pool.weighted_no += scored.effective_weight

    if pool.submissions and pool.flagged_count / pool.submissions > config.sybil_burst_ratio:
        pool.sybil_burst = True
        pool.weighted_yes *= config.sybil_pool_penalty
        pool.weighted_no *= config.sybil_pool_penalty
        warning = (
            f"Sybil attack detected: {pool.flagged_count} of {pool.submissions} submissions "
            f"from identities younger than {config.sybil_min_identity_age_days:g} days"
        )
        pool.warnings.append(warning)
        logger.warning(warning)

    return pool


def infer_stance(text: str) -> Stance:
    """Guess a stance from free text by keyword counting.

    A side is chosen only when it has at least two keyword hits and strictly
    more hits than the other side; otherwise the item is NEUTRAL.
    """
    lowered = text.lower()
    yes_hits = len(set(_YES_PATTERN.findall(lowered)))
    no_hits = len(set(_NO_PATTERN.findall(lowered)))
    if yes_hits > no_hits and yes_hits >= MIN_KEYWORD_HITS:
        return Stance.SUPPORTS_YES
    if no_hits > yes_hits and no_hits >= MIN_KEYWORD_HITS:
        return Stance.SUPPORTS_NO
    return Stance.NEUTRAL
