"""Data models for claims, evidence and resolution results.

These dataclasses are the only shapes passed between the signal sources,
the aggregator, the lifecycle and the stores. Anything read from the
database or a legacy payload is normalised here, once, on the way in.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from .exceptions import ValidationException


class Outcome(StrEnum):
    """Binary resolution of a claim."""

    YES = "YES"
    NO = "NO"

    @classmethod
    def parse(cls, raw: Any) -> Outcome:
        if isinstance(raw, cls):
            return raw
        value = str(raw or "").strip().upper()
        if value in ("YES", "TRUE", "Y"):
            return cls.YES
        if value in ("NO", "FALSE", "N"):
            return cls.NO
        raise ValidationException(f"Invalid outcome: {raw!r}", field="outcome", value=raw)


class Recommendation(StrEnum):
    """Direction suggested by an analysis or an aggregation pass."""

    YES = "YES"
    NO = "NO"
    UNCERTAIN = "UNCERTAIN"

    @classmethod
    def parse(cls, raw: Any) -> Recommendation:
        if isinstance(raw, cls):
            return raw
        value = str(raw or "").strip().upper()
        if value == "YES":
            return cls.YES
        if value == "NO":
            return cls.NO
        if value in ("UNCERTAIN", "INCONCLUSIVE", "NEUTRAL", ""):
            return cls.UNCERTAIN
        raise ValidationException(f"Invalid recommendation: {raw!r}", field="recommendation", value=raw)


class Stance(StrEnum):
    """Which side of the claim an evidence item supports."""

    SUPPORTS_YES = "supports_yes"
    SUPPORTS_NO = "supports_no"
    NEUTRAL = "neutral"


# Alternate encodings seen in older submissions and admin tools
_STANCE_ALIASES: dict[str, Stance] = {
    "supports_yes": Stance.SUPPORTS_YES,
    "supporting_yes": Stance.SUPPORTS_YES,
    "supporting": Stance.SUPPORTS_YES,
    "supports": Stance.SUPPORTS_YES,
    "yes": Stance.SUPPORTS_YES,
    "supports_no": Stance.SUPPORTS_NO,
    "supporting_no": Stance.SUPPORTS_NO,
    "disputing": Stance.SUPPORTS_NO,
    "disputes": Stance.SUPPORTS_NO,
    "against": Stance.SUPPORTS_NO,
    "no": Stance.SUPPORTS_NO,
    "neutral": Stance.NEUTRAL,
    "none": Stance.NEUTRAL,
}


def normalize_stance(raw: Any) -> Stance:
    """Convert any accepted stance encoding into a Stance.

    Empty values mean the submitter did not declare a side and map to
    NEUTRAL. Unknown strings are rejected rather than guessed.

    Raises:
        ValidationException: If ``raw`` is not a recognised encoding.
    """
    if isinstance(raw, Stance):
        return raw
    if raw is None:
        return Stance.NEUTRAL
    key = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return Stance.NEUTRAL
    try:
        return _STANCE_ALIASES[key]
    except KeyError:
        raise ValidationException(f"Unknown evidence stance: {raw!r}", field="stance", value=raw) from None


class SourceType(StrEnum):
    """Category of the source an evidence item cites."""

    ACADEMIC = "academic"
    GOVERNMENT = "government"
    NEWS = "news"
    EXPERT = "expert"
    SOCIAL = "social"
    BLOG = "blog"
    ANONYMOUS = "anonymous"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Any) -> SourceType:
        """Parse a source type; anything unrecognised is OTHER."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.OTHER


class BetPosition(StrEnum):
    """The submitter's own stake on the claim."""

    YES = "YES"
    NO = "NO"
    NONE = "NONE"

    @classmethod
    def parse(cls, raw: Any) -> BetPosition:
        if isinstance(raw, cls):
            return raw
        value = str(raw or "").strip().upper()
        return cls(value) if value in ("YES", "NO") else cls.NONE


class ClaimStatus(StrEnum):
    """Lifecycle status of a claim."""

    ACTIVE = "active"
    EXPIRED = "expired"
    DISPUTABLE = "disputable"
    PENDING_FINAL = "pending_final"
    FLAGGED_FOR_REVIEW = "flagged_for_review"
    RESOLVED = "resolved"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in (ClaimStatus.RESOLVED, ClaimStatus.REFUNDED)


class WeightingStrategy(StrEnum):
    """How the three signals are weighted for one aggregation pass."""

    MARKET_VALIDATED = "market_validated"
    EVIDENCE_CONTRADICTS = "evidence_contradicts"
    STANDARD = "standard"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class Claim:
    """A proposition being resolved, with its lifecycle state."""

    id: str
    text: str
    expires_at: datetime
    status: ClaimStatus = ClaimStatus.ACTIVE
    dispute_window_end: datetime | None = None
    preliminary_outcome: Outcome | None = None
    final_outcome: Outcome | None = None
    confidence_score: float | None = None
    evidence_period_start: datetime | None = None
    preliminary_resolved_at: datetime | None = None
    resolved_at: datetime | None = None
    review_reason: str | None = None
    refund_reason: str | None = None
    admin_override: bool = False
    version: int = 0
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        for key in (
            "expires_at",
            "dispute_window_end",
            "evidence_period_start",
            "preliminary_resolved_at",
            "resolved_at",
            "created_at",
        ):
            result[key] = _iso(getattr(self, key))
        result["status"] = self.status.value
        return result

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Claim:
        """Create from database row."""
        return cls(
            id=str(row["id"]),
            text=row["text"],
            expires_at=row["expires_at"],
            status=ClaimStatus(row["status"]),
            dispute_window_end=row.get("dispute_window_end"),
            preliminary_outcome=Outcome(row["preliminary_outcome"]) if row.get("preliminary_outcome") else None,
            final_outcome=Outcome(row["final_outcome"]) if row.get("final_outcome") else None,
            confidence_score=float(row["confidence_score"]) if row.get("confidence_score") is not None else None,
            evidence_period_start=row.get("evidence_period_start"),
            preliminary_resolved_at=row.get("preliminary_resolved_at"),
            resolved_at=row.get("resolved_at"),
            review_reason=row.get("review_reason"),
            refund_reason=row.get("refund_reason"),
            admin_override=bool(row.get("admin_override", False)),
            version=int(row.get("version", 0)),
            created_at=row.get("created_at"),
        )


@dataclass
class EvidenceItem:
    """One user submission attached to a claim.

    ``stance`` and ``source_type`` accept legacy encodings and are
    normalised on construction. Quality and credibility are range checked.
    """

    id: str
    claim_id: str
    submitter: str
    content: str = ""
    stance: Stance = Stance.NEUTRAL
    source_type: SourceType = SourceType.OTHER
    base_quality: float = 3.0  # 0-5
    source_credibility: float = 1.0  # 0-1
    admin_verified: bool = False
    submitter_bet_position: BetPosition = BetPosition.NONE
    submitter_identity_age_days: float | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None

    def __post_init__(self) -> None:
        self.stance = normalize_stance(self.stance)
        self.source_type = SourceType.parse(self.source_type)
        self.submitter_bet_position = BetPosition.parse(self.submitter_bet_position)
        if not 0.0 <= self.base_quality <= 5.0:
            raise ValidationException("base_quality must be within [0, 5]", field="base_quality", value=self.base_quality)
        if not 0.0 <= self.source_credibility <= 1.0:
            raise ValidationException(
                "source_credibility must be within [0, 1]", field="source_credibility", value=self.source_credibility
            )

    @property
    def is_directional(self) -> bool:
        return self.stance is not Stance.NEUTRAL

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["stance"] = self.stance.value
        result["source_type"] = self.source_type.value
        result["submitter_bet_position"] = self.submitter_bet_position.value
        result["submitted_at"] = _iso(self.submitted_at)
        result["reviewed_at"] = _iso(self.reviewed_at)
        return result

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> EvidenceItem:
        """Create from database row."""
        return cls(
            id=str(row["id"]),
            claim_id=str(row["claim_id"]),
            submitter=row["submitter"],
            content=row.get("content") or "",
            stance=row.get("stance"),
            source_type=row.get("source_type"),
            base_quality=float(row.get("base_quality", 3.0)),
            source_credibility=float(row.get("source_credibility", 1.0)),
            admin_verified=bool(row.get("admin_verified", False)),
            submitter_bet_position=row.get("submitter_bet_position"),
            submitter_identity_age_days=(
                float(row["submitter_identity_age_days"]) if row.get("submitter_identity_age_days") is not None else None
            ),
            submitted_at=row.get("submitted_at"),
            reviewed_at=row.get("reviewed_at"),
        )


@dataclass
class SignalScore:
    """Normalised output of one signal source for one claim.

    ``percentage`` is the implied probability of YES (0-100). ``score`` is
    the source's points out of ``max_score``. ``sample_size`` counts the
    unique participants, directional evidence items or documents behind it.
    """

    source: str
    score: float
    max_score: float
    percentage: float
    sample_size: int = 0
    warnings: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def probability(self) -> float:
        return self.percentage / 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "score": round(self.score, 2),
            "max_score": self.max_score,
            "percentage": round(self.percentage, 2),
            "sample_size": self.sample_size,
            "warnings": list(self.warnings),
            "details": dict(self.details),
        }


@dataclass
class SignalContribution:
    """One signal's share of an aggregation pass."""

    source: str
    weight: float
    probability: float
    score: float
    max_score: float
    sample_size: int
    fallback: bool = False

    @property
    def contribution(self) -> float:
        """Points this signal adds to the final confidence."""
        return self.weight * self.probability * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "weight": self.weight,
            "probability": round(self.probability, 4),
            "contribution": round(self.contribution, 2),
            "score": round(self.score, 2),
            "max_score": self.max_score,
            "sample_size": self.sample_size,
            "fallback": self.fallback,
        }


@dataclass
class AggregationResult:
    """Output of one aggregation pass; persisted as an audit record."""

    claim_id: str
    final_confidence: float
    recommended_outcome: Recommendation
    strategy: WeightingStrategy
    evidence_consensus: float
    contributions: list[SignalContribution]
    suspect_manipulation: bool
    explanation: str
    computed_at: datetime
    warnings: list[str] = field(default_factory=list)
    signals_aligned: bool = False
    alignment_bonus: float = 0.0
    signal_strength: float = 0.0

    @property
    def outcome_confidence(self) -> float:
        """Confidence in the recommended outcome rather than in YES."""
        if self.recommended_outcome is Recommendation.NO:
            return 100.0 - self.final_confidence
        return self.final_confidence

    @property
    def weights(self) -> dict[str, float]:
        return {c.source: c.weight for c in self.contributions}

    def contribution_for(self, source: str) -> SignalContribution:
        for contribution in self.contributions:
            if contribution.source == source:
                return contribution
        raise KeyError(source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "final_confidence": round(self.final_confidence, 2),
            "outcome_confidence": round(self.outcome_confidence, 2),
            "recommended_outcome": self.recommended_outcome.value,
            "strategy": self.strategy.value,
            "evidence_consensus": round(self.evidence_consensus, 4),
            "contributions": [c.to_dict() for c in self.contributions],
            "suspect_manipulation": self.suspect_manipulation,
            "explanation": self.explanation,
            "warnings": list(self.warnings),
            "signals_aligned": self.signals_aligned,
            "alignment_bonus": round(self.alignment_bonus, 2),
            "signal_strength": round(self.signal_strength, 2),
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass
class TransitionResult:
    """What one monitor attempt did to one claim."""

    claim_id: str
    from_status: ClaimStatus
    to_status: ClaimStatus
    applied: bool
    reason: str = ""
    aggregation: AggregationResult | None = None
    at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "applied": self.applied,
            "reason": self.reason,
            "aggregation": self.aggregation.to_dict() if self.aggregation else None,
            "at": _iso(self.at),
        }
