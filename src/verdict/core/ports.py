"""Interfaces to the collaborators the engine depends on.

The engine only talks to the ledger, the evidence store, the dispute
registry, document providers and analyzers through these protocols.
Postgres-backed implementations live in :mod:`verdict.core.store`; the
external-signal implementations live in :mod:`verdict.core.signals`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .models import EvidenceItem, Recommendation, SourceType, Stance


@dataclass
class StakeTotals:
    """Total stake on each side of a claim."""

    yes_stake: float
    no_stake: float

    @property
    def total(self) -> float:
        return self.yes_stake + self.no_stake

    @property
    def yes_probability(self) -> float | None:
        """Implied probability of YES, or None when nothing is staked."""
        if self.total <= 0:
            return None
        return self.yes_stake / self.total


@dataclass
class Document:
    """A retrieved document handed to an analyzer."""

    title: str
    content: str
    source: str = ""
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "content": self.content, "source": self.source, "url": self.url}


@dataclass
class Analysis:
    """An analyzer's reading of a claim against a set of documents."""

    recommendation: Recommendation
    confidence: float  # 0-1
    reasoning: str = ""

    @property
    def yes_probability(self) -> float:
        """Confidence for YES, 1 - confidence for NO, 0.5 when inconclusive."""
        if self.recommendation is Recommendation.YES:
            return self.confidence
        if self.recommendation is Recommendation.NO:
            return 1.0 - self.confidence
        return 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendation": self.recommendation.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@runtime_checkable
class Ledger(Protocol):
    """Read access to on-chain betting state."""

    def get_stake_totals(self, claim_id: str) -> StakeTotals: ...

    def get_unique_participant_count(self, claim_id: str) -> int: ...


@runtime_checkable
class EvidenceStore(Protocol):
    """Evidence persistence."""

    def list_evidence(self, claim_id: str) -> list[EvidenceItem]: ...

    def update_evidence_review(
        self,
        evidence_id: str,
        stance: Stance,
        source_type: SourceType,
        verified: bool,
    ) -> EvidenceItem: ...


@runtime_checkable
class DisputeRegistry(Protocol):
    """Whether anyone is challenging a claim's preliminary outcome."""

    def has_active_dispute(self, claim_id: str) -> bool: ...


@runtime_checkable
class DocumentProvider(Protocol):
    """Retrieves documents relevant to a claim."""

    async def search(self, query: str, limit: int) -> list[Document]: ...


@runtime_checkable
class Analyzer(Protocol):
    """Reads documents and recommends an outcome for a claim.

    Implementations raise :class:`~verdict.core.exceptions.SourceError` when
    they cannot produce an analysis.
    """

    async def analyze(self, claim_text: str, documents: list[Document]) -> Analysis: ...
