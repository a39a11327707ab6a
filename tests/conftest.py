"""Global test fixtures for Verdict test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from verdict.core.aggregation import ClaimEvaluator
from verdict.core.config import MonitorConfig, ResolutionConfig, clear_config_cache
from verdict.core.events import EventBus, EventRecorder
from verdict.core.exceptions import ConflictError, NotFoundError
from verdict.core.lifecycle import ClaimLifecycle
from verdict.core.models import (
    BetPosition,
    Claim,
    ClaimStatus,
    EvidenceItem,
    Outcome,
    Recommendation,
    SourceType,
    Stance,
)
from verdict.core.monitor import ResolutionMonitor
from verdict.core.ports import Analysis, Document, StakeTotals
from verdict.core.signals import EvidenceSignal, ExternalSignal, MarketSignal
from verdict.core.store import MemoryClaimStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all VERDICT_ environment variables and the cached settings."""
    for key in list(os.environ.keys()):
        if key.startswith("VERDICT_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def env_with_db_vars(monkeypatch, clean_env):
    """Set up database environment variables."""
    monkeypatch.setenv("VERDICT_DB_HOST", "db.internal")
    monkeypatch.setenv("VERDICT_DB_PORT", "5433")
    monkeypatch.setenv("VERDICT_DB_NAME", "verdict_test")
    monkeypatch.setenv("VERDICT_DB_USER", "verdict")
    monkeypatch.setenv("VERDICT_DB_PASSWORD", "testpass")


# ============================================================================
# In-memory collaborators
# ============================================================================


class FakeLedger:
    """Ledger with per-claim stake totals."""

    def __init__(self) -> None:
        self.totals: dict[str, StakeTotals] = {}
        self.participants: dict[str, int] = {}
        self.failing: set[str] = set()

    def set(self, claim_id: str, yes: float, no: float, participants: int = 10) -> None:
        self.totals[claim_id] = StakeTotals(yes_stake=yes, no_stake=no)
        self.participants[claim_id] = participants

    def get_stake_totals(self, claim_id: str) -> StakeTotals:
        if claim_id in self.failing:
            raise ConnectionError("ledger unreachable")
        return self.totals.get(claim_id, StakeTotals(0.0, 0.0))

    def get_unique_participant_count(self, claim_id: str) -> int:
        if claim_id in self.failing:
            raise ConnectionError("ledger unreachable")
        return self.participants.get(claim_id, 0)


class FakeEvidenceStore:
    """Evidence store keyed by claim."""

    def __init__(self) -> None:
        self.items: dict[str, list[EvidenceItem]] = {}
        self.failing = False

    def add(self, item: EvidenceItem) -> None:
        self.items.setdefault(item.claim_id, []).append(item)

    def list_evidence(self, claim_id: str) -> list[EvidenceItem]:
        if self.failing:
            raise ConnectionError("evidence store unreachable")
        return list(self.items.get(claim_id, []))

    def update_evidence_review(self, evidence_id: str, stance: Stance, source_type: SourceType, verified: bool) -> EvidenceItem:
        for items in self.items.values():
            for item in items:
                if item.id == evidence_id:
                    if item.reviewed_at is not None:
                        raise ConflictError(f"Evidence item already reviewed: {evidence_id}", existing_id=evidence_id)
                    item.stance = stance
                    item.source_type = source_type
                    item.admin_verified = verified
                    item.reviewed_at = NOW
                    return item
        raise NotFoundError("EvidenceItem", evidence_id)


class FakeDisputes:
    """Dispute registry with a set of disputed claims."""

    def __init__(self) -> None:
        self.active: set[str] = set()
        self.failing = False

    def has_active_dispute(self, claim_id: str) -> bool:
        if self.failing:
            raise ConnectionError("dispute registry unreachable")
        return claim_id in self.active


class FakeAnalyzer:
    """Analyzer returning a fixed analysis, or raising."""

    def __init__(self, analysis: Analysis | None = None, error: Exception | None = None) -> None:
        self.analysis = analysis or Analysis(Recommendation.UNCERTAIN, 0.5, "no opinion")
        self.error = error
        self.calls: list[tuple[str, list[Document]]] = []

    async def analyze(self, claim_text: str, documents: list[Document]) -> Analysis:
        self.calls.append((claim_text, documents))
        if self.error is not None:
            raise self.error
        return self.analysis


class FakeDocuments:
    """Document provider returning a fixed list."""

    def __init__(self, documents: list[Document] | None = None, error: Exception | None = None) -> None:
        self.documents = documents or []
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str, limit: int) -> list[Document]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.documents[:limit]


# ============================================================================
# Model factories
# ============================================================================


def _make_claim(claim_id: str = "claim-1", **overrides: Any) -> Claim:
    """Claim factory; defaults to an ACTIVE claim that expired a day ago."""
    values: dict[str, Any] = {
        "id": claim_id,
        "text": "Will the bridge open before March 2026?",
        "expires_at": NOW - timedelta(days=1),
    }
    values.update(overrides)
    return Claim(**values)


def _make_disputable(claim_id: str = "claim-1", window_end: datetime | None = None, **overrides: Any) -> Claim:
    """A DISPUTABLE claim whose window closed an hour ago unless given."""
    values: dict[str, Any] = {
        "status": ClaimStatus.DISPUTABLE,
        "preliminary_outcome": Outcome.YES,
        "preliminary_resolved_at": NOW - timedelta(hours=73),
        "evidence_period_start": NOW - timedelta(days=4),
        "dispute_window_end": window_end or NOW - timedelta(hours=1),
        "confidence_score": 70.0,
    }
    values.update(overrides)
    return _make_claim(claim_id, **values)


def _make_evidence(
    evidence_id: str = "ev-1",
    claim_id: str = "claim-1",
    stance: Stance | str = Stance.SUPPORTS_YES,
    **overrides: Any,
) -> EvidenceItem:
    values: dict[str, Any] = {
        "id": evidence_id,
        "claim_id": claim_id,
        "submitter": f"user-{evidence_id}",
        "content": "",
        "stance": stance,
        "source_type": SourceType.ACADEMIC,
        "base_quality": 3.0,
        "source_credibility": 1.0,
        "submitter_bet_position": BetPosition.NONE,
        "submitter_identity_age_days": 365.0,
    }
    values.update(overrides)
    return EvidenceItem(**values)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_claim():
    return _make_claim


@pytest.fixture
def make_disputable():
    return _make_disputable


@pytest.fixture
def make_evidence():
    return _make_evidence


# ============================================================================
# Engine fixtures
# ============================================================================


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def evidence_store() -> FakeEvidenceStore:
    return FakeEvidenceStore()


@pytest.fixture
def disputes() -> FakeDisputes:
    return FakeDisputes()


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def documents() -> FakeDocuments:
    return FakeDocuments()


@pytest.fixture
def make_documents():
    return FakeDocuments


@pytest.fixture
def resolution_config() -> ResolutionConfig:
    return ResolutionConfig()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def events(recorder) -> EventBus:
    bus = EventBus(log_events=False)
    bus.subscribe(recorder)
    return bus


@pytest.fixture
def store() -> MemoryClaimStore:
    return MemoryClaimStore()


@pytest.fixture
def lifecycle(store, resolution_config, events) -> ClaimLifecycle:
    return ClaimLifecycle(store, resolution_config, events)


@pytest.fixture
def evaluator(ledger, evidence_store, analyzer, documents, resolution_config) -> ClaimEvaluator:
    """Evaluator whose external source has no documents unless the test adds some."""
    return ClaimEvaluator(
        market=MarketSignal(ledger),
        evidence=EvidenceSignal(evidence_store, resolution_config),
        external=ExternalSignal(analyzer, documents),
        config=resolution_config,
        source_timeout=1.0,
    )


@pytest.fixture
def monitor_config() -> MonitorConfig:
    return MonitorConfig(preliminary_interval=0.01, final_interval=0.01, source_timeout=1.0, max_workers=4, max_attempts=3)


@pytest.fixture
def monitor(store, lifecycle, evaluator, ledger, disputes, monitor_config, events) -> ResolutionMonitor:
    return ResolutionMonitor(
        store,
        lifecycle,
        evaluator,
        ledger,
        disputes,
        config=monitor_config,
        events=events,
        clock=lambda: NOW,
    )
