"""Verdict Core - claim resolution engine."""

from .aggregation import ClaimEvaluator, aggregate, confidence_level
from .config import MonitorConfig, ResolutionConfig, SignalWeights, get_config
from .credibility import score_evidence, score_evidence_pool
from .events import EventBus, EventKind, ResolutionEvent
from .exceptions import (
    ConfigException,
    ConflictError,
    DatabaseException,
    DataInconsistencyError,
    NotFoundError,
    SourceError,
    StaleStateError,
    TransitionError,
    ValidationException,
    VerdictException,
)
from .lifecycle import ClaimLifecycle
from .logging import configure_logging, get_logger
from .models import (
    AggregationResult,
    Claim,
    ClaimStatus,
    EvidenceItem,
    Outcome,
    Recommendation,
    SignalScore,
    Stance,
    TransitionResult,
    WeightingStrategy,
    normalize_stance,
)
from .monitor import ResolutionMonitor
from .response import VerdictResponse, err, ok
from .store import MemoryClaimStore, PostgresClaimStore
from .weighting import analyze_alignment, select_strategy

__all__ = [
    # Models
    "AggregationResult",
    "Claim",
    "ClaimStatus",
    "EvidenceItem",
    "Outcome",
    "Recommendation",
    "SignalScore",
    "Stance",
    "TransitionResult",
    "WeightingStrategy",
    "normalize_stance",
    # Config
    "MonitorConfig",
    "ResolutionConfig",
    "SignalWeights",
    "get_config",
    # Engine
    "ClaimEvaluator",
    "ClaimLifecycle",
    "ResolutionMonitor",
    "aggregate",
    "analyze_alignment",
    "confidence_level",
    "score_evidence",
    "score_evidence_pool",
    "select_strategy",
    # Persistence
    "MemoryClaimStore",
    "PostgresClaimStore",
    # Events
    "EventBus",
    "EventKind",
    "ResolutionEvent",
    # Responses
    "VerdictResponse",
    "ok",
    "err",
    # Exceptions
    "VerdictException",
    "DatabaseException",
    "ValidationException",
    "ConfigException",
    "NotFoundError",
    "ConflictError",
    "StaleStateError",
    "TransitionError",
    "DataInconsistencyError",
    "SourceError",
    # Logging
    "configure_logging",
    "get_logger",
]
