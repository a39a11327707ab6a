"""Utility functions for Verdict CLI."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from ..core.aggregation import ClaimEvaluator
from ..core.backends import create_openai_backend
from ..core.config import CoreSettings, MonitorConfig, ResolutionConfig, get_config
from ..core.events import EventBus
from ..core.inference import InferenceProvider
from ..core.lifecycle import ClaimLifecycle
from ..core.models import Claim
from ..core.monitor import ResolutionMonitor
from ..core.ports import Analyzer, DocumentProvider
from ..core.signals import (
    CompositeDocuments,
    EvidenceSignal,
    ExternalSignal,
    InferenceAnalyzer,
    KeywordAnalyzer,
    MarketSignal,
    NewsDocuments,
    WikipediaDocuments,
)
from ..core.store import PostgresClaimStore, PostgresDisputeRegistry, PostgresEvidenceStore, PostgresLedger

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Everything a command needs, wired against Postgres."""

    store: PostgresClaimStore
    evidence: PostgresEvidenceStore
    lifecycle: ClaimLifecycle
    monitor: ResolutionMonitor
    events: EventBus


def build_analyzer(settings: CoreSettings) -> Analyzer:
    """LLM analysis when an inference endpoint is configured, keyword analysis otherwise."""
    if settings.inference_base_url:
        backend = create_openai_backend(
            base_url=settings.inference_base_url,
            api_key=settings.inference_api_key,
            model=settings.inference_model,
            timeout=settings.inference_timeout,
        )
        return InferenceAnalyzer(InferenceProvider(backend))
    logger.info("No inference endpoint configured; using keyword analysis")
    return KeywordAnalyzer()


def build_documents(settings: CoreSettings) -> DocumentProvider:
    """Wikipedia alone, or Wikipedia merged with news articles when a news API key is set."""
    wikipedia = WikipediaDocuments(settings.wikipedia_api_url, timeout=settings.source_timeout)
    if not settings.news_api_key:
        return wikipedia
    news = NewsDocuments(settings.news_api_key, api_url=settings.news_api_url, timeout=settings.source_timeout)
    return CompositeDocuments([wikipedia, news])


def build_engine(settings: CoreSettings | None = None) -> Engine:
    """Wire stores, signals, lifecycle and monitor from settings.

    Raises:
        ConfigException: If the resolution or monitor settings are invalid.
    """
    settings = settings or get_config()
    resolution = ResolutionConfig.from_settings(settings)
    monitor_config = MonitorConfig.from_settings(settings)

    events = EventBus()
    store = PostgresClaimStore()
    ledger = PostgresLedger()
    evidence = PostgresEvidenceStore()
    disputes = PostgresDisputeRegistry()

    evaluator = ClaimEvaluator(
        market=MarketSignal(ledger),
        evidence=EvidenceSignal(evidence, resolution),
        external=ExternalSignal(
            build_analyzer(settings),
            build_documents(settings),
            max_documents=settings.external_max_documents,
        ),
        config=resolution,
        source_timeout=monitor_config.source_timeout,
    )
    lifecycle = ClaimLifecycle(store, resolution, events)
    monitor = ResolutionMonitor(store, lifecycle, evaluator, ledger, disputes, monitor_config, events)
    return Engine(store=store, evidence=evidence, lifecycle=lifecycle, monitor=monitor, events=events)


def parse_timestamp(value: str) -> datetime:
    """argparse type for ISO-8601 timestamps; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_claim(claim: Claim) -> str:
    """One-claim text summary for terminal output."""
    lines = [
        f"{claim.id}  [{claim.status.value}]",
        f"  {claim.text}",
        f"  expires:      {claim.expires_at.isoformat()}",
    ]
    if claim.dispute_window_end:
        lines.append(f"  window ends:  {claim.dispute_window_end.isoformat()}")
    if claim.preliminary_outcome:
        lines.append(f"  preliminary:  {claim.preliminary_outcome.value}")
    if claim.final_outcome:
        override = " (admin override)" if claim.admin_override else ""
        lines.append(f"  final:        {claim.final_outcome.value}{override}")
    if claim.confidence_score is not None:
        lines.append(f"  confidence:   {claim.confidence_score:.1f}%")
    if claim.review_reason:
        lines.append(f"  review:       {claim.review_reason}")
    if claim.refund_reason:
        lines.append(f"  refund:       {claim.refund_reason}")
    return "\n".join(lines)
