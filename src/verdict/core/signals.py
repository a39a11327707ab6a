# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Signal sources: market, evidence and external analysis.

Each source implements ``async evaluate(claim) -> VerdictResponse``. A
source that has no data returns ``ok`` with a neutral 50% score and a
warning; a source that cannot reach its backend returns ``err``. Sources
never raise and never substitute data for a failed call: that policy
belongs to the aggregator.

Points per source (max 100 together, before the alignment bonus):

    market    25 = |p - 50| / 50 × 15 + min(10, unique bettors)
    evidence  45 = |p - 50| / 50 × 30 + min(15, submissions)   (halved on a Sybil burst)
    external  30 = |p - 50| / 50 × 20 + min(10, documents)
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from itertools import zip_longest
from typing import Protocol
from urllib.parse import quote

import aiohttp

from .config import ResolutionConfig
from .credibility import score_evidence_pool
from .exceptions import SourceError
from .inference import TASK_ANALYZE, TASK_OUTPUT_SCHEMAS, InferenceProvider
from .models import Claim, Recommendation, SignalScore
from .ports import Analysis, Analyzer, Document, DocumentProvider, EvidenceStore, Ledger
from .response import VerdictResponse, err, ok

logger = logging.getLogger(__name__)

MARKET = "market"
EVIDENCE = "evidence"
EXTERNAL = "external"

MAX_POINTS: dict[str, float] = {MARKET: 25.0, EVIDENCE: 45.0, EXTERNAL: 30.0}

LOW_PARTICIPANT_COUNT = 3
LOW_EVIDENCE_COUNT = 3
LOW_DOCUMENT_COUNT = 5


class SignalSource(Protocol):
    """Anything that can score a claim."""

    name: str

    async def evaluate(self, claim: Claim) -> VerdictResponse: ...


def neutral_signal(source: str, warning: str) -> SignalScore:
    """A 50% score at half the source's points, carrying ``warning``."""
    max_points = MAX_POINTS[source]
    return SignalScore(
        source=source,
        score=max_points / 2,
        max_score=max_points,
        percentage=50.0,
        sample_size=0,
        warnings=[warning],
    )


def _strength(percentage: float) -> float:
    """Distance of a percentage from a coin flip, in [0, 1]."""
    return min(1.0, abs(percentage - 50.0) / 50.0)


def market_points(percentage: float, participants: int) -> float:
    return _strength(percentage) * 15.0 + min(10, participants)


def evidence_points(percentage: float, submissions: int) -> float:
    return _strength(percentage) * 30.0 + min(15, submissions)


def external_points(percentage: float, documents: int) -> float:
    return _strength(percentage) * 20.0 + min(10, documents)


# =============================================================================
# MARKET
# =============================================================================


class MarketSignal:
    """Implied probability from stake totals on the ledger."""

    name = MARKET

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    async def evaluate(self, claim: Claim) -> VerdictResponse:
        try:
            totals = await asyncio.to_thread(self.ledger.get_stake_totals, claim.id)
            participants = await asyncio.to_thread(self.ledger.get_unique_participant_count, claim.id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Ledger query failed for claim %s: %s", claim.id, exc)
            return err(f"Ledger query failed: {exc}", source=self.name)

        probability = totals.yes_probability
        if probability is None:
            return ok(neutral_signal(MARKET, "No bets placed on this market"), source=self.name)

        percentage = probability * 100.0
        warnings = []
        if participants < LOW_PARTICIPANT_COUNT:
            warnings.append(f"Low participation: only {participants} unique bettors")

        return ok(
            SignalScore(
                source=MARKET,
                score=market_points(percentage, participants),
                max_score=MAX_POINTS[MARKET],
                percentage=percentage,
                sample_size=participants,
                warnings=warnings,
                details={"yes_stake": totals.yes_stake, "no_stake": totals.no_stake},
            ),
            source=self.name,
        )


# =============================================================================
# EVIDENCE
# =============================================================================


class EvidenceSignal:
    """Credibility-weighted share of evidence supporting YES."""

    name = EVIDENCE

    def __init__(self, store: EvidenceStore, config: ResolutionConfig | None = None):
        self.store = store
        self.config = config or ResolutionConfig()

    async def evaluate(self, claim: Claim) -> VerdictResponse:
        try:
            items = await asyncio.to_thread(self.store.list_evidence, claim.id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Evidence query failed for claim %s: %s", claim.id, exc)
            return err(f"Evidence query failed: {exc}", source=self.name)

        if not items:
            return ok(neutral_signal(EVIDENCE, "No evidence submitted"), source=self.name)

        pool = score_evidence_pool(items, self.config)
        warnings = list(pool.warnings)
        probability = pool.yes_probability

        if probability is None:
            percentage = 50.0
            sample_size = 0
            warnings.append("No directional evidence submitted")
        else:
            percentage = probability * 100.0
            sample_size = pool.directional_count
            if sample_size < LOW_EVIDENCE_COUNT:
                warnings.append(f"Low evidence count: only {sample_size} directional items")

        score = evidence_points(percentage, pool.submissions)
        if pool.sybil_burst:
            score *= self.config.sybil_pool_penalty

        return ok(
            SignalScore(
                source=EVIDENCE,
                score=score,
                max_score=MAX_POINTS[EVIDENCE],
                percentage=percentage,
                sample_size=sample_size,
                warnings=warnings,
                details=pool.to_dict(),
            ),
            source=self.name,
        )


# =============================================================================
# EXTERNAL
# =============================================================================


class ExternalSignal:
    """Analysis of retrieved documents.

    With no document provider the analyzer is called with an empty list
    and must rely on what it already knows.
    """

    name = EXTERNAL

    def __init__(self, analyzer: Analyzer, documents: DocumentProvider | None = None, max_documents: int = 10):
        self.analyzer = analyzer
        self.documents = documents
        self.max_documents = max_documents

    async def evaluate(self, claim: Claim) -> VerdictResponse:
        docs: list[Document] = []
        if self.documents is not None:
            try:
                docs = await self.documents.search(search_query(claim.text), self.max_documents)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Document retrieval failed for claim %s: %s", claim.id, exc)
                return err(f"Document retrieval failed: {exc}", source=self.name)
            if not docs:
                return ok(neutral_signal(EXTERNAL, "No external data available"), source=self.name)

        try:
            analysis = await self.analyzer.analyze(claim.text, docs)
        except SourceError as exc:
            logger.warning("External analysis failed for claim %s: %s", claim.id, exc.message)
            return err(exc.message, source=self.name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("External analysis failed for claim %s: %s", claim.id, exc)
            return err(f"Analysis failed: {exc}", source=self.name)

        percentage = analysis.yes_probability * 100.0
        warnings = []
        if analysis.recommendation is Recommendation.UNCERTAIN:
            warnings.append("External analysis inconclusive")
        if self.documents is not None and len(docs) < LOW_DOCUMENT_COUNT:
            warnings.append(f"Low external result count: only {len(docs)} documents")

        return ok(
            SignalScore(
                source=EXTERNAL,
                score=external_points(percentage, len(docs)),
                max_score=MAX_POINTS[EXTERNAL],
                percentage=percentage,
                sample_size=len(docs),
                warnings=warnings,
                details={**analysis.to_dict(), "documents": [d.title for d in docs]},
            ),
            source=self.name,
        )


_STOPWORDS = frozenset(
    "will the a an of to in on by at for be is are was were has have had and or "
    "this that it its before after during than then there their what which who".split()
)


def search_query(claim_text: str, max_terms: int = 8) -> str:
    """Reduce a claim to its content words for document search."""
    words = re.findall(r"[\w'-]+", claim_text)
    terms = [w for w in words if w.lower() not in _STOPWORDS]
    return " ".join(terms[:max_terms]) or claim_text


# =============================================================================
# ANALYZERS
# =============================================================================

# Source-name fragments → credibility weight
SOURCE_TIERS: list[tuple[tuple[str, ...], float]] = [
    (("bbc", "reuters", "associated press", "aljazeera", "nation.africa", "premiumtimes"), 1.5),
    (("cnn", "guardian", "bloomberg", "financial times", "wall street journal", "washington post", "new york times"), 1.2),
    (("wikipedia", "allafrica", "africanews", "yahoo", "google news"), 1.0),
]
UNKNOWN_SOURCE_WEIGHT = 0.4

POSITIVE_WORDS = (
    "confirm", "confirmed", "success", "win", "won", "achieve", "achieved",
    "complete", "completed", "yes", "true", "approved", "passed",
)  # fmt: skip
NEGATIVE_WORDS = (
    "deny", "denied", "fail", "failed", "lose", "lost", "cancel", "cancelled",
    "delay", "delayed", "no", "false", "rejected",
)  # fmt: skip

_POSITIVE = re.compile(r"\b(" + "|".join(POSITIVE_WORDS) + r")\b")
_NEGATIVE = re.compile(r"\b(" + "|".join(NEGATIVE_WORDS) + r")\b")

YES_CUTOFF = 66.0
NO_CUTOFF = 34.0


def source_weight(source: str) -> float:
    """Credibility weight for a publication name."""
    lowered = source.lower()
    for fragments, weight in SOURCE_TIERS:
        if any(fragment in lowered for fragment in fragments):
            return weight
    return UNKNOWN_SOURCE_WEIGHT


class KeywordAnalyzer:
    """Credibility-weighted keyword sentiment over documents.

    Each document leans confirming, denying or neutral by keyword count and
    contributes its source weight to that bucket. YES above 66% confirming
    weight, NO below 34%, inconclusive between.
    """

    async def analyze(self, claim_text: str, documents: list[Document]) -> Analysis:
        if not documents:
            return Analysis(Recommendation.UNCERTAIN, 0.0, "No documents to analyze")

        confirming = denying = neutral = 0.0
        for doc in documents:
            weight = source_weight(doc.source)
            text = f"{doc.title} {doc.content}".lower()
            positive = len(_POSITIVE.findall(text))
            negative = len(_NEGATIVE.findall(text))
            if positive > negative:
                confirming += weight
            elif negative > positive:
                denying += weight
            else:
                neutral += weight

        total = confirming + denying + neutral
        yes_pct = confirming / total * 100.0 if total > 0 else 50.0
        reasoning = (
            f"{len(documents)} documents: weighted confirming {confirming:.1f}, "
            f"denying {denying:.1f}, neutral {neutral:.1f} ({yes_pct:.0f}% confirming)"
        )

        if yes_pct > YES_CUTOFF:
            return Analysis(Recommendation.YES, yes_pct / 100.0, reasoning)
        if yes_pct < NO_CUTOFF:
            return Analysis(Recommendation.NO, 1.0 - yes_pct / 100.0, reasoning)
        return Analysis(Recommendation.UNCERTAIN, 0.5, reasoning)


MAX_DOCUMENT_CHARS = 1500


def build_analysis_prompt(claim_text: str, documents: list[Document]) -> str:
    """Prompt asking the model to judge a claim from documents."""
    if documents:
        doc_lines = []
        for i, doc in enumerate(documents, start=1):
            source = f" ({doc.source})" if doc.source else ""
            doc_lines.append(f"[{i}] {doc.title}{source}\n{doc.content[:MAX_DOCUMENT_CHARS]}")
        doc_block = "\n\n".join(doc_lines)
    else:
        doc_block = "(no documents retrieved)"

    return (
        "Decide whether the following prediction-market claim came true.\n\n"
        f"CLAIM: {claim_text}\n\n"
        f"DOCUMENTS:\n{doc_block}\n\n"
        "Answer INCONCLUSIVE if the documents do not settle the claim. "
        "confidence is your probability (0.0-1.0) that the recommendation is correct.\n\n"
        f"Respond with JSON only:\n{TASK_OUTPUT_SCHEMAS[TASK_ANALYZE]}"
    )


class InferenceAnalyzer:
    """LLM analysis through an :class:`InferenceProvider`."""

    def __init__(self, provider: InferenceProvider):
        self.provider = provider

    async def analyze(self, claim_text: str, documents: list[Document]) -> Analysis:
        result = await self.provider.infer(TASK_ANALYZE, build_analysis_prompt(claim_text, documents))
        if result.degraded:
            raise SourceError(f"Inference unavailable: {result.error}", source=EXTERNAL)
        if result.parsed is None:
            raise SourceError(f"Invalid analysis output: {result.error}", source=EXTERNAL)
        parsed = result.parsed
        return Analysis(
            recommendation=Recommendation.parse(parsed["recommendation"]),
            confidence=parsed["confidence"],
            reasoning=str(parsed["reasoning"]),
        )


# =============================================================================
# DOCUMENT PROVIDERS
# =============================================================================

_TAG = re.compile(r"<[^>]+>")


class WikipediaDocuments:
    """Full-text search over a MediaWiki API."""

    def __init__(self, api_url: str = "https://en.wikipedia.org/w/api.php", timeout: float = 10.0):
        self.api_url = api_url
        self.timeout = timeout

    async def search(self, query: str, limit: int) -> list[Document]:
        params = {
            "action": "query",
            "list": "search",
            "srsearch": query,
            "srlimit": str(limit),
            "format": "json",
            "utf8": "1",
        }
        async with aiohttp.ClientSession() as session:
            async with session.get(self.api_url, params=params, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                if response.status != 200:
                    raise SourceError(f"Wikipedia search returned HTTP {response.status}", source=EXTERNAL)
                data = await response.json()

        wiki_root = self.api_url.rsplit("/w/", 1)[0]
        documents = []
        for hit in data.get("query", {}).get("search", []):
            title = hit.get("title", "")
            documents.append(
                Document(
                    title=title,
                    content=html.unescape(_TAG.sub("", hit.get("snippet", ""))),
                    source="wikipedia",
                    url=f"{wiki_root}/wiki/{quote(title.replace(' ', '_'))}",
                )
            )
        logger.debug("Wikipedia search %r returned %d documents", query, len(documents))
        return documents


MIN_ARTICLE_RELEVANCE = 0.3


def relevance(text: str, query: str) -> float:
    """Share of the query's terms that appear in ``text``."""
    terms = {t.lower() for t in re.findall(r"[\w'-]+", query)}
    if not terms:
        return 0.0
    lowered = text.lower()
    return sum(1 for t in terms if t in lowered) / len(terms)


class NewsDocuments:
    """Article search over a NewsAPI-compatible ``/everything`` endpoint.

    Articles whose title and description cover less than 30% of the query
    terms are dropped; the rest are returned most relevant first, tagged
    with the publishing outlet so analyzers can weigh them.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://newsapi.org/v2/everything",
        timeout: float = 10.0,
        language: str = "en",
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.language = language

    async def search(self, query: str, limit: int) -> list[Document]:
        params = {
            "q": query,
            "language": self.language,
            "sortBy": "relevancy",
            "pageSize": str(min(limit * 2, 100)),
        }
        headers = {"X-Api-Key": self.api_key}
        async with aiohttp.ClientSession() as session:
            async with session.get(
                self.api_url, params=params, headers=headers, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    raise SourceError(f"News search returned HTTP {response.status}", source=EXTERNAL)
                data = await response.json()

        scored = []
        for article in data.get("articles", []):
            title = article.get("title") or ""
            description = article.get("description") or ""
            url = article.get("url")
            if not (title and description and url) or "[removed]" in title.lower():
                continue
            score = relevance(f"{title} {description}", query)
            if score < MIN_ARTICLE_RELEVANCE:
                continue
            content = description + (f" {article['content']}" if article.get("content") else "")
            outlet = (article.get("source") or {}).get("name") or "Unknown Source"
            scored.append((score, Document(title=title, content=content, source=outlet, url=url)))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        documents = [doc for _, doc in scored[:limit]]
        logger.debug("News search %r kept %d of %d articles", query, len(documents), len(data.get("articles", [])))
        return documents


class CompositeDocuments:
    """Searches several providers concurrently and interleaves their results.

    A provider that fails is logged and skipped; only when every provider
    fails does the search raise.
    """

    def __init__(self, providers: list[DocumentProvider]):
        self.providers = providers

    async def search(self, query: str, limit: int) -> list[Document]:
        outcomes = await asyncio.gather(
            *(provider.search(query, limit) for provider in self.providers), return_exceptions=True
        )

        batches: list[list[Document]] = []
        errors: list[str] = []
        for provider, outcome in zip(self.providers, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Document provider %s failed: %s", type(provider).__name__, outcome)
                errors.append(f"{type(provider).__name__}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                batches.append(outcome)

        if errors and not batches:
            raise SourceError(f"All document providers failed ({'; '.join(errors)})", source=EXTERNAL)

        merged: list[Document] = []
        seen: set[str] = set()
        for doc in (d for group in zip_longest(*batches) for d in group if d is not None):
            key = doc.url or doc.title
            if key in seen:
                continue
            seen.add(key)
            merged.append(doc)
        return merged[:limit]
