"""Core configuration - centralized config for the verdict package.

All environment-based configuration should flow through this module.
Resolution tuning is read once into plain dataclasses (``ResolutionConfig``,
``MonitorConfig``) that are passed explicitly to the components that need
them, so tests can build as many independent engines as they like.

Usage:
    from verdict.core.config import get_config, ResolutionConfig
    settings = get_config()
    resolution = ResolutionConfig.from_settings(settings)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigException

WEIGHT_SUM_TOLERANCE = 0.001


class CoreSettings(BaseSettings):
    """Core configuration settings for Verdict.

    Settings can be configured via environment variables with the
    VERDICT_ prefix, or through a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # DATABASE SETTINGS
    # ==========================================================================

    db_host: str = Field(
        default="localhost",
        description="Database host",
        validation_alias="VERDICT_DB_HOST",
    )
    db_port: int = Field(
        default=5432,
        description="Database port",
        validation_alias="VERDICT_DB_PORT",
    )
    db_name: str = Field(
        default="verdict",
        description="Database name",
        validation_alias="VERDICT_DB_NAME",
    )
    db_user: str = Field(
        default="verdict",
        description="Database user",
        validation_alias="VERDICT_DB_USER",
    )
    db_password: str = Field(
        default="",
        description="Database password",
        validation_alias="VERDICT_DB_PASSWORD",
    )

    # Connection pool settings
    db_pool_min: int = Field(
        default=2,
        description="Minimum pool connections",
        validation_alias="VERDICT_DB_POOL_MIN",
    )
    db_pool_max: int = Field(
        default=10,
        description="Maximum pool connections",
        validation_alias="VERDICT_DB_POOL_MAX",
    )
    db_pool_timeout: int = Field(
        default=10,
        description="Seconds to wait for a pooled connection",
        validation_alias="VERDICT_DB_POOL_TIMEOUT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="VERDICT_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="VERDICT_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="VERDICT_LOG_FILE",
    )

    # ==========================================================================
    # WEIGHTING SETTINGS
    # ==========================================================================

    market_validated_threshold: float = Field(
        default=0.8,
        description="Consensus at or above which the market is trusted",
        validation_alias="VERDICT_MARKET_VALIDATED_THRESHOLD",
    )
    evidence_contradicts_threshold: float = Field(
        default=0.2,
        description="Consensus at or below which evidence overrides the market",
        validation_alias="VERDICT_EVIDENCE_CONTRADICTS_THRESHOLD",
    )
    market_validated_weights: tuple[float, float, float] = Field(
        default=(0.60, 0.10, 0.30),
        description="Market/evidence/external weights when the market is validated (JSON list)",
        validation_alias="VERDICT_MARKET_VALIDATED_WEIGHTS",
    )
    evidence_contradicts_weights: tuple[float, float, float] = Field(
        default=(0.20, 0.30, 0.50),
        description="Market/evidence/external weights when evidence contradicts the market (JSON list)",
        validation_alias="VERDICT_EVIDENCE_CONTRADICTS_WEIGHTS",
    )
    standard_weights: tuple[float, float, float] = Field(
        default=(0.35, 0.25, 0.40),
        description="Market/evidence/external weights for mixed signals (JSON list)",
        validation_alias="VERDICT_STANDARD_WEIGHTS",
    )
    conflict_threshold: float = Field(
        default=0.30,
        description="Market/evidence probability gap that flags suspected manipulation",
        validation_alias="VERDICT_CONFLICT_THRESHOLD",
    )
    min_evidence_for_conflict: int = Field(
        default=3,
        description="Directional evidence items needed before the manipulation flag can fire",
        validation_alias="VERDICT_MIN_EVIDENCE_FOR_CONFLICT",
    )

    # ==========================================================================
    # LIFECYCLE SETTINGS
    # ==========================================================================

    dispute_window_hours: float = Field(
        default=72.0,
        description="Length of the dispute window opened by preliminary resolution",
        validation_alias="VERDICT_DISPUTE_WINDOW_HOURS",
    )
    max_evidence_days: int = Field(
        default=30,
        description="Days after the evidence period starts before a low-confidence claim is refunded",
        validation_alias="VERDICT_MAX_EVIDENCE_DAYS",
    )
    min_confidence: float = Field(
        default=80.0,
        description="Outcome confidence a claim must reach to avoid a refund",
        validation_alias="VERDICT_MIN_CONFIDENCE",
    )
    auto_resolve_floor: float = Field(
        default=80.0,
        description="Outcome confidence required for automatic final resolution",
        validation_alias="VERDICT_AUTO_RESOLVE_FLOOR",
    )

    # ==========================================================================
    # MONITOR SETTINGS
    # ==========================================================================

    preliminary_interval: float = Field(
        default=15.0,
        description="Seconds between preliminary (expiry) ticks",
        validation_alias="VERDICT_PRELIMINARY_INTERVAL",
    )
    final_interval: float = Field(
        default=3600.0,
        description="Seconds between final (dispute window) ticks",
        validation_alias="VERDICT_FINAL_INTERVAL",
    )
    source_timeout: float = Field(
        default=30.0,
        description="Per-source timeout for a signal evaluation",
        validation_alias="VERDICT_SOURCE_TIMEOUT",
    )
    max_workers: int = Field(
        default=8,
        description="Claims processed concurrently within one tick",
        validation_alias="VERDICT_MAX_WORKERS",
    )
    max_attempts: int = Field(
        default=3,
        description="Failed attempts per claim and transition before review",
        validation_alias="VERDICT_MAX_ATTEMPTS",
    )

    # ==========================================================================
    # EXTERNAL SIGNAL SETTINGS
    # ==========================================================================

    inference_base_url: str = Field(
        default="",
        description="OpenAI-compatible API root; empty uses the keyword analyzer",
        validation_alias="VERDICT_INFERENCE_BASE_URL",
    )
    inference_api_key: str = Field(
        default="",
        description="API key for the inference endpoint",
        validation_alias="VERDICT_INFERENCE_API_KEY",
    )
    inference_model: str = Field(
        default="gpt-4o-mini",
        description="Model identifier for claim analysis",
        validation_alias="VERDICT_INFERENCE_MODEL",
    )
    inference_timeout: float = Field(
        default=25.0,
        description="Inference request timeout in seconds; must stay below source_timeout",
        validation_alias="VERDICT_INFERENCE_TIMEOUT",
    )
    wikipedia_api_url: str = Field(
        default="https://en.wikipedia.org/w/api.php",
        description="MediaWiki API endpoint used for document retrieval",
        validation_alias="VERDICT_WIKIPEDIA_API_URL",
    )
    external_max_documents: int = Field(
        default=10,
        description="Documents retrieved per external analysis",
        validation_alias="VERDICT_EXTERNAL_MAX_DOCUMENTS",
    )
    news_api_key: str = Field(
        default="",
        description="NewsAPI key; news articles join Wikipedia results when set",
        validation_alias="VERDICT_NEWS_API_KEY",
    )
    news_api_url: str = Field(
        default="https://newsapi.org/v2/everything",
        description="NewsAPI-compatible article search endpoint",
        validation_alias="VERDICT_NEWS_API_URL",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def database_url(self) -> str:
        """Construct database URL."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def connection_params(self) -> dict:
        """Get database connection parameters dict."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }

    @property
    def pool_config(self) -> dict:
        """Get connection pool configuration."""
        return {
            "minconn": self.db_pool_min,
            "maxconn": self.db_pool_max,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the process configuration instance.

    Returns:
        The cached CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None


# ==========================================================================
# RESOLUTION VALUE OBJECTS
# ==========================================================================


@dataclass(frozen=True)
class SignalWeights:
    """Market/evidence/external weights for one strategy."""

    market: float
    evidence: float
    external: float

    @property
    def total(self) -> float:
        return self.market + self.evidence + self.external

    def validate(self, name: str = "weights") -> None:
        """Raise ConfigException unless the weights are non-negative and sum to 1."""
        if min(self.market, self.evidence, self.external) < 0:
            raise ConfigException(f"{name} contain a negative weight: {self.as_tuple()}")
        if abs(self.total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigException(f"{name} must sum to 1.0, got {self.total:.4f}")

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.market, self.evidence, self.external)

    def to_dict(self) -> dict[str, float]:
        return {"market": self.market, "evidence": self.evidence, "external": self.external}


@dataclass
class ResolutionConfig:
    """Tuning for credibility, weighting, aggregation and the lifecycle."""

    market_validated_threshold: float = 0.8
    evidence_contradicts_threshold: float = 0.2
    market_validated_weights: SignalWeights = field(default_factory=lambda: SignalWeights(0.60, 0.10, 0.30))
    evidence_contradicts_weights: SignalWeights = field(default_factory=lambda: SignalWeights(0.20, 0.30, 0.50))
    standard_weights: SignalWeights = field(default_factory=lambda: SignalWeights(0.35, 0.25, 0.40))
    conflict_threshold: float = 0.30
    min_evidence_for_conflict: int = 3

    # Credibility model
    contrarian_multiplier: float = 2.5
    verification_bonus: float = 1.1
    sybil_min_identity_age_days: float = 7.0
    sybil_penalty: float = 0.5
    sybil_burst_ratio: float = 0.20
    sybil_pool_penalty: float = 0.5

    # Alignment bonus, scaled down when any signal has a thin sample
    alignment_bonus: float = 8.0
    alignment_full_sample: int = 10

    # Lifecycle
    dispute_window_hours: float = 72.0
    max_evidence_days: int = 30
    min_confidence: float = 80.0
    auto_resolve_floor: float = 80.0

    def validate(self) -> None:
        """Check weights and thresholds; raise ConfigException on the first problem."""
        for name in ("market_validated_weights", "evidence_contradicts_weights", "standard_weights"):
            getattr(self, name).validate(name)
        for name in ("market_validated_threshold", "evidence_contradicts_threshold", "conflict_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigException(f"{name} must be within [0, 1], got {value}")
        if self.evidence_contradicts_threshold >= self.market_validated_threshold:
            raise ConfigException("evidence_contradicts_threshold must be below market_validated_threshold")
        if self.dispute_window_hours <= 0:
            raise ConfigException("dispute_window_hours must be positive")
        for name in ("min_confidence", "auto_resolve_floor"):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ConfigException(f"{name} must be within [0, 100], got {value}")

    @classmethod
    def from_settings(cls, settings: CoreSettings | None = None) -> ResolutionConfig:
        """Build and validate a ResolutionConfig from environment settings."""
        settings = settings or get_config()
        config = cls(
            market_validated_threshold=settings.market_validated_threshold,
            evidence_contradicts_threshold=settings.evidence_contradicts_threshold,
            market_validated_weights=SignalWeights(*settings.market_validated_weights),
            evidence_contradicts_weights=SignalWeights(*settings.evidence_contradicts_weights),
            standard_weights=SignalWeights(*settings.standard_weights),
            conflict_threshold=settings.conflict_threshold,
            min_evidence_for_conflict=settings.min_evidence_for_conflict,
            dispute_window_hours=settings.dispute_window_hours,
            max_evidence_days=settings.max_evidence_days,
            min_confidence=settings.min_confidence,
            auto_resolve_floor=settings.auto_resolve_floor,
        )
        config.validate()
        return config


@dataclass
class MonitorConfig:
    """Scheduling and fault-tolerance knobs for one ResolutionMonitor."""

    preliminary_interval: float = 15.0
    final_interval: float = 3600.0
    source_timeout: float = 30.0
    max_workers: int = 8
    max_attempts: int = 3

    def validate(self) -> None:
        if self.preliminary_interval <= 0 or self.final_interval <= 0:
            raise ConfigException("Monitor intervals must be positive")
        if self.source_timeout <= 0:
            raise ConfigException("source_timeout must be positive")
        if self.max_workers < 1:
            raise ConfigException("max_workers must be at least 1")
        if self.max_attempts < 1:
            raise ConfigException("max_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings: CoreSettings | None = None) -> MonitorConfig:
        settings = settings or get_config()
        config = cls(
            preliminary_interval=settings.preliminary_interval,
            final_interval=settings.final_interval,
            source_timeout=settings.source_timeout,
            max_workers=settings.max_workers,
            max_attempts=settings.max_attempts,
        )
        config.validate()
        if settings.inference_base_url and settings.inference_timeout >= settings.source_timeout:
            raise ConfigException(
                f"inference_timeout ({settings.inference_timeout}s) must be shorter than "
                f"source_timeout ({settings.source_timeout}s)"
            )
        return config
