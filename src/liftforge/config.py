"""Service configuration models and loading.

This module provides configuration management for the experimentation
service: logging, store resilience, monitoring cadence and thresholds, and
the settings of the autonomous pipeline.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator


class StoreSettings(BaseModel):
    """Timeouts and retry budget for experiment store calls."""

    model_config = ConfigDict(frozen=True)

    timeout_seconds: float = Field(default=2.0, gt=0, description="Per-call timeout")
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries after first attempt")
    backoff_ms: int = Field(default=100, ge=0, description="Delay before first retry")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, description="Backoff growth factor")


class MonitoringSettings(BaseModel):
    """Cadence and thresholds of the monitoring loop.

    Attributes:
        enabled: Whether the scheduler is started with the service
        interval_seconds: Seconds between monitoring cycles
        lease_ttl_seconds: How long one instance owns the monitor lease
        early_winner_min_visitors: Visitors each arm needs before an early winner is flagged
        underperformance_min_visitors: Visitors a variant needs before it can be flagged
        underperformance_threshold: Relative drop versus control that counts as substantial
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval_seconds: int = Field(default=3600, ge=1)
    lease_ttl_seconds: Optional[float] = Field(default=None, gt=0)
    early_winner_min_visitors: int = Field(default=100, ge=0)
    underperformance_min_visitors: int = Field(default=500, ge=0)
    underperformance_threshold: float = Field(default=0.2, gt=0, lt=1)

    @property
    def lease_ttl(self) -> float:
        """Lease time-to-live, defaulting to twice the interval."""
        return self.lease_ttl_seconds or float(self.interval_seconds * 2)


class AnalyzerThresholds(BaseModel):
    """Benchmarks the opportunity analyzer compares page signals against.

    Rates are fractions (0.03 means 3%), time on page is in seconds.
    """

    model_config = ConfigDict(frozen=True)

    target_conversion_rate: float = Field(default=0.03, gt=0, le=1)
    max_bounce_rate: float = Field(default=0.5, ge=0, lt=1)
    target_time_on_page: float = Field(default=60.0, gt=0)
    target_click_through_rate: float = Field(default=0.1, gt=0, le=1)
    confidence_half_visitors: int = Field(
        default=500, ge=1, description="Visitors at which confidence reaches 0.5"
    )


class PriorityWeights(BaseModel):
    """Weights combining opportunity signals into a hypothesis priority."""

    model_config = ConfigDict(frozen=True)

    impact: float = Field(default=0.4, gt=0)
    confidence: float = Field(default=0.3, gt=0)
    severity: float = Field(default=0.2, gt=0)


class AutonomousSettings(BaseModel):
    """Settings of the opportunity, hypothesis and builder pipeline."""

    model_config = ConfigDict(frozen=True)

    min_traffic_per_variation: int = Field(default=1000, ge=1)
    required_confidence_level: float = Field(default=95.0, ge=80, le=99)
    statistical_power: float = Field(default=80.0, ge=50, le=95)
    max_test_duration_days: int = Field(default=30, ge=1)
    enabled_categories: frozenset[str] = Field(
        default=frozenset({"headline", "cta", "form", "layout", "generic"})
    )
    analysis_cache_seconds: float = Field(default=10.0, ge=0)
    priority_weights: PriorityWeights = Field(default_factory=PriorityWeights)
    thresholds: AnalyzerThresholds = Field(default_factory=AnalyzerThresholds)


class LiftForgeSettings(BaseModel):
    """Global service configuration.

    Example:
        >>> settings = LiftForgeSettings(
        ...     monitoring=MonitoringSettings(enabled=False),
        ...     store=StoreSettings(timeout_seconds=0.5),
        ... )
    """

    model_config = ConfigDict(frozen=True)

    log_level: str = Field(default="INFO")
    json_logs: bool = True
    default_daily_traffic: int = Field(default=1000, ge=1)
    default_minimum_sample_size: int = Field(
        default=1000, ge=1, description="Per-variant floor when no estimate is available"
    )
    results_cache_ttl_seconds: float = Field(default=300.0, ge=0)
    results_cache_size: int = Field(default=1024, ge=1)
    recent_events_limit: int = Field(default=500, ge=1)
    store: StoreSettings = Field(default_factory=StoreSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    autonomous: AutonomousSettings = Field(default_factory=AutonomousSettings)

    @model_validator(mode="after")
    def validate_log_level(self) -> "LiftForgeSettings":
        """Validate that log_level names a standard logging level.

        Raises:
            ValueError: If the level is unknown
        """
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{self.log_level}'")
        return self


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def load_settings_from_env() -> LiftForgeSettings:
    """Load service configuration from environment variables.

    Automatically loads variables from a .env file if present.

    Reads configuration from environment variables with the following names:
    - LIFTFORGE_LOG_LEVEL: Logging level
    - LIFTFORGE_JSON_LOGS: Emit JSON logs (true/false)
    - LIFTFORGE_DAILY_TRAFFIC: Daily visitors used for duration estimates
    - LIFTFORGE_RESULTS_CACHE_TTL_SECONDS: Lifetime of cached results
    - LIFTFORGE_STORE_TIMEOUT_SECONDS: Per-call store timeout
    - LIFTFORGE_STORE_MAX_RETRIES: Store retries after the first attempt
    - LIFTFORGE_STORE_BACKOFF_MS: Initial retry delay
    - LIFTFORGE_MONITORING_ENABLED: Start the monitoring scheduler (true/false)
    - LIFTFORGE_MONITORING_INTERVAL_SECONDS: Seconds between monitoring cycles
    - LIFTFORGE_EARLY_WINNER_MIN_VISITORS: Visitor floor for early winners
    - LIFTFORGE_UNDERPERFORMANCE_MIN_VISITORS: Visitor floor for underperformers
    - LIFTFORGE_MIN_TRAFFIC_PER_VARIATION: Sample-size floor of generated experiments
    - LIFTFORGE_REQUIRED_CONFIDENCE_LEVEL: Confidence of generated experiments
    - LIFTFORGE_ENABLED_CATEGORIES: Comma-separated hypothesis categories

    Returns:
        LiftForgeSettings loaded from environment
    """
    load_dotenv()

    store = StoreSettings(
        timeout_seconds=float(os.getenv("LIFTFORGE_STORE_TIMEOUT_SECONDS", "2.0")),
        max_retries=int(os.getenv("LIFTFORGE_STORE_MAX_RETRIES", "3")),
        backoff_ms=int(os.getenv("LIFTFORGE_STORE_BACKOFF_MS", "100")),
    )

    monitoring = MonitoringSettings(
        enabled=_env_bool("LIFTFORGE_MONITORING_ENABLED", "true"),
        interval_seconds=int(os.getenv("LIFTFORGE_MONITORING_INTERVAL_SECONDS", "3600")),
        early_winner_min_visitors=int(os.getenv("LIFTFORGE_EARLY_WINNER_MIN_VISITORS", "100")),
        underperformance_min_visitors=int(
            os.getenv("LIFTFORGE_UNDERPERFORMANCE_MIN_VISITORS", "500")
        ),
    )

    categories_str = os.getenv("LIFTFORGE_ENABLED_CATEGORIES", "")
    autonomous_kwargs: dict = {
        "min_traffic_per_variation": int(os.getenv("LIFTFORGE_MIN_TRAFFIC_PER_VARIATION", "1000")),
        "required_confidence_level": float(
            os.getenv("LIFTFORGE_REQUIRED_CONFIDENCE_LEVEL", "95")
        ),
    }
    if categories_str:
        autonomous_kwargs["enabled_categories"] = frozenset(
            c.strip() for c in categories_str.split(",") if c.strip()
        )

    return LiftForgeSettings(
        log_level=os.getenv("LIFTFORGE_LOG_LEVEL", "INFO"),
        json_logs=_env_bool("LIFTFORGE_JSON_LOGS", "true"),
        default_daily_traffic=int(os.getenv("LIFTFORGE_DAILY_TRAFFIC", "1000")),
        results_cache_ttl_seconds=float(
            os.getenv("LIFTFORGE_RESULTS_CACHE_TTL_SECONDS", "300")
        ),
        store=store,
        monitoring=monitoring,
        autonomous=AutonomousSettings(**autonomous_kwargs),
    )
