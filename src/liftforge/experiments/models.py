"""Pydantic models for experiments, participants and conversions.

This module defines the core data models for the experimentation engine.
All models accept both snake_case attribute names and camelCase JSON keys,
and serialize to camelCase when dumped with ``by_alias=True``.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from liftforge.experiments.enums import (
    DeviceType,
    ExperimentStatus,
    ExperimentType,
    GoalType,
    RecommendationAction,
)

SITE_WIDE_PAGE = "*"
WHOLE_PAGE_ELEMENT = "*"


def utcnow() -> datetime:
    """Current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate a short random identifier with a readable prefix."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class CamelModel(BaseModel):
    """Base model accepting snake_case or camelCase input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VariantChange(CamelModel):
    """A single modification applied by a variant.

    Attributes:
        type: Kind of change (text, style, layout, redirect, ...)
        target: CSS selector or URL the change applies to
        modification: Free-form description of the new state
    """

    type: str = Field(default="content", min_length=1, max_length=64)
    target: str = Field(..., min_length=1, max_length=512)
    modification: dict[str, Any] = Field(default_factory=dict)


class PerformanceMetrics(CamelModel):
    """Aggregated counters for a variant.

    ``conversions`` and ``conversion_rate`` track the primary goal; per-goal
    counters live in ``goal_conversions`` and ``goal_revenue``.
    """

    visitors: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)
    conversion_rate: float = Field(default=0.0, ge=0.0)
    revenue: float = 0.0
    goal_conversions: dict[str, int] = Field(default_factory=dict)
    goal_revenue: dict[str, float] = Field(default_factory=dict)

    def conversions_for(self, goal_id: str) -> int:
        """Unique converters recorded for a goal."""
        return self.goal_conversions.get(goal_id, 0)

    def revenue_for(self, goal_id: str) -> float:
        """Summed value recorded for a goal."""
        return self.goal_revenue.get(goal_id, 0.0)


class Variant(CamelModel):
    """Experiment variant with traffic allocation.

    Attributes:
        id: Unique identifier for the variant
        name: Human-readable variant name
        description: Optional description of what the variant changes
        is_control: Whether this variant is the unmodified baseline
        traffic_allocation: Percentage of traffic allocated, checked against 0-100
            by the validator
        changes: Modifications this variant applies
        metrics: Counters maintained by the engine
    """

    id: str = Field(default_factory=lambda: new_id("var"), min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    is_control: bool = False
    traffic_allocation: float
    changes: list[VariantChange] = Field(default_factory=list)
    metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)

    @field_validator("traffic_allocation")
    @classmethod
    def validate_allocation_precision(cls, value: float) -> float:
        """Validate that traffic allocation has at most 2 decimal places.

        Args:
            value: The traffic allocation to validate

        Returns:
            The validated traffic allocation

        Raises:
            ValueError: If more than 2 decimal places
        """
        if round(value, 2) != value:
            raise ValueError("Traffic allocation must have at most 2 decimal places")
        return value


class Goal(CamelModel):
    """Outcome measured by an experiment."""

    id: str = Field(default_factory=lambda: new_id("goal"), min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    type: GoalType = GoalType.CONVERSION
    target_value: Optional[float] = None
    weight: float = Field(default=1.0, ge=0.0, le=1.0)


class StatisticalSettings(CamelModel):
    """Statistical parameters of an experiment.

    Percent-valued fields use the 0-100 scale; ``minimum_detectable_effect``
    is the relative lift over the control rate.
    """

    confidence_level: float = Field(default=95.0, ge=0, le=100)
    statistical_power: float = Field(default=80.0, ge=0, le=100)
    minimum_detectable_effect: float = Field(default=5.0, ge=0)
    minimum_sample_size: Optional[int] = Field(default=None, ge=1)
    max_run_duration_days: Optional[int] = Field(default=None, ge=1)


class TargetingRules(CamelModel):
    """Who sees the experiment and where it runs."""

    page: str = Field(default=SITE_WIDE_PAGE, min_length=1)
    devices: list[DeviceType] = Field(default_factory=list)
    segments: list[str] = Field(default_factory=list)
    geo_locations: list[str] = Field(default_factory=list)
    custom_rules: dict[str, Any] = Field(default_factory=dict)


class ExperimentMetadata(CamelModel):
    """Ownership and outcome annotations."""

    owner: Optional[str] = None
    team: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    hypothesis: Optional[str] = None
    expected_outcome: Optional[str] = None
    generated_by: str = "human"
    priority: Optional[float] = None
    winner_id: Optional[str] = None
    winner_name: Optional[str] = None


class Experiment(CamelModel):
    """A controlled experiment comparing variants against a control.

    Attributes:
        id: Unique experiment identifier
        name: Human-readable experiment name
        description: Detailed description of the experiment
        type: Delivery mechanism for variants
        status: Current lifecycle status
        variants: Ordered variants; allocation ranges follow this order
        primary_goal: Goal used to pick a winner
        secondary_goals: Additional goals reported alongside the primary one
        statistical_settings: Confidence, power and effect-size parameters
        targeting_rules: Page and audience targeting
        metadata: Ownership and outcome annotations
    """

    id: str = Field(default_factory=lambda: new_id("exp"), min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    type: ExperimentType = ExperimentType.AB_TEST
    status: ExperimentStatus = ExperimentStatus.DRAFT
    variants: list[Variant] = Field(default_factory=list)
    primary_goal: Goal
    secondary_goals: list[Goal] = Field(default_factory=list)
    statistical_settings: StatisticalSettings = Field(default_factory=StatisticalSettings)
    targeting_rules: TargetingRules = Field(default_factory=TargetingRules)
    metadata: ExperimentMetadata = Field(default_factory=ExperimentMetadata)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def goals(self) -> list[Goal]:
        """Primary goal followed by secondary goals."""
        return [self.primary_goal, *self.secondary_goals]

    @property
    def control(self) -> Optional[Variant]:
        """The first variant marked as control, if any."""
        return next((v for v in self.variants if v.is_control), None)

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        """Look up a variant by ID."""
        return next((v for v in self.variants if v.id == variant_id), None)

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        """Look up a goal by ID."""
        return next((g for g in self.goals if g.id == goal_id), None)


class Participant(CamelModel):
    """A visitor assigned to one variant of one experiment.

    Created once per (experiment, identity) and never changed afterwards.
    """

    experiment_id: str
    participant_id: str
    variant_id: str
    session_id: str
    user_id: Optional[str] = None
    device_type: DeviceType
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    geo_location: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    assigned_at: datetime = Field(default_factory=utcnow)


class ConversionEvent(CamelModel):
    """An attributed conversion.

    Binary goals keep one event per (participant, goal) whose ``occurrences``
    and ``last_seen_at`` are refreshed on repeats; revenue goals append one
    event per call.
    """

    id: str = Field(default_factory=lambda: new_id("conv"))
    experiment_id: str
    variant_id: str
    participant_id: str
    goal_id: str
    value: Optional[float] = None
    properties: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    last_seen_at: datetime = Field(default_factory=utcnow)
    occurrences: int = Field(default=1, ge=1)


class ConfidenceInterval(CamelModel):
    """Interval around the difference in rates versus control."""

    lower: float
    upper: float


class VariantResult(CamelModel):
    """Per-variant statistics for one goal."""

    variant_id: str
    variant_name: str
    is_control: bool
    visitors: int
    conversions: int
    conversion_rate: float
    revenue: float = 0.0
    revenue_per_visitor: float = 0.0
    improvement: float = 0.0
    z_score: float = 0.0
    p_value: float = 1.0
    confidence: float = 0.0
    meets_confidence_target: bool = False
    confidence_interval: Optional[ConfidenceInterval] = None


class GoalResult(CamelModel):
    """Statistics for every variant on one goal."""

    goal_id: str
    goal_name: str
    goal_type: GoalType
    is_primary: bool
    variants: list[VariantResult]

    def get_variant(self, variant_id: str) -> Optional[VariantResult]:
        """Look up the result row for a variant."""
        return next((v for v in self.variants if v.variant_id == variant_id), None)


class WinnerSummary(CamelModel):
    """The variant that beat control on the primary goal."""

    variant_id: str
    variant_name: str
    improvement: float
    confidence: float


class Recommendation(CamelModel):
    """Suggested next step for an experiment."""

    action: RecommendationAction
    reason: str


class StatisticalResult(CamelModel):
    """Significance analysis of an experiment at a point in time."""

    experiment_id: str
    status: ExperimentStatus
    confidence_target: float
    goals: list[GoalResult]
    winner: Optional[WinnerSummary] = None
    recommendation: Recommendation
    total_visitors: int
    total_conversions: int
    required_sample_size: int
    sample_size_sufficient: bool
    final: bool = False
    computed_at: datetime = Field(default_factory=utcnow)

    @property
    def primary(self) -> GoalResult:
        """Result for the primary goal."""
        return self.goals[0]


class SampleSizeEstimate(CamelModel):
    """Required sample size for detecting a relative lift."""

    per_variant: int
    total: int
    variant_count: int
    estimated_duration_days: int
    daily_traffic: int
    baseline_conversion_rate: float
    expected_conversion_rate: float
    minimum_detectable_effect: float
    confidence_level: float
    statistical_power: float
    z_alpha: float
    z_beta: float
