"""Pydantic models for the autonomous optimization pipeline.

Page signals flow into optimization opportunities, opportunities into test
hypotheses, and hypotheses into draft experiments.
"""

from enum import Enum
from typing import ClassVar, Optional

from pydantic import Field

from liftforge.experiments.models import CamelModel, new_id


class Severity(str, Enum):
    """How badly an element underperforms its benchmarks."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def score(self) -> float:
        """Numeric weight of the severity on a 0-1 scale."""
        return _SEVERITY_SCORES[self]


_SEVERITY_SCORES = {
    Severity.LOW: 0.25,
    Severity.MEDIUM: 0.5,
    Severity.HIGH: 0.75,
    Severity.CRITICAL: 1.0,
}


class ElementCategory(str, Enum):
    """Kind of page element a hypothesis targets."""

    HEADLINE = "headline"
    CTA = "cta"
    FORM = "form"
    LAYOUT = "layout"
    GENERIC = "generic"


class PageSignals(CamelModel):
    """Observed behaviour of one element on one page.

    Rates are fractions (0.02 means 2%), time on page is in seconds.
    """

    page: str = Field(..., min_length=1)
    element: str = Field(..., min_length=1)
    visitors: int = Field(default=0, ge=0)
    conversion_rate: float = Field(..., ge=0, le=1)
    bounce_rate: float = Field(default=0.0, ge=0, le=1)
    time_on_page: float = Field(default=0.0, ge=0)
    click_through_rate: float = Field(default=0.0, ge=0, le=1)
    revenue_per_visitor: float = Field(default=0.0, ge=0)
    segment_performance: dict[str, float] = Field(default_factory=dict)
    behavioral_patterns: list[str] = Field(default_factory=list)


class SupportingData(CamelModel):
    """Metrics backing an opportunity."""

    visitors: int
    conversion_rate: float
    bounce_rate: float
    time_on_page: float
    click_through_rate: float
    revenue_per_visitor: float = 0.0


class OptimizationOpportunity(CamelModel):
    """An element that underperforms and is worth testing.

    Attributes:
        page: Page the element lives on
        element: CSS selector of the element
        issue: Human-readable description of the largest gap
        severity: Severity derived from the largest gap
        potential_impact: Expected upside on a 0-1 scale
        confidence_score: Trust in the signals on a 0-1 scale
        score: Ranking score
    """

    id: str = Field(default_factory=lambda: new_id("opp"))
    page: str
    element: str
    issue: str
    severity: Severity
    potential_impact: float = Field(..., ge=0, le=1)
    confidence_score: float = Field(..., ge=0, le=1)
    supporting_data: SupportingData
    segment_performance: dict[str, float] = Field(default_factory=dict)
    behavioral_patterns: list[str] = Field(default_factory=list)
    score: float = 0.0


class HypothesisChange(CamelModel):
    """One concrete modification proposed by a hypothesis."""

    element: str
    change_type: str
    current_value: str
    proposed_value: str
    reasoning: str
    data_support: list[str] = Field(default_factory=list)


class CurrentPerformance(CamelModel):
    """Baseline metrics of the targeted element."""

    conversion_rate: float
    engagement_rate: float
    revenue_per_visitor: float = 0.0


class ExpectedImpact(CamelModel):
    """What the hypothesis expects to achieve.

    ``conversion_lift`` is a relative lift as a fraction (0.1 means +10%).
    """

    conversion_lift: float = Field(..., gt=0, le=1)
    confidence_level: float = Field(..., ge=0, le=1)
    reasoning: str


class TestHypothesis(CamelModel):
    """A testable proposal derived from an optimization opportunity."""

    __test__: ClassVar[bool] = False

    id: str = Field(default_factory=lambda: new_id("hyp"))
    opportunity_id: Optional[str] = None
    page: str = Field(..., min_length=1)
    element: str = Field(..., min_length=1)
    category: ElementCategory
    current_performance: CurrentPerformance
    proposed_changes: list[HypothesisChange] = Field(default_factory=list)
    expected_impact: ExpectedImpact
    behavioral_insights: list[str] = Field(default_factory=list)
    priority: float = Field(default=0.0, ge=0)
