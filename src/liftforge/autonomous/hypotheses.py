"""Hypothesis generation from optimization opportunities."""

import re
from dataclasses import dataclass
from typing import Optional

from liftforge.autonomous.models import (
    CurrentPerformance,
    ElementCategory,
    ExpectedImpact,
    HypothesisChange,
    OptimizationOpportunity,
    TestHypothesis,
)
from liftforge.config import PriorityWeights
from liftforge.experiments.enums import EventType
from liftforge.experiments.events import EventBus
from liftforge.observability.logging import get_logger

logger = get_logger(__name__)

# Relative lift range a hypothesis may claim, scaled by potential impact
MIN_EXPECTED_LIFT = 0.05
LIFT_RANGE = 0.25


@dataclass(frozen=True)
class ChangeRule:
    """Template for one proposed change."""

    change_type: str
    current_value: str
    proposed_value: str
    reasoning: str


CATEGORY_KEYWORDS: list[tuple[ElementCategory, frozenset[str]]] = [
    (ElementCategory.HEADLINE, frozenset({"h1", "h2", "h3", "headline", "title", "heading"})),
    (ElementCategory.CTA, frozenset({"cta", "button", "btn", "checkout", "buy", "cart"})),
    (ElementCategory.FORM, frozenset({"form", "input", "field", "fieldset", "textarea"})),
    (
        ElementCategory.LAYOUT,
        frozenset({"layout", "hero", "section", "grid", "banner", "container", "nav"}),
    ),
]

CHANGE_RULES: dict[ElementCategory, list[ChangeRule]] = {
    ElementCategory.HEADLINE: [
        ChangeRule(
            change_type="text",
            current_value="Current headline",
            proposed_value="Benefit-focused headline with urgency",
            reasoning="Headlines that lead with the benefit tend to lift engagement",
        ),
    ],
    ElementCategory.CTA: [
        ChangeRule(
            change_type="text",
            current_value="Get Started",
            proposed_value="Start Free Trial",
            reasoning="Action copy that names the offer lowers commitment anxiety",
        ),
        ChangeRule(
            change_type="style",
            current_value="Low-contrast button",
            proposed_value="High-contrast button above the fold",
            reasoning="A more visible call to action draws more clicks",
        ),
    ],
    ElementCategory.FORM: [
        ChangeRule(
            change_type="structure",
            current_value="Full form",
            proposed_value="Essential fields only",
            reasoning="Every removed field reduces abandonment",
        ),
        ChangeRule(
            change_type="behavior",
            current_value="Validation on submit",
            proposed_value="Inline validation",
            reasoning="Immediate feedback prevents failed submissions",
        ),
    ],
    ElementCategory.LAYOUT: [
        ChangeRule(
            change_type="layout",
            current_value="Multi-column layout",
            proposed_value="Single-column layout with primary action first",
            reasoning="A single reading path keeps attention on the primary action",
        ),
        ChangeRule(
            change_type="layout",
            current_value="Dense content block",
            proposed_value="Reduced content with more whitespace",
            reasoning="Less visual noise lowers bounce on first view",
        ),
    ],
    ElementCategory.GENERIC: [
        ChangeRule(
            change_type="content",
            current_value="Current content",
            proposed_value="Clarified value proposition",
            reasoning="A clearer value proposition helps visitors decide faster",
        ),
    ],
}


def classify_element(selector: str) -> ElementCategory:
    """Derive the element category from a CSS selector.

    Example:
        >>> classify_element("h1.hero-headline")
        <ElementCategory.HEADLINE: 'headline'>
    """
    tokens = set(re.split(r"[^a-z0-9]+", selector.lower()))
    for category, keywords in CATEGORY_KEYWORDS:
        if tokens & keywords:
            return category
    return ElementCategory.GENERIC


class HypothesisGenerator:
    """Turns optimization opportunities into testable hypotheses."""

    def __init__(
        self,
        weights: Optional[PriorityWeights] = None,
        enabled_categories: Optional[frozenset[str]] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        """Initialize the generator.

        Args:
            weights: Weights combining impact, confidence and severity into a priority
            enabled_categories: Categories allowed to propose changes, all when None
            events: Optional bus receiving ``hypothesis_generated`` events
        """
        self.weights = weights or PriorityWeights()
        self.enabled_categories = (
            enabled_categories
            if enabled_categories is not None
            else frozenset(c.value for c in ElementCategory)
        )
        self.events = events

    def priority(self, opportunity: OptimizationOpportunity) -> float:
        """Priority of a hypothesis built from an opportunity, higher runs first."""
        w = self.weights
        return (
            opportunity.potential_impact * w.impact
            + opportunity.confidence_score * w.confidence
            + opportunity.severity.score * w.severity
        ) * 100

    async def generate_hypothesis(self, opportunity: OptimizationOpportunity) -> TestHypothesis:
        """Build a hypothesis for one opportunity.

        Args:
            opportunity: Opportunity to address

        Returns:
            TestHypothesis whose proposed changes are empty when the element's
            category is disabled
        """
        category = classify_element(opportunity.element)
        data = opportunity.supporting_data
        data_support = [
            f"Conversion rate {data.conversion_rate:.2%} across {data.visitors} visitors",
            f"Bounce rate {data.bounce_rate:.2%}",
            f"Click-through rate {data.click_through_rate:.2%}",
        ]

        changes: list[HypothesisChange] = []
        if category.value in self.enabled_categories:
            changes = [
                HypothesisChange(
                    element=opportunity.element,
                    change_type=rule.change_type,
                    current_value=rule.current_value,
                    proposed_value=rule.proposed_value,
                    reasoning=rule.reasoning,
                    data_support=data_support,
                )
                for rule in CHANGE_RULES[category]
            ]
        else:
            logger.info(
                "hypothesis_category_disabled",
                category=category.value,
                element=opportunity.element,
            )

        lift = MIN_EXPECTED_LIFT + LIFT_RANGE * opportunity.potential_impact
        hypothesis = TestHypothesis(
            opportunity_id=opportunity.id,
            page=opportunity.page,
            element=opportunity.element,
            category=category,
            current_performance=CurrentPerformance(
                conversion_rate=data.conversion_rate,
                engagement_rate=data.click_through_rate,
                revenue_per_visitor=data.revenue_per_visitor,
            ),
            proposed_changes=changes,
            expected_impact=ExpectedImpact(
                conversion_lift=round(lift, 4),
                confidence_level=opportunity.confidence_score,
                reasoning=(
                    f"Addressing '{opportunity.issue}' on {opportunity.element} "
                    f"is expected to lift conversions by about {lift:.0%}"
                ),
            ),
            behavioral_insights=self._insights(opportunity),
            priority=round(self.priority(opportunity), 4),
        )

        logger.info(
            "hypothesis_generated",
            hypothesis_id=hypothesis.id,
            category=category.value,
            changes=len(changes),
            priority=hypothesis.priority,
        )
        if self.events is not None:
            await self.events.emit(
                EventType.HYPOTHESIS_GENERATED,
                None,
                hypothesis_id=hypothesis.id,
                opportunity_id=opportunity.id,
                category=category.value,
                priority=hypothesis.priority,
            )
        return hypothesis

    def _insights(self, opportunity: OptimizationOpportunity) -> list[str]:
        insights = list(opportunity.behavioral_patterns)
        segments = opportunity.segment_performance
        if len(segments) >= 2:
            worst = min(segments, key=lambda name: segments[name])
            best = max(segments, key=lambda name: segments[name])
            insights.append(
                f"Segment '{worst}' converts at {segments[worst]:.2%} "
                f"versus {segments[best]:.2%} for '{best}'"
            )
        return insights
