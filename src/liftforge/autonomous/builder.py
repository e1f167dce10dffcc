"""Experiment construction from test hypotheses."""

import math
from typing import Optional

from liftforge.autonomous.models import TestHypothesis
from liftforge.config import AutonomousSettings
from liftforge.experiments.analysis import StatisticalAnalyzer
from liftforge.experiments.enums import ExperimentType, GoalType
from liftforge.experiments.errors import ValidationError
from liftforge.experiments.models import (
    Experiment,
    ExperimentMetadata,
    Goal,
    StatisticalSettings,
    TargetingRules,
    Variant,
    VariantChange,
)
from liftforge.experiments.validation import ALLOCATION_TOLERANCE, Violation
from liftforge.observability.logging import get_logger

logger = get_logger(__name__)

PRIMARY_GOAL_WEIGHT = 0.6
REVENUE_GOAL_WEIGHT = 0.4


def even_split(variant_count: int) -> list[float]:
    """Split 100% evenly, putting the rounding remainder on the first slot.

    Example:
        >>> even_split(3)
        [33.34, 33.33, 33.33]
    """
    share = math.floor(10000 / variant_count) / 100
    control = round(100 - share * (variant_count - 1), 2)
    return [control] + [share] * (variant_count - 1)


class ExperimentBuilder:
    """Builds draft experiments from hypotheses.

    The experiment holds an unmodified control plus one treatment per proposed
    change. Built experiments are not stored; callers pass them to the
    experiment manager.
    """

    def __init__(
        self,
        analyzer: Optional[StatisticalAnalyzer] = None,
        settings: Optional[AutonomousSettings] = None,
    ) -> None:
        self.analyzer = analyzer or StatisticalAnalyzer()
        self.settings = settings or AutonomousSettings()

    def build_experiment(
        self,
        hypothesis: TestHypothesis,
        traffic_split: Optional[list[float]] = None,
        owner: Optional[str] = None,
    ) -> Experiment:
        """Build a draft experiment testing a hypothesis.

        Args:
            hypothesis: Hypothesis with at least one proposed change
            traffic_split: Allocation per variant, control first; even when omitted
            owner: Optional owner recorded in the metadata

        Returns:
            Draft Experiment ready to be stored

        Raises:
            ValidationError: If the hypothesis proposes no changes or the
                split does not match the variants
        """
        changes = hypothesis.proposed_changes
        if not changes:
            raise ValidationError(
                "Hypothesis proposes no changes",
                violations=[
                    Violation(
                        code="no_proposed_changes",
                        field="proposedChanges",
                        message="A hypothesis needs at least one proposed change",
                    ).model_dump()
                ],
                field="proposedChanges",
            )

        variant_count = len(changes) + 1
        allocations = self._allocations(variant_count, traffic_split)

        variants = [
            Variant(
                name="Control",
                description="Current experience",
                is_control=True,
                traffic_allocation=allocations[0],
            )
        ]
        for index, change in enumerate(changes, start=1):
            variants.append(
                Variant(
                    name=f"Variation {index}",
                    description=change.proposed_value,
                    traffic_allocation=allocations[index],
                    changes=[
                        VariantChange(
                            type=change.change_type,
                            target=change.element,
                            modification={
                                "from": change.current_value,
                                "to": change.proposed_value,
                                "reasoning": change.reasoning,
                            },
                        )
                    ],
                )
            )

        mde = hypothesis.expected_impact.conversion_lift * 100
        experiment = Experiment(
            name=f"Auto: {hypothesis.category.value} test on {hypothesis.page}"[:255],
            description=hypothesis.expected_impact.reasoning,
            type=ExperimentType.AB_TEST if variant_count == 2 else ExperimentType.MULTIVARIATE,
            variants=variants,
            primary_goal=Goal(
                id="conversion_rate",
                name="Conversion Rate",
                type=GoalType.CONVERSION,
                weight=PRIMARY_GOAL_WEIGHT,
            ),
            secondary_goals=[
                Goal(
                    id="revenue_per_visitor",
                    name="Revenue Per Visitor",
                    type=GoalType.REVENUE,
                    weight=REVENUE_GOAL_WEIGHT,
                )
            ],
            statistical_settings=StatisticalSettings(
                confidence_level=self.settings.required_confidence_level,
                statistical_power=self.settings.statistical_power,
                minimum_detectable_effect=mde,
                minimum_sample_size=self._minimum_sample_size(hypothesis, mde, variant_count),
                max_run_duration_days=self.settings.max_test_duration_days,
            ),
            targeting_rules=TargetingRules(page=hypothesis.page),
            metadata=ExperimentMetadata(
                owner=owner,
                tags=["auto-generated", hypothesis.category.value],
                hypothesis=hypothesis.expected_impact.reasoning,
                expected_outcome=f"+{mde:.1f}% conversion rate",
                generated_by="autonomous",
                priority=hypothesis.priority,
            ),
        )

        logger.info(
            "experiment_built",
            experiment_id=experiment.id,
            hypothesis_id=hypothesis.id,
            variants=variant_count,
            minimum_sample_size=experiment.statistical_settings.minimum_sample_size,
        )
        return experiment

    def _allocations(self, variant_count: int, traffic_split: Optional[list[float]]) -> list[float]:
        if traffic_split is None:
            return even_split(variant_count)

        if len(traffic_split) != variant_count:
            raise ValidationError(
                f"Traffic split has {len(traffic_split)} entries for {variant_count} variants",
                field="trafficSplit",
            )
        if abs(sum(traffic_split) - 100.0) > ALLOCATION_TOLERANCE:
            raise ValidationError(
                f"Traffic split must sum to 100%, got {sum(traffic_split):.2f}%",
                field="trafficSplit",
            )
        return list(traffic_split)

    def _minimum_sample_size(
        self, hypothesis: TestHypothesis, mde: float, variant_count: int
    ) -> int:
        floor = self.settings.min_traffic_per_variation
        baseline = hypothesis.current_performance.conversion_rate * 100
        try:
            estimate = self.analyzer.sample_size(
                baseline_rate=baseline,
                minimum_detectable_effect=mde,
                confidence_level=self.settings.required_confidence_level,
                statistical_power=self.settings.statistical_power,
                variant_count=variant_count,
            )
        except ValidationError as e:
            logger.info(
                "sample_size_estimate_unavailable",
                hypothesis_id=hypothesis.id,
                reason=e.message,
            )
            return floor
        return max(floor, estimate.per_variant)
