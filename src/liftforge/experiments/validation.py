"""Structural validation of experiment definitions.

The validator never mutates its input and returns every violation it finds,
so one round trip is enough for a client to fix a definition.
"""

from collections import Counter

from pydantic import BaseModel

from liftforge.experiments.models import Experiment

ALLOCATION_TOLERANCE = 0.01
WEIGHT_TOLERANCE = 0.01

MIN_CONFIDENCE_LEVEL = 80.0
MAX_CONFIDENCE_LEVEL = 99.0
MIN_STATISTICAL_POWER = 50.0
MAX_STATISTICAL_POWER = 95.0


class Violation(BaseModel):
    """A single broken rule.

    Attributes:
        code: Machine-readable rule identifier
        field: Path of the offending field
        message: Human-readable explanation
    """

    code: str
    field: str
    message: str


class ExperimentValidator:
    """Checks experiment definitions before they are stored or started."""

    def validate(self, experiment: Experiment) -> list[Violation]:
        """Collect all rule violations of an experiment definition.

        Args:
            experiment: Candidate experiment (stored or not)

        Returns:
            List of violations, empty when the definition is valid
        """
        violations: list[Violation] = []
        violations.extend(self._check_variants(experiment))
        violations.extend(self._check_goals(experiment))
        violations.extend(self._check_statistics(experiment))
        return violations

    def is_valid(self, experiment: Experiment) -> bool:
        """Whether the experiment has no violations."""
        return not self.validate(experiment)

    def _check_variants(self, experiment: Experiment) -> list[Violation]:
        violations: list[Violation] = []
        variants = experiment.variants

        if len(variants) < 2:
            violations.append(
                Violation(
                    code="too_few_variants",
                    field="variants",
                    message="At least 2 variants are required",
                )
            )

        controls = sum(1 for v in variants if v.is_control)
        if controls != 1:
            violations.append(
                Violation(
                    code="control_count",
                    field="variants",
                    message=f"Exactly one variant must be marked as control, found {controls}",
                )
            )

        for variant in variants:
            if not 0.0 <= variant.traffic_allocation <= 100.0:
                violations.append(
                    Violation(
                        code="allocation_out_of_range",
                        field="variants.trafficAllocation",
                        message=(
                            f"Variant '{variant.name}' allocation must be between 0 and 100, "
                            f"got {variant.traffic_allocation:g}%"
                        ),
                    )
                )

        total = sum(v.traffic_allocation for v in variants)
        if abs(total - 100.0) > ALLOCATION_TOLERANCE:
            violations.append(
                Violation(
                    code="allocation_sum_mismatch",
                    field="variants.trafficAllocation",
                    message=f"Variant traffic allocations must sum to 100%, got {total:g}%",
                )
            )

        for variant_id, count in Counter(v.id for v in variants).items():
            if count > 1:
                violations.append(
                    Violation(
                        code="duplicate_variant_id",
                        field="variants.id",
                        message=f"Variant id '{variant_id}' is used {count} times",
                    )
                )

        for name, count in Counter(v.name for v in variants).items():
            if count > 1:
                violations.append(
                    Violation(
                        code="duplicate_variant_name",
                        field="variants.name",
                        message=f"Variant name '{name}' is used {count} times",
                    )
                )

        return violations

    def _check_goals(self, experiment: Experiment) -> list[Violation]:
        violations: list[Violation] = []
        goals = experiment.goals

        total_weight = sum(g.weight for g in goals)
        if abs(total_weight - 1.0) > WEIGHT_TOLERANCE:
            violations.append(
                Violation(
                    code="goal_weight_sum_mismatch",
                    field="goals.weight",
                    message=f"Goal weights must sum to 1, got {total_weight:g}",
                )
            )

        for goal_id, count in Counter(g.id for g in goals).items():
            if count > 1:
                violations.append(
                    Violation(
                        code="duplicate_goal_id",
                        field="goals.id",
                        message=f"Goal id '{goal_id}' is used {count} times",
                    )
                )

        return violations

    def _check_statistics(self, experiment: Experiment) -> list[Violation]:
        violations: list[Violation] = []
        settings = experiment.statistical_settings

        if not MIN_CONFIDENCE_LEVEL <= settings.confidence_level <= MAX_CONFIDENCE_LEVEL:
            violations.append(
                Violation(
                    code="confidence_out_of_range",
                    field="statisticalSettings.confidenceLevel",
                    message="Confidence level must be between 80 and 99",
                )
            )

        if not MIN_STATISTICAL_POWER <= settings.statistical_power <= MAX_STATISTICAL_POWER:
            violations.append(
                Violation(
                    code="power_out_of_range",
                    field="statisticalSettings.statisticalPower",
                    message="Statistical power must be between 50 and 95",
                )
            )

        if settings.minimum_detectable_effect <= 0:
            violations.append(
                Violation(
                    code="effect_not_positive",
                    field="statisticalSettings.minimumDetectableEffect",
                    message="Minimum detectable effect must be greater than 0",
                )
            )

        return violations
