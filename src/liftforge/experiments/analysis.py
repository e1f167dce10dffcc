"""Statistical analysis for experiments.

This module provides significance testing of variants against control with a
pooled two-proportion z-test, confidence intervals for the rate difference,
winner selection and recommendations, and required sample size estimation.
"""

import math
from dataclasses import dataclass
from typing import Optional

from scipy.stats import norm

from liftforge.experiments.enums import GoalType, RecommendationAction
from liftforge.experiments.errors import ComputationGuardError, ValidationError
from liftforge.experiments.models import (
    ConfidenceInterval,
    Experiment,
    Goal,
    GoalResult,
    Recommendation,
    SampleSizeEstimate,
    StatisticalResult,
    Variant,
    VariantResult,
    WinnerSummary,
)


@dataclass
class ProportionTest:
    """Outcome of a two-proportion z-test.

    Attributes:
        z_score: Standardized difference of the two rates
        p_value: Two-tailed p-value
    """

    z_score: float
    p_value: float


def z_critical(confidence_level: float) -> float:
    """Two-tailed critical z value for a confidence level given in percent."""
    alpha = 1.0 - confidence_level / 100.0
    return float(norm.ppf(1.0 - alpha / 2.0))


class StatisticalAnalyzer:
    """Analyzes experiment traffic for statistical significance.

    Degenerate inputs (no visitors, zero pooled variance) never raise out of
    ``analyze``: the affected comparison reports confidence 0 and p-value 1.
    """

    def __init__(
        self,
        default_minimum_sample_size: int = 1000,
        daily_traffic: int = 1000,
    ) -> None:
        """Initialize the analyzer.

        Args:
            default_minimum_sample_size: Per-variant sample required when an
                experiment does not declare one
            daily_traffic: Visitors per day used for duration estimates
        """
        self.default_minimum_sample_size = default_minimum_sample_size
        self.daily_traffic = daily_traffic

    def two_proportion_test(
        self,
        control_conversions: int,
        control_visitors: int,
        variant_conversions: int,
        variant_visitors: int,
    ) -> ProportionTest:
        """Run a pooled two-proportion z-test.

        Args:
            control_conversions: Converters in the control group
            control_visitors: Visitors in the control group
            variant_conversions: Converters in the treatment group
            variant_visitors: Visitors in the treatment group

        Returns:
            ProportionTest with z-score and two-tailed p-value

        Raises:
            ComputationGuardError: If either group is empty or the pooled variance is zero
        """
        if control_visitors <= 0 or variant_visitors <= 0:
            raise ComputationGuardError("Both groups need at least one visitor")

        p1 = control_conversions / control_visitors
        p2 = variant_conversions / variant_visitors
        pooled = (control_conversions + variant_conversions) / (
            control_visitors + variant_visitors
        )
        standard_error = math.sqrt(
            pooled * (1 - pooled) * (1 / control_visitors + 1 / variant_visitors)
        )
        if standard_error == 0:
            raise ComputationGuardError("Pooled variance is zero")

        z_score = (p2 - p1) / standard_error
        p_value = float(2 * norm.sf(abs(z_score)))
        return ProportionTest(z_score=z_score, p_value=max(0.0, min(1.0, p_value)))

    def compare(
        self,
        control: tuple[int, int],
        variant: tuple[int, int],
        confidence_level: float,
    ) -> VariantResult:
        """Compare one treatment against control.

        Args:
            control: (conversions, visitors) of the control
            variant: (conversions, visitors) of the treatment
            confidence_level: Target confidence in percent

        Returns:
            VariantResult with the significance fields filled in; identity
            fields are placeholders for the caller to set
        """
        control_conversions, control_visitors = control
        variant_conversions, variant_visitors = variant
        control_rate = control_conversions / control_visitors if control_visitors else 0.0
        variant_rate = variant_conversions / variant_visitors if variant_visitors else 0.0

        improvement = (
            (variant_rate - control_rate) / control_rate * 100 if control_rate > 0 else 0.0
        )

        try:
            test = self.two_proportion_test(
                control_conversions, control_visitors, variant_conversions, variant_visitors
            )
        except ComputationGuardError:
            test = ProportionTest(z_score=0.0, p_value=1.0)

        confidence = (1 - test.p_value) * 100

        return VariantResult(
            variant_id="",
            variant_name="",
            is_control=False,
            visitors=variant_visitors,
            conversions=variant_conversions,
            conversion_rate=variant_rate,
            improvement=improvement,
            z_score=test.z_score,
            p_value=test.p_value,
            confidence=confidence,
            meets_confidence_target=confidence >= confidence_level,
            confidence_interval=self._difference_interval(
                control_rate, control_visitors, variant_rate, variant_visitors, confidence_level
            ),
        )

    def analyze(self, experiment: Experiment, final: bool = False) -> StatisticalResult:
        """Compute significance of every variant against control for every goal.

        Args:
            experiment: Experiment with current variant metrics
            final: Whether this is the frozen result of a completed experiment

        Returns:
            StatisticalResult with per-goal results, winner and recommendation
        """
        settings = experiment.statistical_settings
        control = experiment.control or (experiment.variants[0] if experiment.variants else None)

        goal_results = [
            self._analyze_goal(experiment, goal, control, is_primary=(i == 0))
            for i, goal in enumerate(experiment.goals)
        ]
        primary = goal_results[0]

        winner = self._find_winner(primary)
        required = self.required_sample_size(experiment)
        min_visitors = min((v.metrics.visitors for v in experiment.variants), default=0)
        sample_size_sufficient = bool(experiment.variants) and min_visitors >= required

        recommendation = self._generate_recommendation(
            primary, winner, sample_size_sufficient, min_visitors, required
        )

        return StatisticalResult(
            experiment_id=experiment.id,
            status=experiment.status,
            confidence_target=settings.confidence_level,
            goals=goal_results,
            winner=winner,
            recommendation=recommendation,
            total_visitors=sum(v.metrics.visitors for v in experiment.variants),
            total_conversions=sum(v.conversions for v in primary.variants),
            required_sample_size=required,
            sample_size_sufficient=sample_size_sufficient,
            final=final,
        )

    def required_sample_size(self, experiment: Experiment) -> int:
        """Per-variant visitors needed before an experiment can be concluded."""
        declared = experiment.statistical_settings.minimum_sample_size
        return declared if declared is not None else self.default_minimum_sample_size

    def sample_size(
        self,
        baseline_rate: float,
        minimum_detectable_effect: float,
        confidence_level: float = 95.0,
        statistical_power: float = 80.0,
        variant_count: int = 2,
        daily_traffic: Optional[int] = None,
    ) -> SampleSizeEstimate:
        """Estimate the sample size needed to detect a relative lift.

        Uses the normal approximation
        ``n = 2 * p(1 - p) * (z_alpha/2 + z_beta)^2 / (p2 - p1)^2`` where ``p``
        is the mean of the baseline and expected rates.

        Args:
            baseline_rate: Baseline conversion rate in percent (0-100, exclusive)
            minimum_detectable_effect: Relative lift to detect in percent
            confidence_level: Confidence level in percent
            statistical_power: Power in percent
            variant_count: Number of variants including control
            daily_traffic: Visitors per day, defaults to the analyzer's figure

        Returns:
            SampleSizeEstimate with per-variant, total and duration figures

        Raises:
            ValidationError: If the inputs make the estimate undefined

        Example:
            >>> analyzer = StatisticalAnalyzer()
            >>> estimate = analyzer.sample_size(baseline_rate=5.0, minimum_detectable_effect=20.0)
            >>> estimate.total == estimate.per_variant * 2
            True
        """
        daily = daily_traffic or self.daily_traffic
        violations = self._sample_size_violations(
            baseline_rate,
            minimum_detectable_effect,
            confidence_level,
            statistical_power,
            variant_count,
            daily,
        )
        if violations:
            raise ValidationError("Invalid sample size parameters", violations=violations)

        p1 = baseline_rate / 100.0
        p2 = p1 * (1 + minimum_detectable_effect / 100.0)
        pooled = (p1 + p2) / 2

        z_alpha = z_critical(confidence_level)
        z_beta = float(norm.ppf(statistical_power / 100.0))

        per_variant = math.ceil(
            2 * pooled * (1 - pooled) * (z_alpha + z_beta) ** 2 / (p2 - p1) ** 2
        )
        total = per_variant * variant_count

        return SampleSizeEstimate(
            per_variant=per_variant,
            total=total,
            variant_count=variant_count,
            estimated_duration_days=math.ceil(total / daily),
            daily_traffic=daily,
            baseline_conversion_rate=baseline_rate,
            expected_conversion_rate=p2 * 100,
            minimum_detectable_effect=minimum_detectable_effect,
            confidence_level=confidence_level,
            statistical_power=statistical_power,
            z_alpha=z_alpha,
            z_beta=z_beta,
        )

    def _sample_size_violations(
        self,
        baseline_rate: float,
        minimum_detectable_effect: float,
        confidence_level: float,
        statistical_power: float,
        variant_count: int,
        daily_traffic: int,
    ) -> list[dict[str, str]]:
        violations = []
        baseline_valid = 0 < baseline_rate < 100
        if not baseline_valid:
            violations.append(
                {"field": "baselineConversionRate", "message": "Must be between 0 and 100"}
            )
        expected_rate = baseline_rate * (1 + minimum_detectable_effect / 100)
        if minimum_detectable_effect <= 0:
            violations.append(
                {"field": "minimumDetectableEffect", "message": "Must be greater than 0"}
            )
        elif baseline_valid and expected_rate >= 100:
            violations.append(
                {
                    "field": "minimumDetectableEffect",
                    "message": "Expected conversion rate must stay below 100%",
                }
            )
        if not 0 < confidence_level < 100:
            violations.append({"field": "confidenceLevel", "message": "Must be between 0 and 100"})
        if not 0 < statistical_power < 100:
            violations.append(
                {"field": "statisticalPower", "message": "Must be between 0 and 100"}
            )
        if variant_count < 2:
            violations.append({"field": "variantCount", "message": "At least 2 variants"})
        if daily_traffic < 1:
            violations.append({"field": "dailyTraffic", "message": "Must be at least 1"})
        return violations

    def _analyze_goal(
        self,
        experiment: Experiment,
        goal: Goal,
        control: Optional[Variant],
        is_primary: bool,
    ) -> GoalResult:
        confidence_level = experiment.statistical_settings.confidence_level
        rows: list[VariantResult] = []

        control_counts = (
            (control.metrics.conversions_for(goal.id), control.metrics.visitors)
            if control
            else (0, 0)
        )

        for variant in experiment.variants:
            conversions = variant.metrics.conversions_for(goal.id)
            visitors = variant.metrics.visitors
            revenue = variant.metrics.revenue_for(goal.id)

            if control is not None and variant.id == control.id:
                row = VariantResult(
                    variant_id=variant.id,
                    variant_name=variant.name,
                    is_control=True,
                    visitors=visitors,
                    conversions=conversions,
                    conversion_rate=conversions / visitors if visitors else 0.0,
                )
            else:
                row = self.compare(control_counts, (conversions, visitors), confidence_level)
                row.variant_id = variant.id
                row.variant_name = variant.name

            if goal.type == GoalType.REVENUE:
                row.revenue = revenue
                row.revenue_per_visitor = revenue / visitors if visitors else 0.0
            rows.append(row)

        return GoalResult(
            goal_id=goal.id,
            goal_name=goal.name,
            goal_type=goal.type,
            is_primary=is_primary,
            variants=rows,
        )

    def _find_winner(self, primary: GoalResult) -> Optional[WinnerSummary]:
        """Pick the significant treatment with the largest positive improvement."""
        candidates = [
            v
            for v in primary.variants
            if not v.is_control and v.meets_confidence_target and v.improvement > 0
        ]
        if not candidates:
            return None

        best = max(candidates, key=lambda v: (v.improvement, v.confidence))
        return WinnerSummary(
            variant_id=best.variant_id,
            variant_name=best.variant_name,
            improvement=best.improvement,
            confidence=best.confidence,
        )

    def _difference_interval(
        self,
        control_rate: float,
        control_visitors: int,
        variant_rate: float,
        variant_visitors: int,
        confidence_level: float,
    ) -> Optional[ConfidenceInterval]:
        if control_visitors <= 0 or variant_visitors <= 0:
            return None
        standard_error = math.sqrt(
            control_rate * (1 - control_rate) / control_visitors
            + variant_rate * (1 - variant_rate) / variant_visitors
        )
        margin = z_critical(confidence_level) * standard_error
        difference = variant_rate - control_rate
        return ConfidenceInterval(lower=difference - margin, upper=difference + margin)

    def _generate_recommendation(
        self,
        primary: GoalResult,
        winner: Optional[WinnerSummary],
        sample_size_sufficient: bool,
        min_visitors: int,
        required: int,
    ) -> Recommendation:
        if not sample_size_sufficient:
            return Recommendation(
                action=RecommendationAction.CONTINUE,
                reason=(
                    f"Continue experiment to reach the minimum sample size of "
                    f"{required} visitors per variant."
                ),
            )

        if winner is not None:
            return Recommendation(
                action=RecommendationAction.STOP_WINNER,
                reason=(
                    f"Variant '{winner.variant_name}' improves the primary goal by "
                    f"{winner.improvement:.2f}% at {winner.confidence:.1f}% confidence."
                ),
            )

        any_significant = any(
            v.meets_confidence_target for v in primary.variants if not v.is_control
        )
        if not any_significant and min_visitors > 2 * required:
            return Recommendation(
                action=RecommendationAction.STOP_INCONCLUSIVE,
                reason=(
                    "No variant reached significance after twice the required sample size. "
                    "Consider stopping the experiment."
                ),
            )

        return Recommendation(
            action=RecommendationAction.CONTINUE,
            reason="Results are not yet conclusive. Continue experiment to gather more data.",
        )
